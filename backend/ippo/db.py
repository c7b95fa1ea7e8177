from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from ippo.core.config import settings

# SQLAlchemy Base class for models to inherit
Base = declarative_base()


def make_engine(url: str):
    if url.startswith("sqlite"):
        # In-memory SQLite must share one connection across threads
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url.rstrip("/").endswith("sqlite:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(
        url,
        pool_pre_ping=True,   # helps avoid stale connections
    )


# Create SQLAlchemy engine (Postgres by default, SQLite for tests)
engine = make_engine(settings.database_url)

# Factory that creates DB sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
