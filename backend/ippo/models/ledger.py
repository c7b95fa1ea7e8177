from sqlalchemy import Column, Integer, String, Date, DateTime, JSON
from sqlalchemy.sql import func
from ippo.db import Base


class LedgerRow(Base):
    __tablename__ = "ledgers"

    player_id = Column(String(64), primary_key=True, index=True)

    rp = Column(Integer, nullable=False, server_default="0")
    weekly_rp = Column(Integer, nullable=False, server_default="0")
    experience = Column(Integer, nullable=False, server_default="0")
    coins = Column(Integer, nullable=False, server_default="0")
    gems = Column(Integer, nullable=False, server_default="0")

    current_streak = Column(Integer, nullable=False, server_default="0")
    longest_streak = Column(Integer, nullable=False, server_default="0")
    last_activity_date = Column(Date, nullable=True)
    decay_applied_through = Column(Date, nullable=True)
    weekly_reset_at = Column(DateTime(timezone=True), nullable=True)

    ability_points = Column(Integer, nullable=False, server_default="0")
    pet_points = Column(Integer, nullable=False, server_default="0")
    unlocked_abilities = Column(JSON, nullable=True)  # ["rp_1", ...]
    loot_boxes = Column(JSON, nullable=True)          # {"rare": 2, ...}

    sprints_since_last_catch = Column(Integer, nullable=False, server_default="0")
    total_sprints = Column(Integer, nullable=False, server_default="0")
    total_valid_sprints = Column(Integer, nullable=False, server_default="0")

    # Level and rank are NOT stored; they are derived from xp / rp

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
