from sqlalchemy import Boolean, Column, DateTime, Integer, String
from ippo.db import Base


class PetRow(Base):
    __tablename__ = "pets"

    id = Column(String(64), primary_key=True)
    player_id = Column(String(64), index=True, nullable=False)

    definition_id = Column(String(32), nullable=False)  # e.g. "pet_04"
    experience = Column(Integer, nullable=False, server_default="0")
    mood = Column(Integer, nullable=False, server_default="8")
    ability_level = Column(Integer, nullable=False, server_default="1")
    is_equipped = Column(Boolean, nullable=False, server_default="0")
    caught_at = Column(DateTime(timezone=True), nullable=True)

    # Evolution stage is NOT stored; it is derived from experience
