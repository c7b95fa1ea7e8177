from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String
from ippo.db import Base


class SprintRecord(Base):
    __tablename__ = "sprint_records"

    id = Column(Integer, primary_key=True, index=True)
    player_id = Column(String(64), index=True, nullable=False)
    sprint_id = Column(String(64), unique=True, nullable=False)

    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    target_duration = Column(Float, nullable=False)
    duration = Column(Float, nullable=False)

    is_valid = Column(Boolean, nullable=False)
    score = Column(Float, nullable=False)
    hr_score = Column(Float, nullable=False)
    cadence_score = Column(Float, nullable=False)
    hrd_score = Column(Float, nullable=False)

    baseline_hr = Column(Integer, nullable=False)
    peak_hr = Column(Integer, nullable=False)
    average_hr = Column(Integer, nullable=False)
    average_cadence = Column(Integer, nullable=False)
    peak_cadence = Column(Integer, nullable=False)
    sample_count = Column(Integer, nullable=False)
