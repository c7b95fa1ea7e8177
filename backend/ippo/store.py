"""SQLAlchemy-backed persistence for the ledger, pets and sprint history.

The engine treats every save as fire-and-forget: database errors are
logged here and reported as `False`, never raised into gameplay.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ippo.core import constants as C
from ippo.engine.progression import PetInstance, ProgressionLedger
from ippo.models.ledger import LedgerRow
from ippo.models.pet import PetRow
from ippo.models.sprint_record import SprintRecord
from ippo.schemas.sprint import SprintResult

logger = logging.getLogger(__name__)


def _aware(dt: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything we store is UTC
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def ledger_from_row(row: LedgerRow) -> ProgressionLedger:
    return ProgressionLedger(
        rp=row.rp or 0,
        weekly_rp=row.weekly_rp or 0,
        experience=row.experience or 0,
        coins=row.coins or 0,
        gems=row.gems or 0,
        current_streak=row.current_streak or 0,
        longest_streak=row.longest_streak or 0,
        last_activity_date=row.last_activity_date,
        decay_applied_through=row.decay_applied_through,
        weekly_reset_at=_aware(row.weekly_reset_at),
        ability_points=row.ability_points or 0,
        pet_points=row.pet_points or 0,
        unlocked_abilities=set(row.unlocked_abilities or []),
        loot_boxes=dict(row.loot_boxes or {}),
        sprints_since_last_catch=row.sprints_since_last_catch or 0,
        total_sprints=row.total_sprints or 0,
        total_valid_sprints=row.total_valid_sprints or 0,
    )


def pet_from_row(row: PetRow) -> PetInstance:
    return PetInstance(
        id=row.id,
        definition_id=row.definition_id,
        experience=row.experience or 0,
        mood=row.mood if row.mood is not None else C.DEFAULT_MOOD,
        ability_level=row.ability_level or 1,
        is_equipped=bool(row.is_equipped),
        caught_at=_aware(row.caught_at),
    )


class LedgerStore:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    # --- ledger ---

    def load_ledger(self, player_id: str) -> ProgressionLedger:
        """Stored ledger, or a fresh one if the player has none (or on error)."""
        db: Session = self._session_factory()
        try:
            row = db.get(LedgerRow, player_id)
            if row is None:
                return ProgressionLedger()
            return ledger_from_row(row)
        except SQLAlchemyError:
            logger.exception("Failed to load ledger for %s", player_id)
            return ProgressionLedger()
        finally:
            db.close()

    def save_ledger(self, player_id: str, ledger: ProgressionLedger) -> bool:
        db: Session = self._session_factory()
        try:
            row = db.get(LedgerRow, player_id)
            if row is None:
                row = LedgerRow(player_id=player_id)
                db.add(row)
            row.rp = ledger.rp
            row.weekly_rp = ledger.weekly_rp
            row.experience = ledger.experience
            row.coins = ledger.coins
            row.gems = ledger.gems
            row.current_streak = ledger.current_streak
            row.longest_streak = ledger.longest_streak
            row.last_activity_date = ledger.last_activity_date
            row.decay_applied_through = ledger.decay_applied_through
            row.weekly_reset_at = ledger.weekly_reset_at
            row.ability_points = ledger.ability_points
            row.pet_points = ledger.pet_points
            row.unlocked_abilities = sorted(ledger.unlocked_abilities)
            row.loot_boxes = dict(ledger.loot_boxes)
            row.sprints_since_last_catch = ledger.sprints_since_last_catch
            row.total_sprints = ledger.total_sprints
            row.total_valid_sprints = ledger.total_valid_sprints
            db.commit()
            return True
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Failed to save ledger for %s", player_id)
            return False
        finally:
            db.close()

    # --- pets ---

    def load_pets(self, player_id: str) -> list[PetInstance]:
        db: Session = self._session_factory()
        try:
            rows = (
                db.query(PetRow)
                .filter(PetRow.player_id == player_id)
                .order_by(PetRow.caught_at.asc(), PetRow.id.asc())
                .all()
            )
            return [pet_from_row(r) for r in rows]
        except SQLAlchemyError:
            logger.exception("Failed to load pets for %s", player_id)
            return []
        finally:
            db.close()

    def save_pets(self, player_id: str, pets: list[PetInstance]) -> bool:
        """Upsert every pet in the collection. Pets are never removed."""
        db: Session = self._session_factory()
        try:
            for pet in pets:
                row = db.get(PetRow, pet.id)
                if row is None:
                    row = PetRow(id=pet.id, player_id=player_id)
                    db.add(row)
                row.definition_id = pet.definition_id
                row.experience = pet.experience
                row.mood = pet.mood
                row.ability_level = pet.ability_level
                row.is_equipped = pet.is_equipped
                row.caught_at = pet.caught_at
            db.commit()
            return True
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Failed to save pets for %s", player_id)
            return False
        finally:
            db.close()

    # --- sprint history ---

    def record_sprint(self, player_id: str, result: SprintResult) -> bool:
        db: Session = self._session_factory()
        try:
            db.add(
                SprintRecord(
                    player_id=player_id,
                    sprint_id=result.sprint_id,
                    start_time=result.start_time,
                    end_time=result.end_time,
                    target_duration=result.target_duration,
                    duration=result.duration,
                    is_valid=result.is_valid,
                    score=result.score,
                    hr_score=result.hr_score,
                    cadence_score=result.cadence_score,
                    hrd_score=result.hrd_score,
                    baseline_hr=result.baseline_hr,
                    peak_hr=result.peak_hr,
                    average_hr=result.average_hr,
                    average_cadence=result.average_cadence,
                    peak_cadence=result.peak_cadence,
                    sample_count=result.sample_count,
                )
            )
            db.commit()
            return True
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Failed to record sprint %s", result.sprint_id)
            return False
        finally:
            db.close()

    def sprint_history(self, player_id: str, limit: int = 50) -> list[SprintResult]:
        db: Session = self._session_factory()
        try:
            rows = (
                db.query(SprintRecord)
                .filter(SprintRecord.player_id == player_id)
                .order_by(SprintRecord.start_time.desc(), SprintRecord.id.desc())
                .limit(limit)
                .all()
            )
            return [
                SprintResult(
                    sprint_id=r.sprint_id,
                    start_time=_aware(r.start_time),
                    end_time=_aware(r.end_time),
                    target_duration=r.target_duration,
                    duration=r.duration,
                    is_valid=r.is_valid,
                    score=r.score,
                    hr_score=r.hr_score,
                    cadence_score=r.cadence_score,
                    hrd_score=r.hrd_score,
                    baseline_hr=r.baseline_hr,
                    peak_hr=r.peak_hr,
                    average_hr=r.average_hr,
                    average_cadence=r.average_cadence,
                    peak_cadence=r.peak_cadence,
                    sample_count=r.sample_count,
                )
                for r in rows
            ]
        except SQLAlchemyError:
            logger.exception("Failed to load sprint history for %s", player_id)
            return []
        finally:
            db.close()
