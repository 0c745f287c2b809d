from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlmodel import Session, delete, select

from leaderboard_node.db.tables import ParticipantRow, ScoreRecordRow
from leaderboard_node.entities.participant import Participant
from leaderboard_node.entities.score_record import ScoreRecord
from leaderboard_node.errors import DuplicateEmailError, DuplicateParticipantError, StoreUnavailableError
from leaderboard_node.services.interfaces.participant_repository import ParticipantRepository
from leaderboard_node.services.interfaces.score_record_repository import SORT_KEYS, ScoreRecordRepository

logger = logging.getLogger(__name__)


def _ensure_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


@contextmanager
def _store_call(session: Session, operation: str) -> Iterator[None]:
    """Translate connection-level failures into StoreUnavailableError."""
    try:
        yield
    except (OperationalError, PoolTimeoutError) as exc:
        session.rollback()
        raise StoreUnavailableError(operation, exc) from exc
    except DBAPIError as exc:
        if not exc.connection_invalidated:
            raise
        session.rollback()
        raise StoreUnavailableError(operation, exc) from exc


class DBScoreRecordRepository(ScoreRecordRepository):
    def __init__(self, session: Session):
        self._session = session

    def rollback(self) -> None:
        self._session.rollback()

    def find_by_participant(self, participant_id: str, for_update: bool = False) -> ScoreRecord | None:
        stmt = select(ScoreRecordRow).where(ScoreRecordRow.participant_id == participant_id)
        if for_update:
            stmt = stmt.with_for_update()

        with _store_call(self._session, "find_by_participant"):
            row = self._session.exec(stmt).first()
        return self._row_to_domain(row) if row else None

    def create(self, record: ScoreRecord) -> ScoreRecord:
        row = self._domain_to_row(record)

        with _store_call(self._session, "create"):
            self._session.add(row)
            try:
                self._session.commit()
            except IntegrityError as exc:
                self._session.rollback()
                raise DuplicateParticipantError(record.participant_id) from exc
            self._session.refresh(row)
            return self._row_to_domain(row)

    def save(self, record: ScoreRecord) -> ScoreRecord:
        with _store_call(self._session, "save"):
            existing = self._session.get(ScoreRecordRow, record.participant_id)
            row = self._domain_to_row(record)

            if existing is None:
                self._session.add(row)
                target = row
            else:
                existing.display_name = row.display_name
                existing.image_ref = row.image_ref
                existing.country = row.country
                existing.current_score = row.current_score
                existing.best_score = row.best_score
                existing.best_score_at = row.best_score_at
                existing.updated_at = datetime.now(timezone.utc)
                target = existing

            try:
                self._session.commit()
            except IntegrityError as exc:
                self._session.rollback()
                raise DuplicateParticipantError(record.participant_id) from exc
            self._session.refresh(target)
            return self._row_to_domain(target)

    def list_all(self, sort_key: str = "best_score", direction: str = "desc") -> list[ScoreRecord]:
        if sort_key not in SORT_KEYS:
            raise ValueError(f"Unsupported sort key {sort_key!r}, expected one of {SORT_KEYS}")
        if direction not in ("asc", "desc"):
            raise ValueError(f"Unsupported sort direction {direction!r}")

        column = getattr(ScoreRecordRow, sort_key)
        stmt = select(ScoreRecordRow).order_by(
            column.desc() if direction == "desc" else column.asc(),
            ScoreRecordRow.best_score_at.asc(),
            ScoreRecordRow.participant_id.asc(),
        )

        with _store_call(self._session, "list_all"):
            rows = self._session.exec(stmt).all()
        return [self._row_to_domain(row) for row in rows]

    def delete_all(self) -> int:
        with _store_call(self._session, "delete_all"):
            result = self._session.exec(delete(ScoreRecordRow))
            self._session.commit()
        deleted = result.rowcount or 0
        logger.warning("Deleted %d score records", deleted)
        return deleted

    @staticmethod
    def _row_to_domain(row: ScoreRecordRow) -> ScoreRecord:
        return ScoreRecord(
            participant_id=row.participant_id,
            display_name=row.display_name,
            image_ref=row.image_ref,
            country=row.country,
            current_score=row.current_score,
            best_score=row.best_score,
            best_score_at=_ensure_utc(row.best_score_at),
            created_at=_ensure_utc(row.created_at),
            updated_at=_ensure_utc(row.updated_at),
        )

    @staticmethod
    def _domain_to_row(record: ScoreRecord) -> ScoreRecordRow:
        return ScoreRecordRow(
            participant_id=record.participant_id,
            display_name=record.display_name,
            image_ref=record.image_ref,
            country=record.country,
            current_score=record.current_score,
            best_score=record.best_score,
            best_score_at=record.best_score_at,
            created_at=record.created_at,
            updated_at=datetime.now(timezone.utc),
        )


class DBParticipantRepository(ParticipantRepository):
    def __init__(self, session: Session):
        self._session = session

    def rollback(self) -> None:
        self._session.rollback()

    def fetch_all(self) -> list[Participant]:
        with _store_call(self._session, "fetch_participants"):
            rows = self._session.exec(
                select(ParticipantRow).order_by(ParticipantRow.created_at.asc())
            ).all()
        return [self._row_to_domain(row) for row in rows]

    def fetch_by_ids(self, ids: list[str]) -> dict[str, Participant]:
        if not ids:
            return {}
        with _store_call(self._session, "fetch_participants"):
            rows = self._session.exec(select(ParticipantRow).where(ParticipantRow.id.in_(ids))).all()
        return {row.id: self._row_to_domain(row) for row in rows}

    def create(self, participant: Participant) -> Participant:
        row = ParticipantRow(
            id=participant.id,
            name=participant.name,
            email=participant.email,
            age=participant.age,
            country=participant.country,
            created_at=participant.created_at,
            updated_at=participant.updated_at,
        )

        with _store_call(self._session, "create_participant"):
            self._session.add(row)
            try:
                self._session.commit()
            except IntegrityError as exc:
                self._session.rollback()
                raise DuplicateEmailError(participant.email) from exc
            self._session.refresh(row)
            return self._row_to_domain(row)

    @staticmethod
    def _row_to_domain(row: ParticipantRow) -> Participant:
        return Participant(
            id=row.id,
            name=row.name,
            email=row.email,
            age=row.age,
            country=row.country,
            created_at=_ensure_utc(row.created_at),
            updated_at=_ensure_utc(row.updated_at),
        )
