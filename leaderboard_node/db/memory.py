from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime, timezone

from leaderboard_node.entities.participant import Participant
from leaderboard_node.entities.score_record import ScoreRecord
from leaderboard_node.errors import DuplicateEmailError, DuplicateParticipantError
from leaderboard_node.services.interfaces.participant_repository import ParticipantRepository
from leaderboard_node.services.interfaces.score_record_repository import SORT_KEYS, ScoreRecordRepository


class InMemoryScoreRecordRepository(ScoreRecordRepository):
    """Process-local store. Returned records are copies; only create/save mutate state."""

    def __init__(self):
        self._records: dict[str, ScoreRecord] = {}
        self._lock = threading.Lock()

    def find_by_participant(self, participant_id: str, for_update: bool = False) -> ScoreRecord | None:
        with self._lock:
            record = self._records.get(participant_id)
            return replace(record) if record else None

    def create(self, record: ScoreRecord) -> ScoreRecord:
        with self._lock:
            if record.participant_id in self._records:
                raise DuplicateParticipantError(record.participant_id)
            stored = replace(record, updated_at=datetime.now(timezone.utc))
            self._records[record.participant_id] = stored
            return replace(stored)

    def save(self, record: ScoreRecord) -> ScoreRecord:
        with self._lock:
            stored = replace(record, updated_at=datetime.now(timezone.utc))
            self._records[record.participant_id] = stored
            return replace(stored)

    def list_all(self, sort_key: str = "best_score", direction: str = "desc") -> list[ScoreRecord]:
        if sort_key not in SORT_KEYS:
            raise ValueError(f"Unsupported sort key {sort_key!r}, expected one of {SORT_KEYS}")
        if direction not in ("asc", "desc"):
            raise ValueError(f"Unsupported sort direction {direction!r}")

        with self._lock:
            records = [replace(r) for r in self._records.values()]

        # Secondary keys first, then the stable primary sort.
        records.sort(key=lambda r: (r.best_score_at, r.participant_id))
        records.sort(key=lambda r: getattr(r, sort_key), reverse=direction == "desc")
        return records

    def delete_all(self) -> int:
        with self._lock:
            deleted = len(self._records)
            self._records.clear()
            return deleted


class InMemoryParticipantRepository(ParticipantRepository):
    def __init__(self, participants: list[Participant] | None = None):
        self._participants: dict[str, Participant] = {p.id: p for p in participants or []}
        self._lock = threading.Lock()

    def fetch_all(self) -> list[Participant]:
        with self._lock:
            return sorted(self._participants.values(), key=lambda p: p.created_at)

    def fetch_by_ids(self, ids: list[str]) -> dict[str, Participant]:
        with self._lock:
            return {pid: self._participants[pid] for pid in ids if pid in self._participants}

    def create(self, participant: Participant) -> Participant:
        with self._lock:
            if any(p.email == participant.email for p in self._participants.values()):
                raise DuplicateEmailError(participant.email)
            self._participants[participant.id] = participant
            return participant
