from __future__ import annotations

from abc import ABC, abstractmethod

from leaderboard_node.entities.score_record import ScoreRecord

SORT_KEYS = ("best_score", "current_score", "updated_at", "created_at")


class ScoreRecordRepository(ABC):
    @abstractmethod
    def find_by_participant(self, participant_id: str, for_update: bool = False) -> ScoreRecord | None:
        raise NotImplementedError

    @abstractmethod
    def create(self, record: ScoreRecord) -> ScoreRecord:
        """Insert a new record. Raises DuplicateParticipantError if the id exists."""
        raise NotImplementedError

    @abstractmethod
    def save(self, record: ScoreRecord) -> ScoreRecord:
        raise NotImplementedError

    @abstractmethod
    def list_all(self, sort_key: str = "best_score", direction: str = "desc") -> list[ScoreRecord]:
        raise NotImplementedError

    @abstractmethod
    def delete_all(self) -> int:
        raise NotImplementedError

    def rollback(self) -> None:
        """Release pending locks. No-op for stores without transactions."""
