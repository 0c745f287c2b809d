from __future__ import annotations

import logging

from leaderboard_node.entities.score_record import ParticipantView, RankedEntry, ScoreRecord
from leaderboard_node.services.interfaces.participant_repository import ParticipantRepository
from leaderboard_node.services.interfaces.score_record_repository import ScoreRecordRepository
from leaderboard_node.services.retry import call_with_store_retry


def ranking_sort_key(record: ScoreRecord) -> tuple:
    """Best score descending, then whoever reached it first, then participant id."""
    return (-record.best_score, record.best_score_at, record.participant_id)


class RankingService:
    def __init__(
        self,
        score_repository: ScoreRecordRepository,
        participant_repository: ParticipantRepository | None = None,
        top_k: int = 10,
        store_retries: int = 3,
        store_retry_backoff_seconds: float = 0.2,
    ):
        self._score_repository = score_repository
        self._participant_repository = participant_repository
        self._top_k = top_k
        self._store_retries = store_retries
        self._store_retry_backoff_seconds = store_retry_backoff_seconds
        self.logger = logging.getLogger(__name__)

    def full_ranking(self) -> list[RankedEntry]:
        records = call_with_store_retry(
            lambda: self._score_repository.list_all("best_score", "desc"),
            operation="list_all",
            retries=self._store_retries,
            backoff_seconds=self._store_retry_backoff_seconds,
        )
        ranked = sorted(records, key=ranking_sort_key)
        return [
            RankedEntry(rank=idx, record=record, name=record.display_name, country=record.country)
            for idx, record in enumerate(ranked, start=1)
        ]

    def top(self, k: int | None = None) -> list[RankedEntry]:
        limit = self._resolve_k(k)
        return self._join_participants(self.full_ranking()[:limit])

    def rank_of(self, participant_id: str) -> int | None:
        # Linear scan over the full order; fine while the board fits in one query.
        for entry in self.full_ranking():
            if entry.record.participant_id == participant_id:
                return entry.rank
        return None

    def participant_view(self, participant_id: str, k: int | None = None) -> ParticipantView | None:
        ranking = self.full_ranking()
        own = next((e for e in ranking if e.record.participant_id == participant_id), None)
        if own is None:
            self.logger.info("No score record for participant=%s", participant_id)
            return None

        top = ranking[: self._resolve_k(k)]
        joined = self._join_participants([own, *top])
        return ParticipantView(user_data=joined[0], top=joined[1:])

    def _resolve_k(self, k: int | None) -> int:
        if k is None:
            return self._top_k
        if k < 1:
            raise ValueError("k must be >= 1")
        return k

    def _join_participants(self, entries: list[RankedEntry]) -> list[RankedEntry]:
        if self._participant_repository is None or not entries:
            return entries

        ids = sorted({e.record.participant_id for e in entries})
        participants = call_with_store_retry(
            lambda: self._participant_repository.fetch_by_ids(ids),
            operation="fetch_participants",
            retries=self._store_retries,
            backoff_seconds=self._store_retry_backoff_seconds,
        )

        joined: list[RankedEntry] = []
        for entry in entries:
            participant = participants.get(entry.record.participant_id)
            if participant is None:
                joined.append(entry)
                continue
            joined.append(
                RankedEntry(
                    rank=entry.rank,
                    record=entry.record,
                    name=participant.name,
                    country=participant.country,
                )
            )
        return joined
