from __future__ import annotations

import logging
import math
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator

from leaderboard_node.entities.score_record import (
    ScoreRecord,
    ScoreSubmission,
    ScoreUpdatePolicy,
    SubmissionOutcome,
    SubmissionResult,
)
from leaderboard_node.errors import DuplicateParticipantError, InvalidSubmissionError
from leaderboard_node.services.interfaces.score_record_repository import ScoreRecordRepository
from leaderboard_node.services.retry import call_with_store_retry


class ParticipantLocks:
    """One lock per participant id with a waiter count.

    An entry lives only while some caller holds or waits on it, so the map is
    bounded by in-flight submissions, not by every id ever seen.
    """

    def __init__(self):
        self._locks: dict[str, list] = {}  # participant_id -> [lock, users]
        self._guard = threading.Lock()

    def active_count(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, participant_id: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(participant_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[participant_id]


class ScoreUpdateService:
    """Create-or-update of a participant's score record.

    The read-modify-write runs under the participant's in-process lock and,
    for stores that support it, a row lock taken by ``find_by_participant``.
    A create that loses a race against another writer is replayed once as an
    update.
    """

    def __init__(
        self,
        repository: ScoreRecordRepository,
        locks: ParticipantLocks | None = None,
        policy: ScoreUpdatePolicy = ScoreUpdatePolicy.LATEST,
        store_retries: int = 3,
        store_retry_backoff_seconds: float = 0.2,
    ):
        self._repository = repository
        self._locks = locks if locks is not None else ParticipantLocks()
        self._policy = ScoreUpdatePolicy(policy)
        self._store_retries = store_retries
        self._store_retry_backoff_seconds = store_retry_backoff_seconds
        self.logger = logging.getLogger(__name__)

    def submit(self, submission: ScoreSubmission) -> SubmissionResult:
        participant_id, score = self._validate(submission)

        with self._locks.hold(participant_id):
            result = call_with_store_retry(
                lambda: self._apply(participant_id, score, submission),
                operation=f"submit participant={participant_id}",
                retries=self._store_retries,
                backoff_seconds=self._store_retry_backoff_seconds,
            )

        self.logger.info(
            "participant=%s score=%s outcome=%s best=%s",
            participant_id, score, result.outcome, result.record.best_score,
        )
        return result

    @staticmethod
    def _validate(submission: ScoreSubmission) -> tuple[str, float]:
        participant_id = submission.participant_id
        if participant_id is None or not str(participant_id).strip():
            raise InvalidSubmissionError("participant id is required")
        if submission.score is None or isinstance(submission.score, bool):
            raise InvalidSubmissionError("score is required")

        try:
            score = float(submission.score)
        except (TypeError, ValueError) as exc:
            raise InvalidSubmissionError(f"score must be numeric, got {submission.score!r}") from exc
        if not math.isfinite(score):
            raise InvalidSubmissionError(f"score must be a finite number, got {score!r}")

        return str(participant_id).strip(), score

    def _apply(self, participant_id: str, score: float, submission: ScoreSubmission) -> SubmissionResult:
        existing = self._repository.find_by_participant(participant_id, for_update=True)

        if existing is None:
            now = datetime.now(timezone.utc)
            record = ScoreRecord(
                participant_id=participant_id,
                display_name=submission.display_name,
                image_ref=submission.image_ref,
                country=submission.country,
                current_score=score,
                best_score=score,
                best_score_at=now,
                created_at=now,
                updated_at=now,
            )
            try:
                created = self._repository.create(record)
                return SubmissionResult(SubmissionOutcome.CREATED, created, best_improved=True)
            except DuplicateParticipantError:
                self.logger.info("participant=%s was created concurrently, applying as update", participant_id)
                existing = self._repository.find_by_participant(participant_id, for_update=True)
                if existing is None:
                    raise

        return self._update(existing, score, submission)

    def _update(self, record: ScoreRecord, score: float, submission: ScoreSubmission) -> SubmissionResult:
        improved = score > record.best_score

        if self._policy == ScoreUpdatePolicy.BEST_ONLY and not improved:
            self._repository.rollback()
            return SubmissionResult(SubmissionOutcome.NOT_IMPROVED, record, best_improved=False)

        record.current_score = score
        if improved:
            record.best_score = score
            record.best_score_at = datetime.now(timezone.utc)

        # last write wins for display metadata
        if submission.display_name is not None:
            record.display_name = submission.display_name
        if submission.image_ref is not None:
            record.image_ref = submission.image_ref
        if submission.country is not None:
            record.country = submission.country

        saved = self._repository.save(record)
        return SubmissionResult(SubmissionOutcome.UPDATED, saved, best_improved=improved)
