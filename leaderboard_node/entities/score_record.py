from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SubmissionOutcome(StrEnum):
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    NOT_IMPROVED = "NOT_IMPROVED"


class ScoreUpdatePolicy(StrEnum):
    LATEST = "latest"          # current score always follows the latest submission
    BEST_ONLY = "best_only"    # records are only written when the best score improves


@dataclass
class ScoreRecord:
    """Ranking state of one participant. `participant_id` is the unique key."""
    participant_id: str
    display_name: str | None = None
    image_ref: str | None = None
    country: str | None = None
    current_score: float = 0.0
    best_score: float = 0.0
    best_score_at: datetime = field(default_factory=utc_now)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


@dataclass
class ScoreSubmission:
    participant_id: str | None
    score: float | None
    display_name: str | None = None
    image_ref: str | None = None
    country: str | None = None


@dataclass
class SubmissionResult:
    outcome: SubmissionOutcome
    record: ScoreRecord
    best_improved: bool


@dataclass
class RankedEntry:
    rank: int
    record: ScoreRecord
    name: str | None = None      # joined from the participant when one exists
    country: str | None = None


@dataclass
class ParticipantView:
    user_data: RankedEntry
    top: list[RankedEntry] = field(default_factory=list)
