"""Participant and score record tables."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ParticipantRow(SQLModel, table=True):
    __tablename__ = "participants"

    id: str = Field(primary_key=True)
    name: str
    email: str = Field(unique=True, index=True)
    age: Optional[int] = Field(default=None)
    country: str = Field(default="Unknown")

    created_at: datetime = Field(default_factory=utc_now, index=True)
    updated_at: datetime = Field(default_factory=utc_now)


class ScoreRecordRow(SQLModel, table=True):
    __tablename__ = "score_records"

    participant_id: str = Field(primary_key=True)
    display_name: Optional[str] = Field(default=None)
    image_ref: Optional[str] = Field(default=None)
    country: Optional[str] = Field(default=None)

    current_score: float = Field(default=0.0)
    best_score: float = Field(default=0.0, index=True)
    best_score_at: datetime = Field(default_factory=utc_now)

    created_at: datetime = Field(default_factory=utc_now, index=True)
    updated_at: datetime = Field(default_factory=utc_now, index=True)
