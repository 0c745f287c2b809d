from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class ScoreSubmissionBody(BaseModel):
    """Score submission. Accepts snake_case and the legacy camelCase field names.

    Required fields are checked by the score update service, not here, so a
    missing id or score is reported as a submission error.
    """

    participant_id: str | int | None = Field(
        default=None, validation_alias=AliasChoices("participant_id", "userId")
    )
    display_name: str | None = Field(
        default=None, validation_alias=AliasChoices("display_name", "userName")
    )
    image_ref: str | None = Field(
        default=None, validation_alias=AliasChoices("image_ref", "userImage")
    )
    country: str | None = None
    score: float | None = None

    model_config = ConfigDict(extra="ignore")


class ParticipantCreateBody(BaseModel):
    name: str | None = None
    email: str | None = None
    age: int | None = Field(default=None, ge=0)
    country: str | None = None

    model_config = ConfigDict(extra="ignore")


class ChatBody(BaseModel):
    message: str | None = None
    history: list[dict[str, Any]] | None = None

    model_config = ConfigDict(extra="ignore")


class SentenceAnalysisBody(BaseModel):
    sentence: str | None = None

    model_config = ConfigDict(extra="ignore")
