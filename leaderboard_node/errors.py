from __future__ import annotations


class LeaderboardError(Exception):
    """Base class for errors raised by the leaderboard node."""


class InvalidSubmissionError(LeaderboardError, ValueError):
    """
    Raised when a score submission lacks the participant id or the score.
    """


class DuplicateParticipantError(LeaderboardError):
    """
    Raised by a store when a score record already exists for the participant.
    """

    def __init__(self, participant_id: str):
        super().__init__(f"Score record already exists for participant {participant_id!r}")
        self.participant_id = participant_id


class DuplicateEmailError(LeaderboardError):
    def __init__(self, email: str):
        super().__init__(f"A participant with email {email!r} already exists")
        self.email = email


class StoreUnavailableError(LeaderboardError):
    """
    Raised when the score record store cannot be reached. Callers may retry.
    """

    def __init__(self, operation: str, cause: Exception | None = None):
        super().__init__(f"Store unavailable during {operation}: {cause}")
        self.operation = operation
        self.cause = cause


class LLMGatewayError(LeaderboardError):
    """Raised when an LLM provider call fails after all retries."""


class InvalidParticipantError(LeaderboardError, ValueError):
    """Raised when a participant payload lacks its name or email."""
