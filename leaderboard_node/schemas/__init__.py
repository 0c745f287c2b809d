from leaderboard_node.schemas.payload_contracts import (
    ChatBody,
    ParticipantCreateBody,
    ScoreSubmissionBody,
    SentenceAnalysisBody,
)

__all__ = [
    "ScoreSubmissionBody",
    "ParticipantCreateBody",
    "ChatBody",
    "SentenceAnalysisBody",
]
