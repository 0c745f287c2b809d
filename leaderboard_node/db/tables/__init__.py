from leaderboard_node.db.tables.leaderboard import ParticipantRow, ScoreRecordRow

__all__ = ["ParticipantRow", "ScoreRecordRow"]
