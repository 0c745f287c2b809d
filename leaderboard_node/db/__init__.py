from .memory import InMemoryParticipantRepository, InMemoryScoreRecordRepository
from .repositories import DBParticipantRepository, DBScoreRecordRepository
from .session import engine, create_session, database_url
