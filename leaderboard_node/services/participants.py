from __future__ import annotations

import logging
import uuid

from leaderboard_node.entities.participant import DEFAULT_COUNTRY, Participant
from leaderboard_node.errors import InvalidParticipantError
from leaderboard_node.services.interfaces.participant_repository import ParticipantRepository


class ParticipantService:
    def __init__(self, repository: ParticipantRepository):
        self._repository = repository
        self.logger = logging.getLogger(__name__)

    def register(
        self,
        name: str | None,
        email: str | None,
        age: int | None = None,
        country: str | None = None,
    ) -> Participant:
        if not name or not name.strip():
            raise InvalidParticipantError("name is required")
        if not email or not email.strip():
            raise InvalidParticipantError("email is required")

        participant = Participant(
            id=uuid.uuid4().hex,
            name=name.strip(),
            email=email.strip().lower(),
            age=age,
            country=country or DEFAULT_COUNTRY,
        )
        created = self._repository.create(participant)
        self.logger.info("Registered participant=%s", created.id)
        return created

    def list_participants(self) -> list[Participant]:
        return self._repository.fetch_all()
