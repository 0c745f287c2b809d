from __future__ import annotations

from abc import ABC, abstractmethod

from leaderboard_node.entities.participant import Participant


class ParticipantRepository(ABC):
    @abstractmethod
    def fetch_all(self) -> list[Participant]:
        raise NotImplementedError

    @abstractmethod
    def fetch_by_ids(self, ids: list[str]) -> dict[str, Participant]:
        raise NotImplementedError

    @abstractmethod
    def create(self, participant: Participant) -> Participant:
        """Insert a participant. Raises DuplicateEmailError on an email clash."""
        raise NotImplementedError
