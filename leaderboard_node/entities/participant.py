from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

DEFAULT_COUNTRY = "Unknown"


@dataclass
class Participant:
    id: str
    name: str
    email: str
    age: int | None = None
    country: str = DEFAULT_COUNTRY
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
