from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime


@dataclass(slots=True)
class User:
    """Represents an authenticated actor, as vouched for by the identity provider."""

    user_id: str
    email: str = ""
    roles: list[str] = field(default_factory=list)
    authenticated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_admin(self) -> bool:
        return "admin" in self.roles

    def can_act_for(self, learner_id: str) -> bool:
        """Learners act only for themselves; admins act for anyone."""
        return self.is_admin or self.user_id == learner_id
