from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from ..modules.identity.roles import VISITOR

AuthSource = Literal["session", "supabase"]


@dataclass
class AuthenticatedUser:
    """The caller resolved from either a custom session or a Supabase token."""

    id: str
    email: str | None
    role: str = VISITOR
    source: AuthSource = "session"
    first_name: str | None = None
    last_name: str | None = None
    # Session token hash (custom sessions) so logout/refresh can find the record.
    session_hash: str | None = None
    claims: dict[str, Any] = field(default_factory=dict)

    @property
    def sub(self) -> str:
        # Access logs key on `sub`.
        return self.id

    def to_api(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "role": self.role,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "authSource": self.source,
        }
