"""
Identity and request context models.
"""

from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict

Role = Literal["admin", "operator", "distribusi"]

ROLES = ("admin", "operator", "distribusi")

# The legacy superuser is recorded as user 0 in audit and attribution columns.
SUPERUSER_ID = 0


class Identity(BaseModel):
    """
    Who is making the request.

    ``kind`` tags how the identity was resolved: ``superuser`` sessions come
    from the configured credential pair and never touch the users table,
    ``stored`` sessions are re-read from the users table on every request.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["superuser", "stored"]
    user_id: int
    username: str
    full_name: str
    role: Role

    def has_role(self, *roles: str) -> bool:
        return self.role in roles


class RequestContext(BaseModel):
    """Immutable per-request context handed to services as the acting user."""

    model_config = ConfigDict(frozen=True)

    identity: Identity
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @property
    def user_id(self) -> int:
        return self.identity.user_id


def superuser_identity(username: str) -> Identity:
    return Identity(
        kind="superuser",
        user_id=SUPERUSER_ID,
        username=username,
        full_name="Legacy Admin",
        role="admin",
    )
