from uuid import UUID

from pydantic import BaseModel

from app.core.enums import PersonRole


class CurrentUser(BaseModel):
    """Authenticated caller, resolved from the bearer token."""

    id: UUID
    username: str
    role: PersonRole
