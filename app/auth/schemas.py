from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class CurrentAdmin(BaseModel):
    """Staff member resolved from a bearer token issued by the university auth service."""

    id: UUID
    email: Optional[str] = None
    role: str
