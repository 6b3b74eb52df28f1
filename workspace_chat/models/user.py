from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from beanie import Document
from pydantic import Field


class Role(str, Enum):
    """Closed set of principal roles issued by the identity service."""
    ADMIN = "admin"
    EMPLOYEE = "employee"


class User(Document):
    """
    Read-only view of the identity service's user directory.

    Users are created and maintained by the identity service; this service
    only resolves them for membership validation, counterpart listings,
    display names and push tokens.
    """
    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str = ""
    email: str
    role: Role
    company_id: str
    is_active: bool = True
    avatar: Optional[str] = None
    push_token: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "users"
        indexes = [
            [("company_id", 1), ("role", 1)],
        ]

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        return self.email.split("@")[0]
