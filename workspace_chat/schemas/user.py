from pydantic import BaseModel, ConfigDict
from typing import List, Optional

from workspace_chat.models.user import User, Role


class UserSummary(BaseModel):
    """Public view of a directory user."""
    id: str
    name: str
    email: str
    role: Role
    avatar: Optional[str] = None
    is_active: bool = True

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_model(cls, user: User) -> "UserSummary":
        return cls(
            id=user.id,
            name=user.display_name,
            email=user.email,
            role=user.role,
            avatar=user.avatar,
            is_active=user.is_active,
        )


class EmployeeListResponse(BaseModel):
    employees: List[UserSummary]
    total: int
