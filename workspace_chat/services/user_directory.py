"""
UserDirectory - read-only lookups against the identity service's users.

The users collection is owned by the identity service. This service only
reads it to validate group members, list direct-message counterparts and
render display names. Display names are cached in Redis when available.
"""

from typing import Dict, Iterable, List, Optional

from beanie.operators import In, NE

from workspace_chat.config import settings
from workspace_chat.core.cache import cache
from workspace_chat.core.logging_config import get_logger
from workspace_chat.core.security import Principal
from workspace_chat.core.access import visible_counterpart_roles
from workspace_chat.models.user import User, Role

logger = get_logger(__name__)


def _name_key(user_id: str) -> str:
    return f"user:{user_id}:name"


class UserDirectory:

    async def get_user(self, user_id: str, company_id: str) -> Optional[User]:
        """Tenant-scoped lookup; users of other companies resolve to None."""
        return await User.find_one(User.id == user_id, User.company_id == company_id)

    async def resolve_active_employees(self, user_ids: List[str], company_id: str) -> List[User]:
        if not user_ids:
            return []
        return await User.find(
            In(User.id, user_ids),
            User.company_id == company_id,
            User.role == Role.EMPLOYEE,
            User.is_active == True,  # noqa: E712 - Beanie expression
        ).to_list()

    async def list_employees(self, company_id: str) -> List[User]:
        return await User.find(
            User.company_id == company_id,
            User.role == Role.EMPLOYEE,
        ).sort(+User.name).to_list()

    async def list_counterparts(self, principal: Principal) -> List[User]:
        """Everyone the principal may message directly, excluding themselves."""
        roles = [role for role in Role if role in visible_counterpart_roles(principal)]
        return await User.find(
            User.company_id == principal.company_id,
            NE(User.id, principal.user_id),
            In(User.role, roles),
        ).sort(+User.name).to_list()

    async def get_users(self, user_ids: Iterable[str]) -> Dict[str, User]:
        ids = list(set(user_ids))
        if not ids:
            return {}
        users = await User.find(In(User.id, ids)).to_list()
        return {user.id: user for user in users}

    async def display_names(self, user_ids: Iterable[str]) -> Dict[str, str]:
        """
        Resolve display names, cache first.

        Unknown users (e.g. removed from the directory) map to "Unknown".
        """
        names: Dict[str, str] = {}
        missing: List[str] = []

        for user_id in set(user_ids):
            cached = await cache.get(_name_key(user_id))
            if cached is not None:
                names[user_id] = cached
            else:
                missing.append(user_id)

        if missing:
            users = await self.get_users(missing)
            for user_id in missing:
                user = users.get(user_id)
                if user is None:
                    names[user_id] = "Unknown"
                    continue
                names[user_id] = user.display_name
                await cache.set(_name_key(user_id), user.display_name, ttl=settings.USER_CACHE_TTL)

        return names

    async def display_name(self, user_id: str) -> str:
        names = await self.display_names([user_id])
        return names[user_id]
