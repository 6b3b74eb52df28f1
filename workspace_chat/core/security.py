"""
Bearer token validation for the messaging API.

Tokens are issued by the identity service and signed with HS256 using the
shared JWT_SECRET_KEY. They carry the principal {id, role, company_id}.

Accepted claims:
- user id:   "sub" (preferred) or "id"
- role:      "role" ("admin" | "employee", case-insensitive)
- tenant:    "company_id" (preferred), "companyId" or "org_id"
- type:      optional; when present it must be "access"
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel

from workspace_chat.config import settings
from workspace_chat.core.exceptions import UnauthorizedError, ForbiddenError
from workspace_chat.core.logging_config import get_logger
from workspace_chat.models.user import Role

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)


class Principal(BaseModel):
    """
    The authenticated actor of a request.

    Attributes:
        user_id (str): User id from the 'sub' (or 'id') claim
        role (Role): admin or employee
        company_id (str): Tenant the user belongs to
        expires_at (datetime | None): Token expiry, when the token carries one
    """
    user_id: str
    role: Role
    company_id: str
    expires_at: Optional[datetime] = None

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @classmethod
    def from_jwt_payload(cls, payload: dict) -> "Principal":
        user_id = payload.get("sub") or payload.get("id")
        company_id = payload.get("company_id") or payload.get("companyId") or payload.get("org_id")
        raw_role = str(payload.get("role") or "").lower()

        if not user_id or not company_id:
            raise jwt.InvalidTokenError("Token is missing user or company claims")
        try:
            role = Role(raw_role)
        except ValueError:
            raise jwt.InvalidTokenError(f"Unknown role '{raw_role}'")

        expires_at = None
        if "exp" in payload:
            expires_at = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)

        return cls(
            user_id=str(user_id),
            role=role,
            company_id=str(company_id),
            expires_at=expires_at,
        )


def decode_token_string(token: str) -> Principal:
    """
    Decode and validate a raw JWT string.

    Shared by the HTTP dependency, the WebSocket endpoint (query parameter)
    and RequestContextMiddleware.

    Raises:
        jwt.InvalidTokenError: invalid signature, expired, wrong type or claims
    """
    payload = jwt.decode(
        token,
        settings.JWT_SECRET_KEY,
        algorithms=[settings.JWT_ALGORITHM],
        options={"verify_aud": False},
    )

    if payload.get("type", "access") != "access":
        raise jwt.InvalidTokenError("Invalid token type")

    return Principal.from_jwt_payload(payload)


def create_access_token(
    user_id: str,
    role: Role,
    company_id: str,
    expires_delta: timedelta = timedelta(hours=1),
) -> str:
    """
    Mint an access token in the identity service's format.

    Production tokens come from the identity service; this is used by
    scripts/generate_test_token.py and the test suite.
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "role": Role(role).value,
        "company_id": company_id,
        "type": "access",
        "iat": now,
        "exp": now + expires_delta,
    }
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def get_current_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Principal:
    """
    Resolve the principal from the Authorization header.

    Usage:
        @router.get("/groups")
        async def list_groups(principal: Principal = Depends(get_current_principal)):
            ...

    Raises:
        UnauthorizedError: 401 when the header is missing or the token is invalid
    """
    if credentials is None:
        raise UnauthorizedError("No token provided")

    try:
        principal = decode_token_string(credentials.credentials)
    except jwt.ExpiredSignatureError:
        logger.warning("token_expired")
        raise UnauthorizedError("Token has expired")
    except jwt.InvalidTokenError as e:
        logger.warning("token_invalid", error=str(e))
        raise UnauthorizedError("Invalid token")

    request.state.user_id = principal.user_id
    logger.debug(
        "principal_resolved",
        user_id=principal.user_id,
        role=principal.role.value,
        company_id=principal.company_id,
    )
    return principal


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    """Admin-only endpoints (group create/update/delete, employee listing)."""
    if not principal.is_admin:
        logger.warning(
            "admin_access_denied",
            user_id=principal.user_id,
            role=principal.role.value,
        )
        raise ForbiddenError("Admin access only")
    return principal
