"""
Bearer-token authentication and role-based policies.

Tokens are HS256 JWTs issued by the identity service; this API only verifies
them. Claims: sub (user id), role, email, iss, aud, exp.
"""
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Optional
from uuid import UUID

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from shopilent.core import config
from shopilent.core.clock import utcnow
from shopilent.core.errors import ForbiddenError, UnauthorizedError


class Role(str, Enum):
    CUSTOMER = "Customer"
    ADMIN = "Admin"
    MANAGER = "Manager"


STAFF_ROLES = (Role.ADMIN, Role.MANAGER)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    id: UUID
    role: Role
    email: Optional[str] = None

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


def create_access_token(user_id: UUID, role: Role, email: Optional[str] = None, expires_minutes: Optional[int] = None) -> str:
    now = utcnow()
    lifetime = timedelta(minutes=expires_minutes or config.ACCESS_TOKEN_MINUTES)
    claims = {
        "sub": str(user_id),
        "role": Role(role).value,
        "email": email,
        "iss": config.JWT_ISSUER,
        "aud": config.JWT_AUDIENCE,
        "iat": now,
        "exp": now + lifetime,
    }
    return jwt.encode(claims, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> CurrentUser:
    try:
        claims = jwt.decode(
            token,
            config.JWT_SECRET,
            algorithms=[config.JWT_ALGORITHM],
            audience=config.JWT_AUDIENCE,
            issuer=config.JWT_ISSUER,
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Access token has expired.", code="token_expired")
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Access token is invalid.", code="invalid_token")

    try:
        return CurrentUser(id=UUID(claims["sub"]), role=Role(claims["role"]), email=claims.get("email"))
    except (KeyError, ValueError):
        raise UnauthorizedError("Access token is missing required claims.", code="invalid_token")


async def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> CurrentUser:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise UnauthorizedError("Bearer token required.")
    return decode_access_token(credentials.credentials)


def require_roles(*roles: Role):
    """Dependency factory: admits only callers holding one of the given roles."""
    allowed = frozenset(roles)

    async def dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in allowed:
            raise ForbiddenError(f"Role '{user.role.value}' is not permitted to perform this action.")
        return user

    return dependency


def ensure_owner_or_staff(user: CurrentUser, owner_id) -> None:
    if user.is_staff or str(owner_id) == str(user.id):
        return
    raise ForbiddenError("You do not have access to this resource.")
