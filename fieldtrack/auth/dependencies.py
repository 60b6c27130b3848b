"""
FieldTrack - Security Dependencies

FastAPI dependencies for authentication and authorization.

Usage:
    @router.get("/protected")
    async def protected_route(user: AuthenticatedUser = Depends(get_current_user)):
        ...

    @router.delete("/{movement_id}")
    async def admin_route(user: AuthenticatedUser = Depends(require_role(Role.ADMIN))):
        ...

Security:
- Authentication failures short-circuit before any handler logic runs
- Role checks are deny-by-default and consult the stored identity, not
  just the claim
- get_current_identity additionally rejects deactivated identities and
  tokens minted before the identity's last forced termination
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel
from sqlmodel import Session as DBSession

from fieldtrack.auth.models import Role, User
from fieldtrack.auth.sessions import ActivityTracker
from fieldtrack.auth.tokens import AccessClaims, TokenIssuer
from fieldtrack.database import get_db
from fieldtrack.errors import ForbiddenError, InvalidTokenError, MissingTokenError


logger = logging.getLogger(__name__)

# HTTP Bearer scheme for JWT extraction; missing/malformed headers yield None
security = HTTPBearer(auto_error=False)


class AuthenticatedUser(BaseModel):
    """
    Represents a validated access token.

    Available in route handlers via Depends(get_current_user) and on
    request.state.user once the guard has run.
    """
    user_id: UUID
    email: Optional[str] = None
    role: Optional[str] = None
    name: Optional[str] = None
    token_id: str  # jti for session correlation
    gen: int = 0
    legacy_role: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value


def get_token_issuer(request: Request) -> TokenIssuer:
    return request.app.state.token_issuer


def get_activity_tracker(request: Request) -> ActivityTracker:
    return request.app.state.activity_tracker


def get_client_ip(request: Request) -> str:
    """Extract client IP from request."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def get_user_agent(request: Request) -> str:
    return request.headers.get("User-Agent", "unknown")[:512]


def _claims_to_user(claims: AccessClaims) -> AuthenticatedUser:
    try:
        user_id = UUID(claims.sub)
    except ValueError:
        raise InvalidTokenError()
    return AuthenticatedUser(
        user_id=user_id,
        email=claims.email,
        role=claims.role,
        name=claims.name,
        token_id=claims.jti,
        gen=claims.gen,
        legacy_role=claims.rol,
    )


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> AuthenticatedUser:
    """
    Validate the bearer token and return its claims.

    Raises:
        MissingTokenError: No Authorization header, or not "Bearer <token>"
        InvalidTokenError: Bad signature, malformed payload or wrong type
        ExpiredTokenError: Token past its expiry
    """
    if not credentials or not credentials.credentials:
        raise MissingTokenError()

    claims = issuer.verify_access(credentials.credentials)
    user = _claims_to_user(claims)
    request.state.user = user
    return user


async def get_current_identity(
    user: AuthenticatedUser = Depends(get_current_user),
    db: DBSession = Depends(get_db),
) -> User:
    """
    Load the identity behind a valid token.

    Rejects tokens for removed or deactivated identities and tokens whose
    generation no longer matches (logout, password change, deactivation).
    """
    identity = db.get(User, user.user_id)
    if identity is None or not identity.is_active:
        raise InvalidTokenError("User account is inactive or no longer exists")
    if identity.token_generation != user.gen:
        logger.info("Rejected revoked token %s for identity %s", user.token_id, identity.id)
        raise InvalidTokenError("Session has been terminated")
    return identity


def require_role(*roles: Role):
    """
    Dependency factory requiring both the token's role claim and the
    stored identity's role to be one of roles.

    The identity is loaded through get_current_identity, so revoked,
    deactivated and demoted holders are refused even while their access
    token is still within its lifetime.

    Usage:
        @router.get("/users", dependencies=[Depends(require_role(Role.ADMIN))])
    """
    allowed = {role.value for role in roles}

    async def checker(
        user: AuthenticatedUser = Depends(get_current_user),
        identity: User = Depends(get_current_identity),
    ) -> AuthenticatedUser:
        if user.role not in allowed or identity.role.value not in allowed:
            raise ForbiddenError("Insufficient permissions")
        return user

    return checker


async def require_admin(
    user: AuthenticatedUser = Depends(get_current_user),
    identity: User = Depends(get_current_identity),
) -> AuthenticatedUser:
    """
    Admin gate that also honours the `rol` claim of older tokens.

    Kept for clients still holding tokens minted before the claims were
    unified; remove once those have aged out. The stored identity must
    still be an admin whichever claim is presented.
    """
    if Role.ADMIN.value not in (user.role, user.legacy_role) or identity.role != Role.ADMIN:
        raise ForbiddenError("Admin access required")
    return user
