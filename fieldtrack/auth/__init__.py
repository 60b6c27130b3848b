"""
FieldTrack - Authentication Package

- Stateless access/refresh JWT pairs with separate secrets
- bcrypt password hashing
- Role checks with deny-by-default
- Advisory session activity tracking
"""

from fieldtrack.auth.models import User, UserSession, Role, Region, Transport
from fieldtrack.auth.dependencies import (
    AuthenticatedUser,
    get_current_identity,
    get_current_user,
    require_admin,
    require_role,
)
from fieldtrack.auth.tokens import TokenIssuer
from fieldtrack.auth.sessions import ActivityTracker

__all__ = [
    "User",
    "UserSession",
    "Role",
    "Region",
    "Transport",
    "AuthenticatedUser",
    "get_current_identity",
    "get_current_user",
    "require_admin",
    "require_role",
    "TokenIssuer",
    "ActivityTracker",
]
