"""
FieldTrack - JWT Token Management

Creates and validates the two token classes:

- Access tokens (short-lived, minutes): carry identity id, email, role,
  name, a random token id (jti) and type="access".
- Refresh tokens (long-lived, days): carry the identity id and the SAME
  jti as their paired access token, type="refresh".

Security:
- Distinct signing secrets per class, so a leaked refresh secret cannot
  forge access tokens and vice versa
- Every token embeds the identity's token generation ("gen"); bumping it
  server-side kills all outstanding tokens at the next identity check
- Rotation does NOT denylist the presented refresh token; it stays valid
  until its own expiry unless the generation moves
"""

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, Optional
import secrets

from jose import jwt, JWTError, ExpiredSignatureError
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

from fieldtrack.config import Settings
from fieldtrack.datetime_utils import utcnow
from fieldtrack.errors import ExpiredTokenError, InvalidTokenError


ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


class AccessClaims(BaseModel):
    """
    Decoded access token payload.

    `rol` is the claim name used by tokens minted before the claims were
    unified; only the legacy admin gate reads it.
    """
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    sub: str = Field(..., validation_alias=AliasChoices("sub", "id"))
    jti: str = Field(..., validation_alias=AliasChoices("jti", "tokenId"))
    type: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    rol: Optional[str] = None
    name: Optional[str] = None
    gen: int = 0
    iat: Optional[int] = None
    exp: int


class RefreshClaims(BaseModel):
    """Decoded refresh token payload."""
    model_config = ConfigDict(extra="ignore")

    sub: str
    jti: str
    type: str
    email: Optional[str] = None
    role: Optional[str] = None
    name: Optional[str] = None
    gen: int = 0
    iat: Optional[int] = None
    exp: int


@dataclass(frozen=True)
class IssuedToken:
    token: str
    token_id: str
    expires_in: int  # seconds


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    token_id: str
    expires_in: int


@dataclass(frozen=True)
class _ClaimsIdentity:
    """Identity view rebuilt from refresh claims during rotation."""
    id: str
    email: Optional[str]
    role: Optional[str]
    name: Optional[str]
    token_generation: int


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


class TokenIssuer:
    """
    Mints and verifies access/refresh tokens.

    Secrets and lifetimes come from the Settings object handed in at
    construction.
    """

    def __init__(self, settings: Settings):
        if not settings.ACCESS_TOKEN_SECRET or not settings.REFRESH_TOKEN_SECRET:
            raise ValueError("ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must be configured")
        self._access_secret = settings.ACCESS_TOKEN_SECRET
        self._refresh_secret = settings.REFRESH_TOKEN_SECRET
        self._algorithm = settings.JWT_ALGORITHM
        self.access_ttl = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        self.refresh_ttl = timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)

    def issue_access_token(self, identity, expires_delta: Optional[timedelta] = None) -> IssuedToken:
        """
        Create a signed access token for an identity.

        Args:
            identity: Object exposing id, email, role, name, token_generation
            expires_delta: Override of the configured lifetime

        Returns:
            IssuedToken with the encoded JWT, its jti and lifetime in seconds
        """
        ttl = expires_delta if expires_delta is not None else self.access_ttl
        now = utcnow()
        token_id = secrets.token_hex(16)

        payload = {
            "sub": str(identity.id),
            "email": identity.email,
            "role": _plain(identity.role),
            "name": identity.name,
            "jti": token_id,
            "type": ACCESS_TOKEN_TYPE,
            "gen": identity.token_generation,
            "iat": now,
            "exp": now + ttl,
        }
        token = jwt.encode(payload, self._access_secret, algorithm=self._algorithm)
        return IssuedToken(token=token, token_id=token_id, expires_in=int(ttl.total_seconds()))

    def issue_refresh_token(self, identity, token_id: str, expires_delta: Optional[timedelta] = None) -> str:
        """Create a refresh token correlated to an access token by jti."""
        ttl = expires_delta if expires_delta is not None else self.refresh_ttl
        now = utcnow()

        payload = {
            "sub": str(identity.id),
            "email": identity.email,
            "role": _plain(identity.role),
            "name": identity.name,
            "jti": token_id,
            "type": REFRESH_TOKEN_TYPE,
            "gen": identity.token_generation,
            "iat": now,
            "exp": now + ttl,
        }
        return jwt.encode(payload, self._refresh_secret, algorithm=self._algorithm)

    def issue_pair(self, identity) -> TokenPair:
        access = self.issue_access_token(identity)
        refresh = self.issue_refresh_token(identity, access.token_id)
        return TokenPair(
            access_token=access.token,
            refresh_token=refresh,
            token_id=access.token_id,
            expires_in=access.expires_in,
        )

    def _decode(self, token: str, secret: str) -> dict:
        try:
            return jwt.decode(token, secret, algorithms=[self._algorithm])
        except ExpiredSignatureError:
            raise ExpiredTokenError()
        except JWTError:
            raise InvalidTokenError()

    def verify_access(self, token: str) -> AccessClaims:
        """
        Verify and decode an access token.

        Raises:
            InvalidTokenError: Bad signature, malformed, or a refresh token
            ExpiredTokenError: Past expiry
        """
        payload = self._decode(token, self._access_secret)
        try:
            claims = AccessClaims.model_validate(payload)
        except PydanticValidationError:
            raise InvalidTokenError()
        # Tokens minted before the type marker existed carry no "type"
        if claims.type not in (None, ACCESS_TOKEN_TYPE):
            raise InvalidTokenError()
        return claims

    def verify_refresh(self, token: str) -> RefreshClaims:
        """Verify and decode a refresh token against the refresh secret."""
        payload = self._decode(token, self._refresh_secret)
        try:
            claims = RefreshClaims.model_validate(payload)
        except PydanticValidationError:
            raise InvalidTokenError("Invalid refresh token")
        if claims.type != REFRESH_TOKEN_TYPE:
            raise InvalidTokenError("Invalid refresh token")
        return claims

    def refresh(self, refresh_token: str) -> TokenPair:
        """
        Rotate: verify a refresh token and mint a fresh pair from its claims.

        Identity id, role, email and name are carried forward unchanged.
        """
        claims = self.verify_refresh(refresh_token)
        identity = _ClaimsIdentity(
            id=claims.sub,
            email=claims.email,
            role=claims.role,
            name=claims.name,
            token_generation=claims.gen,
        )
        return self.issue_pair(identity)
