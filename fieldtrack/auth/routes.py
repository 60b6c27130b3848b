"""
FieldTrack - Authentication Routes

API endpoints for authentication:
- POST /auth/register                - Create an identity and issue tokens
- POST /auth/login                   - Authenticate and issue tokens
- POST /auth/refresh                 - Rotate a refresh token
- POST /auth/logout                  - Terminate every session of the caller
- GET  /auth/me                      - Current identity
- POST /auth/activity                - Activity ping
- GET  /auth/sessions                - Concurrent session descriptors
- GET  /auth/session-status          - Inactivity policy evaluation
- POST /auth/request-password-reset  - Mail a recovery link
- POST /auth/reset-password          - Consume a recovery token
- PUT  /auth/change-password         - Change password while signed in
"""

import logging
from datetime import timedelta
from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from sqlmodel import Session as DBSession, select
from starlette.concurrency import run_in_threadpool

from fieldtrack.auth import store
from fieldtrack.auth.dependencies import (
    AuthenticatedUser,
    get_activity_tracker,
    get_client_ip,
    get_current_identity,
    get_current_user,
    get_token_issuer,
    get_user_agent,
)
from fieldtrack.auth.models import Role, User
from fieldtrack.auth.password import generate_reset_token, hash_password, needs_rehash, verify_password
from fieldtrack.auth.schemas import (
    ActiveSessionsResponse,
    ChangePasswordRequest,
    LoginRequest,
    MessageResponse,
    PasswordResetConfirm,
    PasswordResetRequest,
    RefreshRequest,
    RefreshResponse,
    RegisterRequest,
    SessionInfo,
    SessionStatusResponse,
    TokenResponse,
    UserPublic,
)
from fieldtrack.auth.sessions import ActivityTracker
from fieldtrack.auth.tokens import TokenIssuer
from fieldtrack.database import get_db
from fieldtrack.datetime_utils import utcnow
from fieldtrack.errors import (
    AuthenticationError,
    InternalError,
    InvalidCredentialsError,
    InvalidTokenError,
    ValidationError,
)
from fieldtrack.mailer import MailDeliveryError, Mailer


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])

RESET_REQUESTED_MESSAGE = "If the email is registered, a recovery link has been sent"


def get_mailer(request: Request) -> Mailer:
    return request.app.state.mailer


def _start_session(
    request: Request,
    db: DBSession,
    user: User,
    issuer: TokenIssuer,
    tracker: ActivityTracker,
    message: str,
) -> TokenResponse:
    pair = issuer.issue_pair(user)
    tracker.prune_expired_sessions(db, user)
    tracker.record_activity(
        db,
        user,
        pair.token_id,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    return TokenResponse(
        message=message,
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        expires_in=pair.expires_in,
        user=UserPublic.model_validate(user),
    )


@router.post(
    "/register",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an inspector account",
)
async def register(
    request: Request,
    body: RegisterRequest,
    db: DBSession = Depends(get_db),
    issuer: TokenIssuer = Depends(get_token_issuer),
    tracker: ActivityTracker = Depends(get_activity_tracker),
):
    """
    Self-registration. New accounts always get the inspector role.

    Raises:
        409: Email already registered (case-insensitive)
    """
    user = store.create_user(
        db,
        name=body.name,
        email=body.email,
        password=body.password,
        region=body.region,
        transport=body.transport,
        role=Role.INSPECTOR,
    )
    user.last_login_at = utcnow()
    db.add(user)
    db.commit()

    logger.info("Registered identity %s", user.id)
    return _start_session(request, db, user, issuer, tracker, "User registered")


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Authenticate and issue a token pair",
)
async def login(
    request: Request,
    credentials: LoginRequest,
    db: DBSession = Depends(get_db),
    issuer: TokenIssuer = Depends(get_token_issuer),
    tracker: ActivityTracker = Depends(get_activity_tracker),
):
    """
    Authenticate with email and password.

    On success the stored hash is upgraded if its work factor is below
    the current one, and a session descriptor is recorded.

    Raises:
        401: Invalid credentials or inactive account
    """
    user = store.get_user_by_email(db, credentials.email)

    if not user or not verify_password(credentials.password, user.password_hash):
        logger.info("Failed login for %s", credentials.email)
        raise InvalidCredentialsError()

    if not user.is_active:
        logger.info("Login refused for inactive identity %s", user.id)
        raise AuthenticationError("Account is inactive")

    # Check if password needs rehash (work factor upgrade)
    if needs_rehash(user.password_hash):
        user.password_hash = hash_password(credentials.password)

    user.last_login_at = utcnow()
    db.add(user)
    db.commit()

    return _start_session(request, db, user, issuer, tracker, "Login successful")


@router.post(
    "/refresh",
    response_model=RefreshResponse,
    summary="Rotate a refresh token",
)
async def refresh(
    body: RefreshRequest,
    db: DBSession = Depends(get_db),
    issuer: TokenIssuer = Depends(get_token_issuer),
):
    """
    Exchange a valid refresh token for a fresh pair.

    The presented refresh token is not consumed. It stops working only at
    its own expiry or once the identity's token generation moves on.
    """
    claims = issuer.verify_refresh(body.refresh_token)

    try:
        user = db.get(User, UUID(claims.sub))
    except ValueError:
        raise InvalidTokenError("Invalid refresh token")

    if user is None or not user.is_active:
        raise InvalidTokenError("Invalid refresh token")
    if user.token_generation != claims.gen:
        raise InvalidTokenError("Session has been terminated")

    pair = issuer.refresh(body.refresh_token)
    return RefreshResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        expires_in=pair.expires_in,
    )


@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="Terminate every session of the caller",
)
async def logout(
    user: User = Depends(get_current_identity),
    db: DBSession = Depends(get_db),
    tracker: ActivityTracker = Depends(get_activity_tracker),
):
    """
    Invalidate all outstanding tokens of the caller.

    Bumps the token generation, so access and refresh tokens issued
    before this call are rejected from now on.
    """
    store.bump_token_generation(db, user)
    removed = tracker.clear_sessions(db, user)
    logger.info("Identity %s logged out (%d session descriptors removed)", user.id, removed)
    return MessageResponse(message="Logged out")


@router.get("/me", response_model=UserPublic, summary="Current identity")
async def get_me(user: User = Depends(get_current_identity)):
    return UserPublic.model_validate(user)


@router.post("/activity", response_model=MessageResponse, summary="Record activity")
async def record_activity(
    request: Request,
    current: AuthenticatedUser = Depends(get_current_user),
    user: User = Depends(get_current_identity),
    db: DBSession = Depends(get_db),
    tracker: ActivityTracker = Depends(get_activity_tracker),
):
    tracker.prune_expired_sessions(db, user)
    tracker.record_activity(
        db,
        user,
        current.token_id,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    return MessageResponse(message="Activity recorded")


@router.get(
    "/sessions",
    response_model=ActiveSessionsResponse,
    summary="List session descriptors",
)
async def list_sessions(
    current: AuthenticatedUser = Depends(get_current_user),
    user: User = Depends(get_current_identity),
    db: DBSession = Depends(get_db),
    tracker: ActivityTracker = Depends(get_activity_tracker),
):
    descriptors = tracker.list_sessions(db, user)
    sessions = [
        SessionInfo(
            token_id=s.token_id,
            ip_address=s.ip_address,
            user_agent=s.user_agent,
            created_at=s.created_at,
            last_activity=s.last_activity,
            is_current=(s.token_id == current.token_id),
        )
        for s in descriptors
    ]
    return ActiveSessionsResponse(sessions=sessions, total=len(sessions))


@router.get(
    "/session-status",
    response_model=SessionStatusResponse,
    summary="Evaluate the inactivity policy for the current session",
)
async def session_status(
    current: AuthenticatedUser = Depends(get_current_user),
    user: User = Depends(get_current_identity),
    db: DBSession = Depends(get_db),
    tracker: ActivityTracker = Depends(get_activity_tracker),
):
    """
    Advisory check; the client decides whether to force a new login.
    """
    descriptor = tracker.session_for_token(db, user, current.token_id)
    if descriptor is not None:
        last_activity = descriptor.last_activity
        started = descriptor.created_at
    else:
        last_activity = user.last_activity_at or utcnow()
        started = None

    result = tracker.check_inactivity(last_activity, session_started=started)
    return SessionStatusResponse(
        is_inactive=result.is_inactive,
        is_expired_session=result.is_expired_session,
        inactive_minutes=result.inactive_minutes,
        last_activity=last_activity,
    )


@router.post(
    "/request-password-reset",
    response_model=MessageResponse,
    summary="Mail a password recovery link",
)
async def request_password_reset(
    request: Request,
    body: PasswordResetRequest,
    db: DBSession = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    """
    Store a one-hour recovery token and mail it.

    Unknown and inactive addresses get the same response as known ones.
    Delivery is awaited: if the mail cannot be sent the token is
    discarded and the caller gets a 500.
    """
    user = store.get_user_by_email(db, body.email)
    if user is None or not user.is_active:
        return MessageResponse(message=RESET_REQUESTED_MESSAGE)

    expire_minutes = request.app.state.settings.PASSWORD_RESET_EXPIRE_MINUTES
    token = generate_reset_token()
    user.reset_token = token
    user.reset_token_expires_at = utcnow() + timedelta(minutes=expire_minutes)
    db.add(user)
    db.commit()

    try:
        await run_in_threadpool(mailer.send_password_reset, user.email, user.name, token)
    except MailDeliveryError as e:
        logger.error("Password reset mail to identity %s failed: %s", user.id, e)
        user.reset_token = None
        user.reset_token_expires_at = None
        db.add(user)
        db.commit()
        raise InternalError("Could not send the recovery email")

    logger.info("Password reset requested for identity %s", user.id)
    return MessageResponse(message=RESET_REQUESTED_MESSAGE)


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    summary="Set a new password with a recovery token",
)
async def reset_password(
    body: PasswordResetConfirm,
    db: DBSession = Depends(get_db),
    tracker: ActivityTracker = Depends(get_activity_tracker),
):
    statement = select(User).where(
        User.reset_token == body.token,
        User.reset_token_expires_at > utcnow(),
    )
    user = db.exec(statement).first()
    if user is None:
        raise ValidationError("Invalid or expired recovery token", fields=["token"])

    store.set_password(db, user, body.new_password)
    tracker.clear_sessions(db, user)

    logger.info("Password reset completed for identity %s", user.id)
    return MessageResponse(message="Password updated")


@router.put(
    "/change-password",
    response_model=MessageResponse,
    summary="Change the caller's password",
)
async def change_password(
    body: ChangePasswordRequest,
    user: User = Depends(get_current_identity),
    db: DBSession = Depends(get_db),
    tracker: ActivityTracker = Depends(get_activity_tracker),
):
    """
    Change password; every token issued so far, including the one used
    for this call, stops working.
    """
    if not verify_password(body.old_password, user.password_hash):
        raise ValidationError("Current password is incorrect", fields=["old_password"])

    store.set_password(db, user, body.new_password)
    tracker.clear_sessions(db, user)

    logger.info("Password changed for identity %s", user.id)
    return MessageResponse(message="Password updated, sign in again")
