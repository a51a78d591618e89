"""Shared API dependencies for authentication and collaborators."""

from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from skul_relay.core.security import decode_subject
from skul_relay.core.settings import settings
from skul_relay.db.session import get_db
from skul_relay.models import Profile
from skul_relay.services.errors import Forbidden, Unauthorized
from skul_relay.services.notifications import NotificationDispatcher

# Mobile clients send a bearer token; web clients carry the same JWT in a cookie.
bearer_scheme = HTTPBearer(auto_error=False)

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]

_dispatcher = NotificationDispatcher()


def get_current_profile(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    db: SessionDep,
) -> Profile:
    """Resolve the caller's profile from a bearer token or the session cookie.

    Raises:
        Unauthorized: no token, an invalid token, or an unknown profile.
    """
    token = credentials.credentials if credentials else request.cookies.get(settings.session_cookie_name)
    if not token:
        raise Unauthorized()

    subject = decode_subject(token)
    if subject is None:
        raise Unauthorized("Unauthorized. Invalid or expired token.")

    profile = db.get(Profile, subject)
    if profile is None:
        raise Unauthorized()
    return profile


CurrentProfileDep = Annotated[Profile, Depends(get_current_profile)]


def get_admin_profile(profile: CurrentProfileDep) -> Profile:
    """Require the caller to be an administrator."""
    if not profile.is_admin:
        raise Forbidden("Forbidden. Admin access required.", kind="not_admin")
    return profile


AdminProfileDep = Annotated[Profile, Depends(get_admin_profile)]


def get_notification_dispatcher() -> NotificationDispatcher:
    """Return the process-wide notification dispatcher."""
    return _dispatcher


DispatcherDep = Annotated[NotificationDispatcher, Depends(get_notification_dispatcher)]
