from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.db import get_session
from app.core.security import decode_access_token
from app.models.user import User
from app.services.calendar_service import CalendarConnector, GoogleCalendarConnector
from app.services.email_service import EmailNotifier, Notifier
from app.services.store import BookingStore, SqlBookingStore

security = HTTPBearer(auto_error=False)


def get_store(session: AsyncSession = Depends(get_session)) -> BookingStore:
    return SqlBookingStore(session)


def get_calendar(store: BookingStore = Depends(get_store)) -> CalendarConnector:
    return GoogleCalendarConnector(store)


def get_notifier() -> Notifier:
    return EmailNotifier()


def host_timezone(host: User) -> ZoneInfo:
    try:
        return ZoneInfo(host.timezone or settings.default_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(settings.default_timezone)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    store: BookingStore = Depends(get_store),
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> User:
    """The host owning the bearer access token."""
    if not credentials or credentials.scheme.lower() != "bearer":
        raise _unauthorized("Missing or invalid authorization header")
    subject = decode_access_token(credentials.credentials)
    if not subject or not subject.isdigit():
        raise _unauthorized("Invalid or expired token")
    host = await store.get_host(int(subject))
    if host is None:
        raise _unauthorized("User not found")
    return host
