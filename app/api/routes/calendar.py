import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel

from app.api.deps import get_current_user, get_store
from app.core.config import settings
from app.core.security import create_calendar_state, decode_calendar_state
from app.models.calendar_connection import CalendarConnection, CalendarConnectionPublic
from app.models.user import User
from app.services.calendar_service import (
    exchange_code_for_tokens,
    fetch_calendar_email,
    get_calendar_authorization_url,
)
from app.services.intervals import to_naive_utc
from app.services.store import BookingStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/calendar", tags=["calendar"])

SETTINGS_PATH = "/installningar"


class AuthorizationUrl(BaseModel):
    url: str


def _settings_redirect(**params: str) -> RedirectResponse:
    return RedirectResponse(url=f"{settings.app_url.rstrip('/')}{SETTINGS_PATH}?{urlencode(params)}")


@router.get("", response_model=list[CalendarConnectionPublic])
async def my_calendar_connections(
    store: BookingStore = Depends(get_store),
    current_user: User = Depends(get_current_user),
) -> list[CalendarConnectionPublic]:
    connection = await store.get_calendar_connection(current_user.id, "google")
    if connection is None:
        return []
    return [CalendarConnectionPublic.model_validate(connection, from_attributes=True)]


@router.get("/google/connect", response_model=AuthorizationUrl)
async def connect_google_calendar(current_user: User = Depends(get_current_user)) -> AuthorizationUrl:
    if not settings.google_calendar_enabled:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Google Calendar is not configured",
        )
    return AuthorizationUrl(url=get_calendar_authorization_url(create_calendar_state(current_user.id)))


@router.get("/google/callback")
async def google_calendar_callback(
    code: str | None = Query(None),
    state: str | None = Query(None),
    error: str | None = Query(None),
    store: BookingStore = Depends(get_store),
) -> RedirectResponse:
    """OAuth redirect target. Always sends the browser back to the settings page."""
    if error or not code or not state:
        logger.info("Google Calendar connect aborted: %s", error or "missing code/state")
        return _settings_redirect(error="calendar_denied")
    host_id = decode_calendar_state(state)
    if host_id is None or await store.get_host(host_id) is None:
        return _settings_redirect(error="invalid_state")

    tokens = await exchange_code_for_tokens(code)
    if tokens is None:
        return _settings_redirect(error="calendar_failed")
    email = await fetch_calendar_email(tokens["access_token"])
    await store.save_calendar_connection(
        CalendarConnection(
            user_id=host_id,
            provider="google",
            email=email,
            access_token=tokens["access_token"],
            refresh_token=tokens["refresh_token"],
            expires_at=to_naive_utc(tokens["expires_at"]),
        )
    )
    logger.info("Host %s connected Google Calendar %s", host_id, email)
    return _settings_redirect(success="calendar_connected")


@router.delete("/google", status_code=status.HTTP_204_NO_CONTENT)
async def disconnect_google_calendar(
    store: BookingStore = Depends(get_store),
    current_user: User = Depends(get_current_user),
) -> None:
    await store.remove_calendar_connection(current_user.id, "google")
