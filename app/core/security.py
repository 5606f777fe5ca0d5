from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt
from passlib.context import CryptContext

from app.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=12)

CALENDAR_STATE_EXPIRE_MINUTES = 15


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def _encode(subject: str | int, token_type: str, expires_delta: timedelta) -> str:
    expire = datetime.now(UTC) + expires_delta
    to_encode = {"sub": str(subject), "exp": expire, "type": token_type}
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def _decode(token: str, token_type: str) -> str | None:
    try:
        payload = jwt.decode(
            token, settings.secret_key, algorithms=[settings.algorithm]
        )
        if payload.get("type") != token_type:
            return None
        sub = payload.get("sub")
        return str(sub) if sub else None
    except JWTError:
        return None


def create_access_token(subject: str | int) -> str:
    return _encode(subject, "access", timedelta(minutes=settings.access_token_expire_minutes))


def decode_access_token(token: str) -> str | None:
    return _decode(token, "access")


def create_calendar_state(host_id: int) -> str:
    """Signed OAuth state so the callback can trust which host started the flow."""
    return _encode(host_id, "calendar_state", timedelta(minutes=CALENDAR_STATE_EXPIRE_MINUTES))


def decode_calendar_state(state: str) -> int | None:
    sub = _decode(state, "calendar_state")
    if sub is None:
        return None
    try:
        return int(sub)
    except ValueError:
        return None
