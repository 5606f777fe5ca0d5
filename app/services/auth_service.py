from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import ValidationFailedError
from app.core.security import create_access_token, hash_password, verify_password
from app.models.user import User, UserCreate, UserPublic, UserUpdate


def validate_timezone(name: str) -> str:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValidationFailedError(f"Unknown timezone {name!r}", public_message="Unknown timezone") from exc
    return name


async def get_user_by_email(session: AsyncSession, email: str) -> User | None:
    result = await session.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def get_user_by_username(session: AsyncSession, username: str) -> User | None:
    result = await session.execute(select(User).where(User.username == username))
    return result.scalar_one_or_none()


async def create_user(session: AsyncSession, data: UserCreate) -> User:
    user = User(
        email=data.email,
        full_name=data.full_name,
        username=data.username,
        timezone=validate_timezone(data.timezone or settings.default_timezone),
        hashed_password=hash_password(data.password),
    )
    session.add(user)
    await session.flush()
    await session.refresh(user)
    return user


def user_to_public(user: User) -> UserPublic:
    return UserPublic(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        username=user.username,
        timezone=user.timezone,
    )


def make_access_token(user_id: int) -> tuple[str, int]:
    return create_access_token(user_id), settings.access_token_expire_minutes * 60


async def login_user(
    session: AsyncSession, email: str, password: str
) -> tuple[User, str, int] | None:
    user = await get_user_by_email(session, email)
    if not user or not user.hashed_password:
        return None
    if not verify_password(password, user.hashed_password):
        return None
    access, expires_in = make_access_token(user.id)
    return user, access, expires_in


async def signup_user(session: AsyncSession, data: UserCreate) -> tuple[User, str, int] | None:
    """None when the email or username is taken."""
    if await get_user_by_email(session, data.email):
        return None
    if await get_user_by_username(session, data.username):
        return None
    user = await create_user(session, data)
    access, expires_in = make_access_token(user.id)
    return user, access, expires_in


async def update_user(session: AsyncSession, user: User, data: UserUpdate) -> User:
    if data.username and data.username != user.username:
        if await get_user_by_username(session, data.username):
            raise ValidationFailedError(
                f"Username {data.username!r} taken", public_message="Username is already taken"
            )
        user.username = data.username
    if data.full_name is not None:
        user.full_name = data.full_name
    if data.timezone:
        user.timezone = validate_timezone(data.timezone)
    session.add(user)
    await session.flush()
    await session.refresh(user)
    return user
