from datetime import UTC, datetime

from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


class UserBase(SQLModel):
    email: str = Field(unique=True, index=True)
    full_name: str | None = None
    username: str | None = Field(default=None, unique=True, index=True, max_length=50)
    timezone: str = Field(default="Europe/Stockholm", max_length=50)


class User(UserBase, table=True):
    __tablename__ = "users"
    id: int | None = Field(default=None, primary_key=True)
    hashed_password: str | None = None
    created_at: datetime = Field(default_factory=_utc_naive_now)


class UserCreate(SQLModel):
    email: str
    password: str
    username: str
    full_name: str | None = None
    timezone: str | None = None


class UserUpdate(SQLModel):
    full_name: str | None = None
    username: str | None = None
    timezone: str | None = None


class UserPublic(SQLModel):
    id: int
    email: str
    full_name: str | None = None
    username: str | None = None
    timezone: str
