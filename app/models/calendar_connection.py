from datetime import UTC, datetime

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


def _naive_utc(dt: datetime) -> datetime:
    """For TIMESTAMP WITHOUT TIME ZONE: store as naive UTC."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(UTC)
    return dt.replace(tzinfo=None)


def _utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class CalendarConnection(SQLModel, table=True):
    __tablename__ = "calendar_connections"
    __table_args__ = (UniqueConstraint("user_id", "provider", name="uq_calendar_connections_user_provider"),)

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    provider: str = Field(default="google", max_length=20)
    email: str = Field(max_length=255)
    access_token: str
    refresh_token: str
    expires_at: datetime
    is_primary: bool = True
    created_at: datetime = Field(default_factory=_utc_naive_now)

    def model_post_init(self, __context: object) -> None:
        """Ensure expires_at is naive UTC for asyncpg TIMESTAMP WITHOUT TIME ZONE."""
        if self.expires_at is not None:
            self.expires_at = _naive_utc(self.expires_at)


class CalendarConnectionPublic(SQLModel):
    provider: str
    email: str
    is_primary: bool
    created_at: datetime
