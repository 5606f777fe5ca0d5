from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class EventType(SQLModel, table=True):
    __tablename__ = "event_types"
    __table_args__ = (UniqueConstraint("user_id", "slug", name="uq_event_types_user_slug"),)

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    title: str = Field(max_length=200)
    slug: str = Field(max_length=100)
    description: str | None = None
    duration: int = 30  # minutes
    price: int | None = None  # öre
    currency: str = Field(default="SEK", max_length=3)
    # {"type": "in_person" | "phone" | "video" | "custom", "address"/"link"/"phone"/"instructions": ...}
    location: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    color: str | None = Field(default=None, max_length=7)
    is_active: bool = True
    requires_confirmation: bool = False
    buffer_before: int = 0  # minutes
    buffer_after: int = 0  # minutes
    min_notice: int = 24  # hours
    max_future: int = 60  # days
    created_at: datetime = Field(default_factory=_utc_naive_now)
    updated_at: datetime = Field(default_factory=_utc_naive_now)


class EventTypePublic(SQLModel):
    id: int
    user_id: int
    title: str
    slug: str
    description: str | None = None
    duration: int
    price: int | None = None
    currency: str
    location: dict[str, Any] | None = None
    color: str | None = None
    is_active: bool
    requires_confirmation: bool
    buffer_before: int
    buffer_after: int
    min_notice: int
    max_future: int
