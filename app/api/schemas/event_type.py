from typing import Literal

from pydantic import BaseModel, Field, HttpUrl

_SLUG = r"^[a-z0-9-]+$"


class EventLocation(BaseModel):
    type: Literal["in_person", "phone", "video", "custom"]
    address: str | None = None
    link: HttpUrl | None = None
    phone: str | None = None
    instructions: str | None = None


class EventTypeCreate(BaseModel):
    title: str = Field(min_length=2, max_length=100)
    slug: str = Field(min_length=2, max_length=50, pattern=_SLUG)
    description: str | None = Field(default=None, max_length=500)
    duration: int = Field(default=30, ge=5, le=480)
    price: int | None = Field(default=None, ge=0)
    location: EventLocation | None = None
    color: str | None = Field(default=None, pattern=r"^#[0-9a-fA-F]{6}$")
    is_active: bool = True
    requires_confirmation: bool = False
    buffer_before: int = Field(default=0, ge=0, le=120)
    buffer_after: int = Field(default=0, ge=0, le=120)
    min_notice: int = Field(default=24, ge=0, le=168)
    max_future: int = Field(default=60, ge=1, le=365)


class EventTypeUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=2, max_length=100)
    slug: str | None = Field(default=None, min_length=2, max_length=50, pattern=_SLUG)
    description: str | None = Field(default=None, max_length=500)
    duration: int | None = Field(default=None, ge=5, le=480)
    price: int | None = Field(default=None, ge=0)
    location: EventLocation | None = None
    color: str | None = Field(default=None, pattern=r"^#[0-9a-fA-F]{6}$")
    is_active: bool | None = None
    requires_confirmation: bool | None = None
    buffer_before: int | None = Field(default=None, ge=0, le=120)
    buffer_after: int | None = Field(default=None, ge=0, le=120)
    min_notice: int | None = Field(default=None, ge=0, le=168)
    max_future: int | None = Field(default=None, ge=1, le=365)
