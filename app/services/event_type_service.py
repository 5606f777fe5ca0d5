from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError, ValidationFailedError
from app.models.event_type import EventType


def _utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


async def list_event_types(
    session: AsyncSession, host_id: int, active_only: bool = False
) -> list[EventType]:
    q = select(EventType).where(EventType.user_id == host_id).order_by(EventType.created_at)
    if active_only:
        q = q.where(EventType.is_active == True)  # noqa: E712
    result = await session.execute(q)
    return list(result.scalars().all())


async def get_event_type_for_host(session: AsyncSession, event_type_id: int, host_id: int) -> EventType:
    result = await session.execute(
        select(EventType).where(EventType.id == event_type_id, EventType.user_id == host_id)
    )
    event_type = result.scalar_one_or_none()
    if event_type is None:
        raise NotFoundError(f"Event type {event_type_id} not found for host {host_id}")
    return event_type


async def _ensure_slug_free(
    session: AsyncSession, host_id: int, slug: str, exclude_id: int | None = None
) -> None:
    q = select(EventType.id).where(EventType.user_id == host_id, EventType.slug == slug)
    if exclude_id is not None:
        q = q.where(EventType.id != exclude_id)
    result = await session.execute(q)
    if result.first() is not None:
        raise ValidationFailedError(
            f"Slug {slug!r} already used by host {host_id}",
            public_message="You already have an event type with this slug",
        )


async def create_event_type(session: AsyncSession, host_id: int, data: dict[str, Any]) -> EventType:
    await _ensure_slug_free(session, host_id, data["slug"])
    event_type = EventType(user_id=host_id, **data)
    session.add(event_type)
    await session.flush()
    await session.refresh(event_type)
    return event_type


async def update_event_type(
    session: AsyncSession, event_type_id: int, host_id: int, changes: dict[str, Any]
) -> EventType:
    event_type = await get_event_type_for_host(session, event_type_id, host_id)
    if "slug" in changes and changes["slug"] != event_type.slug:
        await _ensure_slug_free(session, host_id, changes["slug"], exclude_id=event_type_id)
    for key, value in changes.items():
        setattr(event_type, key, value)
    event_type.updated_at = _utc_naive_now()
    session.add(event_type)
    await session.flush()
    await session.refresh(event_type)
    return event_type


async def delete_event_type(session: AsyncSession, event_type_id: int, host_id: int) -> None:
    event_type = await get_event_type_for_host(session, event_type_id, host_id)
    await session.delete(event_type)
    await session.flush()
