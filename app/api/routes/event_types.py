from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user, get_session
from app.api.schemas.event_type import EventTypeCreate, EventTypeUpdate
from app.models.event_type import EventType, EventTypePublic
from app.models.user import User
from app.services.event_type_service import (
    create_event_type,
    delete_event_type,
    get_event_type_for_host,
    list_event_types,
    update_event_type,
)

router = APIRouter(prefix="/event-types", tags=["event-types"])

# Fields a PATCH may clear with an explicit null
_NULLABLE = {"description", "price", "location", "color"}


def _to_public(e: EventType) -> EventTypePublic:
    return EventTypePublic.model_validate(e, from_attributes=True)


@router.get("", response_model=list[EventTypePublic])
async def list_my_event_types(
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> list[EventTypePublic]:
    return [_to_public(e) for e in await list_event_types(session, current_user.id)]


@router.post("", response_model=EventTypePublic, status_code=status.HTTP_201_CREATED)
async def create_my_event_type(
    body: EventTypeCreate,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> EventTypePublic:
    event_type = await create_event_type(session, current_user.id, body.model_dump(mode="json"))
    return _to_public(event_type)


@router.get("/{event_type_id}", response_model=EventTypePublic)
async def get_my_event_type(
    event_type_id: int,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> EventTypePublic:
    return _to_public(await get_event_type_for_host(session, event_type_id, current_user.id))


@router.patch("/{event_type_id}", response_model=EventTypePublic)
async def update_my_event_type(
    event_type_id: int,
    body: EventTypeUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> EventTypePublic:
    changes = {
        key: value
        for key, value in body.model_dump(mode="json", exclude_unset=True).items()
        if value is not None or key in _NULLABLE
    }
    event_type = await update_event_type(session, event_type_id, current_user.id, changes)
    return _to_public(event_type)


@router.delete("/{event_type_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_my_event_type(
    event_type_id: int,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> None:
    await delete_event_type(session, event_type_id, current_user.id)
