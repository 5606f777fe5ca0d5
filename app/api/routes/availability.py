from fastapi import APIRouter, Depends

from app.api.deps import get_current_user, get_store
from app.api.schemas.availability import AvailabilityUpdate
from app.models.availability import Availability, AvailabilityPublic
from app.models.user import User
from app.services.availability_service import list_availability, replace_availability
from app.services.store import BookingStore

router = APIRouter(prefix="/availability", tags=["availability"])


def _to_public(a: Availability) -> AvailabilityPublic:
    return AvailabilityPublic(
        id=int(a.id) if a.id is not None else 0,
        day_of_week=a.day_of_week,
        start_time=a.start_time,
        end_time=a.end_time,
    )


@router.get("", response_model=list[AvailabilityPublic])
async def get_my_availability(
    store: BookingStore = Depends(get_store),
    current_user: User = Depends(get_current_user),
) -> list[AvailabilityPublic]:
    return [_to_public(a) for a in await list_availability(store, current_user.id)]


@router.put("", response_model=list[AvailabilityPublic])
async def save_my_availability(
    body: AvailabilityUpdate,
    store: BookingStore = Depends(get_store),
    current_user: User = Depends(get_current_user),
) -> list[AvailabilityPublic]:
    """Replace the whole weekly schedule."""
    saved = await replace_availability(store, current_user.id, body.windows)
    return [_to_public(a) for a in saved]
