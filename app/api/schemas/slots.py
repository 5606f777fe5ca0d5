from datetime import datetime

from pydantic import BaseModel


class SlotInfo(BaseModel):
    start: datetime
    end: datetime
    time: str  # HH:MM in the host timezone


class AvailableSlotsResponse(BaseModel):
    date: str  # YYYY-MM-DD
    timezone: str
    duration: int
    slots: list[SlotInfo]
