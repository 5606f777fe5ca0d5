from pydantic import BaseModel, Field, model_validator

_HHMM = r"^([01]\d|2[0-3]):([0-5]\d)$"


class AvailabilityWindowIn(BaseModel):
    day_of_week: int = Field(ge=0, le=6)  # 0 = Sunday
    start_time: str = Field(pattern=_HHMM)
    end_time: str = Field(pattern=_HHMM)

    @model_validator(mode="after")
    def _start_before_end(self) -> "AvailabilityWindowIn":
        # Zero-padded HH:mm compares correctly as text
        if self.start_time >= self.end_time:
            raise ValueError("end_time must be after start_time")
        return self


class AvailabilityUpdate(BaseModel):
    windows: list[AvailabilityWindowIn]
