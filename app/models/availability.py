from sqlmodel import Field, SQLModel


class Availability(SQLModel, table=True):
    """One weekly window. A host may have several per weekday (split shifts)."""

    __tablename__ = "availability"
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    day_of_week: int  # 0 = Sunday, 6 = Saturday
    start_time: str = Field(max_length=5)  # HH:mm, host wall-clock
    end_time: str = Field(max_length=5)  # HH:mm, host wall-clock


class AvailabilityPublic(SQLModel):
    id: int
    day_of_week: int
    start_time: str
    end_time: str
