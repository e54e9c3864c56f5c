from datetime import datetime, timezone
from pydantic import BaseModel, Field, field_validator
from typing import Optional


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class RoomCreate(BaseModel):
    host_token: str = Field(..., min_length=1, max_length=64)


class RoomUpdate(BaseModel):
    drawn: Optional[bool] = None


class RoomResponse(BaseModel):
    id: str
    host_token: str
    created_at: datetime
    drawn: bool = False

    @field_validator("created_at")
    @classmethod
    def utc_created_at(cls, value: datetime) -> datetime:
        return as_utc(value)

    class Config:
        from_attributes = True
