from datetime import datetime
from pydantic import BaseModel, Field, field_validator
from typing import Optional
from friendss.schemas.room import as_utc


class ParticipantCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    is_host: bool = False

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value


class ParticipantUpdate(BaseModel):
    assigned_recipient: Optional[str] = Field(None, min_length=1, max_length=100)


class ParticipantResponse(BaseModel):
    id: str
    room_id: str
    name: str
    is_host: bool = False
    assigned_recipient: Optional[str] = None
    joined_at: datetime

    @field_validator("joined_at")
    @classmethod
    def utc_joined_at(cls, value: datetime) -> datetime:
        return as_utc(value)

    class Config:
        from_attributes = True
