from pydantic import BaseModel, Field, field_validator
from typing import Any, List, Optional
from datetime import datetime, timezone

RIDE_STATUS_ACTIVE = "active"
RIDE_STATUS_CANCELLED = "cancelled"


def _number_or_none(value: Any) -> Optional[int]:
    # bool is an int subclass in Python but never a counter value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


class RideBase(BaseModel):
    # Pydantic field name: API exposure | Firestore field name (via alias)
    title: Optional[str] = Field(None, description="Ride title")
    status: Optional[str] = Field(None, description="active or cancelled")
    date_time: Optional[datetime] = Field(None, alias="dateTime")
    date: Optional[datetime] = Field(None, description="Older documents store only a date")
    manual_participants: List[Any] = Field(
        default_factory=list,
        alias="manualParticipants",
        description="Participants added by staff without a self-join record",
    )
    participants_count_self: Optional[int] = Field(None, alias="participantsCountSelf")
    participants_count_total: Optional[int] = Field(None, alias="participantsCountTotal")
    participants_count: Optional[int] = Field(
        None, alias="participantsCount", description="Legacy single counter"
    )

    class Config:
        populate_by_name = True
        extra = "ignore"

    @field_validator("manual_participants", mode="before")
    @classmethod
    def _list_or_empty(cls, value: Any) -> List[Any]:
        return value if isinstance(value, list) else []

    @field_validator(
        "participants_count_self",
        "participants_count_total",
        "participants_count",
        mode="before",
    )
    @classmethod
    def _numeric_counter(cls, value: Any) -> Optional[int]:
        return _number_or_none(value)

    @field_validator("title", "status", mode="before")
    @classmethod
    def _string_or_none(cls, value: Any) -> Optional[str]:
        return value if isinstance(value, str) else None

    @field_validator("date_time", "date", mode="before")
    @classmethod
    def _timestamp_or_none(cls, value: Any) -> Optional[datetime]:
        # Firestore timestamps arrive as datetime subclasses from the SDK, and as
        # {"_seconds": ...} or ISO strings once serialized into an event payload.
        if isinstance(value, datetime):
            return value
        if isinstance(value, dict):
            seconds = value.get("_seconds", value.get("seconds"))
            if isinstance(seconds, (int, float)) and not isinstance(seconds, bool):
                return datetime.fromtimestamp(seconds, tz=timezone.utc)
            return None
        if isinstance(value, str):
            try:
                return datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                return None
        return None

    @property
    def manual_count(self) -> int:
        return len(self.manual_participants)

    @property
    def effective_status(self) -> str:
        return self.status if self.status is not None else RIDE_STATUS_ACTIVE

    @property
    def scheduled_at(self) -> Optional[datetime]:
        return self.date_time or self.date


class RideCounters(BaseModel):
    """Counter fields as written back to the ride document."""

    participants_count_self: int = Field(..., alias="participantsCountSelf", ge=0)
    participants_count_total: int = Field(..., alias="participantsCountTotal", ge=0)

    class Config:
        populate_by_name = True

    def to_firestore(self) -> dict:
        return self.model_dump(by_alias=True)
