from enum import Enum
from pydantic import BaseModel, Field, field_validator
from typing import Any, List, Optional


class Role(str, Enum):
    MEMBER = "member"
    ADMIN = "admin"
    OWNER = "owner"


class NotificationCategory(str, Enum):
    # Values are the Firestore opt-out flag names on the user document.
    CREATED_RIDE = "notificationsDisabledForCreatedRide"
    CANCELLED_RIDE = "notificationsDisabledForCancelledRide"
    PENDING_USER = "notificationsDisabledForPendingUser"
    BOARD_POST = "notificationsDisabledForBoardPost"


class UserBase(BaseModel):
    # Pydantic field name: API exposure | Firestore field name (via alias)
    role: Optional[str] = Field(None, description="member, admin or owner")
    approved: Optional[bool] = Field(None, description="Approved by an owner")
    disabled: Optional[bool] = Field(None, description="Account disabled")
    expo_push_tokens: List[str] = Field(
        default_factory=list,
        alias="expoPushTokens",
        description="Expo push tokens registered by the user's devices",
    )
    notifications_disabled: Optional[bool] = Field(
        None, alias="notificationsDisabled", description="Global push opt-out"
    )
    notifications_disabled_for_created_ride: Optional[bool] = Field(
        None, alias=NotificationCategory.CREATED_RIDE.value
    )
    notifications_disabled_for_cancelled_ride: Optional[bool] = Field(
        None, alias=NotificationCategory.CANCELLED_RIDE.value
    )
    notifications_disabled_for_pending_user: Optional[bool] = Field(
        None, alias=NotificationCategory.PENDING_USER.value
    )
    notifications_disabled_for_board_post: Optional[bool] = Field(
        None, alias=NotificationCategory.BOARD_POST.value
    )
    display_name: Optional[str] = Field(None, alias="displayName")
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    email: Optional[str] = None

    class Config:
        populate_by_name = True
        extra = "ignore"

    @field_validator("expo_push_tokens", mode="before")
    @classmethod
    def _keep_string_tokens(cls, value: Any) -> List[str]:
        # Old app builds stored junk entries; only non-empty strings are addresses.
        if not isinstance(value, list):
            return []
        return [tok for tok in value if isinstance(tok, str) and tok]

    @field_validator(
        "approved",
        "disabled",
        "notifications_disabled",
        "notifications_disabled_for_created_ride",
        "notifications_disabled_for_cancelled_ride",
        "notifications_disabled_for_pending_user",
        "notifications_disabled_for_board_post",
        mode="before",
    )
    @classmethod
    def _strict_flag(cls, value: Any) -> Optional[bool]:
        # Only a real boolean counts; "true" strings and numbers do not opt anyone out.
        return value if isinstance(value, bool) else None

    @field_validator("role", "display_name", "first_name", "last_name", "email", mode="before")
    @classmethod
    def _string_or_none(cls, value: Any) -> Optional[str]:
        return value if isinstance(value, str) else None

    def opted_out_of(self, category: Optional[NotificationCategory]) -> bool:
        if self.notifications_disabled is True:
            return True
        if category is None:
            return False
        return getattr(self, _CATEGORY_FIELDS[category]) is True

    def resolved_display_name(self, fallback: str) -> str:
        if self.display_name:
            return self.display_name
        full_name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return full_name or self.email or fallback


_CATEGORY_FIELDS = {
    NotificationCategory.CREATED_RIDE: "notifications_disabled_for_created_ride",
    NotificationCategory.CANCELLED_RIDE: "notifications_disabled_for_cancelled_ride",
    NotificationCategory.PENDING_USER: "notifications_disabled_for_pending_user",
    NotificationCategory.BOARD_POST: "notifications_disabled_for_board_post",
}


class UserInDB(UserBase):
    id: str = Field(..., description="Firestore document ID (the user's uid)")
