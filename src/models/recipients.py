from enum import Enum
from pydantic import BaseModel, Field
from typing import Optional, Set

from src.models.user import NotificationCategory


class Audience(str, Enum):
    APPROVED = "approved"  # every approved user
    OWNERS = "owners"  # users with role == owner


class RecipientFilter(BaseModel):
    audience: Audience = Audience.APPROVED
    opt_out: Optional[NotificationCategory] = Field(
        None, description="Category whose opt-out flag excludes a user"
    )


class RecipientSelection(BaseModel):
    tokens: Set[str] = Field(default_factory=set)
    considered_user_count: int = Field(
        0, description="Users matched by the audience query, before exclusions"
    )
