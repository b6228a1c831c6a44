from pydantic import BaseModel, Field, ValidationError, field_validator
from typing import Any, Dict, List, Literal, Optional, Union

# Ticket error codes meaning the token will never accept deliveries again.
PERMANENT_ERROR_CODES = frozenset(
    {
        "DeviceNotRegistered",
        "ExpoPushTokenNotRegistered",
        "InvalidCredentials",
    }
)
UNKNOWN_ERROR_CODE = "UnknownError"


def _string_or_none(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


class ExpoPushMessage(BaseModel):
    """A notification to fan out to one or more Expo push tokens."""

    to: Union[str, List[Any]] = Field(..., description="Single token or list of tokens")
    title: str
    body: str
    data: Optional[Dict[str, Any]] = Field(None, description="Structured payload for the app")
    sound: Optional[str] = "default"
    channel_id: Optional[str] = Field(None, alias="channelId", description="Android channel")

    class Config:
        populate_by_name = True

    def to_entry(self, token: str) -> Dict[str, Any]:
        """Provider request entry for a single recipient."""
        entry: Dict[str, Any] = {
            "to": token,
            "title": self.title,
            "body": self.body,
            "sound": self.sound or "default",
            "channelId": self.channel_id or "default",
        }
        if self.data:
            entry["data"] = self.data
        return entry


class ExpoPushTicketDetails(BaseModel):
    error: Optional[str] = None

    class Config:
        extra = "allow"

    @field_validator("error", mode="before")
    @classmethod
    def _error_code(cls, value: Any) -> Optional[str]:
        return _string_or_none(value)


class ExpoPushTicket(BaseModel):
    status: Optional[str] = None
    id: Optional[str] = None
    message: Optional[str] = None
    details: Optional[ExpoPushTicketDetails] = None

    class Config:
        extra = "allow"

    # A malformed field only degrades its own ticket, never the whole envelope.
    @field_validator("status", "id", "message", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Optional[str]:
        return _string_or_none(value)

    @field_validator("details", mode="before")
    @classmethod
    def _details_or_none(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None

    @property
    def is_ok(self) -> bool:
        return self.status == "ok"

    @property
    def error_code(self) -> str:
        if self.details and self.details.error:
            return self.details.error
        return UNKNOWN_ERROR_CODE

    @property
    def is_permanent_failure(self) -> bool:
        return not self.is_ok and self.error_code in PERMANENT_ERROR_CODES


class ExpoPushError(BaseModel):
    code: Optional[str] = None
    message: Optional[str] = None

    class Config:
        extra = "allow"

    @field_validator("code", "message", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Optional[str]:
        return _string_or_none(value)


class ExpoPushEnvelope(BaseModel):
    """Parsed response body; data[i] belongs to request entry i."""

    kind: Literal["parsed"] = "parsed"
    data: List[ExpoPushTicket] = Field(default_factory=list)
    errors: List[ExpoPushError] = Field(default_factory=list)

    class Config:
        extra = "allow"

    @field_validator("data", mode="before")
    @classmethod
    def _tickets(cls, value: Any) -> List[Any]:
        # Non-object entries keep their slot so later tickets stay aligned.
        if not isinstance(value, list):
            return []
        return [ticket if isinstance(ticket, dict) else {} for ticket in value]

    @field_validator("errors", mode="before")
    @classmethod
    def _errors(cls, value: Any) -> List[Any]:
        if not isinstance(value, list):
            return []
        return [error for error in value if isinstance(error, dict)]


class UnparsedResponse(BaseModel):
    """A response body that is not a valid provider envelope."""

    kind: Literal["unparsed"] = "unparsed"
    raw_body: str
    reason: str


ProviderResponse = Union[ExpoPushEnvelope, UnparsedResponse]


def parse_provider_response(raw_body: str) -> ProviderResponse:
    try:
        return ExpoPushEnvelope.model_validate_json(raw_body or "")
    except ValidationError as e:
        return UnparsedResponse(
            raw_body=raw_body, reason=f"{e.error_count()} validation error(s)"
        )


class ChunkResult(BaseModel):
    chunk_size: int = Field(..., alias="chunkSize")
    http_status: int = Field(..., alias="httpStatus", description="0 on transport failure")
    ok: bool
    raw_response_body: str = Field("", alias="rawResponseBody")
    tokens: List[str] = Field(default_factory=list, exclude=True)

    class Config:
        populate_by_name = True


class PushTestRequest(BaseModel):
    # Every field is optional so a missing one is answered with 400, not 422.
    to: Any = None
    title: Optional[str] = None
    body: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    sound: Optional[str] = None

    @field_validator("title", "body", "sound", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Optional[str]:
        # Wrong types fall through to the missing-fields answer.
        return _string_or_none(value)

    @field_validator("data", mode="before")
    @classmethod
    def _data_or_none(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None
