from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator


ItemType = Literal["image", "document", "text", "link", "video", "commendation", "milestone"]
ItemStatus = Literal["draft", "submitted_for_review", "approved", "rejected"]
VisibilityLevel = Literal["private_draft", "family", "connections", "public"]
Attribution = Literal["named", "initials", "withheld"]
GrantScope = Literal["global", "journey"]
JourneyKind = Literal["person", "club", "moment", "organisation"]
ViewerTier = Literal["family", "connections"]
MessageKind = Literal["contact", "join"]


def _non_blank(value: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError("must not be empty")
    return value


# ----------------------------
# Type-specific payloads
# ----------------------------

class _Payload(BaseModel):
    model_config = ConfigDict(extra="forbid")


class TextPayload(_Payload):
    title: str
    body: str
    in_response_to: Optional[str] = None

    @field_validator("title", "body")
    @classmethod
    def required_text(cls, value: str) -> str:
        return _non_blank(value)


class LinkPayload(_Payload):
    url: str
    title: Optional[str] = None
    description: Optional[str] = None

    @field_validator("url")
    @classmethod
    def valid_url(cls, value: str) -> str:
        value = (value or "").strip()
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("must be a valid URL (e.g., https://example.com)")
        return value


class FilePayload(_Payload):
    filename: str
    content_type: str
    size_bytes: int = Field(..., ge=1)
    storage_path: Optional[str] = None
    caption: Optional[str] = None

    @field_validator("filename", "content_type")
    @classmethod
    def required_text(cls, value: str) -> str:
        return _non_blank(value)


IMAGE_CONTENT_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/webp", "image/gif")
VIDEO_CONTENT_TYPES = ("video/mp4", "video/quicktime", "video/webm")


class ImagePayload(FilePayload):
    @field_validator("content_type")
    @classmethod
    def image_type(cls, value: str) -> str:
        if value.lower() not in IMAGE_CONTENT_TYPES:
            raise ValueError(f"must be one of {list(IMAGE_CONTENT_TYPES)}")
        return value


class DocumentPayload(FilePayload):
    pass


class VideoPayload(FilePayload):
    @field_validator("content_type")
    @classmethod
    def video_type(cls, value: str) -> str:
        if value.lower() not in VIDEO_CONTENT_TYPES:
            raise ValueError(f"must be one of {list(VIDEO_CONTENT_TYPES)}")
        return value


class CommendationPayload(_Payload):
    commendation_text: str = Field(..., min_length=50)
    why_it_mattered: str = Field(..., min_length=20)
    relationship: Optional[str] = None

    @field_validator("commendation_text", "why_it_mattered", mode="before")
    @classmethod
    def trim(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


class MilestonePayload(_Payload):
    title: str
    year: Optional[int] = None
    description: Optional[str] = None

    @field_validator("title")
    @classmethod
    def required_text(cls, value: str) -> str:
        return _non_blank(value)

    @field_validator("year")
    @classmethod
    def plausible_year(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and not (1800 <= value <= date.today().year + 1):
            raise ValueError("year is out of range")
        return value


PAYLOAD_MODELS: Dict[str, type[_Payload]] = {
    "text": TextPayload,
    "link": LinkPayload,
    "image": ImagePayload,
    "document": DocumentPayload,
    "video": VideoPayload,
    "commendation": CommendationPayload,
    "milestone": MilestonePayload,
}


# ----------------------------
# Items
# ----------------------------

class ItemCreateIn(BaseModel):
    type: ItemType
    journey_id: str = Field(..., min_length=1)
    payload: Dict[str, Any]
    visibility: VisibilityLevel = "private_draft"
    attribution: Attribution = "named"
    credit_line: Optional[str] = Field(None, max_length=400)
    rights_status: Optional[str] = Field(None, max_length=200)
    provenance_note: Optional[str] = Field(None, max_length=2000)
    as_draft: bool = False


class ItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    journey_id: str
    type: ItemType
    status: ItemStatus
    visibility: VisibilityLevel
    payload: Dict[str, Any]
    attribution: Attribution
    credit_line: Optional[str] = None
    rights_status: Optional[str] = None
    provenance_note: Optional[str] = None
    created_by: str
    created_at: datetime
    updated_at: datetime
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    rejection_note: Optional[str] = None


class ItemListOut(BaseModel):
    items: List[ItemOut]
    counts: Dict[str, int]
    limit: int
    offset: int
    total: int


class DecisionIn(BaseModel):
    note: Optional[str] = Field(None, max_length=2000)


class DecisionOut(BaseModel):
    success: bool = True
    changed: bool
    item: ItemOut


class AllowedActionsOut(BaseModel):
    item_id: str
    status: ItemStatus
    allowed: List[str]


# ----------------------------
# Audit ledger
# ----------------------------

class AuditEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    target_kind: str
    target_id: str
    journey_id: Optional[str] = None
    actor_id: str
    action: str
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None
    note: Optional[str] = None
    created_at: datetime


# ----------------------------
# Stewardship + journeys
# ----------------------------

class GrantIn(BaseModel):
    user_id: str = Field(..., min_length=1)
    scope: GrantScope = "journey"
    journey_id: Optional[str] = None


class GrantOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    scope: GrantScope
    journey_id: Optional[str] = None
    created_at: datetime
    created_by: str
    revoked_at: Optional[datetime] = None
    revoked_by: Optional[str] = None


class JourneyCreateIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=400)
    kind: JourneyKind = "person"


class JourneyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    kind: JourneyKind
    owner_id: str
    created_at: datetime


class ViewerIn(BaseModel):
    user_id: str = Field(..., min_length=1)
    tier: ViewerTier = "family"
    can_preview: bool = False


class ViewerOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    journey_id: str
    user_id: str
    tier: ViewerTier
    can_preview: bool
    created_at: datetime


# ----------------------------
# Inbound messages
# ----------------------------

class MessageIn(BaseModel):
    kind: MessageKind = "contact"
    name: str = Field(..., min_length=1, max_length=200)
    email: str = Field(..., min_length=3, max_length=320)
    body: str = Field(..., min_length=1, max_length=10_000)
    journey_id: Optional[str] = None

    @field_validator("email")
    @classmethod
    def looks_like_email(cls, value: str) -> str:
        value = value.strip()
        local, _, domain = value.partition("@")
        if not local or "." not in domain:
            raise ValueError("must be an email address")
        return value


class MessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    kind: MessageKind
    sender_id: Optional[str] = None
    name: str
    email: str
    body: str
    journey_id: Optional[str] = None
    created_at: datetime
