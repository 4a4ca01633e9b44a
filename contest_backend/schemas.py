"""
Pydantic schemas for contest entries and the HTTP surface.

Entries are a tagged union on ``entry_type``: each variant carries only the
content fields that belong to it, so a text entry can never be stored with a
video URL and so on.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Optional, Union

import pydantic
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator
from pydantic.alias_generators import to_camel

from contest_backend import errors

MIN_TEXT_WORDS = 100
MAX_TEXT_WORDS = 2000

VIDEO_URL_PATTERN = re.compile(
    r"^(https?://)?(www\.)?(youtube\.com|youtu\.be|vimeo\.com)", re.IGNORECASE
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def count_words(text: Optional[str]) -> int:
    return len(text.split()) if text else 0


class Category(str, Enum):
    BUSINESS = "business"
    CREATIVE = "creative"
    TECHNOLOGY = "technology"
    SOCIAL_IMPACT = "social-impact"


class EntryType(str, Enum):
    TEXT = "text"
    PITCH_DECK = "pitch-deck"
    VIDEO = "video"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ReviewStatus(str, Enum):
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under-review"
    FINALIST = "finalist"
    WINNER = "winner"
    REJECTED = "rejected"


class EntryBase(BaseModel):
    model_config = ConfigDict(extra="forbid", use_enum_values=True)

    user_id: str = Field(..., min_length=1)
    category: Category
    title: str = Field(..., min_length=5, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    entry_fee: int = Field(..., ge=0)
    surcharge: int = Field(..., ge=0)
    total_amount: int = Field(..., ge=0)
    payment_intent_id: str = Field(..., min_length=1)
    payment_status: PaymentStatus = PaymentStatus.PENDING
    status: ReviewStatus = ReviewStatus.SUBMITTED
    submission_date: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _total_matches_fee_and_surcharge(self):
        if self.total_amount != self.entry_fee + self.surcharge:
            raise ValueError("total_amount must equal entry_fee + surcharge")
        return self


class TextEntry(EntryBase):
    entry_type: Literal["text"] = "text"
    text_content: str

    @field_validator("text_content")
    @classmethod
    def _word_count_in_range(cls, value: str) -> str:
        words = count_words(value)
        if words < MIN_TEXT_WORDS or words > MAX_TEXT_WORDS:
            raise ValueError(
                f"Text entries must be between {MIN_TEXT_WORDS}-{MAX_TEXT_WORDS} words"
            )
        return value


class DeckEntry(EntryBase):
    entry_type: Literal["pitch-deck"] = "pitch-deck"
    file_data: Optional[str] = None
    file_name: Optional[str] = None
    file_type: Optional[str] = None
    file_size: Optional[int] = Field(default=None, ge=0)
    file_url: Optional[str] = None
    # Object key when the bytes live in external storage.
    file_path: Optional[str] = None

    @model_validator(mode="after")
    def _has_file_reference(self):
        if not self.file_data and not self.file_url:
            raise ValueError("File URL or file data required for pitch deck entries")
        return self


class VideoEntry(EntryBase):
    entry_type: Literal["video"] = "video"
    video_url: str

    @field_validator("video_url")
    @classmethod
    def _recognized_host(cls, value: str) -> str:
        if not VIDEO_URL_PATTERN.match(value or ""):
            raise ValueError("Valid YouTube or Vimeo URL required for video entries")
        return value


Entry = Annotated[
    Union[TextEntry, DeckEntry, VideoEntry], Field(discriminator="entry_type")
]

ENTRY_ADAPTER: TypeAdapter[Entry] = TypeAdapter(Entry)

_VARIANT_TAGS = {member.value for member in EntryType}


def parse_entry(data: dict) -> Union[TextEntry, DeckEntry, VideoEntry]:
    """Validate a raw entry dict, raising the API's ValidationError."""
    try:
        return ENTRY_ADAPTER.validate_python(data)
    except pydantic.ValidationError as exc:
        details = []
        for err in exc.errors():
            loc = [str(part) for part in err.get("loc", ())]
            if loc and loc[0] in _VARIANT_TAGS:
                loc = loc[1:]
            details.append({"field": ".".join(loc), "message": err.get("msg")})
        raise errors.ValidationError(
            "Entry validation failed", reason="invalid-entry", details=details
        ) from exc


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PaymentIntentRequest(CamelModel):
    category: str = Field(..., min_length=1)
    entry_type: EntryType


class PaymentIntentResponse(CamelModel):
    client_secret: str
    payment_intent_id: str
    entry_fee: int
    surcharge: int
    total_amount: int


class SubmitEntryResponse(CamelModel):
    message: str
    entry_id: str


class EntryResponse(CamelModel):
    """Flat view of an entry; inline file bytes are never included."""

    id: str
    user_id: str
    category: str
    entry_type: str
    title: str
    description: Optional[str] = None
    text_content: Optional[str] = None
    file_name: Optional[str] = None
    file_type: Optional[str] = None
    file_size: Optional[int] = None
    file_url: Optional[str] = None
    video_url: Optional[str] = None
    entry_fee: int
    surcharge: int
    total_amount: int
    payment_intent_id: str
    payment_status: str
    status: str
    submission_date: datetime
    created_at: datetime
    updated_at: datetime


class DeleteEntryRequest(CamelModel):
    user_id: str = Field(..., min_length=1)


class DeleteEntryResponse(CamelModel):
    message: str


class HealthResponse(CamelModel):
    status: Literal["OK", "DEGRADED"]
    message: str
    environment: str
    timestamp: datetime
    database: Literal["connected", "disconnected"]
    gateway: Literal["initialized", "not initialized"]


class WebhookResponse(CamelModel):
    received: bool
