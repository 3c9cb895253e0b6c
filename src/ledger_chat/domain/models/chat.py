"""Chat request and response models."""

import base64
import binascii

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ledger_chat.core.config import settings
from ledger_chat.domain.models.document import DocumentMetadata
from ledger_chat.domain.models.utils import utc_now

USER_DATA_SOURCE = "user data"
IMAGE_ANALYSIS_SOURCE = "image analysis"

# (magic prefix, media type) for the image formats the vision model accepts
IMAGE_SIGNATURES: tuple[tuple[bytes, str], ...] = (
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)


def sniff_image_media_type(head: bytes) -> str | None:
    """Media type for the leading bytes of an image, or None if the format is unsupported."""
    for signature, media_type in IMAGE_SIGNATURES:
        if head.startswith(signature):
            return media_type
    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return "image/webp"
    return None


def strip_data_uri(value: str) -> str:
    """Return the base64 payload of a ``data:<mime>;base64,`` URI, or the value itself."""
    value = value.strip()
    if value.startswith("data:") and "," in value:
        return value.split(",", 1)[1]
    return value


class ChatRequest(BaseModel):
    """One incoming user turn."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    message: str = Field(min_length=1)
    image_base64: str | None = None
    conversation_id: str | None = None

    @field_validator("message")
    @classmethod
    def validate_message(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Message is required")
        return v

    @field_validator("image_base64", mode="before")
    @classmethod
    def validate_image(cls, v):
        if v is None or v == "":
            return None
        if not isinstance(v, str):
            raise ValueError("Image must be a base64 encoded string")
        payload = strip_data_uri(v)
        try:
            raw = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError("Image is not valid base64") from e
        if not raw:
            raise ValueError("Image is empty")
        if len(raw) > settings.max_image_bytes:
            raise ValueError(f"Image exceeds {settings.max_image_bytes} bytes")
        if sniff_image_media_type(raw[:16]) is None:
            raise ValueError("Unsupported image format; use JPEG, PNG, GIF or WebP")
        return payload


class ChatResponse(BaseModel):
    """Answer to one turn, with the grounding channels that were used."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    response: str
    conversation_id: str
    sources: list[str]
    timestamp: str = Field(default_factory=lambda: utc_now().isoformat())
    image_analysis: str | None = None
    references: list[DocumentMetadata] = Field(default_factory=list)
