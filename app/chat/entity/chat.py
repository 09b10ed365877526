# app/chat/entity/chat.py
"""
Models for conversations, messages and the values exchanged with providers.

A message is a tagged variant on ``type``: text messages carry ``content``,
image messages carry an ordered list of durable image URLs.
"""

from typing import Annotated, Any, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, field_validator

GENERATED_IMAGE_PLACEHOLDER = "generated image"

Role = Literal["user", "system"]


class TextMessage(BaseModel):
    """A text turn."""
    role: Role
    type: Literal["text"] = "text"
    content: str


class ImageMessage(BaseModel):
    """A turn made of generated images; content is always empty."""
    role: Role = "system"
    type: Literal["image"] = "image"
    content: Literal[""] = ""
    images: List[str]

    @field_validator("images")
    @classmethod
    def _require_images(cls, images: List[str]) -> List[str]:
        if not images:
            raise ValueError("image message must reference at least one image")
        return images


def _message_kind(value: Any) -> str:
    # Stored user prompts written by older clients have no type field
    if isinstance(value, dict):
        return value.get("type") or "text"
    return getattr(value, "type", "text")


Message = Annotated[
    Union[Annotated[TextMessage, Tag("text")], Annotated[ImageMessage, Tag("image")]],
    Discriminator(_message_kind),
]


class Conversation(BaseModel):
    """Ordered, append-only sequence of messages owned by one user."""
    id: str
    messages: List[Message] = Field(default_factory=list)


class HistoryEntry(BaseModel):
    """A message as providers see it: role and text only."""
    role: Role
    content: str


# ────────────────────────────────────────────────
# Provider exchange values
# ────────────────────────────────────────────────

class GenerationRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    prompt: str
    capability: Literal["text", "image"]
    history: List[HistoryEntry] = Field(default_factory=list)
    image_size: Optional[str] = None


class TextResult(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ImageResult(BaseModel):
    """Raw image payloads: remote URLs or base64 strings, in provider order."""
    type: Literal["image"] = "image"
    images: List[str]


GenerationResult = Annotated[Union[TextResult, ImageResult], Field(discriminator="type")]


class StagedArtifact(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    name: str
    content_type: str
    size: int
