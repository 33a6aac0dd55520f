"""WhatsApp webhook event models.

An inbound message carries exactly one content variant: `TextContent` or
`MediaContent` (image, audio, video, document). Each variant exposes the
same narrow accessors (`kind`, `display_text`, `media_url`) so callers
never inspect the raw provider payload.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Union

MediaKind = Literal["image", "audio", "video", "document"]
MessageKind = Literal["text", "image", "audio", "video", "document"]

# Shown in the inbox when media arrives without a caption
MEDIA_PLACEHOLDERS: dict[str, str] = {
    "image": "[Imagen]",
    "audio": "[Audio]",
    "video": "[Video]",
    "document": "[Documento]",
}


@dataclass(frozen=True)
class TextContent:
    body: str

    @property
    def kind(self) -> MessageKind:
        return "text"

    @property
    def display_text(self) -> str:
        return self.body

    @property
    def media_url(self) -> str | None:
        return None


@dataclass(frozen=True)
class MediaContent:
    media_kind: MediaKind
    link: str
    caption: str = ""

    @property
    def kind(self) -> MessageKind:
        return self.media_kind

    @property
    def display_text(self) -> str:
        # Audio never has a caption worth showing
        if self.media_kind == "audio":
            return MEDIA_PLACEHOLDERS["audio"]
        return self.caption or MEDIA_PLACEHOLDERS[self.media_kind]

    @property
    def media_url(self) -> str | None:
        return self.link


MessageContent = Union[TextContent, MediaContent]


@dataclass(frozen=True)
class InboundMessageEvent:
    """Customer message received on the business number.

    `wamid` is the WhatsApp message id used to thread replies.
    """

    event_id: str
    phone: str
    name: str
    content: MessageContent
    wamid: str | None
    received_at: datetime

    @property
    def text(self) -> str:
        return self.content.display_text


@dataclass(frozen=True)
class OutboundMessageEvent:
    """Message sent by the business through the provider dashboard."""

    event_id: str
    to_phone: str


WebhookEvent = Union[InboundMessageEvent, OutboundMessageEvent]
