"""Conversation messages and their wire representation."""

from __future__ import annotations

import base64
import mimetypes
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar, Literal, Union

from .schema import ExecutionResult, Fragment

__all__ = [
    "CodePart",
    "ContentPart",
    "ImagePart",
    "Message",
    "Role",
    "TextPart",
    "assistant_content",
    "content_part_from_dict",
    "content_part_to_dict",
    "image_part_from_bytes",
    "image_part_from_file",
    "message_to_dict",
    "to_wire_messages",
]

Role = Literal["user", "assistant"]


@dataclass(frozen=True, slots=True)
class TextPart:
    """Plain prose shown as a paragraph."""

    type: ClassVar[str] = "text"
    text: str

    def to_wire(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass(frozen=True, slots=True)
class CodePart:
    """Generated source code; travels to the model as text."""

    type: ClassVar[str] = "code"
    text: str

    def to_wire(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass(frozen=True, slots=True)
class ImagePart:
    """Attached image given as a data URL or a remote reference."""

    type: ClassVar[str] = "image"
    image: str

    def to_wire(self) -> dict[str, Any]:
        return {"type": "image", "image": self.image}


ContentPart = Union[TextPart, CodePart, ImagePart]


@dataclass(frozen=True, slots=True)
class Message:
    """Single transcript entry.

    Instances are immutable; :class:`~fragments.chat.transcript.TranscriptStore`
    replaces the last entry with a merged copy while a reply is streaming.
    """

    role: Role
    content: tuple[ContentPart, ...] = ()
    fragment: Fragment | None = None
    result: ExecutionResult | None = field(default=None, compare=False)
    cycle_id: int | None = field(default=None, compare=False)

    @classmethod
    def user(cls, text: str, images: Iterable[ImagePart] = ()) -> Message:
        """Build a user message: the text part first, then one part per image."""
        parts: list[ContentPart] = [TextPart(text)]
        parts.extend(images)
        return cls(role="user", content=tuple(parts))

    @classmethod
    def assistant(
        cls,
        fragment: Fragment,
        *,
        result: ExecutionResult | None = None,
        cycle_id: int | None = None,
    ) -> Message:
        return cls(
            role="assistant",
            content=assistant_content(fragment),
            fragment=fragment,
            result=result,
            cycle_id=cycle_id,
        )

    def text(self) -> str:
        """Return the concatenated text parts."""
        return "".join(part.text for part in self.content if isinstance(part, TextPart))

    def to_wire(self) -> dict[str, Any]:
        return {
            "role": self.role,
            "content": [part.to_wire() for part in self.content],
        }


def assistant_content(fragment: Fragment) -> tuple[ContentPart, ...]:
    """Return the commentary and code parts shown for *fragment*."""
    return (
        TextPart(fragment.commentary or ""),
        CodePart(fragment.code or ""),
    )


def to_wire_messages(messages: Sequence[Message]) -> list[dict[str, Any]]:
    """Convert the transcript into the message list the chat endpoint accepts."""
    return [message.to_wire() for message in messages]


def image_part_from_bytes(data: bytes, mime_type: str) -> ImagePart:
    encoded = base64.b64encode(data).decode("ascii")
    return ImagePart(f"data:{mime_type};base64,{encoded}")


def image_part_from_file(path: Path | str) -> ImagePart:
    """Read the image at *path* and embed it as a base64 data URL."""
    file_path = Path(path)
    mime_type, _ = mimetypes.guess_type(file_path.name)
    if mime_type is None or not mime_type.startswith("image/"):
        raise ValueError(f"{file_path.name} is not a supported image file")
    return image_part_from_bytes(file_path.read_bytes(), mime_type)


def content_part_to_dict(part: ContentPart) -> dict[str, Any]:
    """Return the lossless (non-wire) form of *part*, keeping ``code`` parts."""
    if isinstance(part, ImagePart):
        return {"type": "image", "image": part.image}
    return {"type": part.type, "text": part.text}


def message_to_dict(message: Message) -> dict[str, Any]:
    data: dict[str, Any] = {
        "role": message.role,
        "content": [content_part_to_dict(part) for part in message.content],
    }
    if message.fragment is not None:
        data["object"] = message.fragment.to_payload()
    if message.result is not None:
        data["result"] = message.result.to_payload()
    return data


def content_part_from_dict(data: Mapping[str, Any]) -> ContentPart:
    kind = data.get("type")
    if kind == "text":
        return TextPart(str(data.get("text", "")))
    if kind == "code":
        return CodePart(str(data.get("text", "")))
    if kind == "image":
        return ImagePart(str(data.get("image", "")))
    raise ValueError(f"unknown content part type: {kind!r}")
