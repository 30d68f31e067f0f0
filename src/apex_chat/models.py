"""Conversation data model shared by the store, sessions, and turn orchestration."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any
from uuid import uuid4

DEFAULT_TITLE = "New Conversation"


def generate_id() -> str:
    """Return a fresh opaque identifier for messages and conversations."""
    return uuid4().hex


class Role(str, Enum):
    """Author of a message."""

    USER = "user"
    MODEL = "model"


class ChatMode(str, Enum):
    """Generation strategy selected for a conversation."""

    DEFAULT = "default"
    CODE = "code"
    IMAGE = "image"
    VIDEO = "video"
    DEEPSEARCH = "deepsearch"

    @classmethod
    def parse(cls, value: Any) -> ChatMode:
        """Return the mode for ``value``, falling back to DEFAULT when unknown."""
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.DEFAULT


class Feedback(str, Enum):
    """User reaction attached to a model message."""

    LIKED = "liked"
    DISLIKED = "disliked"


@dataclass(frozen=True)
class Attachment:
    """Inline binary payload carried as a base64 data URI."""

    data: str
    mime_type: str
    name: str

    @classmethod
    def from_bytes(cls, payload: bytes, mime_type: str, name: str) -> Attachment:
        encoded = base64.b64encode(payload).decode("ascii")
        return cls(data=f"data:{mime_type};base64,{encoded}", mime_type=mime_type, name=name)

    @property
    def base64_payload(self) -> str:
        """Return the base64 body without the ``data:`` prefix."""
        _, sep, body = self.data.partition(",")
        return body if sep else self.data

    def to_bytes(self) -> bytes:
        return base64.b64decode(self.base64_payload)

    def to_dict(self) -> dict[str, str]:
        return {"data": self.data, "mimeType": self.mime_type, "name": self.name}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Attachment:
        return cls(
            data=str(payload.get("data", "")),
            mime_type=str(payload.get("mimeType", "application/octet-stream")),
            name=str(payload.get("name", "")),
        )


@dataclass(frozen=True)
class Source:
    """A web page cited by a grounded answer."""

    uri: str
    title: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"uri": self.uri, "title": self.title}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Source:
        return cls(uri=str(payload.get("uri", "")), title=str(payload.get("title", "")))


@dataclass(frozen=True)
class Message:
    """One chat message.

    Instances are immutable: streaming and regeneration rewrite a message by
    replacing it with a copy that keeps the same ``id``.
    """

    id: str
    role: Role
    content: str = ""
    attachment: Attachment | None = None
    sources: tuple[Source, ...] | None = None
    feedback: Feedback | None = None

    @classmethod
    def user(cls, content: str, attachment: Attachment | None = None) -> Message:
        return cls(id=generate_id(), role=Role.USER, content=content, attachment=attachment)

    @classmethod
    def placeholder(cls, message_id: str | None = None) -> Message:
        """Return an empty model message shown while a turn is pending."""
        return cls(id=message_id or generate_id(), role=Role.MODEL)

    @property
    def is_empty(self) -> bool:
        """True when the message carries neither text nor an attachment."""
        return not self.content.strip() and self.attachment is None

    def with_changes(self, **changes: Any) -> Message:
        return replace(self, **changes)

    def to_dict(self, include_attachment: bool = True) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
        }
        if include_attachment and self.attachment is not None:
            payload["attachment"] = self.attachment.to_dict()
        if self.sources is not None:
            payload["sources"] = [source.to_dict() for source in self.sources]
        if self.feedback is not None:
            payload["feedback"] = self.feedback.value
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Message:
        try:
            role = Role(str(payload.get("role", "")).strip().lower())
        except ValueError:
            role = Role.MODEL

        attachment = None
        raw_attachment = payload.get("attachment")
        if isinstance(raw_attachment, dict):
            attachment = Attachment.from_dict(raw_attachment)

        sources = None
        raw_sources = payload.get("sources")
        if isinstance(raw_sources, list):
            sources = tuple(
                Source.from_dict(item) for item in raw_sources if isinstance(item, dict)
            )

        feedback = None
        raw_feedback = payload.get("feedback")
        if isinstance(raw_feedback, str):
            try:
                feedback = Feedback(raw_feedback)
            except ValueError:
                feedback = None

        return cls(
            id=str(payload.get("id") or generate_id()),
            role=role,
            content=str(payload.get("content") or ""),
            attachment=attachment,
            sources=sources,
            feedback=feedback,
        )


@dataclass(frozen=True)
class Conversation:
    """A named, ordered sequence of messages with its generation mode."""

    id: str
    title: str = DEFAULT_TITLE
    messages: tuple[Message, ...] = field(default_factory=tuple)
    mode: ChatMode = ChatMode.DEFAULT

    @classmethod
    def new(cls) -> Conversation:
        return cls(id=generate_id())

    def find_message(self, message_id: str) -> int:
        """Return the index of ``message_id`` or -1 when absent."""
        for index, message in enumerate(self.messages):
            if message.id == message_id:
                return index
        return -1

    def to_dict(self, include_attachments: bool = True) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "mode": self.mode.value,
            "messages": [
                message.to_dict(include_attachment=include_attachments)
                for message in self.messages
            ],
        }

    def to_snapshot(self) -> dict[str, Any]:
        """Durable projection: identical to ``to_dict`` minus attachment payloads."""
        return self.to_dict(include_attachments=False)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Conversation:
        raw_messages = payload.get("messages")
        messages: tuple[Message, ...] = ()
        if isinstance(raw_messages, list):
            messages = tuple(
                Message.from_dict(item) for item in raw_messages if isinstance(item, dict)
            )
        title = payload.get("title")
        return cls(
            id=str(payload.get("id") or generate_id()),
            title=title.strip() if isinstance(title, str) and title.strip() else DEFAULT_TITLE,
            messages=messages,
            mode=ChatMode.parse(payload.get("mode", ChatMode.DEFAULT.value)),
        )
