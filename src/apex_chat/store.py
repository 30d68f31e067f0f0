"""In-memory conversation store with a durable, attachment-free snapshot."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
import logging
from typing import Any, Literal

from .models import ChatMode, Conversation, Message
from .persistence import SnapshotFile

LOGGER = logging.getLogger(__name__)

_UPDATABLE_FIELDS = frozenset({"title", "messages", "mode"})


@dataclass(frozen=True)
class StoreChange:
    """Notification delivered to store listeners after every mutation."""

    kind: Literal["created", "updated", "deleted"]
    conversation_id: str
    conversation: Conversation | None


StoreListener = Callable[[StoreChange], None]


class ConversationStore:
    """Own the ordered conversation list (newest first) and its persisted projection.

    Every mutation writes a snapshot through ``persistence`` with attachments
    stripped. Load and save failures are logged and the store keeps working
    in memory.
    """

    def __init__(self, persistence: SnapshotFile | None = None) -> None:
        self._persistence = persistence
        self._conversations: list[Conversation] = []
        self._listeners: list[StoreListener] = []
        self._load()

    @property
    def conversations(self) -> list[Conversation]:
        return list(self._conversations)

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Register ``listener`` and return a callable that removes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return _unsubscribe

    def create(self) -> Conversation:
        conversation = Conversation.new()
        self._conversations.insert(0, conversation)
        self._commit(StoreChange("created", conversation.id, conversation))
        return conversation

    def get(self, conversation_id: str) -> Conversation | None:
        for conversation in self._conversations:
            if conversation.id == conversation_id:
                return conversation
        return None

    def update(self, conversation_id: str, **changes: Any) -> Conversation | None:
        """Merge ``title``, ``messages`` and/or ``mode`` into a conversation.

        Unknown ids are ignored and return ``None``.
        """
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise TypeError(f"Unsupported conversation fields: {sorted(unknown)}")

        if "messages" in changes:
            changes["messages"] = tuple(changes["messages"])
        if "mode" in changes:
            changes["mode"] = ChatMode(changes["mode"])

        for index, conversation in enumerate(self._conversations):
            if conversation.id == conversation_id:
                updated = replace(conversation, **changes)
                self._conversations[index] = updated
                self._commit(StoreChange("updated", conversation_id, updated))
                return updated
        return None

    def set_messages(
        self, conversation_id: str, messages: Iterable[Message]
    ) -> Conversation | None:
        return self.update(conversation_id, messages=tuple(messages))

    def delete(self, conversation_id: str) -> bool:
        """Remove a conversation. Callers evict any associated generation session."""
        remaining = [c for c in self._conversations if c.id != conversation_id]
        if len(remaining) == len(self._conversations):
            return False
        self._conversations = remaining
        self._commit(StoreChange("deleted", conversation_id, None))
        return True

    def snapshot(self) -> list[dict[str, Any]]:
        """Return the durable projection of every conversation."""
        return [conversation.to_snapshot() for conversation in self._conversations]

    def _load(self) -> None:
        if self._persistence is None:
            return
        try:
            rows = self._persistence.load()
        except Exception as exc:
            LOGGER.error(
                "store.load.failed",
                extra={"event": "store.load.failed", "error": str(exc)},
            )
            return
        if rows is None:
            return
        self._conversations = [Conversation.from_dict(row) for row in rows]
        LOGGER.info(
            "store.load.complete",
            extra={"event": "store.load.complete", "count": len(self._conversations)},
        )

    def _save(self) -> None:
        if self._persistence is None or not self._persistence.enabled:
            return
        try:
            self._persistence.save(self.snapshot())
        except Exception as exc:
            LOGGER.error(
                "store.save.failed",
                extra={"event": "store.save.failed", "error": str(exc)},
            )

    def _commit(self, change: StoreChange) -> None:
        self._save()
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception as exc:
                LOGGER.warning(
                    "store.listener.failed",
                    extra={
                        "event": "store.listener.failed",
                        "error_type": type(exc).__name__,
                        "error": str(exc),
                    },
                )
