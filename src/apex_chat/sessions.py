"""Per-conversation cache of stateful generation sessions."""

from __future__ import annotations

from collections.abc import Iterable
import logging
from typing import Any, Protocol

from .models import Message, Role

LOGGER = logging.getLogger(__name__)


class SessionFactory(Protocol):
    def create_session(self, history: Iterable[Message], system_instruction: str) -> Any:
        ...


class GenerationSessionCache:
    """Hold one generation session per conversation id.

    A session is a derived view of the conversation history it was built
    from. Callers must ``invalidate`` it whenever that history changes
    underneath it (delete, mode switch, regeneration).
    """

    def __init__(self, factory: SessionFactory, default_system_instruction: str) -> None:
        self._factory = factory
        self.default_system_instruction = default_system_instruction
        self._sessions: dict[str, Any] = {}

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    @staticmethod
    def clean_history(history: Iterable[Message]) -> list[Message]:
        """Drop model messages that carry neither text nor an attachment."""
        return [m for m in history if m.role is Role.USER or not m.is_empty]

    def get_or_create(
        self,
        conversation_id: str,
        history: Iterable[Message],
        system_instruction: str | None = None,
    ) -> Any:
        """Return the cached session or build one by replaying ``history``."""
        session = self._sessions.get(conversation_id)
        if session is not None:
            return session

        clean = self.clean_history(history)
        session = self._factory.create_session(
            clean, system_instruction or self.default_system_instruction
        )
        self._sessions[conversation_id] = session
        LOGGER.debug(
            "session.created",
            extra={
                "event": "session.created",
                "conversation_id": conversation_id,
                "history_messages": len(clean),
            },
        )
        return session

    def invalidate(self, conversation_id: str) -> bool:
        """Evict the session for ``conversation_id``; return whether one existed."""
        evicted = self._sessions.pop(conversation_id, None) is not None
        if evicted:
            LOGGER.debug(
                "session.invalidated",
                extra={"event": "session.invalidated", "conversation_id": conversation_id},
            )
        return evicted

    def clear(self) -> None:
        self._sessions.clear()
