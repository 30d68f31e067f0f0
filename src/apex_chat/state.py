"""Turn status reflection and per-conversation single-flight gate."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from enum import Enum
import logging

from .exceptions import ConversationBusyError

LOGGER = logging.getLogger(__name__)


class AnimationState(str, Enum):
    """Status hint shown by the front-end while a turn runs."""

    IDLE = "idle"
    THINKING = "thinking"
    SPEAKING = "speaking"


class TurnState:
    """Global busy flag and animation hint for the turn shown in the front-end."""

    def __init__(self) -> None:
        self.busy = False
        self.animation = AnimationState.IDLE
        self.conversation_id: str | None = None
        self._owner: int | None = None
        self._next_token = 0
        self._listeners: list[Callable[[TurnState], None]] = []

    def subscribe(self, listener: Callable[[TurnState], None]) -> None:
        self._listeners.append(listener)

    def begin(self, conversation_id: str) -> int:
        """Reflect a new turn and return the token that owns the reflection."""
        self._next_token += 1
        self._owner = self._next_token
        self.busy = True
        self.conversation_id = conversation_id
        self.animation = AnimationState.THINKING
        self._notify()
        return self._owner

    def owns(self, token: int) -> bool:
        return self._owner is not None and token == self._owner

    def set_animation(self, animation: AnimationState, token: int) -> None:
        if not self.owns(token):
            return
        self.animation = animation
        self._notify()

    def finish(self, token: int) -> None:
        """Settle the reflection; ignored once another turn or a detach took it over."""
        if not self.owns(token):
            return
        self._clear()

    def _clear(self) -> None:
        self._owner = None
        self.busy = False
        self.conversation_id = None
        self.animation = AnimationState.IDLE
        self._notify()

    def detach(self) -> None:
        """Stop reflecting an in-flight turn, e.g. after switching conversations.

        The turn itself keeps running and still writes into the store, but its
        later animation and finish calls no longer change this state.
        """
        if self._owner is None:
            return
        self._clear()

    def is_busy_for(self, conversation_id: str | None) -> bool:
        return self.busy and conversation_id is not None and conversation_id == self.conversation_id

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as exc:
                LOGGER.warning(
                    "state.listener.failed",
                    extra={"event": "state.listener.failed", "error": str(exc)},
                )


class TurnGate:
    """Reject concurrent turns on the same conversation id."""

    def __init__(self) -> None:
        self._held: set[str] = set()

    def is_held(self, conversation_id: str) -> bool:
        return conversation_id in self._held

    @asynccontextmanager
    async def hold(self, conversation_id: str) -> AsyncIterator[None]:
        # Check and claim happen without a suspension point in between.
        if conversation_id in self._held:
            raise ConversationBusyError(
                f"A turn is already running for conversation {conversation_id}."
            )
        self._held.add(conversation_id)
        try:
            yield
        finally:
            self._held.discard(conversation_id)
