"""Turn orchestration: one user input in, one model message out.

A turn appends a placeholder model message, dispatches on the conversation
mode, writes partial results into the store as they arrive, and always
settles the placeholder into a displayable final state, either the
generated result or a fixed apology.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
import logging
from typing import Any, Protocol

from .config import CODE_SYSTEM_INSTRUCTION
from .exceptions import VideoResultMissingError
from .models import Attachment, ChatMode, Message, Role, Source
from .notifications import Notifier
from .sessions import GenerationSessionCache
from .state import AnimationState, TurnGate, TurnState
from .store import ConversationStore

LOGGER = logging.getLogger(__name__)

APOLOGY_MESSAGE = "Sorry, I encountered an error. Please try again."

VIDEO_STARTING = "Starting video generation..."
VIDEO_CRAFTING = "Apex is crafting your video scene by scene..."
VIDEO_RENDERING = "Rendering the frames, this can take a moment..."
VIDEO_FINALIZING = "Finalizing and downloading your video..."

DEFAULT_POLL_INTERVALS: tuple[float, ...] = (10.0, 10.0, 15.0, 20.0)


class GenerationService(Protocol):
    """Backend capabilities a turn may consume."""

    def create_session(self, history: Iterable[Message], system_instruction: str) -> Any:
        ...

    def stream_reply(
        self, session: Any, prompt: str, attachment: Attachment | None = None
    ) -> AsyncIterator[str]:
        ...

    async def generate_image(self, prompt: str) -> Attachment:
        ...

    async def grounded_answer(self, prompt: str) -> Any:
        ...

    async def start_video(self, prompt: str) -> Any:
        ...

    async def poll_video(self, operation: Any) -> Any:
        ...

    async def fetch_video(self, operation: Any) -> Attachment | None:
        ...


@dataclass(frozen=True)
class TurnOutcome:
    """Uniform result returned by every mode handler."""

    content: str = ""
    attachment: Attachment | None = None
    sources: tuple[Source, ...] | None = None


@dataclass
class _Turn:
    """Mutable bookkeeping for one in-flight turn."""

    store: ConversationStore
    conversation_id: str
    prompt: str
    attachment: Attachment | None
    mode: ChatMode
    history: tuple[Message, ...]
    placeholder: Message
    state_token: int = 0

    @property
    def session_history(self) -> tuple[Message, ...]:
        """History to seed a chat session: everything before the prompt message."""
        if self.history and self.history[-1].role is Role.USER:
            return self.history[:-1]
        return self.history

    def publish(self, message: Message) -> Message:
        # The published list is always history-at-turn-start plus the placeholder.
        self.placeholder = message
        self.store.set_messages(self.conversation_id, (*self.history, message))
        return message

    def set_content(self, content: str) -> Message:
        return self.publish(self.placeholder.with_changes(content=content))


class TurnOrchestrator:
    """Execute turns against a conversation store and a generation service."""

    def __init__(
        self,
        store: ConversationStore,
        sessions: GenerationSessionCache,
        service: GenerationService,
        *,
        state: TurnState | None = None,
        notifier: Notifier | None = None,
        gate: TurnGate | None = None,
        poll_intervals: Sequence[float] = DEFAULT_POLL_INTERVALS,
        code_system_instruction: str = CODE_SYSTEM_INSTRUCTION,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if not poll_intervals:
            raise ValueError("poll_intervals must contain at least one interval.")
        self.store = store
        self.sessions = sessions
        self.service = service
        self.state = state or TurnState()
        self.notifier = notifier or Notifier()
        self.gate = gate or TurnGate()
        self.poll_intervals = tuple(poll_intervals)
        self.code_system_instruction = code_system_instruction
        self._sleep = sleep

        self._handlers: dict[ChatMode, Callable[[_Turn], Awaitable[TurnOutcome]]] = {
            ChatMode.DEFAULT: self._run_chat,
            ChatMode.CODE: self._run_chat,
            ChatMode.IMAGE: self._run_image,
            ChatMode.VIDEO: self._run_video,
            ChatMode.DEEPSEARCH: self._run_deepsearch,
        }
        missing = set(ChatMode) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No turn handler for modes: {sorted(m.value for m in missing)}")

    def poll_interval(self, poll_index: int) -> float:
        """Wait before poll ``poll_index``; floors at the last configured value."""
        return self.poll_intervals[min(poll_index, len(self.poll_intervals) - 1)]

    async def run_turn(
        self,
        conversation_id: str,
        prompt: str,
        attachment: Attachment | None,
        history: Iterable[Message],
        mode: ChatMode | str,
        *,
        placeholder_id: str | None = None,
    ) -> Message:
        """Run one turn to completion or failure and return the final model message.

        ``history`` must end with the user message that carries ``prompt``.
        Generation failures never escape: the placeholder is overwritten with
        an apology. ``ConversationBusyError`` is raised, before anything is
        written, when another turn holds the same conversation.
        """
        async with self.gate.hold(conversation_id):
            turn = _Turn(
                store=self.store,
                conversation_id=conversation_id,
                prompt=prompt,
                attachment=attachment,
                mode=ChatMode(mode),
                history=tuple(history),
                placeholder=Message.placeholder(placeholder_id),
            )
            turn.state_token = self.state.begin(conversation_id)
            try:
                turn.publish(turn.placeholder)
                LOGGER.info(
                    "turn.start",
                    extra={
                        "event": "turn.start",
                        "conversation_id": conversation_id,
                        "mode": turn.mode.value,
                    },
                )
                try:
                    outcome = await self._handlers[turn.mode](turn)
                except Exception as exc:  # noqa: BLE001 - every failure ends in the apology state.
                    LOGGER.error(
                        "turn.failed",
                        extra={
                            "event": "turn.failed",
                            "conversation_id": conversation_id,
                            "mode": turn.mode.value,
                            "error_type": type(exc).__name__,
                            "error": str(exc),
                        },
                    )
                    self.notifier.add_toast(APOLOGY_MESSAGE)
                    return turn.publish(
                        Message(id=turn.placeholder.id, role=Role.MODEL, content=APOLOGY_MESSAGE)
                    )

                final = turn.publish(
                    turn.placeholder.with_changes(
                        content=outcome.content,
                        attachment=outcome.attachment,
                        sources=outcome.sources,
                    )
                )
                LOGGER.info(
                    "turn.complete",
                    extra={
                        "event": "turn.complete",
                        "conversation_id": conversation_id,
                        "mode": turn.mode.value,
                        "content_chars": len(final.content),
                        "has_attachment": final.attachment is not None,
                    },
                )
                return final
            finally:
                self.state.finish(turn.state_token)

    async def _run_chat(self, turn: _Turn) -> TurnOutcome:
        instruction = self.code_system_instruction if turn.mode is ChatMode.CODE else None
        session = self.sessions.get_or_create(
            turn.conversation_id, turn.session_history, instruction
        )
        self.state.set_animation(AnimationState.SPEAKING, turn.state_token)

        text = ""
        async for snapshot in self.service.stream_reply(session, turn.prompt, turn.attachment):
            text = snapshot
            turn.set_content(snapshot)
        return TurnOutcome(content=text)

    async def _run_image(self, turn: _Turn) -> TurnOutcome:
        image = await self.service.generate_image(turn.prompt)
        return TurnOutcome(content="", attachment=image)

    async def _run_deepsearch(self, turn: _Turn) -> TurnOutcome:
        answer = await self.service.grounded_answer(turn.prompt)
        return TurnOutcome(content=answer.text, sources=tuple(answer.sources))

    async def _run_video(self, turn: _Turn) -> TurnOutcome:
        turn.set_content(VIDEO_STARTING)
        operation = await self.service.start_video(turn.prompt)
        turn.set_content(VIDEO_CRAFTING)

        poll_index = 0
        while not operation.done:
            await self._sleep(self.poll_interval(poll_index))
            operation = await self.service.poll_video(operation)
            turn.set_content(VIDEO_RENDERING)
            poll_index += 1

        LOGGER.info(
            "turn.video.done",
            extra={
                "event": "turn.video.done",
                "conversation_id": turn.conversation_id,
                "polls": poll_index,
            },
        )
        turn.set_content(VIDEO_FINALIZING)
        video = await self.service.fetch_video(operation)
        if video is None:
            raise VideoResultMissingError(
                "Video generation completed, but no video was returned."
            )
        return TurnOutcome(content="", attachment=video)
