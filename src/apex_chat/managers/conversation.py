"""Conversation-level actions used by the front-end.

Wires the store, session cache, turn orchestrator and regeneration
controller behind one object so the front-end only deals with ids.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from ..exceptions import ConversationBusyError
from ..models import DEFAULT_TITLE, Attachment, ChatMode, Conversation, Feedback, Message
from ..notifications import Notifier
from ..orchestrator import TurnOrchestrator
from ..persistence import export_markdown
from ..regeneration import RegenerationController
from ..sessions import GenerationSessionCache
from ..state import TurnState
from ..store import ConversationStore
from ..task_manager import TaskManager

LOGGER = logging.getLogger(__name__)

FALLBACK_TITLE = "Chat"


class TitleGenerator(Protocol):
    async def generate_title(self, prompt: str) -> str:
        ...


class ConversationManager:
    """Track the active conversation and run user actions against it."""

    def __init__(
        self,
        store: ConversationStore,
        sessions: GenerationSessionCache,
        orchestrator: TurnOrchestrator,
        *,
        titles: TitleGenerator | None = None,
        tasks: TaskManager | None = None,
    ) -> None:
        self.store = store
        self.sessions = sessions
        self.orchestrator = orchestrator
        self.regeneration = RegenerationController(store, sessions, orchestrator)
        self.titles = titles
        self.tasks = tasks or TaskManager()
        self.active_conversation_id: str | None = None

    @property
    def state(self) -> TurnState:
        return self.orchestrator.state

    @property
    def notifier(self) -> Notifier:
        return self.orchestrator.notifier

    @property
    def active_conversation(self) -> Conversation | None:
        if self.active_conversation_id is None:
            return None
        return self.store.get(self.active_conversation_id)

    def new_conversation(self) -> Conversation:
        conversation = self.store.create()
        self.active_conversation_id = conversation.id
        return conversation

    def show_welcome(self) -> None:
        self.active_conversation_id = None

    def select(self, conversation_id: str) -> Conversation | None:
        """Activate a conversation; an in-flight turn elsewhere keeps running unobserved."""
        conversation = self.store.get(conversation_id)
        if conversation is None:
            return None
        if self.state.busy and not self.state.is_busy_for(conversation_id):
            self.state.detach()
        self.active_conversation_id = conversation_id
        return conversation

    async def send_message(self, text: str, attachment: Attachment | None = None) -> Message:
        """Append a user message to the active conversation and run a turn for it."""
        conversation = self.active_conversation or self.new_conversation()
        if self.orchestrator.gate.is_held(conversation.id):
            raise ConversationBusyError(
                f"A response is still being generated for conversation {conversation.id}."
            )
        user_message = Message.user(text, attachment)
        history = (*conversation.messages, user_message)
        is_first_message = not conversation.messages

        self.store.set_messages(conversation.id, history)
        if is_first_message:
            self.tasks.spawn(
                self._generate_title(conversation.id, text),
                name=f"title-{conversation.id}",
            )

        return await self.orchestrator.run_turn(
            conversation.id, text, attachment, history, conversation.mode
        )

    async def _generate_title(self, conversation_id: str, prompt: str) -> str:
        title = ""
        if self.titles is not None:
            try:
                title = await self.titles.generate_title(prompt)
            except Exception as exc:  # noqa: BLE001 - a missing title falls back silently.
                LOGGER.warning(
                    "title.failed",
                    extra={
                        "event": "title.failed",
                        "conversation_id": conversation_id,
                        "error": str(exc),
                    },
                )
        title = title.strip() or FALLBACK_TITLE
        self.store.update(conversation_id, title=title)
        return title

    async def regenerate(self, conversation_id: str, message_id: str) -> Message | None:
        return await self.regeneration.regenerate(conversation_id, message_id)

    def delete(self, conversation_id: str) -> bool:
        self.sessions.invalidate(conversation_id)
        deleted = self.store.delete(conversation_id)
        if deleted and self.active_conversation_id == conversation_id:
            remaining = self.store.conversations
            self.active_conversation_id = remaining[0].id if remaining else None
        return deleted

    def rename(self, conversation_id: str, title: str) -> Conversation | None:
        return self.store.update(conversation_id, title=title.strip() or DEFAULT_TITLE)

    def change_mode(self, mode: ChatMode | str) -> Conversation | None:
        """Switch the active conversation's mode; its chat session is rebuilt on next use."""
        conversation = self.active_conversation
        if conversation is None:
            return None
        self.sessions.invalidate(conversation.id)
        return self.store.update(conversation.id, mode=ChatMode(mode))

    def toggle_feedback(self, message_id: str, feedback: Feedback | str) -> Message | None:
        conversation = self.active_conversation
        if conversation is None:
            return None
        index = conversation.find_message(message_id)
        if index < 0:
            return None
        requested = Feedback(feedback)
        message = conversation.messages[index]
        updated = message.with_changes(
            feedback=None if message.feedback is requested else requested
        )
        messages = list(conversation.messages)
        messages[index] = updated
        self.store.set_messages(conversation.id, messages)
        return updated

    def export(self, directory: str | Path, conversation_id: str | None = None) -> Path | None:
        target_id = conversation_id or self.active_conversation_id
        conversation = self.store.get(target_id) if target_id else None
        if conversation is None:
            return None
        path = export_markdown(conversation, Path(directory).expanduser())
        LOGGER.info(
            "conversation.exported",
            extra={"event": "conversation.exported", "conversation_id": conversation.id},
        )
        return path

    async def close(self) -> None:
        await self.tasks.cancel_all()

