"""Replay a turn from the user message that produced a given model answer."""

from __future__ import annotations

import logging

from .exceptions import ConversationBusyError
from .models import Message, Role
from .orchestrator import TurnOrchestrator
from .sessions import GenerationSessionCache
from .store import ConversationStore

LOGGER = logging.getLogger(__name__)


class RegenerationController:
    """Truncate history at a model message and run a fresh turn in its place."""

    def __init__(
        self,
        store: ConversationStore,
        sessions: GenerationSessionCache,
        orchestrator: TurnOrchestrator,
    ) -> None:
        self.store = store
        self.sessions = sessions
        self.orchestrator = orchestrator

    async def regenerate(self, conversation_id: str, message_id: str) -> Message | None:
        """Regenerate ``message_id``; return the new model message.

        Returns ``None`` without touching any state when the conversation is
        unknown, or the target is not a model message directly preceded by a
        user message.
        """
        conversation = self.store.get(conversation_id)
        if conversation is None:
            return None

        index = conversation.find_message(message_id)
        if index < 1:
            return None
        target = conversation.messages[index]
        prompt_message = conversation.messages[index - 1]
        if target.role is not Role.MODEL or prompt_message.role is not Role.USER:
            LOGGER.debug(
                "regenerate.rejected",
                extra={
                    "event": "regenerate.rejected",
                    "conversation_id": conversation_id,
                    "message_id": message_id,
                },
            )
            return None

        if self.orchestrator.gate.is_held(conversation_id):
            raise ConversationBusyError(
                f"A turn is already running for conversation {conversation_id}."
            )

        # The cached session has seen the turns that are about to be dropped.
        self.sessions.invalidate(conversation_id)

        history = conversation.messages[:index]
        self.store.set_messages(conversation_id, history)
        LOGGER.info(
            "regenerate.start",
            extra={
                "event": "regenerate.start",
                "conversation_id": conversation_id,
                "dropped_messages": len(conversation.messages) - index,
            },
        )
        return await self.orchestrator.run_turn(
            conversation_id,
            prompt_message.content,
            prompt_message.attachment,
            history,
            conversation.mode,
            placeholder_id=target.id,
        )
