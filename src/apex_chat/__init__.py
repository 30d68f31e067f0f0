"""Top-level package for apex-chat."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .config import ensure_config_dir, load_config
    from .exceptions import (
        ApexChatError,
        ConfigValidationError,
        ConversationBusyError,
        GenerationError,
    )
    from .gemini import GeminiService
    from .managers import ConversationManager
    from .models import ChatMode, Conversation, Message
    from .orchestrator import TurnOrchestrator
    from .regeneration import RegenerationController
    from .sessions import GenerationSessionCache
    from .store import ConversationStore

__all__ = [
    "ApexChatError",
    "ChatMode",
    "ConfigValidationError",
    "Conversation",
    "ConversationBusyError",
    "ConversationManager",
    "ConversationStore",
    "GeminiService",
    "GenerationError",
    "GenerationSessionCache",
    "Message",
    "RegenerationController",
    "TurnOrchestrator",
    "ensure_config_dir",
    "load_config",
]


def __getattr__(name: str) -> Any:
    """Lazily import symbols so the generation backend loads only when used."""
    if name in {"ensure_config_dir", "load_config"}:
        from .config import ensure_config_dir, load_config

        return {"ensure_config_dir": ensure_config_dir, "load_config": load_config}[name]
    if name in {
        "ApexChatError",
        "ConfigValidationError",
        "ConversationBusyError",
        "GenerationError",
    }:
        from . import exceptions

        return getattr(exceptions, name)
    if name in {"ChatMode", "Conversation", "Message"}:
        from . import models

        return getattr(models, name)
    if name == "ConversationStore":
        from .store import ConversationStore

        return ConversationStore
    if name == "GenerationSessionCache":
        from .sessions import GenerationSessionCache

        return GenerationSessionCache
    if name == "TurnOrchestrator":
        from .orchestrator import TurnOrchestrator

        return TurnOrchestrator
    if name == "RegenerationController":
        from .regeneration import RegenerationController

        return RegenerationController
    if name == "ConversationManager":
        from .managers import ConversationManager

        return ConversationManager
    if name == "GeminiService":
        from .gemini import GeminiService

        return GeminiService
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
