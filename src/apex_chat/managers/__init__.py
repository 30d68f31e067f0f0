"""Manager classes that sit between the front-end and the turn core.

Available managers:
- CommandManager: slash command registration and dispatch
- ConversationManager: active conversation, send, regenerate, delete, rename, mode, feedback
"""

from __future__ import annotations

from .command import CommandManager
from .conversation import FALLBACK_TITLE, ConversationManager

__all__ = [
    "CommandManager",
    "ConversationManager",
    "FALLBACK_TITLE",
]
