"""Slash command registration and dispatch for the terminal front-end."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
import logging

LOGGER = logging.getLogger(__name__)

CommandHandler = Callable[[str], Awaitable[None]]


class CommandManager:
    """Map ``/name args`` lines to async handlers.

    Names are stored without the leading slash; help text feeds ``/help``.
    """

    def __init__(self) -> None:
        self._commands: dict[str, CommandHandler] = {}
        self._command_help: dict[str, str] = {}

    def register(self, name: str, handler: CommandHandler, help_text: str = "") -> None:
        normalized_name = name.lstrip("/")
        self._commands[normalized_name] = handler
        self._command_help[normalized_name] = help_text or f"Execute /{normalized_name}"
        LOGGER.debug(
            "command.registered",
            extra={"event": "command.registered", "command": normalized_name},
        )

    async def execute(self, command_line: str) -> bool:
        """Run the handler for ``command_line``; return False when it is not a known command."""
        if not command_line.startswith("/"):
            return False

        parts = command_line.split(maxsplit=1)
        command_name = parts[0][1:]
        args = parts[1].strip() if len(parts) > 1 else ""

        handler = self._commands.get(command_name)
        if handler is None:
            LOGGER.info(
                "command.unknown",
                extra={"event": "command.unknown", "command": command_name},
            )
            return False

        await handler(args)
        return True

    def get_commands(self) -> list[tuple[str, str]]:
        return [(f"/{name}", help_text) for name, help_text in self._command_help.items()]

    def is_command(self, text: str) -> bool:
        if not text.startswith("/") or len(text) < 2:
            return False
        return text.split()[0][1:] in self._commands
