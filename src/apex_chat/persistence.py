"""Durable conversation snapshots and markdown export."""

from __future__ import annotations

from datetime import UTC, datetime
import json
import os
from pathlib import Path
from typing import Any

from .exceptions import ApexChatError
from .models import Conversation, Role


class PersistenceError(ApexChatError):
    """Raised when persistence operations fail."""


class PersistenceDisabledError(PersistenceError):
    """Raised when persistence is disabled in configuration."""


class PersistenceFormatError(PersistenceError):
    """Raised when a persisted payload cannot be decoded safely."""


def _enforce_permissions(path: Path, mode: int = 0o600) -> None:
    """Set POSIX permissions on a file or directory; silently ignores failures."""
    if os.name != "posix":
        return
    try:
        path.chmod(mode)
    except OSError:
        pass


class SnapshotFile:
    """Single JSON file holding the serialized conversation list."""

    def __init__(self, enabled: bool, path: str) -> None:
        self.enabled = enabled
        self.path = Path(path).expanduser()

    def _ensure_parent(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        _enforce_permissions(self.path.parent, 0o700)

    def load(self) -> list[dict[str, Any]] | None:
        """Return the last saved conversations, or ``None`` when nothing was saved."""
        if not self.enabled or not self.path.exists():
            return None
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise PersistenceFormatError(f"Unable to read snapshot {self.path}: {exc}") from exc
        if not isinstance(payload, list):
            raise PersistenceFormatError("Conversation snapshot is not a list.")
        return [item for item in payload if isinstance(item, dict)]

    def save(self, conversations: list[dict[str, Any]]) -> Path:
        """Atomically replace the snapshot with ``conversations``."""
        if not self.enabled:
            raise PersistenceDisabledError("Persistence is disabled in configuration.")

        self._ensure_parent()
        staging = self.path.with_name(f".{self.path.name}.tmp")
        staging.write_text(
            json.dumps(conversations, ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
        _enforce_permissions(staging)
        os.replace(staging, self.path)
        return self.path


def export_markdown(conversation: Conversation, directory: str | Path) -> Path:
    """Export a conversation transcript to markdown and return the file path."""
    target_dir = Path(directory).expanduser()
    target_dir.mkdir(parents=True, exist_ok=True)
    filename = f"{datetime.now(UTC).strftime('%Y%m%d-%H%M%S')}-{conversation.id[:8]}.md"
    target = target_dir / filename

    lines = [f"# {conversation.title}", "", f"_Mode: {conversation.mode.value}_", ""]
    for message in conversation.messages:
        heading = "User" if message.role is Role.USER else "Apex"
        lines.append(f"## {heading}")
        lines.append("")
        if message.attachment is not None:
            lines.append(f"[{message.attachment.mime_type}: {message.attachment.name}]")
            lines.append("")
        if message.content.strip():
            lines.append(message.content.strip())
            lines.append("")
        if message.sources:
            lines.append("Sources:")
            for source in message.sources:
                lines.append(f"- [{source.title or source.uri}]({source.uri})")
            lines.append("")
    target.write_text("\n".join(lines).strip() + "\n", encoding="utf-8")
    _enforce_permissions(target)
    return target
