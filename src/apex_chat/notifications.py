"""Short-lived user notifications ("toasts")."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import logging
import time

from .models import generate_id

LOGGER = logging.getLogger(__name__)

TOAST_DURATION_SECONDS = 3.0


@dataclass(frozen=True)
class Toast:
    id: str
    message: str
    expires_at: float


class Notifier:
    """Collect transient notifications that expire after a fixed duration."""

    def __init__(
        self,
        duration_seconds: float = TOAST_DURATION_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.duration_seconds = duration_seconds
        self._clock = clock
        self._toasts: list[Toast] = []
        self._on_toast: Callable[[Toast], None] | None = None

    def on_toast(self, callback: Callable[[Toast], None]) -> None:
        """Register callback invoked for every new toast."""
        self._on_toast = callback

    def add_toast(self, message: str) -> Toast:
        toast = Toast(
            id=generate_id(),
            message=message,
            expires_at=self._clock() + self.duration_seconds,
        )
        self._toasts.append(toast)
        if self._on_toast is not None:
            try:
                self._on_toast(toast)
            except Exception as exc:
                LOGGER.warning(
                    "toast.callback.failed",
                    extra={"event": "toast.callback.failed", "error": str(exc)},
                )
        return toast

    def dismiss(self, toast_id: str) -> None:
        self._toasts = [t for t in self._toasts if t.id != toast_id]

    def active(self) -> list[Toast]:
        """Return unexpired toasts, dropping expired ones."""
        now = self._clock()
        self._toasts = [t for t in self._toasts if t.expires_at > now]
        return list(self._toasts)
