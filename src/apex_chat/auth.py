"""Signed-in user boundary.

The core never gates orchestration on identity; only the front-end requires
some user to be signed in before it runs.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import logging
from typing import Literal

from .exceptions import NotSignedInError

LOGGER = logging.getLogger(__name__)

Provider = Literal["google", "github", "local"]


@dataclass(frozen=True)
class User:
    uid: str
    display_name: str | None
    photo_url: str | None
    provider: Provider


class AuthSession:
    """Hold the current user as supplied by an identity provider."""

    def __init__(self) -> None:
        self._user: User | None = None
        self._listeners: list[Callable[[User | None], None]] = []

    @property
    def current_user(self) -> User | None:
        return self._user

    def on_change(self, listener: Callable[[User | None], None]) -> None:
        self._listeners.append(listener)

    def sign_in(self, user: User) -> None:
        self._user = user
        LOGGER.info(
            "auth.sign_in",
            extra={"event": "auth.sign_in", "uid": user.uid, "provider": user.provider},
        )
        self._notify()

    def sign_out(self) -> None:
        if self._user is None:
            return
        self._user = None
        LOGGER.info("auth.sign_out", extra={"event": "auth.sign_out"})
        self._notify()

    def require_user(self) -> User:
        if self._user is None:
            raise NotSignedInError("Sign in to start chatting.")
        return self._user

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._user)
