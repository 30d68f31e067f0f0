"""CLI entrypoint for Apex chat."""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Sequence
import getpass
from importlib import metadata
import logging
from pathlib import Path
import sys

from .auth import AuthSession, User
from .config import ensure_config_dir, load_config
from .exceptions import ApexChatError
from .logging_utils import configure_logging

LOGGER = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="apexchat",
        description="Apex - terminal chat client for Gemini text, image, video and search",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a config.toml to use instead of the default location",
    )
    parser.add_argument(
        "--user",
        default=None,
        help="Display name to sign in with",
    )
    return parser


def _sign_in(auth: AuthSession, identity: dict[str, str], override: str | None) -> User:
    local_name = getpass.getuser()
    user = User(
        uid=f"{identity['provider']}:{local_name}",
        display_name=override or identity.get("display_name") or local_name,
        photo_url=None,
        provider=identity["provider"],  # type: ignore[arg-type]
    )
    auth.sign_in(user)
    return user


def main(argv: Sequence[str] | None = None) -> None:
    """Load configuration, sign in, and run the terminal front-end."""

    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.version:
        try:
            version = metadata.version("apex-chat")
        except metadata.PackageNotFoundError:
            version = "0.0.0"
        print(f"apexchat {version}")
        return

    ensure_config_dir()
    config = load_config(args.config)
    configure_logging(config["logging"])

    # Imported late so --version works without the generation backend installed.
    from .cli import ApexTerminal, build_manager

    auth = AuthSession()
    _sign_in(auth, config["identity"], args.user)
    try:
        manager = build_manager(config)
    except ApexChatError as exc:
        print(f"apexchat: {exc}", file=sys.stderr)
        raise SystemExit(2) from exc

    terminal = ApexTerminal(
        manager,
        auth,
        export_directory=config["app"]["export_directory"],
        title=config["app"]["title"],
    )
    LOGGER.info("app.start", extra={"event": "app.start"})
    asyncio.run(terminal.run())


if __name__ == "__main__":
    main()
