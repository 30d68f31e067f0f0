"""Line-oriented terminal front-end rendered with rich."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
import logging
import mimetypes
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.table import Table

from .attachments import load_image_attachment
from .auth import AuthSession
from .exceptions import ApexChatError, AttachmentError, ConversationBusyError
from .gemini import GeminiService
from .managers import CommandManager, ConversationManager
from .models import Attachment, ChatMode, Feedback, Message, Role, generate_id
from .notifications import Notifier, Toast
from .orchestrator import TurnOrchestrator
from .persistence import SnapshotFile
from .sessions import GenerationSessionCache
from .state import AnimationState, TurnState
from .store import ConversationStore, StoreChange
from .suggestions import random_starter_prompts

LOGGER = logging.getLogger(__name__)

PROMPT = "[bold cyan]you[/] > "


def media_filename(attachment: Attachment) -> str:
    """Reduce an attachment name to one file name inside the export directory."""
    name = attachment.name or ""
    for separator in ("/", "\\", "\0"):
        name = name.replace(separator, "_")
    name = name.strip()
    if not name.strip("._ "):
        name = f"{generate_id()}{mimetypes.guess_extension(attachment.mime_type) or ''}"
    return name


def build_manager(
    config: dict[str, dict[str, Any]], service: GeminiService | None = None
) -> ConversationManager:
    """Assemble the turn core from validated configuration."""
    persistence_cfg = config["persistence"]
    generation_cfg = config["generation"]
    store = ConversationStore(
        SnapshotFile(bool(persistence_cfg["enabled"]), str(persistence_cfg["path"]))
    )
    backend = service or GeminiService.from_config(config["gemini"], config["video"])
    sessions = GenerationSessionCache(backend, generation_cfg["system_instruction"])
    orchestrator = TurnOrchestrator(
        store,
        sessions,
        backend,
        state=TurnState(),
        notifier=Notifier(),
        poll_intervals=config["video"]["poll_intervals_seconds"],
        code_system_instruction=generation_cfg["code_system_instruction"],
    )
    return ConversationManager(store, sessions, orchestrator, titles=backend)


class ApexTerminal:
    """Read prompts and slash commands, render streamed answers and toasts."""

    def __init__(
        self,
        manager: ConversationManager,
        auth: AuthSession,
        *,
        export_directory: str = "~/Documents/apexchat",
        title: str = "Apex",
        console: Console | None = None,
        read_line: Callable[[], str] | None = None,
    ) -> None:
        self.manager = manager
        self.auth = auth
        self.export_directory = Path(export_directory).expanduser()
        self.title = title
        self.console = console or Console()
        self._read_line = read_line or (lambda: self.console.input(PROMPT))
        self._pending_attachment: Attachment | None = None
        self._streaming = False
        self._printed: dict[str, str] = {}
        self._running = True

        self.commands = CommandManager()
        self._register_commands()
        manager.store.subscribe(self._on_store_change)
        manager.notifier.on_toast(self._on_toast)
        manager.state.subscribe(self._on_state_change)

    def _register_commands(self) -> None:
        register = self.commands.register
        register("new", self._cmd_new, "Start a new conversation")
        register("list", self._cmd_list, "List conversations")
        register("open", self._cmd_open, "Open conversation N from /list")
        register("mode", self._cmd_mode, "Switch mode: default, code, image, video, deepsearch")
        register("attach", self._cmd_attach, "Attach an image to the next message")
        register("regen", self._cmd_regen, "Regenerate the last answer")
        register("rename", self._cmd_rename, "Rename the active conversation")
        register("delete", self._cmd_delete, "Delete the active conversation")
        register("like", self._cmd_like, "Like the last answer")
        register("dislike", self._cmd_dislike, "Dislike the last answer")
        register("export", self._cmd_export, "Export the active conversation to markdown")
        register("suggest", self._cmd_suggest, "Show starter prompts")
        register("help", self._cmd_help, "Show commands")
        register("quit", self._cmd_quit, "Exit")

    async def run(self) -> None:
        user = self.auth.require_user()
        self.console.print(
            f"[bold]{self.title}[/] - signed in as {user.display_name or user.uid}. "
            "Type /help for commands."
        )
        await self._cmd_suggest("")
        try:
            while self._running:
                try:
                    line = await asyncio.to_thread(self._read_line)
                except (EOFError, KeyboardInterrupt):
                    break
                await self.handle_line(line)
        finally:
            await self.manager.close()

    async def handle_line(self, line: str) -> None:
        text = line.strip()
        if not text:
            return
        try:
            if text.startswith("/"):
                if not await self.commands.execute(text):
                    self.console.print(f"[yellow]Unknown command {text.split()[0]}[/]")
                return
            await self._send(text)
        except ConversationBusyError:
            self.console.print("[yellow]A response is still being generated.[/]")
        except ApexChatError as exc:
            self.console.print(f"[red]{exc}[/]")

    async def _send(self, text: str) -> None:
        attachment, self._pending_attachment = self._pending_attachment, None
        self._streaming = True
        try:
            final = await self.manager.send_message(text, attachment)
        finally:
            self._streaming = False
        self._render_final(final)

    def _on_store_change(self, change: StoreChange) -> None:
        if not self._streaming or change.conversation is None:
            return
        if change.conversation_id != self.manager.active_conversation_id:
            return
        if not change.conversation.messages:
            return
        message = change.conversation.messages[-1]
        if message.role is not Role.MODEL or not message.content:
            return
        shown = self._printed.get(message.id, "")
        if message.content.startswith(shown):
            self.console.print(message.content[len(shown):], end="", markup=False)
        else:
            # Status text replaced rather than extended.
            self.console.print(f"\n[dim]{message.content}[/]", end="")
        self._printed[message.id] = message.content

    def _on_state_change(self, state: TurnState) -> None:
        if state.busy and state.animation is AnimationState.THINKING:
            self.console.print("[dim italic]Apex is thinking...[/]")

    def _on_toast(self, toast: Toast) -> None:
        self.console.print(f"[bold red]! {toast.message}[/]")

    def _render_final(self, message: Message) -> None:
        streamed = self._printed.pop(message.id, "")
        self.console.print()
        if message.content and message.content != streamed:
            self.console.print(Markdown(message.content))
        if message.attachment is not None:
            try:
                path = self._save_media(message.attachment)
            except OSError as exc:
                LOGGER.warning(
                    "media.save_failed",
                    extra={"event": "media.save_failed", "error": str(exc)},
                )
                self.console.print(
                    f"[red]Could not save {message.attachment.mime_type}: {escape(str(exc))}[/]"
                )
            else:
                self.console.print(f"[green]Saved {message.attachment.mime_type} to {path}[/]")
        if message.sources:
            table = Table(title="Sources", show_header=False)
            for source in message.sources:
                table.add_row(source.title or source.uri, source.uri)
            self.console.print(table)

    def _save_media(self, attachment: Attachment) -> Path:
        self.export_directory.mkdir(parents=True, exist_ok=True)
        target = self.export_directory / media_filename(attachment)
        target.write_bytes(attachment.to_bytes())
        return target

    def _last_model_message(self) -> Message | None:
        conversation = self.manager.active_conversation
        if conversation is None:
            return None
        for message in reversed(conversation.messages):
            if message.role is Role.MODEL:
                return message
        return None

    async def _cmd_new(self, _args: str) -> None:
        self.manager.show_welcome()
        self.console.print("[dim]New conversation. Send a message to begin.[/]")

    async def _cmd_list(self, _args: str) -> None:
        await self.manager.tasks.await_all()
        conversations = self.manager.store.conversations
        if not conversations:
            self.console.print("[dim]No conversations yet.[/]")
            return
        table = Table("#", "Title", "Mode", "Messages")
        for index, conversation in enumerate(conversations, start=1):
            marker = "*" if conversation.id == self.manager.active_conversation_id else ""
            table.add_row(
                f"{index}{marker}",
                conversation.title,
                conversation.mode.value,
                str(len(conversation.messages)),
            )
        self.console.print(table)

    async def _cmd_open(self, args: str) -> None:
        conversations = self.manager.store.conversations
        try:
            conversation = conversations[int(args) - 1]
        except (ValueError, IndexError):
            self.console.print("[yellow]Usage: /open N (see /list)[/]")
            return
        self.manager.select(conversation.id)
        self.console.print(f"[bold]{conversation.title}[/] ({conversation.mode.value})")
        for message in conversation.messages:
            speaker = "you" if message.role is Role.USER else "apex"
            self.console.print(f"[bold]{speaker}[/]")
            if message.content:
                self.console.print(Markdown(message.content))
            if message.attachment is not None:
                self.console.print(f"[dim][{message.attachment.name}][/]")

    async def _cmd_mode(self, args: str) -> None:
        try:
            mode = ChatMode(args.strip().lower())
        except ValueError:
            names = ", ".join(m.value for m in ChatMode)
            self.console.print(f"[yellow]Usage: /mode NAME ({names})[/]")
            return
        if self.manager.active_conversation is None:
            self.manager.new_conversation()
        self.manager.change_mode(mode)
        self.console.print(f"[dim]Mode set to {mode.value}.[/]")

    async def _cmd_attach(self, args: str) -> None:
        try:
            self._pending_attachment = load_image_attachment(args)
        except AttachmentError as exc:
            self.console.print(f"[red]{exc}[/]")
            return
        self.console.print(f"[dim]Attached {self._pending_attachment.name}.[/]")

    async def _cmd_regen(self, _args: str) -> None:
        target = self._last_model_message()
        if target is None or self.manager.active_conversation_id is None:
            self.console.print("[yellow]Nothing to regenerate.[/]")
            return
        self._streaming = True
        try:
            final = await self.manager.regenerate(self.manager.active_conversation_id, target.id)
        finally:
            self._streaming = False
        if final is None:
            self.console.print("[yellow]That answer cannot be regenerated.[/]")
            return
        self._render_final(final)

    async def _cmd_rename(self, args: str) -> None:
        if self.manager.active_conversation_id is None:
            self.console.print("[yellow]No active conversation.[/]")
            return
        self.manager.rename(self.manager.active_conversation_id, args)

    async def _cmd_delete(self, _args: str) -> None:
        if self.manager.active_conversation_id is None:
            self.console.print("[yellow]No active conversation.[/]")
            return
        self.manager.delete(self.manager.active_conversation_id)
        self.console.print("[dim]Conversation deleted.[/]")

    async def _feedback(self, feedback: Feedback) -> None:
        target = self._last_model_message()
        if target is None:
            self.console.print("[yellow]No answer to rate yet.[/]")
            return
        updated = self.manager.toggle_feedback(target.id, feedback)
        state = updated.feedback.value if updated and updated.feedback else "cleared"
        self.console.print(f"[dim]Feedback {state}.[/]")

    async def _cmd_like(self, _args: str) -> None:
        await self._feedback(Feedback.LIKED)

    async def _cmd_dislike(self, _args: str) -> None:
        await self._feedback(Feedback.DISLIKED)

    async def _cmd_export(self, args: str) -> None:
        path = self.manager.export(args or self.export_directory)
        if path is None:
            self.console.print("[yellow]No active conversation.[/]")
            return
        self.console.print(f"[green]Exported to {path}[/]")

    async def _cmd_suggest(self, _args: str) -> None:
        for suggestion in random_starter_prompts():
            self.console.print(f"[bold]{suggestion.title}[/]: {suggestion.prompt}")

    async def _cmd_help(self, _args: str) -> None:
        table = Table("Command", "Description", show_header=False)
        for name, help_text in self.commands.get_commands():
            table.add_row(name, help_text)
        self.console.print(table)

    async def _cmd_quit(self, _args: str) -> None:
        self._running = False
