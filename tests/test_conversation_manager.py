"""Tests for the conversation-level facade."""

from __future__ import annotations

import asyncio
from pathlib import Path
import tempfile
import unittest

from fakes import FakeService, RecordingSleep

from apex_chat.exceptions import ConversationBusyError
from apex_chat.managers import FALLBACK_TITLE, ConversationManager
from apex_chat.models import DEFAULT_TITLE, ChatMode, Feedback, Role
from apex_chat.orchestrator import TurnOrchestrator
from apex_chat.sessions import GenerationSessionCache
from apex_chat.store import ConversationStore


class FailingTitles:
    async def generate_title(self, prompt: str) -> str:
        raise RuntimeError("title backend down")


class EmptyTitles:
    async def generate_title(self, prompt: str) -> str:
        return "   "


def _make_manager(service: FakeService, titles=None) -> ConversationManager:
    store = ConversationStore()
    sessions = GenerationSessionCache(service, "persona")
    orchestrator = TurnOrchestrator(store, sessions, service, sleep=RecordingSleep())
    return ConversationManager(store, sessions, orchestrator, titles=titles or service)


class ConversationManagerTests(unittest.IsolatedAsyncioTestCase):
    """Validate send, select, delete, mode, feedback, and title behavior."""

    async def test_send_creates_conversation_and_titles_it(self) -> None:
        service = FakeService(chunks=("Hi", " there"))
        manager = _make_manager(service)

        final = await manager.send_message("hi")
        await manager.tasks.await_all()

        conversation = manager.active_conversation
        assert conversation is not None
        self.assertEqual([m.role for m in conversation.messages], [Role.USER, Role.MODEL])
        self.assertEqual(conversation.messages[0].content, "hi")
        self.assertEqual(final.content, "Hi there")
        self.assertEqual(conversation.title, "Greeting Chat")
        self.assertEqual(service.titles, ["hi"])

    async def test_title_only_generated_for_first_message(self) -> None:
        service = FakeService()
        manager = _make_manager(service)

        await manager.send_message("one")
        await manager.send_message("two")
        await manager.tasks.await_all()

        self.assertEqual(service.titles, ["one"])
        conversation = manager.active_conversation
        assert conversation is not None
        self.assertEqual(len(conversation.messages), 4)

    async def test_title_failure_falls_back(self) -> None:
        manager = _make_manager(FakeService(), titles=FailingTitles())
        await manager.send_message("hi")
        await manager.tasks.await_all()
        conversation = manager.active_conversation
        assert conversation is not None
        self.assertEqual(conversation.title, FALLBACK_TITLE)

    async def test_empty_title_falls_back(self) -> None:
        manager = _make_manager(FakeService(), titles=EmptyTitles())
        await manager.send_message("hi")
        await manager.tasks.await_all()
        conversation = manager.active_conversation
        assert conversation is not None
        self.assertEqual(conversation.title, FALLBACK_TITLE)

    async def test_send_uses_conversation_mode(self) -> None:
        manager = _make_manager(FakeService())
        manager.new_conversation()
        manager.change_mode(ChatMode.DEEPSEARCH)

        final = await manager.send_message("news")

        self.assertEqual(final.content, "Answer to news")

    async def test_change_mode_invalidates_session(self) -> None:
        service = FakeService()
        manager = _make_manager(service)
        await manager.send_message("hi")
        conversation_id = manager.active_conversation_id
        self.assertIn(conversation_id, manager.sessions)

        updated = manager.change_mode("code")

        assert updated is not None
        self.assertIs(updated.mode, ChatMode.CODE)
        self.assertNotIn(conversation_id, manager.sessions)

    def test_change_mode_without_active_conversation(self) -> None:
        manager = _make_manager(FakeService())
        self.assertIsNone(manager.change_mode(ChatMode.IMAGE))

    async def test_delete_moves_active_to_first_remaining(self) -> None:
        manager = _make_manager(FakeService())
        older = manager.new_conversation()
        newer = manager.new_conversation()
        await manager.send_message("hi")

        self.assertTrue(manager.delete(newer.id))

        self.assertEqual(manager.active_conversation_id, older.id)
        self.assertNotIn(newer.id, manager.sessions)
        self.assertTrue(manager.delete(older.id))
        self.assertIsNone(manager.active_conversation_id)
        self.assertFalse(manager.delete("missing"))

    def test_show_welcome_and_select(self) -> None:
        manager = _make_manager(FakeService())
        first = manager.new_conversation()
        manager.show_welcome()
        self.assertIsNone(manager.active_conversation_id)
        self.assertEqual(manager.select(first.id), first)
        self.assertEqual(manager.active_conversation_id, first.id)
        self.assertIsNone(manager.select("missing"))

    async def test_select_detaches_busy_state_from_other_conversation(self) -> None:
        service = FakeService()
        manager = _make_manager(service)
        other = manager.new_conversation()
        running = manager.new_conversation()
        manager.change_mode(ChatMode.IMAGE)
        release = asyncio.Event()

        async def _slow_image(prompt: str):
            await release.wait()
            return await FakeService.generate_image(service, prompt)

        service.generate_image = _slow_image  # type: ignore[method-assign]
        task = asyncio.create_task(manager.send_message("a cube"))
        await asyncio.sleep(0)
        self.assertTrue(manager.state.is_busy_for(running.id))

        manager.select(other.id)

        self.assertFalse(manager.state.busy)
        release.set()
        final = await task
        stored = manager.store.get(running.id)
        assert stored is not None
        self.assertEqual(stored.messages[-1], final)

    async def test_send_while_turn_runs_is_rejected_before_writing(self) -> None:
        service = FakeService()
        manager = _make_manager(service)
        conversation = manager.new_conversation()
        manager.change_mode(ChatMode.IMAGE)
        release = asyncio.Event()

        async def _slow_image(prompt: str):
            await release.wait()
            return await FakeService.generate_image(service, prompt)

        service.generate_image = _slow_image  # type: ignore[method-assign]
        task = asyncio.create_task(manager.send_message("one"))
        await asyncio.sleep(0)

        with self.assertRaises(ConversationBusyError):
            await manager.send_message("two")

        stored = manager.store.get(conversation.id)
        assert stored is not None
        self.assertEqual([m.role for m in stored.messages], [Role.USER, Role.MODEL])
        self.assertEqual(stored.messages[0].content, "one")

        release.set()
        await task
        await manager.tasks.await_all()
        stored = manager.store.get(conversation.id)
        assert stored is not None
        self.assertEqual(len(stored.messages), 2)
        self.assertEqual(service.titles, ["one"])

    async def test_detached_turn_finishing_leaves_newer_turn_busy(self) -> None:
        service = FakeService()
        manager = _make_manager(service)
        first = manager.new_conversation()
        manager.change_mode(ChatMode.IMAGE)
        second = manager.new_conversation()
        manager.change_mode(ChatMode.IMAGE)
        releases = {"first": asyncio.Event(), "second": asyncio.Event()}

        async def _slow_image(prompt: str):
            await releases[prompt].wait()
            return await FakeService.generate_image(service, prompt)

        service.generate_image = _slow_image  # type: ignore[method-assign]
        manager.select(first.id)
        first_task = asyncio.create_task(manager.send_message("first"))
        await asyncio.sleep(0)
        manager.select(second.id)
        second_task = asyncio.create_task(manager.send_message("second"))
        await asyncio.sleep(0)
        self.assertTrue(manager.state.is_busy_for(second.id))

        releases["first"].set()
        await first_task
        self.assertTrue(manager.state.is_busy_for(second.id))

        releases["second"].set()
        await second_task
        self.assertFalse(manager.state.busy)
        for conversation_id in (first.id, second.id):
            stored = manager.store.get(conversation_id)
            assert stored is not None
            self.assertIsNotNone(stored.messages[-1].attachment)

    async def test_toggle_feedback_twice_clears(self) -> None:
        manager = _make_manager(FakeService())
        final = await manager.send_message("hi")

        liked = manager.toggle_feedback(final.id, Feedback.LIKED)
        assert liked is not None
        self.assertIs(liked.feedback, Feedback.LIKED)
        disliked = manager.toggle_feedback(final.id, "disliked")
        assert disliked is not None
        self.assertIs(disliked.feedback, Feedback.DISLIKED)
        cleared = manager.toggle_feedback(final.id, Feedback.DISLIKED)
        assert cleared is not None
        self.assertIsNone(cleared.feedback)
        self.assertIsNone(manager.toggle_feedback("missing", Feedback.LIKED))

    async def test_rename_blank_uses_default_title(self) -> None:
        manager = _make_manager(FakeService())
        conversation = manager.new_conversation()
        renamed = manager.rename(conversation.id, "  Trip plans ")
        assert renamed is not None
        self.assertEqual(renamed.title, "Trip plans")
        blank = manager.rename(conversation.id, "   ")
        assert blank is not None
        self.assertEqual(blank.title, DEFAULT_TITLE)

    async def test_regenerate_delegates(self) -> None:
        service = FakeService(chunks=("first",))
        manager = _make_manager(service)
        final = await manager.send_message("hi")
        service.chunks = ["second"]

        regenerated = await manager.regenerate(manager.active_conversation_id, final.id)

        assert regenerated is not None
        self.assertEqual(regenerated.id, final.id)
        self.assertEqual(regenerated.content, "second")

    async def test_export_writes_markdown(self) -> None:
        manager = _make_manager(FakeService())
        self.assertIsNone(manager.export("/tmp/unused"))
        await manager.send_message("hi")
        with tempfile.TemporaryDirectory() as temp_dir:
            path = manager.export(temp_dir)
            assert path is not None
            self.assertEqual(path.parent, Path(temp_dir))
            text = path.read_text(encoding="utf-8")
        self.assertIn("## User", text)
        self.assertIn("Hello", text)

    async def test_close_cancels_pending_titles(self) -> None:
        release = asyncio.Event()

        class SlowTitles:
            async def generate_title(self, prompt: str) -> str:
                await release.wait()
                return "late"

        manager = _make_manager(FakeService(), titles=SlowTitles())
        await manager.send_message("hi")
        self.assertEqual(len(manager.tasks), 1)

        await manager.close()

        self.assertEqual(len(manager.tasks), 0)
        conversation = manager.active_conversation
        assert conversation is not None
        self.assertEqual(conversation.title, DEFAULT_TITLE)


if __name__ == "__main__":
    unittest.main()
