"""Tests for turn state reflection and the single-flight gate."""

from __future__ import annotations

import unittest

from apex_chat.exceptions import ConversationBusyError
from apex_chat.state import AnimationState, TurnGate, TurnState


class TurnStateTests(unittest.TestCase):
    """Validate busy flag and animation transitions."""

    def test_begin_and_finish(self) -> None:
        state = TurnState()
        seen: list[tuple[bool, AnimationState]] = []
        state.subscribe(lambda s: seen.append((s.busy, s.animation)))

        token = state.begin("c")
        self.assertTrue(state.is_busy_for("c"))
        self.assertFalse(state.is_busy_for("other"))
        state.set_animation(AnimationState.SPEAKING, token)
        state.finish(token)

        self.assertEqual(
            seen,
            [
                (True, AnimationState.THINKING),
                (True, AnimationState.SPEAKING),
                (False, AnimationState.IDLE),
            ],
        )

    def test_animation_ignored_when_idle(self) -> None:
        state = TurnState()
        state.set_animation(AnimationState.SPEAKING, 1)
        self.assertIs(state.animation, AnimationState.IDLE)

    def test_detach_clears_reflection(self) -> None:
        state = TurnState()
        state.begin("c")
        state.detach()
        self.assertFalse(state.busy)
        self.assertIsNone(state.conversation_id)

    def test_detached_turn_cannot_touch_the_next_turn(self) -> None:
        state = TurnState()
        first = state.begin("x")
        state.detach()
        second = state.begin("y")

        state.set_animation(AnimationState.SPEAKING, first)
        state.finish(first)
        self.assertTrue(state.is_busy_for("y"))
        self.assertIs(state.animation, AnimationState.THINKING)

        state.set_animation(AnimationState.SPEAKING, second)
        self.assertIs(state.animation, AnimationState.SPEAKING)
        state.finish(second)
        self.assertFalse(state.busy)

    def test_finish_after_detach_does_not_notify(self) -> None:
        state = TurnState()
        token = state.begin("c")
        state.detach()
        seen: list[bool] = []
        state.subscribe(lambda s: seen.append(s.busy))
        state.finish(token)
        self.assertEqual(seen, [])

    def test_failing_listener_is_logged(self) -> None:
        state = TurnState()

        def _boom(_state: TurnState) -> None:
            raise RuntimeError("bad listener")

        state.subscribe(_boom)
        with self.assertLogs("apex_chat.state", level="WARNING"):
            state.begin("c")
        self.assertTrue(state.busy)


class TurnGateTests(unittest.IsolatedAsyncioTestCase):
    """Validate per-conversation exclusion."""

    async def test_second_hold_on_same_id_is_rejected(self) -> None:
        gate = TurnGate()
        async with gate.hold("c"):
            self.assertTrue(gate.is_held("c"))
            with self.assertRaises(ConversationBusyError):
                async with gate.hold("c"):
                    pass
            async with gate.hold("other"):
                self.assertTrue(gate.is_held("other"))
        self.assertFalse(gate.is_held("c"))
        self.assertFalse(gate.is_held("other"))

    async def test_released_after_exception(self) -> None:
        gate = TurnGate()
        with self.assertRaises(ValueError):
            async with gate.hold("c"):
                raise ValueError("boom")
        self.assertFalse(gate.is_held("c"))


if __name__ == "__main__":
    unittest.main()
