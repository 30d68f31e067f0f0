"""Tests for the TaskManager lifecycle helper."""

from __future__ import annotations

import asyncio
import unittest

from apex_chat.task_manager import TaskManager


class TaskManagerTests(unittest.IsolatedAsyncioTestCase):
    """Validate background task tracking, cancellation, and failure logging."""

    async def test_spawn_and_cancel_all(self) -> None:
        tm = TaskManager()
        cancelled: list[bool] = []

        async def _worker() -> None:
            try:
                await asyncio.sleep(9999)
            except asyncio.CancelledError:
                cancelled.append(True)
                raise

        task = tm.spawn(_worker(), name="worker")
        await asyncio.sleep(0)  # Let the task start.
        self.assertEqual(len(tm), 1)
        await tm.cancel_all()
        self.assertTrue(task.done())
        self.assertTrue(cancelled)
        self.assertEqual(len(tm), 0)

    async def test_finished_tasks_are_discarded(self) -> None:
        tm = TaskManager()

        async def _quick() -> int:
            return 1

        task = tm.spawn(_quick())
        await tm.await_all()
        await asyncio.sleep(0)  # Done callbacks run on the next loop iteration.
        self.assertEqual(task.result(), 1)
        self.assertEqual(len(tm), 0)

    async def test_failures_are_logged(self) -> None:
        tm = TaskManager()

        async def _fail() -> None:
            raise RuntimeError("background boom")

        with self.assertLogs("apex_chat.task_manager", level="WARNING") as captured:
            tm.spawn(_fail(), name="failing")
            await tm.await_all()
            await asyncio.sleep(0)
        self.assertIn("task.background.exception", captured.output[0])

    async def test_cancel_all_with_no_tasks(self) -> None:
        tm = TaskManager()
        await tm.cancel_all()
        await tm.await_all()
        self.assertEqual(len(tm), 0)


if __name__ == "__main__":
    unittest.main()
