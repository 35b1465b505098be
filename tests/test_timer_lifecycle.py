"""
Unit tests for timer lifecycle management in QuizTimer and QuizEngine.
Covers natural expiry, cancellation, callbacks that cancel their own clock and
lifecycle logging.
"""
import unittest
import asyncio
from unittest.mock import AsyncMock

from horror_trivia.quiz_engine import QUESTION_CLOCK, QuizEngine, QuizTimer, TimerLifecycleLogger
from tests.test_fixtures import AsyncTestHelpers


class TestQuizTimer(unittest.IsolatedAsyncioTestCase):
    """Test cases for a single countdown."""

    async def test_countdown_reports_every_tick_then_completes(self):
        timer = QuizTimer("s1", QUESTION_CLOCK, tick_interval=0.001)
        ticks = []

        async def on_tick(remaining):
            ticks.append(remaining)

        on_complete = AsyncMock()

        await AsyncTestHelpers.run_with_timeout(timer.start_countdown(3, on_tick, on_complete))

        self.assertEqual(ticks, [3, 2, 1, 0])
        on_complete.assert_awaited_once()
        self.assertEqual(timer.remaining_time, 0)

    async def test_cancel_between_ticks_skips_completion(self):
        timer = QuizTimer("s1", QUESTION_CLOCK, tick_interval=0.001)
        on_complete = AsyncMock()

        async def on_tick(remaining):
            if remaining == 2:
                timer.cancel()

        await AsyncTestHelpers.run_with_timeout(timer.start_countdown(5, on_tick, on_complete))

        on_complete.assert_not_awaited()
        self.assertTrue(timer.is_cancelled)
        self.assertEqual(timer.remaining_time, 2)

    async def test_cancel_from_completion_callback_does_not_raise(self):
        timer = QuizTimer("s1", QUESTION_CLOCK, tick_interval=0.001)
        timer._task = asyncio.create_task(
            timer.start_countdown(1, AsyncMock(), AsyncMock(side_effect=lambda: timer.cancel()))
        )

        await AsyncTestHelpers.run_with_timeout(timer._task)

        self.assertTrue(timer.is_cancelled)
        self.assertFalse(timer._task.cancelled())

    async def test_task_cancellation_propagates(self):
        timer = QuizTimer("s1", QUESTION_CLOCK, tick_interval=3600)
        timer._task = asyncio.create_task(timer.start_countdown(30, AsyncMock(), AsyncMock()))
        await AsyncTestHelpers.settle()

        timer.cancel()

        with self.assertRaises(asyncio.CancelledError):
            await timer._task
        self.assertFalse(timer.is_running)

    async def test_callback_error_is_logged_and_raised(self):
        timer = QuizTimer("s1", QUESTION_CLOCK, tick_interval=0.001)

        with self.assertLogs('horror_trivia.quiz_engine', level='ERROR') as logs:
            with self.assertRaises(RuntimeError):
                await timer.start_countdown(1, AsyncMock(side_effect=RuntimeError("render failed")), AsyncMock())

        self.assertIn("render failed", logs.output[0])


class TestEngineTimerLifecycle(unittest.IsolatedAsyncioTestCase):
    """Test cases for clocks owned by the engine."""

    async def asyncSetUp(self):
        self.engine = QuizEngine(tick_interval=0.001)

    async def asyncTearDown(self):
        await self.engine.shutdown()

    async def test_expired_clock_is_removed(self):
        done = asyncio.Event()

        async def on_complete():
            done.set()

        timer = self.engine.start_clock("s1", QUESTION_CLOCK, 2, AsyncMock(), on_complete)
        await AsyncTestHelpers.run_with_timeout(done.wait())
        await AsyncTestHelpers.run_with_timeout(timer._task)
        await AsyncTestHelpers.settle()

        self.assertIsNone(self.engine.get_timer_status("s1"))
        self.assertIsNone(self.engine.get_active_clock("s1"))

    async def test_replaced_clock_never_completes(self):
        first_complete = AsyncMock()
        second_done = asyncio.Event()

        async def on_second_complete():
            second_done.set()

        slow_engine = QuizEngine(tick_interval=0.05)
        slow_engine.start_clock("s1", QUESTION_CLOCK, 1, AsyncMock(), first_complete)
        slow_engine.start_clock("s1", "advance", 1, AsyncMock(), on_second_complete)

        await AsyncTestHelpers.run_with_timeout(second_done.wait())
        await slow_engine.shutdown()

        first_complete.assert_not_awaited()

    async def test_shutdown_cancels_everything(self):
        slow_engine = QuizEngine(tick_interval=3600)
        timers = [
            slow_engine.start_clock(f"s{i}", QUESTION_CLOCK, 30, AsyncMock(), AsyncMock())
            for i in range(3)
        ]

        await slow_engine.shutdown()

        for timer in timers:
            self.assertTrue(timer.is_cancelled)
            self.assertTrue(timer._task.done())
        self.assertEqual(slow_engine._timers, {})


class TestTimerLifecycleLogger(unittest.TestCase):
    """Test cases for structured timer logging."""

    def test_logs_carry_event_type(self):
        with self.assertLogs('horror_trivia.quiz_engine', level='DEBUG') as logs:
            TimerLifecycleLogger.log_timer_created("s1", QUESTION_CLOCK, 30)
            TimerLifecycleLogger.log_timer_cancelled("s1", QUESTION_CLOCK, "answer selected")
            TimerLifecycleLogger.log_stale_callback("s1", QUESTION_CLOCK, "generation 1 != 2")

        self.assertEqual(
            [record.event_type for record in logs.records],
            ['timer_created', 'timer_cancelled', 'timer_stale_callback']
        )
        self.assertEqual(logs.records[2].levelname, 'WARNING')


if __name__ == '__main__':
    unittest.main()
