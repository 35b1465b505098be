"""
Unit tests for the QuizEngine class.
"""
import unittest
import random
from unittest.mock import AsyncMock

from horror_trivia.models import NO_SELECTION, GameMode, Question, TimerState
from horror_trivia.quiz_engine import (
    ADVANCE_CLOCK, POINTS_PER_QUESTION, QUESTION_CLOCK, QuizEngine
)
from tests.test_fixtures import TestFixtures


class TestScoring(unittest.TestCase):
    """Test cases for the time-decay scoring rule."""

    def setUp(self):
        """Set up test fixtures."""
        self.engine = QuizEngine(rng=random.Random(7))
        self.question = TestFixtures.create_sample_questions(1)[0]

    def test_calculate_points_table(self):
        cases = [
            ((30, 30), 10),
            ((15, 30), 5),
            ((1, 30), 1),
            ((20, 30), 6),
            ((29, 30), 9),
            ((10, 10), 10),
            ((3, 10), 3),
            ((1, 10), 1),
        ]
        for (remaining, max_seconds), expected in cases:
            with self.subTest(remaining=remaining, max_seconds=max_seconds):
                self.assertEqual(QuizEngine.calculate_points(remaining, max_seconds), expected)

    def test_calculate_points_never_below_one(self):
        self.assertEqual(QuizEngine.calculate_points(0, 30), 1)
        self.assertEqual(QuizEngine.calculate_points(-4, 30), 1)

    def test_calculate_points_clamps_above_max(self):
        self.assertEqual(QuizEngine.calculate_points(45, 30), POINTS_PER_QUESTION)

    def test_calculate_points_rejects_zero_max(self):
        with self.assertRaises(ValueError):
            QuizEngine.calculate_points(5, 0)

    def test_potential_points_follows_timer(self):
        timer = TimerState()
        timer.reset(30)
        self.assertEqual(self.engine.potential_points(timer), 10)

        timer.remaining = 20
        self.assertEqual(self.engine.potential_points(timer), 6)

        timer.remaining = 0
        self.assertEqual(self.engine.potential_points(timer), 1)

    def test_score_correct_answer(self):
        result = self.engine.score_answer(self.question, self.question.correct_answer, 15, 30)

        self.assertTrue(result.is_correct)
        self.assertEqual(result.points, 5)
        self.assertEqual(result.time_taken, 15)
        self.assertEqual(result.remaining, 15)

    def test_score_incorrect_answer_is_zero(self):
        wrong = next(option for option in self.question.options if option != self.question.correct_answer)

        result = self.engine.score_answer(self.question, wrong, 30, 30)

        self.assertFalse(result.is_correct)
        self.assertEqual(result.points, 0)

    def test_score_timeout(self):
        result = self.engine.score_timeout(self.question, 30)

        self.assertFalse(result.is_correct)
        self.assertEqual(result.points, 0)
        self.assertEqual(result.selected_answer, NO_SELECTION)
        self.assertEqual(result.time_taken, 30)
        self.assertTrue(result.timed_out)


class TestScoreTiers(unittest.TestCase):
    """Test cases for end-of-game tier messages and summaries."""

    def test_tier_boundaries(self):
        tiers = QuizEngine.SCORE_TIERS
        cases = [
            (100, tiers[0][1]),
            (90, tiers[0][1]),
            (89.9, tiers[1][1]),
            (70, tiers[1][1]),
            (69, tiers[2][1]),
            (50, tiers[2][1]),
            (49.5, tiers[3][1]),
            (30, tiers[3][1]),
            (29.9, QuizEngine.LOWEST_TIER_MESSAGE),
            (0, QuizEngine.LOWEST_TIER_MESSAGE),
        ]
        for percentage, expected in cases:
            with self.subTest(percentage=percentage):
                self.assertEqual(QuizEngine.score_message(percentage), expected)

    def test_five_distinct_messages(self):
        messages = {message for _, message in QuizEngine.SCORE_TIERS}
        messages.add(QuizEngine.LOWEST_TIER_MESSAGE)
        self.assertEqual(len(messages), 5)

    def test_build_summary_uses_questions_served(self):
        engine = QuizEngine()
        session = TestFixtures.create_sample_session(question_count=5)
        session.current_index = 2  # three served
        session.score = 6
        session.correct_answers = 1
        session.questions_answered = 3

        summary = engine.build_summary(session)

        self.assertEqual(summary.questions_served, 3)
        self.assertEqual(summary.max_possible_score, 30)
        self.assertAlmostEqual(summary.percentage, 20.0)
        self.assertEqual(summary.message, QuizEngine.LOWEST_TIER_MESSAGE)
        self.assertIs(summary.mode, GameMode.CASUAL)

    def test_build_summary_with_nothing_served(self):
        summary = QuizEngine().build_summary(TestFixtures.create_sample_session())

        self.assertEqual(summary.max_possible_score, 0)
        self.assertEqual(summary.percentage, 0.0)
        self.assertEqual(summary.message, QuizEngine.LOWEST_TIER_MESSAGE)

    def test_progress_text(self):
        session = TestFixtures.create_sample_session()
        session.correct_answers = 2
        session.questions_answered = 3
        session.score = 14

        self.assertEqual(QuizEngine.progress_text(session), "2 out of 3 - Score 14 out of 30")


class TestOptionPreparation(unittest.TestCase):
    """Test cases for option ordering."""

    def test_prepare_options_has_one_correct_option(self):
        engine = QuizEngine(rng=random.Random(3))
        for question in TestFixtures.create_sample_questions(6):
            options = engine.prepare_options(question)
            self.assertEqual(options.count(question.correct_answer), 1)

    def test_prepare_options_shuffle_is_seeded(self):
        question = Question.from_api(TestFixtures.create_question_payload(4, with_options=False))

        first = QuizEngine(rng=random.Random(99)).prepare_options(question)
        second = QuizEngine(rng=random.Random(99)).prepare_options(question)

        self.assertEqual(first, second)


class TestClockSlot(unittest.IsolatedAsyncioTestCase):
    """Test cases for the single clock slot per session."""

    async def asyncSetUp(self):
        self.engine = QuizEngine(tick_interval=3600)

    async def asyncTearDown(self):
        await self.engine.shutdown()

    async def test_starting_a_clock_replaces_the_other(self):
        question_timer = self.engine.start_clock("s1", QUESTION_CLOCK, 30, AsyncMock(), AsyncMock())
        self.assertEqual(self.engine.get_active_clock("s1"), QUESTION_CLOCK)

        advance_timer = self.engine.start_clock("s1", ADVANCE_CLOCK, 10, AsyncMock(), AsyncMock())

        self.assertTrue(question_timer.is_cancelled)
        self.assertFalse(advance_timer.is_cancelled)
        self.assertEqual(self.engine.get_active_clock("s1"), ADVANCE_CLOCK)

    async def test_sessions_have_independent_clocks(self):
        self.engine.start_clock("s1", QUESTION_CLOCK, 30, AsyncMock(), AsyncMock())
        self.engine.start_clock("s2", ADVANCE_CLOCK, 10, AsyncMock(), AsyncMock())

        self.assertEqual(self.engine.get_active_clock("s1"), QUESTION_CLOCK)
        self.assertEqual(self.engine.get_active_clock("s2"), ADVANCE_CLOCK)

    async def test_cancel_timer(self):
        self.engine.start_clock("s1", QUESTION_CLOCK, 30, AsyncMock(), AsyncMock())

        self.assertTrue(self.engine.cancel_timer("s1"))
        self.assertIsNone(self.engine.get_active_clock("s1"))
        self.assertFalse(self.engine.cancel_timer("s1"))

    async def test_get_timer_status(self):
        self.assertIsNone(self.engine.get_timer_status("s1"))
        self.engine.start_clock("s1", QUESTION_CLOCK, 30, AsyncMock(), AsyncMock())

        status = self.engine.get_timer_status("s1")

        self.assertEqual(status['clock'], QUESTION_CLOCK)
        self.assertTrue(status['is_running'])
        self.assertFalse(status['is_cancelled'])


if __name__ == '__main__':
    unittest.main()
