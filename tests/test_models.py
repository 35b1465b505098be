"""
Unit tests for the trivia data models.
"""
import json
import random
import re
import unittest

from horror_trivia.models import (
    MAX_OPTIONS, NO_SELECTION, AnswerResult, GameMode, GameSession, Question, TimerState,
    generate_session_id
)
from tests.test_fixtures import TestFixtures


class TestQuestion(unittest.TestCase):
    """Test cases for Question parsing and option building."""

    def test_from_api_with_options_list(self):
        payload = TestFixtures.create_question_payload(1)
        question = Question.from_api(payload)

        self.assertEqual(question.id, 1)
        self.assertEqual(question.correct_answer, "Jason Voorhees")
        self.assertEqual(len(question.options), 4)
        self.assertEqual(question.options[1], "Jason Voorhees")

    def test_from_api_decodes_json_string_options(self):
        payload = TestFixtures.create_question_payload(2)
        payload["options"] = json.dumps(payload["options"])

        question = Question.from_api(payload)

        self.assertEqual(question.options[1], "Michael Myers")

    def test_from_api_accepts_image_alias(self):
        payload = TestFixtures.create_question_payload(0)
        payload["image"] = "https://example.com/poster.jpg"

        question = Question.from_api(payload)

        self.assertEqual(question.image_url, "https://example.com/poster.jpg")

    def test_from_api_rejects_missing_fields(self):
        for field_name in ("question", "correct_answer"):
            payload = TestFixtures.create_question_payload(0)
            del payload[field_name]
            with self.subTest(field=field_name):
                with self.assertRaises(ValueError):
                    Question.from_api(payload)

    def test_from_api_rejects_invalid_options(self):
        payload = TestFixtures.create_question_payload(0)
        payload["options"] = "{not json"
        with self.assertRaises(ValueError):
            Question.from_api(payload)

        payload = TestFixtures.create_question_payload(0)
        del payload["options"]
        with self.assertRaises(ValueError):
            Question.from_api(payload)

    def test_correct_answer_must_appear_exactly_once(self):
        with self.assertRaises(ValueError):
            Question(id=1, text="?", correct_answer="A", options=["A", "B", "A"])
        with self.assertRaises(ValueError):
            Question(id=1, text="?", correct_answer="A", options=["B", "C", "D"])

    def test_option_count_is_limited(self):
        payload = TestFixtures.create_question_payload(0)
        correct = payload["correct_answer"]
        payload["options"] = [correct] + [f"Wrong {n}" for n in range(MAX_OPTIONS)]
        with self.assertRaises(ValueError):
            Question.from_api(payload)

        payload["options"] = payload["options"][:MAX_OPTIONS]
        self.assertEqual(len(Question.from_api(payload).options), MAX_OPTIONS)

        with self.assertRaises(ValueError):
            Question(id=1, text="?", correct_answer="A", wrong_answers=list("BCDEFGHI"))

    def test_build_options_keeps_delivered_order(self):
        question = Question.from_api(TestFixtures.create_question_payload(3))

        options = question.build_options(random.Random(1))

        self.assertEqual(options, question.options)
        self.assertIsNot(options, question.options)

    def test_build_options_shuffles_wrong_answers_in(self):
        question = Question.from_api(TestFixtures.create_question_payload(3, with_options=False))

        options = question.build_options(random.Random(42))

        self.assertEqual(len(options), 4)
        self.assertEqual(options.count(question.correct_answer), 1)
        self.assertEqual(set(options), {question.correct_answer, *question.wrong_answers})


class TestSessionModels(unittest.TestCase):
    """Test cases for session state helpers."""

    def test_session_id_format(self):
        session_id = generate_session_id()
        self.assertRegex(session_id, re.compile(r"^session_\d+_[0-9a-z]{9}$"))
        self.assertNotEqual(session_id, generate_session_id())

    def test_new_session_has_served_nothing(self):
        session = TestFixtures.create_sample_session(question_count=3)

        self.assertEqual(session.questions_served, 0)
        self.assertEqual(session.unconsumed, 3)
        self.assertIsNone(session.current_question)
        self.assertFalse(session.is_contest)

    def test_current_question_follows_index(self):
        session = TestFixtures.create_sample_session(question_count=3)
        session.current_index = 1

        self.assertEqual(session.current_question.id, 1)
        self.assertEqual(session.questions_served, 2)
        self.assertEqual(session.unconsumed, 1)

    def test_dispose_releases_buffer(self):
        session = TestFixtures.create_sample_session(GameMode.CONTEST, question_count=3)
        session.current_options = ["a", "b"]
        session.timer.reset(10)

        session.dispose()

        self.assertTrue(session.disposed)
        self.assertEqual(session.questions, [])
        self.assertEqual(session.current_options, [])
        self.assertEqual(session.timer.remaining, 0)
        self.assertTrue(session.is_contest)

    def test_timer_state(self):
        timer = TimerState()
        timer.reset(30)
        timer.remaining = 12
        self.assertEqual(timer.elapsed, 18)
        timer.clear()
        self.assertEqual(timer.remaining, 0)

    def test_answer_result_timed_out(self):
        question = TestFixtures.create_sample_questions(1)[0]
        result = AnswerResult(question, NO_SELECTION, False, 0, 30, 0)
        self.assertTrue(result.timed_out)

        result = AnswerResult(question, question.correct_answer, True, 10, 0, 30)
        self.assertFalse(result.timed_out)

    def test_sessions_do_not_share_state(self):
        first = GameSession(mode=GameMode.CASUAL, max_seconds=30)
        second = GameSession(mode=GameMode.CASUAL, max_seconds=30)
        first.questions.append(TestFixtures.create_sample_questions(1)[0])

        self.assertEqual(second.questions, [])
        self.assertIsNot(first.timer, second.timer)


if __name__ == '__main__':
    unittest.main()
