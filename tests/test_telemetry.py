"""
Unit tests for fire-and-forget tracking.
"""
import unittest
import asyncio

from horror_trivia.models import GameMode
from horror_trivia.quiz_engine import QuizEngine
from horror_trivia.telemetry import TelemetrySink
from horror_trivia.trivia_api import TelemetryError
from tests.test_fixtures import AsyncTestHelpers, MockTriviaObjects, TestFixtures


class TestTelemetrySink(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.api = MockTriviaObjects.create_mock_api()
        self.sink = TelemetrySink(self.api, user_agent="trivia-tests")
        self.session = TestFixtures.create_sample_session(question_count=2)

    async def test_emit_does_not_block(self):
        gate = asyncio.Event()

        async def slow_track(action, data):
            await gate.wait()

        self.api.track.side_effect = slow_track

        task = self.sink.emit('start_game', {})
        self.assertEqual(self.sink.pending_count, 1)

        gate.set()
        await AsyncTestHelpers.run_with_timeout(task)
        await AsyncTestHelpers.settle()
        self.assertEqual(self.sink.pending_count, 0)

    async def test_failures_are_swallowed(self):
        self.api.track.side_effect = TelemetryError("collector down")

        with self.assertLogs('horror_trivia.telemetry', level='WARNING'):
            self.sink.track_game_start(self.session)
            await AsyncTestHelpers.run_with_timeout(self.sink.drain())

        self.assertEqual(self.api.track.await_count, 1)

    async def test_unexpected_errors_are_logged(self):
        self.api.track.side_effect = RuntimeError("bug")

        with self.assertLogs('horror_trivia.telemetry', level='ERROR'):
            self.sink.emit('end_game', {})
            await AsyncTestHelpers.run_with_timeout(self.sink.drain())

    async def test_game_start_payload(self):
        self.sink.track_game_start(self.session)
        await self.sink.drain()

        self.api.track.assert_awaited_once_with('start_game', {
            'sessionId': self.session.session_id,
            'userAgent': 'trivia-tests',
            'ipAddress': 'unknown',
        })

    async def test_question_response_payload(self):
        question = self.session.questions[0]
        result = QuizEngine().score_answer(question, question.correct_answer, 20, 30)

        self.sink.track_question_response(self.session, result)
        await self.sink.drain()

        action, data = self.api.track.await_args.args
        self.assertEqual(action, 'question_response')
        self.assertEqual(data['questionId'], question.id)
        self.assertTrue(data['isCorrect'])
        self.assertEqual(data['timeTaken'], 10)
        self.assertEqual(data['pointsEarned'], 6)

    async def test_contest_end_payload(self):
        session = TestFixtures.create_sample_session(GameMode.CONTEST, question_count=2)
        session.contest_link = "tok-123"
        session.player = TestFixtures.create_sample_player()
        session.current_index = 1
        session.score = 9
        session.questions_answered = 2
        summary = QuizEngine().build_summary(session)

        self.sink.track_game_end(session, summary)
        self.sink.track_contest_end(session, summary)
        await self.sink.drain()

        self.assertEqual(MockTriviaObjects.tracked_actions(self.api), ['end_game', 'contest_end'])
        contest_data = self.api.track.await_args_list[1].args[1]
        self.assertEqual(contest_data['totalScore'], 9)
        self.assertEqual(contest_data['maxPossibleScore'], 20)
        self.assertEqual(contest_data['contestLink'], "tok-123")
        self.assertEqual(contest_data['playerName'], "Laurie Strode")


if __name__ == '__main__':
    unittest.main()
