"""
Fire-and-forget game event reporting.
"""
import asyncio
import logging
from typing import Any, Dict, Optional, Set

from .models import AnswerResult, GameSession, GameSummary
from .trivia_api import TelemetryError, TriviaApiClient


class TelemetrySink:
    """
    Sends tracking events without ever making the game wait for them.

    Every event becomes its own task. Failures are logged and dropped; there
    are no retries and nothing is reported back to the caller.
    """

    def __init__(self, api: TriviaApiClient, user_agent: str = "horror-trivia-bot"):
        self.logger = logging.getLogger(__name__)
        self.api = api
        self.user_agent = user_agent
        self._pending: Set[asyncio.Task] = set()

    def emit(self, action: str, data: Dict[str, Any]) -> Optional[asyncio.Task]:
        """Schedule one event. Returns the task, which callers should not await."""
        try:
            task = asyncio.create_task(self._send(action, data))
        except RuntimeError as e:
            self.logger.warning(f"Cannot track '{action}' outside an event loop: {e}")
            return None
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _send(self, action: str, data: Dict[str, Any]) -> None:
        try:
            await self.api.track(action, data)
        except TelemetryError as e:
            self.logger.warning(
                f"Failed to track {action}: {e}",
                extra={
                    'event_type': 'telemetry_failed',
                    'action': action,
                    'session_id': data.get('sessionId'),
                }
            )
        except Exception as e:
            self.logger.error(f"Unexpected error tracking {action}: {e}", exc_info=True)

    async def drain(self) -> None:
        """Wait for every event still in flight."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def track_game_start(self, session: GameSession) -> None:
        self.emit('start_game', {
            'sessionId': session.session_id,
            'userAgent': self.user_agent,
            'ipAddress': 'unknown',
        })

    def track_contest_start(self, session: GameSession) -> None:
        self.emit('contest_start', {
            'sessionId': session.session_id,
            'contestLink': session.contest_link,
            'playerName': session.player.full_name if session.player else None,
            'playerEmail': session.player.email if session.player else None,
            'userAgent': self.user_agent,
        })

    def track_question_response(self, session: GameSession, result: AnswerResult) -> None:
        self.emit('question_response', {
            'sessionId': session.session_id,
            'questionId': result.question.id,
            'selectedAnswer': result.selected_answer,
            'correctAnswer': result.question.correct_answer,
            'isCorrect': result.is_correct,
            'timeTaken': result.time_taken,
            'pointsEarned': result.points,
        })

    def _end_payload(self, session: GameSession, summary: GameSummary) -> Dict[str, Any]:
        return {
            'sessionId': session.session_id,
            'totalScore': summary.score,
            'questionsAnswered': summary.questions_answered,
            'correctAnswers': summary.correct_answers,
            'maxPossibleScore': summary.max_possible_score,
        }

    def track_game_end(self, session: GameSession, summary: GameSummary) -> None:
        self.emit('end_game', self._end_payload(session, summary))

    def track_contest_end(self, session: GameSession, summary: GameSummary) -> None:
        payload = self._end_payload(session, summary)
        payload.update({
            'contestLink': session.contest_link,
            'playerName': session.player.full_name if session.player else None,
            'playerEmail': session.player.email if session.player else None,
        })
        self.emit('contest_end', payload)
