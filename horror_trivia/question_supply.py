"""
Question buffer management for a single game session.
Fetches the opening batch and keeps the buffer topped up in the background.
"""
import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

from .models import GameSession, Question
from .trivia_api import QuestionFetchError, TriviaApiClient


class QuestionSupply:
    """Owns the append-only question buffer of one session."""

    def __init__(
        self,
        api: TriviaApiClient,
        session: GameSession,
        refill_batch_size: int = 20,
        low_water_mark: int = 5
    ):
        """
        Initialize the supply for a session.

        Args:
            api: Trivia backend client
            session: Session whose buffer this supply fills
            refill_batch_size: Questions requested by each background refill
            low_water_mark: Refill when fewer unconsumed questions than this remain
        """
        self.logger = logging.getLogger(__name__)
        self.api = api
        self.session = session
        self.refill_batch_size = refill_batch_size
        self.low_water_mark = low_water_mark
        self._refill_task: Optional[asyncio.Task] = None
        self.refill_count = 0
        self.refill_failures = 0

    async def fetch_batch(self, limit: int, randomize: bool = True) -> List[Question]:
        """
        Fetch a batch and convert it to questions.

        Payloads that do not describe a valid question are dropped.

        Raises:
            QuestionFetchError: If the backend call fails
        """
        payload = await self.api.fetch_questions(limit, randomize)
        return self._parse_questions(payload)

    def _parse_questions(self, payload: List[Dict[str, Any]]) -> List[Question]:
        questions = []
        for raw in payload:
            try:
                questions.append(Question.from_api(raw))
            except ValueError as e:
                self.logger.warning(
                    f"Skipping malformed question: {e}",
                    extra={
                        'event_type': 'question_skipped',
                        'session_id': self.session.session_id,
                        'question_id': raw.get('id') if isinstance(raw, dict) else None,
                    }
                )
        return questions

    async def fetch_initial(self, limit: int) -> int:
        """
        Load the opening batch. The game cannot start without it.

        Returns:
            Number of questions buffered

        Raises:
            QuestionFetchError: If the fetch fails or returns no usable questions
        """
        questions = await self.fetch_batch(limit)
        if not questions:
            raise QuestionFetchError("No questions available")

        self.session.questions.extend(questions)
        self.logger.info(
            f"Loaded {len(questions)} questions for session {self.session.session_id}",
            extra={
                'event_type': 'initial_batch_loaded',
                'session_id': self.session.session_id,
                'count': len(questions),
                'limit': limit,
                'timestamp': time.time()
            }
        )
        return len(questions)

    @property
    def refill_in_flight(self) -> bool:
        return self._refill_task is not None and not self._refill_task.done()

    def check_low_water(self) -> bool:
        """
        Schedule a background refill if the buffer is running low.

        Returns:
            True if a refill was scheduled by this call
        """
        if self.session.disposed or self.refill_in_flight:
            return False
        if self.session.unconsumed >= self.low_water_mark:
            return False

        self.refill_count += 1
        self._refill_task = asyncio.create_task(self._refill())
        self.logger.debug(
            f"Low water refill scheduled for session {self.session.session_id} "
            f"({self.session.unconsumed} questions left)",
            extra={
                'event_type': 'refill_scheduled',
                'session_id': self.session.session_id,
                'unconsumed': self.session.unconsumed,
            }
        )
        return True

    async def _refill(self) -> None:
        try:
            questions = await self.fetch_batch(self.refill_batch_size)
        except QuestionFetchError as e:
            self.refill_failures += 1
            self.logger.error(
                f"Error fetching more questions for session {self.session.session_id}: {e}",
                extra={
                    'event_type': 'refill_failed',
                    'session_id': self.session.session_id,
                }
            )
            return

        if self.session.disposed:
            return
        self.session.questions.extend(questions)
        self.logger.info(
            f"Added {len(questions)} more questions. Total: {len(self.session.questions)}",
            extra={
                'event_type': 'refill_completed',
                'session_id': self.session.session_id,
                'count': len(questions),
                'total': len(self.session.questions),
            }
        )

    async def next_question(self) -> Optional[Question]:
        """
        Advance the session to the next buffered question.

        Waits for an in-flight refill only when the buffer is already empty.

        Returns:
            The new current question, or None when no questions remain
        """
        if self.session.unconsumed <= 0 and self.refill_in_flight:
            await asyncio.wait({self._refill_task})

        if self.session.unconsumed <= 0:
            self.logger.info(
                f"Question buffer exhausted for session {self.session.session_id}",
                extra={
                    'event_type': 'buffer_exhausted',
                    'session_id': self.session.session_id,
                    'served': self.session.questions_served,
                }
            )
            return None

        self.session.current_index += 1
        self.check_low_water()
        return self.session.current_question

    def close(self) -> None:
        """Cancel any refill still in flight."""
        if self.refill_in_flight:
            self._refill_task.cancel()
        self._refill_task = None
