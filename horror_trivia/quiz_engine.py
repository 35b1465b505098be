"""
Quiz engine core logic for the Horror Trivia Bot.
Handles the per-question countdown, the answer-screen countdown and scoring.
"""
import asyncio
import logging
import math
import random
import time
from typing import Any, Callable, Dict, List, Optional

from .models import NO_SELECTION, AnswerResult, GameSession, GameSummary, Question, TimerState

# Set up logger for timer operations
logger = logging.getLogger(__name__)

QUESTION_CLOCK = "question"
ADVANCE_CLOCK = "advance"

POINTS_PER_QUESTION = 10


class TimerLifecycleLogger:
    """Structured logging for timer lifecycle events."""

    @staticmethod
    def log_timer_created(session_id: str, kind: str, duration: int) -> None:
        """Log clock creation."""
        logger.debug(
            f"Timer lifecycle: CREATED - Session {session_id}, {kind} clock, Duration {duration}s",
            extra={
                'event_type': 'timer_created',
                'session_id': session_id,
                'clock': kind,
                'duration': duration,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_completion(session_id: str, kind: str, completion_type: str) -> None:
        """Log how a countdown ended."""
        logger.debug(
            f"Timer lifecycle: COMPLETED - Session {session_id}, {kind} clock, {completion_type}",
            extra={
                'event_type': 'timer_completed',
                'session_id': session_id,
                'clock': kind,
                'completion_type': completion_type,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_cancelled(session_id: str, kind: str, reason: str) -> None:
        """Log a clock being cancelled before expiry."""
        logger.debug(
            f"Timer lifecycle: CANCELLED - Session {session_id}, {kind} clock ({reason})",
            extra={
                'event_type': 'timer_cancelled',
                'session_id': session_id,
                'clock': kind,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_error(session_id: str, kind: str, error_message: str, operation: str) -> None:
        """Log an error raised inside a countdown."""
        logger.error(
            f"Timer lifecycle: ERROR - Session {session_id}, {kind} clock, {operation}: {error_message}",
            extra={
                'event_type': 'timer_error',
                'session_id': session_id,
                'clock': kind,
                'error_message': error_message,
                'operation': operation,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_stale_callback(session_id: str, kind: str, details: str) -> None:
        """Log a callback arriving after its owning state was left."""
        logger.warning(
            f"Timer lifecycle: STALE CALLBACK - Session {session_id}, {kind} clock: {details}",
            extra={
                'event_type': 'timer_stale_callback',
                'session_id': session_id,
                'clock': kind,
                'details': details,
                'timestamp': time.time()
            }
        )


class QuizTimer:
    """Countdown that reports every tick and fires once on expiry."""

    def __init__(self, session_id: str, kind: str, tick_interval: float = 1.0):
        """Initialize the timer."""
        self._task: Optional[asyncio.Task] = None
        self._remaining_time = 0
        self._total_duration = 0
        self._is_cancelled = False
        self._session_id = session_id
        self._kind = kind
        self._tick_interval = tick_interval

    async def start_countdown(
        self,
        duration: int,
        update_callback: Callable[[int], Any],
        completion_callback: Callable[[], Any]
    ) -> None:
        """
        Run the countdown with callbacks for updates and completion.

        Args:
            duration: Timer duration in seconds
            update_callback: Awaited with the remaining seconds, first with the
                full duration and then after every tick down to 0
            completion_callback: Awaited once when the countdown reaches 0
        """
        self._remaining_time = duration
        self._total_duration = duration

        try:
            await update_callback(self._remaining_time)
            while self._remaining_time > 0:
                await asyncio.sleep(self._tick_interval)
                if self._is_cancelled:
                    return
                self._remaining_time -= 1
                await update_callback(self._remaining_time)
                if self._is_cancelled:
                    return

            TimerLifecycleLogger.log_timer_completion(self._session_id, self._kind, "natural_expiry")
            await completion_callback()

        except asyncio.CancelledError:
            self._is_cancelled = True
            TimerLifecycleLogger.log_timer_completion(self._session_id, self._kind, "asyncio_cancelled")
            raise
        except Exception as e:
            TimerLifecycleLogger.log_timer_error(
                self._session_id,
                self._kind,
                str(e),
                "start_countdown"
            )
            raise

    def cancel(self) -> None:
        """Cancel the countdown. Safe to call from inside its own callbacks."""
        self._is_cancelled = True
        if self._task and not self._task.done() and self._task is not asyncio.current_task():
            self._task.cancel()

    @property
    def kind(self) -> str:
        return self._kind

    @property
    def is_cancelled(self) -> bool:
        """Check if timer is cancelled."""
        return self._is_cancelled

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done() and not self._is_cancelled

    @property
    def remaining_time(self) -> int:
        """Get remaining time in seconds."""
        return self._remaining_time


class QuizEngine:
    """Clock management, option ordering and scoring for trivia games."""

    SCORE_TIERS = [
        (90, "🎃 AMAZING! You're a true horror master! 🎃"),
        (70, "👻 Great job! You really know your horror! 👻"),
        (50, "💀 Not bad! You've got some horror knowledge! 💀"),
        (30, "🦇 Keep watching! Your horror education continues! 🦇"),
    ]
    LOWEST_TIER_MESSAGE = "😱 Time to binge some horror classics! 😱"

    def __init__(self, tick_interval: float = 1.0, rng: Optional[random.Random] = None):
        """
        Initialize the quiz engine.

        Args:
            tick_interval: Real seconds per countdown tick
            rng: Random source for option shuffling
        """
        self.tick_interval = tick_interval
        self.rng = rng or random.Random()
        self._timers: Dict[str, QuizTimer] = {}  # Session ID -> the one live clock

    def start_clock(
        self,
        session_id: str,
        kind: str,
        duration: int,
        update_callback: Callable[[int], Any],
        completion_callback: Callable[[], Any]
    ) -> QuizTimer:
        """
        Start a countdown for a session, replacing whatever clock it had.

        A session has a single clock slot, so the question clock and the
        advance clock can never run at the same time.

        Returns:
            The running QuizTimer
        """
        self.cancel_timer(session_id, reason=f"replaced by {kind} clock")

        timer = QuizTimer(session_id, kind, self.tick_interval)
        self._timers[session_id] = timer
        TimerLifecycleLogger.log_timer_created(session_id, kind, duration)

        timer._task = asyncio.create_task(
            timer.start_countdown(duration, update_callback, completion_callback)
        )
        timer._task.add_done_callback(lambda task: self._on_timer_done(session_id, timer, task))
        return timer

    def _on_timer_done(self, session_id: str, timer: QuizTimer, task: asyncio.Task) -> None:
        if self._timers.get(session_id) is timer:
            del self._timers[session_id]
        if not task.cancelled() and task.exception() is not None:
            TimerLifecycleLogger.log_timer_error(
                session_id,
                timer.kind,
                repr(task.exception()),
                "timer_task_execution"
            )

    def cancel_timer(self, session_id: str, reason: str = "cancel requested") -> bool:
        """
        Cancel the clock of a session.

        Returns:
            True if a clock was cancelled, False if none was running
        """
        timer = self._timers.pop(session_id, None)
        if timer is None:
            return False

        was_running = timer.is_running
        timer.cancel()
        TimerLifecycleLogger.log_timer_cancelled(session_id, timer.kind, reason)
        return was_running

    def get_active_clock(self, session_id: str) -> Optional[str]:
        """Name of the clock currently running for a session, if any."""
        timer = self._timers.get(session_id)
        if timer is not None and timer.is_running:
            return timer.kind
        return None

    def get_timer_status(self, session_id: str) -> Optional[dict]:
        """
        Get status information for a session's clock.

        Returns:
            Dictionary with timer status or None if no clock exists
        """
        timer = self._timers.get(session_id)
        if timer is None:
            return None
        return {
            'clock': timer.kind,
            'remaining_time': timer.remaining_time,
            'is_running': timer.is_running,
            'is_cancelled': timer.is_cancelled
        }

    async def shutdown(self) -> None:
        """Cancel every clock and wait for the tasks to unwind."""
        timers = list(self._timers.values())
        self._timers.clear()
        tasks = []
        for timer in timers:
            timer.cancel()
            if timer._task is not None and timer._task is not asyncio.current_task():
                tasks.append(timer._task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def prepare_options(self, question: Question) -> List[str]:
        """
        Compute the display order of a question's options.

        Called once per question load; the result is cached on the session and
        used both for rendering and for resolving a selected index.
        """
        options = question.build_options(self.rng)
        if sum(1 for option in options if option == question.correct_answer) != 1:
            raise ValueError(f"Question {question.id!r} does not have exactly one correct option")
        return options

    @staticmethod
    def calculate_points(remaining: int, max_seconds: int) -> int:
        """
        Points for a correct explicit selection.

        Decays with the countdown and never drops below 1, even for a click
        at zero seconds left.
        """
        if max_seconds <= 0:
            raise ValueError("max_seconds must be positive")
        remaining = max(0, min(remaining, max_seconds))
        return max(1, math.floor(remaining / max_seconds * POINTS_PER_QUESTION))

    def potential_points(self, timer: TimerState) -> int:
        """Points a correct click would earn right now."""
        return self.calculate_points(timer.remaining, timer.max_seconds)

    def score_answer(
        self,
        question: Question,
        selected_answer: str,
        remaining: int,
        max_seconds: int
    ) -> AnswerResult:
        """Score an explicit selection."""
        is_correct = selected_answer == question.correct_answer
        points = self.calculate_points(remaining, max_seconds) if is_correct else 0
        return AnswerResult(
            question=question,
            selected_answer=selected_answer,
            is_correct=is_correct,
            points=points,
            time_taken=max_seconds - remaining,
            remaining=remaining
        )

    def score_timeout(self, question: Question, max_seconds: int) -> AnswerResult:
        """Score a question whose clock ran out with no selection."""
        return AnswerResult(
            question=question,
            selected_answer=NO_SELECTION,
            is_correct=False,
            points=0,
            time_taken=max_seconds,
            remaining=0
        )

    @classmethod
    def score_message(cls, percentage: float) -> str:
        """Pick the end-of-game tier message for a score percentage."""
        for threshold, message in cls.SCORE_TIERS:
            if percentage >= threshold:
                return message
        return cls.LOWEST_TIER_MESSAGE

    def build_summary(self, session: GameSession) -> GameSummary:
        """Final figures for the game over screen."""
        served = max(session.questions_served, 0)
        max_possible = served * POINTS_PER_QUESTION
        percentage = (session.score / max_possible * 100) if max_possible else 0.0
        return GameSummary(
            mode=session.mode,
            score=session.score,
            questions_served=served,
            questions_answered=session.questions_answered,
            correct_answers=session.correct_answers,
            max_possible_score=max_possible,
            percentage=percentage,
            message=self.score_message(percentage)
        )

    @staticmethod
    def progress_text(session: GameSession) -> str:
        """Running tally shown between questions."""
        answered = session.questions_answered
        return (
            f"{session.correct_answers} out of {answered} - "
            f"Score {session.score} out of {answered * POINTS_PER_QUESTION}"
        )
