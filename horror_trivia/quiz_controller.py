"""
Game flow controller for the Horror Trivia Bot.
Runs the screen-to-screen state machine of a game and keeps one game per
Discord channel.
"""
import asyncio
import logging
import time
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Set, Tuple

from .config_manager import ConfigManager, GameSettings
from .contest_gate import ContestGate
from .models import AnswerResult, GameMode, GameSession, GameSummary, Question
from .question_supply import QuestionSupply
from .quiz_engine import ADVANCE_CLOCK, QUESTION_CLOCK, QuizEngine, TimerLifecycleLogger
from .telemetry import TelemetrySink
from .trivia_api import LinkValidationError, QuestionFetchError, TriviaApiClient


class GameState(Enum):
    """Screens a game can be on. Exactly one is active."""
    START = "start"
    CONTEST_LINK_ENTRY = "contest_link_entry"
    QUESTION = "question"
    ANSWER_FEEDBACK = "answer_feedback"
    GAME_OVER = "game_over"


TRANSITIONS: Dict[GameState, FrozenSet[GameState]] = {
    GameState.START: frozenset({GameState.CONTEST_LINK_ENTRY, GameState.QUESTION}),
    GameState.CONTEST_LINK_ENTRY: frozenset({GameState.START, GameState.QUESTION}),
    GameState.QUESTION: frozenset({GameState.ANSWER_FEEDBACK, GameState.GAME_OVER}),
    GameState.ANSWER_FEEDBACK: frozenset({GameState.QUESTION, GameState.GAME_OVER}),
    GameState.GAME_OVER: frozenset({GameState.START}),
}


class QuizControllerError(Exception):
    """Base exception for quiz controller errors."""
    pass


class InvalidTransitionError(QuizControllerError):
    """Raised when a move is not in the transition table."""

    def __init__(self, from_state: GameState, to_state: GameState):
        super().__init__(f"Illegal transition {from_state.value} -> {to_state.value}")
        self.from_state = from_state
        self.to_state = to_state


class SessionConflictError(QuizControllerError):
    """Raised when a channel already has a game in progress."""
    pass


class SessionNotFoundError(QuizControllerError):
    """Raised when a channel has no game."""
    pass


class GameView:
    """
    Rendering hooks called by TriviaGame after each state change.

    The default implementation draws nothing, which is what headless games
    and tests use. The Discord front end overrides every hook.
    """

    async def show_start(self, game: "TriviaGame") -> None:
        pass

    async def show_contest_entry(self, game: "TriviaGame", error: Optional[str] = None) -> None:
        pass

    async def show_loading(self, game: "TriviaGame", message: str) -> None:
        pass

    async def show_question(self, game: "TriviaGame", question: Question, options: List[str], number: int) -> None:
        pass

    async def update_countdown(self, game: "TriviaGame", remaining: int, potential_points: int) -> None:
        pass

    async def show_answer_feedback(self, game: "TriviaGame", result: AnswerResult) -> None:
        pass

    async def update_advance_countdown(self, game: "TriviaGame", remaining: int) -> None:
        pass

    async def show_game_over(self, game: "TriviaGame", summary: GameSummary) -> None:
        pass


class TriviaGame:
    """
    One player's trivia game, from the start screen to game over.

    All decisions happen here; rendering goes through the GameView. State is
    always changed before the first await of a transition, and every clock
    callback carries the generation it was started for so that a callback
    arriving after its screen was left is ignored.
    """

    CASUAL_FETCH_ERROR = "Failed to load questions. Please try again."
    CONTEST_FETCH_ERROR = "Failed to start contest game. Please try again."
    IDLE_CLAIM_SECONDS = 300  # how long an untouched start screen stays reserved

    def __init__(
        self,
        api: TriviaApiClient,
        settings: GameSettings,
        engine: Optional[QuizEngine] = None,
        telemetry: Optional[TelemetrySink] = None,
        contest_gate: Optional[ContestGate] = None,
        view: Optional[GameView] = None,
        owner_id: Optional[int] = None
    ):
        self.logger = logging.getLogger(__name__)
        self.api = api
        self.settings = settings
        self.engine = engine or QuizEngine()
        self.telemetry = telemetry or TelemetrySink(api, settings.user_agent)
        self.contest_gate = contest_gate or ContestGate(api)
        self.view = view or GameView()
        self.owner_id = owner_id
        self.idle_since = time.monotonic()

        self._state = GameState.START
        self._generation = 0
        self._loading = False
        self._answered = False
        self._closed = False
        self._background: Set[asyncio.Task] = set()

        self.session: Optional[GameSession] = None
        self.supply: Optional[QuestionSupply] = None
        self.last_error: Optional[str] = None
        self.last_result: Optional[AnswerResult] = None
        self.summary: Optional[GameSummary] = None

    @property
    def state(self) -> GameState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_loading(self) -> bool:
        return self._loading

    @property
    def inputs_enabled(self) -> bool:
        """Option buttons accept a click only while a question is unanswered."""
        return self._state is GameState.QUESTION and not self._answered and not self._closed

    @property
    def is_in_progress(self) -> bool:
        return self._loading or self._state in (GameState.QUESTION, GameState.ANSWER_FEEDBACK)

    def is_claimed_by_other(self, player_id: Optional[int]) -> bool:
        """A start or link entry screen still belongs to the player who opened it."""
        if self._state not in (GameState.START, GameState.CONTEST_LINK_ENTRY):
            return False
        if time.monotonic() - self.idle_since >= self.IDLE_CLAIM_SECONDS:
            return False
        return self.owner_id is not None and player_id is not None and player_id != self.owner_id

    def _transition(self, new_state: GameState) -> None:
        """Move to another screen, stopping whatever clock was running first."""
        if new_state not in TRANSITIONS[self._state]:
            raise InvalidTransitionError(self._state, new_state)

        if self.session is not None:
            self.engine.cancel_timer(self.session.session_id, reason=f"leaving {self._state.value}")

        self.logger.debug(
            f"Game state {self._state.value} -> {new_state.value}",
            extra={
                'event_type': 'game_state_transition',
                'session_id': self.session.session_id if self.session else None,
                'from_state': self._state.value,
                'to_state': new_state.value,
                'timestamp': time.time()
            }
        )
        self._state = new_state
        self._generation += 1

    def _is_stale(self, generation: int, kind: str) -> bool:
        if self._closed or generation != self._generation:
            TimerLifecycleLogger.log_stale_callback(
                self.session.session_id if self.session else "-",
                kind,
                f"generation {generation} != {self._generation}"
            )
            return True
        return False

    def _track_background(self, task: Optional[asyncio.Task]) -> None:
        if task is not None:
            self._background.add(task)
            task.add_done_callback(self._background.discard)

    def _new_session(self, mode: GameMode, **contest) -> Tuple[GameSession, QuestionSupply]:
        max_seconds = (
            self.settings.contest_seconds if mode is GameMode.CONTEST else self.settings.casual_seconds
        )
        session = GameSession(mode=mode, max_seconds=max_seconds, **contest)
        supply = QuestionSupply(
            self.api,
            session,
            refill_batch_size=self.settings.refill_batch_size,
            low_water_mark=self.settings.low_water_mark
        )
        return session, supply

    async def start_casual(self) -> bool:
        """
        Start a casual game: fetch the opening batch and show the first question.

        Returns:
            True if the game started, False if the game is not on the start screen

        Raises:
            QuestionFetchError: If the opening batch cannot be loaded
        """
        if self._closed or self._state is not GameState.START or self._loading:
            return False

        session, supply = self._new_session(GameMode.CASUAL)
        self._loading = True
        self.last_error = None
        try:
            await self.view.show_loading(self, "Loading Questions...")
            await supply.fetch_initial(self.settings.casual_batch_size)
        except QuestionFetchError as e:
            self.logger.error(
                f"Error loading questions: {e}",
                extra={'event_type': 'game_start_failed', 'session_id': session.session_id}
            )
            supply.close()
            session.dispose()
            self.last_error = self.CASUAL_FETCH_ERROR
            self._loading = False
            if not self._closed:
                await self.view.show_start(self)
            raise
        finally:
            self._loading = False

        if self._closed or self._state is not GameState.START:
            supply.close()
            session.dispose()
            return False

        self.session, self.supply = session, supply
        self.logger.info(
            f"Casual game started, session {session.session_id}",
            extra={'event_type': 'game_started', 'session_id': session.session_id, 'mode': 'casual'}
        )
        self.telemetry.track_game_start(session)
        await self._load_next_question()
        return True

    async def open_contest_entry(self) -> bool:
        """Show the contest link entry screen."""
        if self._closed or self._state is not GameState.START or self._loading:
            return False
        self._transition(GameState.CONTEST_LINK_ENTRY)
        self.last_error = None
        await self.view.show_contest_entry(self, None)
        return True

    async def back_to_start(self) -> bool:
        """Leave contest link entry without starting."""
        if self._closed or self._state is not GameState.CONTEST_LINK_ENTRY or self._loading:
            return False
        self._transition(GameState.START)
        self.last_error = None
        await self.view.show_start(self)
        return True

    async def submit_contest_link(self, token: Optional[str]) -> bool:
        """
        Validate a contest link and, if it is good, start a contest game.

        On any failure the game stays on the link entry screen with an
        inline error the player can retry from. No score is ever submitted
        for a rejected link.

        Returns:
            True if the contest game started
        """
        if self._closed or self._state is not GameState.CONTEST_LINK_ENTRY or self._loading:
            return False

        self._loading = True
        self.last_error = None
        try:
            await self.view.show_loading(self, "Checking contest link...")
            try:
                player = await self.contest_gate.validate_link(token)
            except LinkValidationError as e:
                self.logger.info(
                    f"Contest link rejected: {e}",
                    extra={'event_type': 'contest_link_rejected'}
                )
                return await self._show_link_error(e.user_message)

            session, supply = self._new_session(
                GameMode.CONTEST,
                contest_link=token.strip(),
                player=player
            )
            try:
                await self.view.show_loading(self, "Loading Contest...")
                await supply.fetch_initial(self.settings.contest_batch_size)
            except QuestionFetchError as e:
                self.logger.error(
                    f"Error starting contest game: {e}",
                    extra={'event_type': 'contest_start_failed', 'session_id': session.session_id}
                )
                supply.close()
                session.dispose()
                return await self._show_link_error(self.CONTEST_FETCH_ERROR)
        finally:
            self._loading = False

        if self._closed or self._state is not GameState.CONTEST_LINK_ENTRY:
            supply.close()
            session.dispose()
            return False

        self.session, self.supply = session, supply
        self.logger.info(
            f"Contest game started for {player.full_name}, session {session.session_id}",
            extra={'event_type': 'game_started', 'session_id': session.session_id, 'mode': 'contest'}
        )
        self.telemetry.track_contest_start(session)
        await self._load_next_question()
        return True

    async def _show_link_error(self, message: str) -> bool:
        self.last_error = message
        if self._state is GameState.CONTEST_LINK_ENTRY and not self._closed:
            await self.view.show_contest_entry(self, message)
        return False

    async def _load_next_question(self) -> None:
        """Enter the question screen with the next buffered question, or end the game."""
        session = self.session
        self.engine.cancel_timer(session.session_id, reason="loading next question")
        generation = self._generation

        self._loading = True
        try:
            question = await self.supply.next_question()
        finally:
            self._loading = False

        if self._closed or generation != self._generation:
            self.logger.debug("Question load superseded by another transition")
            return

        if question is None:
            self.logger.info('Game ending - no more questions available')
            await self._finish_game()
            return

        session.current_options = self.engine.prepare_options(question)
        session.timer.reset(session.max_seconds)
        self._answered = False
        self.last_result = None
        self._transition(GameState.QUESTION)
        generation = self._generation

        await self.view.show_question(self, question, session.current_options, session.questions_served)

        if generation == self._generation and not self._answered:
            self.engine.start_clock(
                session.session_id,
                QUESTION_CLOCK,
                session.max_seconds,
                lambda remaining: self._on_question_tick(generation, remaining),
                lambda: self._on_question_expired(generation)
            )

    async def _on_question_tick(self, generation: int, remaining: int) -> None:
        if self._is_stale(generation, QUESTION_CLOCK) or self._answered:
            return
        self.session.timer.remaining = remaining
        potential = self.engine.potential_points(self.session.timer)
        await self.view.update_countdown(self, remaining, potential)

    async def _on_question_expired(self, generation: int) -> None:
        if self._is_stale(generation, QUESTION_CLOCK) or self._answered:
            return
        self._answered = True
        session = self.session
        result = self.engine.score_timeout(session.current_question, session.max_seconds)
        self.logger.debug(f"Time up on question {session.questions_served} for session {session.session_id}")
        await self._resolve_answer(result)

    async def select_answer(self, index: int) -> Optional[AnswerResult]:
        """
        Handle a click on one of the option buttons.

        Returns:
            The scored result, or None if the click was not accepted
        """
        if not self.inputs_enabled:
            self.logger.debug(f"Ignoring answer click in state {self._state.value}")
            return None

        session = self.session
        if not 0 <= index < len(session.current_options):
            self.logger.warning(f"Option index {index} out of range for session {session.session_id}")
            return None

        self._answered = True
        self.engine.cancel_timer(session.session_id, reason="answer selected")
        result = self.engine.score_answer(
            session.current_question,
            session.current_options[index],
            session.timer.remaining,
            session.max_seconds
        )
        await self._resolve_answer(result)
        return result

    async def _resolve_answer(self, result: AnswerResult) -> None:
        session = self.session
        session.score += result.points
        session.questions_answered += 1
        if result.is_correct:
            session.correct_answers += 1
        session.timer.clear()
        self.last_result = result

        self.telemetry.track_question_response(session, result)
        self._transition(GameState.ANSWER_FEEDBACK)
        generation = self._generation

        await self.view.show_answer_feedback(self, result)

        if generation == self._generation:
            self.engine.start_clock(
                session.session_id,
                ADVANCE_CLOCK,
                self.settings.advance_delay,
                lambda remaining: self._on_advance_tick(generation, remaining),
                lambda: self._on_advance_expired(generation)
            )

    async def _on_advance_tick(self, generation: int, remaining: int) -> None:
        if self._is_stale(generation, ADVANCE_CLOCK):
            return
        await self.view.update_advance_countdown(self, remaining)

    async def _on_advance_expired(self, generation: int) -> None:
        if self._is_stale(generation, ADVANCE_CLOCK):
            return
        await self.advance()

    async def advance(self) -> bool:
        """
        Leave the answer screen for the next question (or game over).

        Called by the advance clock or by the player's Next button.
        """
        if self._closed or self._state is not GameState.ANSWER_FEEDBACK or self._loading:
            return False
        await self._load_next_question()
        return True

    async def stop(self, confirmed: bool = False) -> bool:
        """
        Abandon the game, keeping the score earned so far.

        Args:
            confirmed: The player confirmed the stop prompt

        Returns:
            True if the game moved to game over
        """
        if not confirmed or self._closed:
            return False
        if self._state not in (GameState.QUESTION, GameState.ANSWER_FEEDBACK):
            return False

        self.engine.cancel_timer(self.session.session_id, reason="game stopped")
        self.logger.info(
            f"Game stopped by player, session {self.session.session_id}",
            extra={'event_type': 'game_stopped', 'session_id': self.session.session_id}
        )
        await self._finish_game()
        return True

    async def _finish_game(self) -> None:
        session = self.session
        self._transition(GameState.GAME_OVER)
        self._answered = True
        if self.supply is not None:
            self.supply.close()

        summary = self.engine.build_summary(session)
        self.summary = summary
        self.telemetry.track_game_end(session, summary)
        if session.is_contest:
            self.telemetry.track_contest_end(session, summary)
            self._track_background(self.contest_gate.submit_final_score(session))

        self.logger.info(
            f"Game over for session {session.session_id}: {summary.score}/{summary.max_possible_score}",
            extra={
                'event_type': 'game_over',
                'session_id': session.session_id,
                'score': summary.score,
                'questions_served': summary.questions_served,
                'mode': session.mode.value,
            }
        )
        await self.view.show_game_over(self, summary)

    async def restart(self) -> bool:
        """Go back to the start screen, discarding the finished session."""
        if self._closed or self._state is not GameState.GAME_OVER:
            return False
        self._transition(GameState.START)
        self._dispose_session()
        self.idle_since = time.monotonic()
        self.summary = None
        self.last_result = None
        self.last_error = None
        await self.view.show_start(self)
        return True

    def _dispose_session(self) -> None:
        if self.supply is not None:
            self.supply.close()
        if self.session is not None:
            self.engine.cancel_timer(self.session.session_id, reason="session disposed")
            self.session.dispose()
        self.session = None
        self.supply = None

    async def close(self) -> None:
        """Tear the game down: stop clocks and refills, let reports finish."""
        if self._closed:
            return
        self._closed = True
        if self.supply is not None:
            self.supply.close()
        if self.session is not None:
            self.engine.cancel_timer(self.session.session_id, reason="game closed")
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
        self._dispose_session()

    def get_status(self) -> Dict[str, Any]:
        """Snapshot of the game for status displays."""
        status = {
            'state': self._state.value,
            'loading': self._loading,
            'owner_id': self.owner_id,
        }
        session = self.session
        if session is not None:
            status.update({
                'session_id': session.session_id,
                'mode': session.mode.value,
                'max_seconds': session.max_seconds,
                'question_number': session.questions_served,
                'buffered': len(session.questions),
                'score': session.score,
                'correct_answers': session.correct_answers,
                'questions_answered': session.questions_answered,
                'remaining': session.timer.remaining,
                'active_clock': self.engine.get_active_clock(session.session_id),
                'player': session.player.full_name if session.player else None,
            })
        return status


class QuizController:
    """
    Keeps one TriviaGame per Discord channel.

    Games share the backend client, the engine (which keys its clocks by
    session) and the telemetry sink; every game owns its own session and
    question buffer.
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        api: TriviaApiClient,
        engine: Optional[QuizEngine] = None,
        telemetry: Optional[TelemetrySink] = None
    ):
        """
        Initialize the quiz controller.

        Args:
            config_manager: Source of the game settings
            api: Trivia backend client
            engine: Shared clock and scoring engine
            telemetry: Shared tracking sink
        """
        self.logger = logging.getLogger(__name__)
        self.config_manager = config_manager
        self.api = api
        self.quiz_engine = engine or QuizEngine()
        settings = config_manager.get_game_settings()
        self.telemetry = telemetry or TelemetrySink(api, settings.user_agent)
        self.contest_gate = ContestGate(api)

        # Games mapped by channel ID
        self._games: Dict[int, TriviaGame] = {}

        self.logger.info("QuizController initialized")

    async def create_game(
        self,
        channel_id: int,
        owner_id: Optional[int] = None,
        view: Optional[GameView] = None
    ) -> TriviaGame:
        """
        Create a new game for a channel, replacing a finished or idle one.

        An idle game on the start or link entry screen is only replaced by
        the player who opened it.

        Raises:
            SessionConflictError: If the channel has a game in progress or
                another player's idle game
        """
        existing = self._games.get(channel_id)
        if existing is not None:
            if existing.is_in_progress:
                raise SessionConflictError(f"Channel {channel_id} already has a game in progress")
            if existing.is_claimed_by_other(owner_id):
                raise SessionConflictError(
                    f"Channel {channel_id} has a game waiting for player {existing.owner_id}"
                )
            await existing.close()

        game = TriviaGame(
            self.api,
            self.config_manager.get_game_settings(),
            engine=self.quiz_engine,
            telemetry=self.telemetry,
            contest_gate=self.contest_gate,
            view=view,
            owner_id=owner_id
        )
        self._games[channel_id] = game
        self.logger.info(f"Created game for channel {channel_id}")
        return game

    def get_game(self, channel_id: int) -> Optional[TriviaGame]:
        return self._games.get(channel_id)

    def require_game(self, channel_id: int) -> TriviaGame:
        """
        Get the game of a channel.

        Raises:
            SessionNotFoundError: If the channel has no game
        """
        game = self._games.get(channel_id)
        if game is None:
            raise SessionNotFoundError(f"No game in channel {channel_id}")
        return game

    def has_active_game(self, channel_id: int) -> bool:
        game = self._games.get(channel_id)
        return game is not None and game.is_in_progress

    async def remove_game(self, channel_id: int) -> bool:
        """
        Close and forget the game of a channel.

        Returns:
            True if a game was removed
        """
        game = self._games.pop(channel_id, None)
        if game is None:
            return False
        await game.close()
        self.logger.info(f"Removed game for channel {channel_id}")
        return True

    def get_all_active_games(self) -> Dict[int, Dict[str, Any]]:
        return {
            channel_id: game.get_status()
            for channel_id, game in self._games.items()
            if game.is_in_progress
        }

    def get_status_summary(self, channel_id: int) -> str:
        """Human-readable description of a channel's game."""
        game = self._games.get(channel_id)
        if game is None:
            return "No trivia game in this channel. Use /trivia to start one."

        status = game.get_status()
        if 'session_id' not in status:
            return f"Game is on the {status['state'].replace('_', ' ')} screen."

        lines = [
            f"Mode: {status['mode']} ({status['max_seconds']}s per question)",
            f"Screen: {status['state'].replace('_', ' ')}",
            f"Question: {status['question_number']}",
            f"Score: {status['score']} ({status['correct_answers']} of {status['questions_answered']} correct)",
        ]
        if status['player']:
            lines.insert(0, f"Player: {status['player']}")
        return "\n".join(lines)

    async def shutdown(self) -> None:
        """Close every game and flush outstanding reports."""
        for channel_id in list(self._games):
            await self.remove_game(channel_id)
        await self.quiz_engine.shutdown()
        await self.telemetry.drain()
