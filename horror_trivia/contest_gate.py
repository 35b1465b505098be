"""
Contest link validation and final score reporting.
"""
import asyncio
import logging
import time
from typing import Optional

from .models import ContestPlayer, GameSession
from .trivia_api import LinkValidationError, ScoreSubmissionError, TriviaApiClient


class ContestGate:
    """
    Gatekeeper between the game and the external registration store.

    The store owns the registrations, so whether a link may be played twice
    is decided there. This class only checks that a link resolves to a
    player and reports the result once per session.
    """

    BLANK_LINK_MESSAGE = "Please enter your contest link."

    def __init__(self, api: TriviaApiClient):
        self.logger = logging.getLogger(__name__)
        self.api = api

    async def validate_link(self, token: Optional[str]) -> ContestPlayer:
        """
        Resolve a contest link to the registered player.

        Args:
            token: Link as typed or pasted by the player

        Returns:
            ContestPlayer the link belongs to

        Raises:
            LinkValidationError: With a user_message suitable for inline display
        """
        token = (token or "").strip()
        if not token:
            raise LinkValidationError("Blank contest link", self.BLANK_LINK_MESSAGE)

        player = await self.api.validate_game_link(token)
        self.logger.info(
            f"Contest link validated for {player.full_name}",
            extra={
                'event_type': 'contest_link_validated',
                'player_email': player.email,
                'timestamp': time.time()
            }
        )
        return player

    def submit_final_score(self, session: GameSession) -> Optional[asyncio.Task]:
        """
        Report the final score of a contest session in the background.

        At most one submission is made per session; the caller never waits.

        Returns:
            The submission task, or None if nothing was sent
        """
        if not session.is_contest or not session.contest_link:
            return None
        if session.score_submitted:
            self.logger.debug(f"Score already submitted for session {session.session_id}")
            return None

        session.score_submitted = True
        return asyncio.create_task(self._submit(
            session.session_id,
            session.contest_link,
            session.score,
            session.questions_answered
        ))

    async def _submit(self, session_id: str, contest_link: str, score: int, questions_answered: int) -> None:
        try:
            await self.api.submit_game_score(contest_link, score, questions_answered)
            self.logger.info(
                f"Submitted contest score {score} for session {session_id}",
                extra={
                    'event_type': 'contest_score_submitted',
                    'session_id': session_id,
                    'score': score,
                    'questions_answered': questions_answered,
                }
            )
        except ScoreSubmissionError as e:
            self.logger.error(
                f"Failed to submit contest score for session {session_id}: {e}",
                extra={
                    'event_type': 'contest_score_submission_failed',
                    'session_id': session_id,
                }
            )
