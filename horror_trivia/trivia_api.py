"""
HTTP client for the trivia backend: question batches, game tracking,
contest link validation and contest score submission.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from .config_manager import GameSettings
from .models import ContestPlayer


class TriviaApiError(Exception):
    """Base exception for trivia backend errors."""
    pass


class QuestionFetchError(TriviaApiError):
    """Raised when a batch of questions cannot be fetched."""
    pass


class LinkValidationError(TriviaApiError):
    """Raised when a contest link is blank, unknown or cannot be checked."""

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        self.user_message = user_message or message


class ScoreSubmissionError(TriviaApiError):
    """Raised when the final contest score cannot be recorded."""
    pass


class TelemetryError(TriviaApiError):
    """Raised when a tracking event is rejected."""
    pass


TRACK_ACTIONS = frozenset({
    'start_game',
    'question_response',
    'end_game',
    'contest_start',
    'contest_end',
})


class TriviaApiClient:
    """Thin async wrapper around the trivia backend endpoints."""

    QUESTIONS_PATH = "/api/trivia/questions"
    TRACK_PATH = "/api/trivia/track"
    VALIDATE_LINK_PATH = "/api/validate-game-link"
    SUBMIT_SCORE_PATH = "/api/submit-game-score"

    def __init__(self, settings: GameSettings, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initialize the client.

        Args:
            settings: Game settings holding the base URL, timeout and user agent
            transport: Optional transport override (used by tests)
        """
        self.logger = logging.getLogger(__name__)
        self._client = httpx.AsyncClient(
            base_url=settings.api_base_url,
            timeout=settings.request_timeout,
            headers={'User-Agent': settings.user_agent},
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def fetch_questions(self, limit: int, randomize: bool = True) -> List[Dict[str, Any]]:
        """
        Fetch one ordered batch of approved questions.

        Args:
            limit: Maximum number of questions to return
            randomize: Ask the backend for a random selection

        Returns:
            List of raw question objects in delivery order

        Raises:
            QuestionFetchError: On transport failure, error status or malformed body
        """
        params = {
            'limit': limit,
            'approved': 'true',
            'random': 'true' if randomize else 'false',
        }
        try:
            response = await self._client.get(self.QUESTIONS_PATH, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise QuestionFetchError(f"Question service returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise QuestionFetchError(f"Question service unreachable: {e}") from e
        except ValueError as e:
            raise QuestionFetchError(f"Question service sent invalid JSON: {e}") from e

        if not isinstance(payload, list):
            raise QuestionFetchError(
                f"Question service returned {type(payload).__name__}, expected a list"
            )

        self.logger.debug(
            f"Fetched {len(payload)} questions (limit={limit})",
            extra={
                'event_type': 'questions_fetched',
                'limit': limit,
                'count': len(payload),
            }
        )
        return payload

    async def track(self, action: str, data: Dict[str, Any]) -> None:
        """
        Send one tracking event to the collector.

        Raises:
            TelemetryError: If the action is unknown or the collector rejects the call
        """
        if action not in TRACK_ACTIONS:
            raise TelemetryError(f"Unknown tracking action: {action}")

        try:
            response = await self._client.post(self.TRACK_PATH, json={'action': action, 'data': data})
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise TelemetryError(f"Tracking '{action}' failed: {e}") from e

    async def validate_game_link(self, game_link: str) -> ContestPlayer:
        """
        Resolve a contest link to the registered player.

        Args:
            game_link: Opaque contest token

        Returns:
            ContestPlayer for the registration

        Raises:
            LinkValidationError: If the link is rejected or cannot be checked
        """
        try:
            response = await self._client.post(self.VALIDATE_LINK_PATH, json={'gameLink': game_link})
        except httpx.HTTPError as e:
            raise LinkValidationError(
                f"Link validation request failed: {e}",
                "Failed to validate contest link. Please try again."
            ) from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.is_error:
            error = body.get('error') or "Invalid contest link."
            raise LinkValidationError(
                f"Contest link rejected with status {response.status_code}: {error}",
                error
            )

        player = body.get('player') or {}
        full_name = player.get('fullName')
        email = player.get('email')
        if not full_name or not email:
            raise LinkValidationError(
                "Link validation response is missing the player identity",
                "Failed to validate contest link. Please try again."
            )
        return ContestPlayer(full_name=full_name, email=email)

    async def submit_game_score(self, game_link: str, score: int, questions_answered: int) -> None:
        """
        Record the final contest result against the registration.

        Raises:
            ScoreSubmissionError: If the registration store rejects or cannot be reached
        """
        payload = {
            'gameLink': game_link,
            'score': score,
            'questionsAnswered': questions_answered,
        }
        try:
            response = await self._client.post(self.SUBMIT_SCORE_PATH, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ScoreSubmissionError(f"Score submission failed: {e}") from e
