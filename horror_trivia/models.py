"""
Core data models for the Horror Trivia Bot.
"""
import json
import random
import string
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


# Recorded as the selected answer when the question clock runs out
NO_SELECTION = "__no_selection__"

# Most options a question can show; one button per option letter
MAX_OPTIONS = 8


class GameMode(Enum):
    """Play modes with their own timing profile."""
    CASUAL = "casual"
    CONTEST = "contest"


@dataclass
class Question:
    """Represents a single multiple-choice trivia question."""
    id: Any
    text: str
    correct_answer: str
    options: List[str] = field(default_factory=list)
    wrong_answers: List[str] = field(default_factory=list)
    explanation: str = ""
    image_url: Optional[str] = None

    def __post_init__(self):
        candidates = self.options or [self.correct_answer] + list(self.wrong_answers)
        if len(candidates) > MAX_OPTIONS:
            raise ValueError(
                f"Question {self.id!r} has {len(candidates)} options, at most {MAX_OPTIONS} are supported"
            )
        matches = sum(1 for option in candidates if option == self.correct_answer)
        if matches != 1:
            raise ValueError(
                f"Question {self.id!r} must have exactly one option equal to the "
                f"correct answer, found {matches}"
            )

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "Question":
        """
        Build a question from a trivia provider JSON object.

        Args:
            payload: Decoded question object

        Returns:
            Question instance

        Raises:
            ValueError: If required fields are missing or the options are inconsistent
        """
        if not isinstance(payload, dict):
            raise ValueError(f"Question payload must be an object, got {type(payload).__name__}")

        text = payload.get("question")
        correct_answer = payload.get("correct_answer")
        if not isinstance(text, str) or not text.strip():
            raise ValueError("Question payload is missing 'question' text")
        if not isinstance(correct_answer, str) or not correct_answer:
            raise ValueError("Question payload is missing 'correct_answer'")

        options = payload.get("options") or []
        if isinstance(options, str):
            try:
                options = json.loads(options)
            except json.JSONDecodeError as e:
                raise ValueError(f"Question options are not valid JSON: {e}")
        if not isinstance(options, list):
            raise ValueError("Question 'options' must be a list")

        wrong_answers = payload.get("wrong_answers") or []
        if not isinstance(wrong_answers, list):
            raise ValueError("Question 'wrong_answers' must be a list")
        if not options and not wrong_answers:
            raise ValueError("Question payload has neither 'options' nor 'wrong_answers'")

        return cls(
            id=payload.get("id"),
            text=text,
            correct_answer=correct_answer,
            options=[str(option) for option in options],
            wrong_answers=[str(answer) for answer in wrong_answers],
            explanation=payload.get("explanation") or "",
            image_url=payload.get("image_url") or payload.get("image"),
        )

    def build_options(self, rng: Optional[random.Random] = None) -> List[str]:
        """
        Return the options in display order.

        A pre-shuffled options list is used as delivered. Otherwise the correct
        answer and the wrong answers are shuffled together.
        """
        if self.options:
            return list(self.options)
        options = [self.correct_answer] + list(self.wrong_answers)
        (rng or random).shuffle(options)
        return options


@dataclass
class ContestPlayer:
    """Identity a contest link resolves to."""
    full_name: str
    email: str


@dataclass
class TimerState:
    """Countdown state of the question currently on screen."""
    remaining: int = 0
    max_seconds: int = 0

    def reset(self, max_seconds: int) -> None:
        self.max_seconds = max_seconds
        self.remaining = max_seconds

    def clear(self) -> None:
        self.remaining = 0

    @property
    def elapsed(self) -> int:
        return self.max_seconds - self.remaining


@dataclass
class AnswerResult:
    """Outcome of a single question."""
    question: Question
    selected_answer: str
    is_correct: bool
    points: int
    time_taken: int
    remaining: int

    @property
    def timed_out(self) -> bool:
        return self.selected_answer == NO_SELECTION


def generate_session_id() -> str:
    """Create a session id of the form session_<epoch ms>_<9 base36 chars>."""
    suffix = "".join(random.choices(string.digits + string.ascii_lowercase, k=9))
    return f"session_{int(time.time() * 1000)}_{suffix}"


@dataclass
class GameSession:
    """State of one game from start to game over. Never persisted."""
    mode: GameMode
    max_seconds: int
    session_id: str = field(default_factory=generate_session_id)
    questions: List[Question] = field(default_factory=list)
    current_index: int = -1
    current_options: List[str] = field(default_factory=list)
    score: int = 0
    correct_answers: int = 0
    questions_answered: int = 0
    timer: TimerState = field(default_factory=TimerState)
    contest_link: Optional[str] = None
    player: Optional[ContestPlayer] = None
    start_time: datetime = field(default_factory=datetime.now)
    score_submitted: bool = False
    disposed: bool = False

    @property
    def is_contest(self) -> bool:
        return self.mode is GameMode.CONTEST

    @property
    def current_question(self) -> Optional[Question]:
        if 0 <= self.current_index < len(self.questions):
            return self.questions[self.current_index]
        return None

    @property
    def questions_served(self) -> int:
        return self.current_index + 1

    @property
    def unconsumed(self) -> int:
        return len(self.questions) - self.questions_served

    def dispose(self) -> None:
        """Release the buffer once the game is finished."""
        self.questions.clear()
        self.current_options = []
        self.timer.clear()
        self.disposed = True


@dataclass
class GameSummary:
    """Final figures shown on the game over screen."""
    mode: GameMode
    score: int
    questions_served: int
    questions_answered: int
    correct_answers: int
    max_possible_score: int
    percentage: float
    message: str
