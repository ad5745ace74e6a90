"""
Core data models for the Flag Quiz Bot.
"""
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Optional, Tuple
from datetime import datetime
from enum import Enum

if TYPE_CHECKING:
    from .quiz_engine import QuizEngine


@dataclass(frozen=True)
class Country:
    """A country in the catalog. Identity is by name."""
    name: str
    flag: str


class Difficulty(Enum):
    """Selectable difficulty tiers."""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    @property
    def options_count(self) -> int:
        return DIFFICULTY_SETTINGS[self].options_count

    @property
    def label(self) -> str:
        return DIFFICULTY_SETTINGS[self].label

    @classmethod
    def from_string(cls, value: str) -> "Difficulty":
        """
        Parse a difficulty from its value or label, case-insensitively.

        Raises:
            ValueError: If the string names no difficulty
        """
        normalized = value.strip().lower()
        for difficulty in cls:
            if normalized in (difficulty.value, difficulty.label.lower()):
                return difficulty
        raise ValueError(f"Unknown difficulty: {value}")


@dataclass(frozen=True)
class DifficultySetting:
    """Static option sizing for one difficulty tier."""
    options_count: int
    label: str


DIFFICULTY_SETTINGS: Dict[Difficulty, DifficultySetting] = {
    Difficulty.EASY: DifficultySetting(options_count=3, label="Easy"),
    Difficulty.MEDIUM: DifficultySetting(options_count=5, label="Medium"),
    Difficulty.HARD: DifficultySetting(options_count=7, label="Hard"),
}

MAX_OPTIONS_COUNT = max(setting.options_count for setting in DIFFICULTY_SETTINGS.values())


@dataclass(frozen=True)
class Round:
    """A single live round: the flag to identify and the candidate names."""
    target: Country
    options: Tuple[Country, ...]
    number: int = 0

    def has_option(self, name: str) -> bool:
        return any(option.name == name for option in self.options)

    def find_option(self, name: str) -> Optional[Country]:
        for option in self.options:
            if option.name == name:
                return option
        return None


class OutcomeKind(Enum):
    CORRECT = "correct"
    INCORRECT = "incorrect"


class OptionStatus(Enum):
    """How an option should be shown given the round's answer state."""
    AVAILABLE = "available"
    CORRECT = "correct"
    WRONG_SELECTION = "wrong_selection"
    DIMMED = "dimmed"


@dataclass(frozen=True)
class Feedback:
    """Message shown to the player after a guess."""
    message: str
    type: str  # 'success' or 'error'


@dataclass(frozen=True)
class GuessOutcome:
    """Result of a scored guess."""
    kind: OutcomeKind
    guessed_name: str
    correct_name: str
    score: int
    feedback: Feedback

    @property
    def is_correct(self) -> bool:
        return self.kind is OutcomeKind.CORRECT


@dataclass
class QuizState:
    """Mutable state of one game session, owned by a single QuizEngine."""
    difficulty: Difficulty = Difficulty.EASY
    score: int = 0
    current_round: Optional[Round] = None
    answered: bool = False
    last_guess: Optional[str] = None
    feedback: Optional[Feedback] = None
    rounds_played: int = 0
    correct_answers: int = 0


@dataclass
class QuizSettings:
    """Configuration settings for new game sessions."""
    default_difficulty: Difficulty = Difficulty.EASY
    advance_delay_ms: int = 2000
    catalog_path: str = "./countries.json"


@dataclass
class PlayerSession:
    """An active single-player game in a Discord channel."""
    channel_id: int
    user_id: int
    engine: "QuizEngine"
    start_time: datetime = field(default_factory=datetime.now)
    channel: Optional[object] = None
