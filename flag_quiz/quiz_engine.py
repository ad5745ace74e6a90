"""
Quiz engine core logic for the Flag Quiz Bot.
Handles round generation, guess evaluation, scoring and round advance timing.
"""
import random
import asyncio
import logging
import time
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

from .models import (
    Country,
    Difficulty,
    Feedback,
    GuessOutcome,
    OptionStatus,
    OutcomeKind,
    QuizState,
    Round,
)

# Set up logger for engine and timer operations
logger = logging.getLogger(__name__)

T = TypeVar("T")

CORRECT_MESSAGE = "Correct! +1 point"
INCORRECT_MESSAGE = "Wrong! The correct answer was {name}."


class QuizEngineError(Exception):
    """Base exception for quiz engine errors."""
    pass


class ConfigurationError(QuizEngineError):
    """Raised when the catalog is too small for the requested option count."""

    def __init__(self, catalog_size: int, difficulty: Difficulty):
        self.catalog_size = catalog_size
        self.difficulty = difficulty
        super().__init__(
            f"Catalog has {catalog_size} countries but {difficulty.label} difficulty "
            f"needs at least {difficulty.options_count}"
        )


class TimerLifecycleLogger:
    """Structured logging for round advance timer events."""

    @staticmethod
    def log_timer_created(session_id: str, delay: float, round_number: int) -> None:
        """Log scheduling of an auto-advance timer."""
        logger.debug(
            f"Timer lifecycle: CREATED - Session {session_id}, Round {round_number}, Delay {delay:.3f}s",
            extra={
                'event_type': 'timer_created',
                'session_id': session_id,
                'round_number': round_number,
                'delay': delay,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_completion(session_id: str, completion_type: str, delay: float) -> None:
        """Log timer completion (natural expiry or cancellation)."""
        logger.debug(
            f"Timer lifecycle: COMPLETED - Session {session_id}, Type {completion_type}, Delay {delay:.3f}s",
            extra={
                'event_type': 'timer_completed',
                'session_id': session_id,
                'completion_type': completion_type,
                'delay': delay,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_state_transition(session_id: str, from_state: str, to_state: str, reason: str = None) -> None:
        """Log timer state transitions."""
        logger.debug(
            f"Timer lifecycle: STATE_TRANSITION - Session {session_id}, {from_state} -> {to_state}" +
            (f" ({reason})" if reason else ""),
            extra={
                'event_type': 'timer_state_transition',
                'session_id': session_id,
                'from_state': from_state,
                'to_state': to_state,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_error(session_id: str, error_type: str, error_message: str, operation: str) -> None:
        """Log timer-related errors with context."""
        logger.error(
            f"Timer lifecycle: ERROR - Session {session_id}, Operation {operation}, Type {error_type}: {error_message}",
            extra={
                'event_type': 'timer_error',
                'session_id': session_id,
                'error_type': error_type,
                'error_message': error_message,
                'operation': operation,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_race_condition_detected(session_id: str, details: str) -> None:
        """Log a stale timer firing against a newer round."""
        logger.warning(
            f"Timer lifecycle: RACE_CONDITION - Session {session_id}: {details}",
            extra={
                'event_type': 'timer_race_condition',
                'session_id': session_id,
                'details': details,
                'timestamp': time.time()
            }
        )


class RandomSource:
    """Seedable source of uniform randomness for shuffling."""

    def __init__(self, seed: Optional[int] = None, rng: Optional[random.Random] = None):
        self._rng = rng if rng is not None else random.Random(seed)

    def seed(self, seed: Optional[int]) -> None:
        self._rng.seed(seed)

    def shuffle(self, items: Sequence[T]) -> List[T]:
        """
        Shuffle items uniformly.

        Args:
            items: Sequence to shuffle

        Returns:
            New list with the items in random order; the input is not modified
        """
        shuffled = list(items)
        self._rng.shuffle(shuffled)
        return shuffled


def generate_round(
    catalog: Sequence[Country],
    difficulty: Difficulty,
    random_source: RandomSource,
    number: int = 0
) -> Round:
    """
    Build a round for the given difficulty.

    The whole catalog is shuffled, the last country becomes the target and the
    distractors are taken from the front of the shuffled remainder. The options
    are shuffled again so the target's position carries no information.

    Args:
        catalog: Countries to draw from
        difficulty: Difficulty deciding the number of options
        random_source: Randomness used for both shuffles
        number: Sequence number of the round within its session

    Returns:
        The new round

    Raises:
        ConfigurationError: If the catalog has fewer countries than options needed
    """
    options_count = difficulty.options_count
    if len(catalog) < options_count:
        raise ConfigurationError(len(catalog), difficulty)

    shuffled_countries = random_source.shuffle(catalog)
    target = shuffled_countries.pop()
    distractors = shuffled_countries[:options_count - 1]

    options = random_source.shuffle([target] + distractors)
    return Round(target=target, options=tuple(options), number=number)


class RoundTimer:
    """Cancellable delayed task that advances a session to its next round."""

    def __init__(self, session_id: str = None, round_number: int = 0):
        """Initialize the timer for the round it belongs to."""
        self._task: Optional[asyncio.Task] = None
        self._is_cancelled = False
        self._session_id = session_id
        self._round_number = round_number
        self._delay = 0.0

    def start(self, delay: float, completion_callback: Callable[[], Awaitable[None]]) -> asyncio.Task:
        """
        Schedule completion_callback to run after delay seconds.

        Raises:
            RuntimeError: If no event loop is running
        """
        self._delay = delay
        self._is_cancelled = False
        self._task = asyncio.get_running_loop().create_task(
            self._run(delay, completion_callback)
        )
        TimerLifecycleLogger.log_timer_created(self._session_id, delay, self._round_number)
        return self._task

    async def _run(self, delay: float, completion_callback: Callable[[], Awaitable[None]]) -> None:
        try:
            await asyncio.sleep(delay)

            if self._is_cancelled:
                TimerLifecycleLogger.log_timer_completion(self._session_id, "cancelled", delay)
                return

            TimerLifecycleLogger.log_timer_completion(self._session_id, "natural_expiry", delay)
            await completion_callback()

        except asyncio.CancelledError:
            self._is_cancelled = True
            TimerLifecycleLogger.log_timer_completion(self._session_id, "asyncio_cancelled", delay)
            raise
        except Exception as e:
            TimerLifecycleLogger.log_timer_error(
                self._session_id,
                "advance_execution_error",
                str(e),
                "RoundTimer._run"
            )
            raise

    def cancel(self) -> None:
        """Cancel the timer if it has not fired yet."""
        self._is_cancelled = True
        if self._task and not self._task.done():
            self._task.cancel()
            TimerLifecycleLogger.log_timer_state_transition(
                self._session_id,
                "pending",
                "cancelled",
                "task cancelled"
            )
        else:
            TimerLifecycleLogger.log_timer_state_transition(
                self._session_id,
                "idle",
                "cancelled",
                "no active task"
            )

    @property
    def is_pending(self) -> bool:
        """Check if the timer is scheduled and has not fired or been cancelled."""
        return self._task is not None and not self._task.done() and not self._is_cancelled

    @property
    def is_cancelled(self) -> bool:
        return self._is_cancelled

    @property
    def round_number(self) -> int:
        return self._round_number

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task


class QuizEngine:
    """
    Core quiz engine that owns one game session's state.

    The engine generates rounds, evaluates guesses, keeps the score and
    advances to the next round after a guess. At most one advance timer is
    pending at any time; every path that starts a round cancels it first.
    """

    DEFAULT_ADVANCE_DELAY_MS = 2000

    def __init__(
        self,
        catalog: Sequence[Country],
        state: Optional[QuizState] = None,
        random_source: Optional[RandomSource] = None,
        advance_delay_ms: Optional[int] = DEFAULT_ADVANCE_DELAY_MS,
        round_listener: Optional[Callable[[Round], Awaitable[None]]] = None,
        session_id: Optional[str] = None
    ):
        """
        Initialize the quiz engine.

        Args:
            catalog: Countries rounds are drawn from
            state: Session state to operate on; a fresh one is created if None
            random_source: Randomness for shuffling; unseeded if None
            advance_delay_ms: Delay before the next round after a guess, or None
                to disable automatic advancing
            round_listener: Awaited with each round started by the advance timer
            session_id: Identifier used in log records
        """
        self._catalog = tuple(catalog)
        self.state = state if state is not None else QuizState()
        self._random = random_source if random_source is not None else RandomSource()
        self._advance_delay_ms = advance_delay_ms
        self._round_listener = round_listener
        self._session_id = session_id or f"engine-{id(self):x}"
        self._timer: Optional[RoundTimer] = None
        self._round_counter = 0

    @property
    def catalog(self) -> tuple:
        return self._catalog

    @property
    def score(self) -> int:
        return self.state.score

    @property
    def difficulty(self) -> Difficulty:
        return self.state.difficulty

    @property
    def current_round(self) -> Optional[Round]:
        return self.state.current_round

    @property
    def answered(self) -> bool:
        return self.state.answered

    @property
    def last_guess(self) -> Optional[str]:
        return self.state.last_guess

    @property
    def feedback(self) -> Optional[Feedback]:
        return self.state.feedback

    @property
    def advance_delay_ms(self) -> Optional[int]:
        return self._advance_delay_ms

    @property
    def has_pending_advance(self) -> bool:
        return self._timer is not None and self._timer.is_pending

    def set_round_listener(self, round_listener: Optional[Callable[[Round], Awaitable[None]]]) -> None:
        self._round_listener = round_listener

    def start_round(self) -> Round:
        """
        Replace the live round with a freshly generated one.

        Returns:
            The new round

        Raises:
            ConfigurationError: If the catalog is too small for the current difficulty
        """
        new_round = generate_round(
            self._catalog,
            self.state.difficulty,
            self._random,
            number=self._round_counter + 1
        )

        self._cancel_pending_advance("new round started")

        self._round_counter = new_round.number
        self.state.current_round = new_round
        self.state.answered = False
        self.state.last_guess = None
        self.state.feedback = None

        logger.info(
            f"Session {self._session_id}: started round {new_round.number} "
            f"({self.state.difficulty.label}, {len(new_round.options)} options)"
        )
        return new_round

    def submit_guess(self, guessed_country: Country) -> Optional[GuessOutcome]:
        """
        Score a guess for the live round.

        Only the first guess of a round counts; later guesses, and guesses made
        before any round exists, are ignored. A country that is not among the
        options is simply incorrect.

        Args:
            guessed_country: Country the player picked

        Returns:
            The outcome, or None if the guess was ignored

        Raises:
            RuntimeError: If automatic advancing is enabled and no event loop is running
        """
        current_round = self.state.current_round
        if current_round is None:
            logger.debug(f"Session {self._session_id}: guess ignored, no round started")
            return None

        if self.state.answered:
            logger.debug(
                f"Session {self._session_id}: guess '{guessed_country.name}' ignored, "
                f"round {current_round.number} already answered"
            )
            return None

        if self._advance_delay_ms is not None:
            # Fail before touching state if the advance cannot be scheduled
            asyncio.get_running_loop()

        self.state.answered = True
        self.state.last_guess = guessed_country.name
        self.state.rounds_played += 1

        if guessed_country.name == current_round.target.name:
            self.state.score += 1
            self.state.correct_answers += 1
            kind = OutcomeKind.CORRECT
            feedback = Feedback(message=CORRECT_MESSAGE, type="success")
        else:
            kind = OutcomeKind.INCORRECT
            feedback = Feedback(
                message=INCORRECT_MESSAGE.format(name=current_round.target.name),
                type="error"
            )
        self.state.feedback = feedback

        logger.info(
            f"Session {self._session_id}: round {current_round.number} answered "
            f"{kind.value} (guess '{guessed_country.name}', score {self.state.score})"
        )

        if self._advance_delay_ms is not None:
            self._schedule_advance(current_round.number)

        return GuessOutcome(
            kind=kind,
            guessed_name=guessed_country.name,
            correct_name=current_round.target.name,
            score=self.state.score,
            feedback=feedback
        )

    def set_difficulty(self, difficulty: Difficulty) -> Round:
        """
        Switch difficulty, forfeit the score and start a new round.

        Raises:
            ConfigurationError: If the catalog is too small for the new difficulty;
                the session is left unchanged in that case
        """
        if len(self._catalog) < difficulty.options_count:
            raise ConfigurationError(len(self._catalog), difficulty)

        previous = self.state.difficulty
        self.state.difficulty = difficulty
        self._reset_score()
        logger.info(f"Session {self._session_id}: difficulty {previous.label} -> {difficulty.label}")
        return self.start_round()

    def reset_game(self) -> Round:
        """Reset the score and start a new round at the current difficulty."""
        self._reset_score()
        logger.info(f"Session {self._session_id}: game reset")
        return self.start_round()

    def option_status(self, option: Country) -> OptionStatus:
        """
        Classify an option for display.

        Before the round is answered every option is available. Afterwards the
        target is marked correct, a wrong pick is marked as such and the rest
        are dimmed.
        """
        current_round = self.state.current_round
        if current_round is None or not self.state.answered:
            return OptionStatus.AVAILABLE

        if option.name == current_round.target.name:
            return OptionStatus.CORRECT
        if option.name == self.state.last_guess:
            return OptionStatus.WRONG_SELECTION
        return OptionStatus.DIMMED

    def get_status(self) -> dict:
        """Get a snapshot of the session for display or diagnostics."""
        current_round = self.state.current_round
        return {
            'score': self.state.score,
            'difficulty': self.state.difficulty.label,
            'options_count': self.state.difficulty.options_count,
            'round_number': current_round.number if current_round else 0,
            'answered': self.state.answered,
            'last_guess': self.state.last_guess,
            'rounds_played': self.state.rounds_played,
            'correct_answers': self.state.correct_answers,
            'pending_advance': self.has_pending_advance
        }

    def shutdown(self) -> bool:
        """Cancel any pending advance. Returns True if one was cancelled."""
        return self._cancel_pending_advance("session shutdown")

    def _reset_score(self) -> None:
        self.state.score = 0
        self.state.rounds_played = 0
        self.state.correct_answers = 0

    def _schedule_advance(self, round_number: int) -> None:
        self._cancel_pending_advance("replaced by new advance")

        timer = RoundTimer(self._session_id, round_number)
        timer.start(
            self._advance_delay_ms / 1000,
            lambda: self._auto_advance(round_number)
        )
        self._timer = timer

    def _cancel_pending_advance(self, reason: str) -> bool:
        timer = self._timer
        if timer is None:
            return False

        self._timer = None
        was_pending = timer.is_pending
        if was_pending:
            TimerLifecycleLogger.log_timer_state_transition(
                self._session_id,
                "pending",
                "cancelling",
                reason
            )
        timer.cancel()
        return was_pending

    async def _auto_advance(self, round_number: int) -> None:
        # Detach first so start_round does not cancel the task running this callback
        if self._timer is not None and self._timer.round_number == round_number:
            self._timer = None

        current_round = self.state.current_round
        if current_round is None or current_round.number != round_number:
            TimerLifecycleLogger.log_race_condition_detected(
                self._session_id,
                f"advance timer for round {round_number} fired after round "
                f"{current_round.number if current_round else None} started"
            )
            return

        new_round = self.start_round()

        if self._round_listener is not None:
            try:
                await self._round_listener(new_round)
            except Exception as e:
                logger.error(
                    f"Session {self._session_id}: round listener failed for round {new_round.number}: {e}",
                    exc_info=True
                )
