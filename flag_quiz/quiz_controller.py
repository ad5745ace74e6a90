"""
Game session controller for the Flag Quiz Bot.
Keeps one independent single-player game per player and channel.
"""
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from .models import Country, Difficulty, PlayerSession, QuizState, Round
from .quiz_engine import ConfigurationError, QuizEngine, RandomSource
from .data_manager import DataManager
from .config_manager import ConfigManager


SessionKey = Tuple[int, int]
RoundPresenter = Callable[[PlayerSession, Round], Awaitable[None]]


class QuizControllerError(Exception):
    """Base exception for quiz controller errors."""
    pass


class SessionConflictError(QuizControllerError):
    """Raised when a player already has a game running in the channel."""
    pass


class SessionNotFoundError(QuizControllerError):
    """Raised when operating on a game that does not exist."""
    pass


class QuizController:
    """
    Orchestrates game sessions across Discord channels.

    A session belongs to one player in one channel and owns its own
    QuizEngine, so games never share score or rounds. Sessions live in
    memory only and are dropped when stopped or when the bot shuts down.
    """

    def __init__(
        self,
        data_manager: DataManager,
        config_manager: ConfigManager,
        random_source_factory: Callable[[], RandomSource] = RandomSource,
        round_presenter: Optional[RoundPresenter] = None
    ):
        """
        Initialize the quiz controller.

        Args:
            data_manager: Source of the country catalog
            config_manager: Source of default settings for new games
            random_source_factory: Creates the randomness for each new engine
            round_presenter: Awaited when a game advances to a new round on its own
        """
        self.logger = logging.getLogger(__name__)
        self.data_manager = data_manager
        self.config_manager = config_manager
        self._random_source_factory = random_source_factory
        self._round_presenter = round_presenter

        self._active_sessions: Dict[SessionKey, PlayerSession] = {}

        self.logger.info("QuizController initialized")

    def set_round_presenter(self, round_presenter: Optional[RoundPresenter]) -> None:
        self._round_presenter = round_presenter

    def get_session(self, channel_id: int, user_id: int) -> Optional[PlayerSession]:
        return self._active_sessions.get((channel_id, user_id))

    def has_active_session(self, channel_id: int, user_id: int) -> bool:
        return (channel_id, user_id) in self._active_sessions

    def get_active_session_count(self) -> int:
        return len(self._active_sessions)

    def create_session(
        self,
        channel_id: int,
        user_id: int,
        difficulty: Optional[Difficulty] = None,
        channel: Optional[object] = None
    ) -> PlayerSession:
        """
        Create a game session and deal its first round.

        Args:
            channel_id: Discord channel identifier
            user_id: Discord user identifier of the player
            difficulty: Starting difficulty, the configured default if None
            channel: Channel object new rounds are posted to

        Returns:
            The new session

        Raises:
            SessionConflictError: If the player already has a game in the channel
            ConfigurationError: If the catalog is too small for the difficulty
        """
        key = (channel_id, user_id)
        if key in self._active_sessions:
            raise SessionConflictError(f"Session already exists for {channel_id}:{user_id}")

        settings = self.config_manager.get_quiz_settings()
        engine = QuizEngine(
            self.data_manager.get_catalog(),
            state=QuizState(difficulty=difficulty or settings.default_difficulty),
            random_source=self._random_source_factory(),
            advance_delay_ms=settings.advance_delay_ms,
            round_listener=lambda new_round: self._on_round_advanced(key, new_round),
            session_id=f"{channel_id}:{user_id}"
        )
        # Raises before the session is registered
        engine.start_round()

        session = PlayerSession(
            channel_id=channel_id,
            user_id=user_id,
            engine=engine,
            channel=channel
        )
        self._active_sessions[key] = session

        self.logger.info(
            f"Created game session for channel {channel_id}, user {user_id}: "
            f"difficulty={engine.difficulty.label}",
            extra={
                'event_type': 'session_created',
                'channel_id': channel_id,
                'user_id': user_id,
                'timestamp': time.time()
            }
        )
        return session

    def _require_session(self, channel_id: int, user_id: int) -> PlayerSession:
        session = self._active_sessions.get((channel_id, user_id))
        if session is None:
            raise SessionNotFoundError(f"No session for {channel_id}:{user_id}")
        return session

    def start_game(
        self,
        channel_id: int,
        user_id: int,
        difficulty: Optional[Difficulty] = None,
        channel: Optional[object] = None
    ) -> Dict[str, Any]:
        """
        Start a new game for a player.

        Returns:
            Dictionary with operation result, the first round and session info
        """
        try:
            session = self.create_session(channel_id, user_id, difficulty, channel)
        except (QuizControllerError, ConfigurationError) as e:
            return self._handle_session_error(channel_id, user_id, e, "start_game")

        return {
            'success': True,
            'message': f"Started game on {session.engine.difficulty.label}",
            'round': session.engine.current_round,
            'session_info': self.get_session_progress(channel_id, user_id)
        }

    def submit_guess(self, channel_id: int, user_id: int, country_name: str) -> Dict[str, Any]:
        """
        Submit a player's guess by country name.

        Names that are not among the live round's options count as incorrect
        guesses.

        Returns:
            Dictionary with operation result; 'outcome' is None when the guess
            was ignored because the round was already answered
        """
        try:
            session = self._require_session(channel_id, user_id)
        except SessionNotFoundError as e:
            return self._handle_session_error(channel_id, user_id, e, "submit_guess")

        engine = session.engine
        current_round = engine.current_round
        guessed = current_round.find_option(country_name) if current_round else None
        if guessed is None:
            guessed = Country(name=country_name, flag="")

        outcome = engine.submit_guess(guessed)
        if outcome is None:
            return {
                'success': True,
                'ignored': True,
                'outcome': None,
                'message': "Round already answered",
                'session_info': self.get_session_progress(channel_id, user_id)
            }

        return {
            'success': True,
            'ignored': False,
            'outcome': outcome,
            'message': outcome.feedback.message,
            'session_info': self.get_session_progress(channel_id, user_id)
        }

    def set_difficulty(self, channel_id: int, user_id: int, difficulty: Difficulty) -> Dict[str, Any]:
        """
        Change a player's difficulty. The score is forfeited and a new round dealt.

        Returns:
            Dictionary with operation result and the new round
        """
        try:
            session = self._require_session(channel_id, user_id)
            new_round = session.engine.set_difficulty(difficulty)
        except (QuizControllerError, ConfigurationError) as e:
            return self._handle_session_error(channel_id, user_id, e, "set_difficulty")

        return {
            'success': True,
            'message': f"Difficulty set to {difficulty.label}, score reset",
            'round': new_round,
            'session_info': self.get_session_progress(channel_id, user_id)
        }

    def reset_game(self, channel_id: int, user_id: int) -> Dict[str, Any]:
        """
        Reset a player's score and deal a new round.

        Returns:
            Dictionary with operation result and the new round
        """
        try:
            session = self._require_session(channel_id, user_id)
            new_round = session.engine.reset_game()
        except (QuizControllerError, ConfigurationError) as e:
            return self._handle_session_error(channel_id, user_id, e, "reset_game")

        return {
            'success': True,
            'message': "Game reset",
            'round': new_round,
            'session_info': self.get_session_progress(channel_id, user_id)
        }

    def stop_game(self, channel_id: int, user_id: int) -> Dict[str, Any]:
        """
        Stop a player's game and drop its state.

        Returns:
            Dictionary with operation result and final session info
        """
        session_info = self.get_session_progress(channel_id, user_id)
        session = self._active_sessions.pop((channel_id, user_id), None)
        if session is None:
            return self._handle_session_error(
                channel_id,
                user_id,
                SessionNotFoundError(f"No session for {channel_id}:{user_id}"),
                "stop_game"
            )

        timer_cancelled = session.engine.shutdown()
        self.logger.info(
            f"Stopped game session for channel {channel_id}, user {user_id}, timer cancelled: {timer_cancelled}",
            extra={
                'event_type': 'session_stopped',
                'channel_id': channel_id,
                'user_id': user_id,
                'timer_cancelled': timer_cancelled,
                'timestamp': time.time()
            }
        )
        return {
            'success': True,
            'message': "Game stopped",
            'session_info': session_info
        }

    def get_session_progress(self, channel_id: int, user_id: int) -> Optional[Dict[str, Any]]:
        """
        Get progress information for a game.

        Returns:
            Dictionary with progress info, None if no active session
        """
        session = self._active_sessions.get((channel_id, user_id))
        if session is None:
            return None

        progress = session.engine.get_status()
        progress['start_time'] = session.start_time
        return progress

    def shutdown(self) -> int:
        """
        Stop every session.

        Returns:
            Number of sessions stopped
        """
        keys = list(self._active_sessions)
        for channel_id, user_id in keys:
            self.stop_game(channel_id, user_id)
        if keys:
            self.logger.info(f"Stopped {len(keys)} game sessions on shutdown")
        return len(keys)

    async def _on_round_advanced(self, key: SessionKey, new_round: Round) -> None:
        session = self._active_sessions.get(key)
        if session is None:
            self.logger.debug(f"Round {new_round.number} advanced for stopped session {key}")
            return

        if self._round_presenter is not None:
            await self._round_presenter(session, new_round)

    def _handle_session_error(
        self,
        channel_id: int,
        user_id: int,
        error: Exception,
        operation: str
    ) -> Dict[str, Any]:
        """
        Log a failed operation and build the error result.

        Args:
            channel_id: Discord channel identifier
            user_id: Discord user identifier
            error: The exception that occurred
            operation: Description of the operation that failed

        Returns:
            Dictionary with error handling results
        """
        if isinstance(error, ConfigurationError):
            self.logger.error(f"Error in {operation} for channel {channel_id}, user {user_id}: {error}")
        else:
            self.logger.warning(f"Rejected {operation} for channel {channel_id}, user {user_id}: {error}")

        return {
            'success': False,
            'error': str(error),
            'operation': operation,
            'message': str(error),
            'user_message': self._get_user_friendly_error_message(error, operation)
        }

    def _get_user_friendly_error_message(self, error: Exception, operation: str) -> str:
        if isinstance(error, SessionConflictError):
            return "❌ You already have a game running here. Use `/reset` to start over or `/stop` to end it."

        elif isinstance(error, SessionNotFoundError):
            return "❌ You have no game running in this channel. Start one with `/play`."

        elif isinstance(error, ConfigurationError):
            return (
                f"❌ The country list is too small for {error.difficulty.label} "
                f"({error.catalog_size} countries, {error.difficulty.options_count} needed)."
            )

        else:
            return f"❌ An unexpected error occurred during {operation}. Please try again."
