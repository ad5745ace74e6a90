"""
Unit tests for the QuizEngine class and round generation.
"""
import unittest
import asyncio
from unittest.mock import AsyncMock

from flag_quiz.models import (
    Country,
    Difficulty,
    OptionStatus,
    OutcomeKind,
    QuizState,
    MAX_OPTIONS_COUNT,
)
from flag_quiz.quiz_engine import (
    ConfigurationError,
    QuizEngine,
    RandomSource,
    generate_round,
)
from tests.test_fixtures import TestFixtures, AsyncTestHelpers, async_test


class IdentityRandom(RandomSource):
    """Shuffle that keeps the input order."""

    def shuffle(self, items):
        return list(items)


class ReversingRandom(RandomSource):
    """Shuffle that reverses the input order."""

    def shuffle(self, items):
        return list(reversed(list(items)))


def pick_distractor(quiz_round):
    return next(option for option in quiz_round.options if option != quiz_round.target)


class TestRandomSource(unittest.TestCase):
    """Test cases for the seedable shuffle."""

    def test_shuffle_is_permutation_for_all_sizes(self):
        """Test shuffling keeps exactly the same elements, including sizes 0 and 1."""
        random_source = RandomSource(7)
        for size in (0, 1, 2, 5, 50):
            items = list(range(size))
            shuffled = random_source.shuffle(items)
            self.assertEqual(sorted(shuffled), items)

    def test_shuffle_keeps_duplicates(self):
        """Test shuffling preserves the multiset of elements."""
        items = ["a", "a", "b", "c", "c", "c"]
        shuffled = RandomSource(3).shuffle(items)
        self.assertEqual(sorted(shuffled), sorted(items))

    def test_shuffle_preserves_original(self):
        """Test that shuffling doesn't modify the input."""
        items = list(range(10))
        RandomSource(1).shuffle(items)
        self.assertEqual(items, list(range(10)))

    def test_same_seed_same_order(self):
        """Test seeding makes shuffles reproducible."""
        items = list(range(20))
        self.assertEqual(RandomSource(99).shuffle(items), RandomSource(99).shuffle(items))

    def test_reseed(self):
        """Test reseeding restarts the sequence."""
        items = list(range(20))
        random_source = RandomSource(5)
        first = random_source.shuffle(items)
        random_source.seed(5)
        self.assertEqual(random_source.shuffle(items), first)

    def test_shuffle_produces_varied_orderings(self):
        """Test that shuffling is not a fixed permutation."""
        random_source = RandomSource(11)
        orderings = {tuple(random_source.shuffle(range(6))) for _ in range(20)}
        self.assertGreater(len(orderings), 1)


class TestGenerateRound(unittest.TestCase):
    """Test cases for round generation."""

    def setUp(self):
        self.catalog = TestFixtures.create_sample_countries(7)

    def test_options_match_difficulty_for_all_difficulties(self):
        """Test option count, single target and unique names for every difficulty."""
        random_source = RandomSource(42)
        for difficulty in Difficulty:
            for _ in range(25):
                quiz_round = generate_round(self.catalog, difficulty, random_source)
                names = [option.name for option in quiz_round.options]

                self.assertEqual(len(quiz_round.options), difficulty.options_count)
                self.assertEqual(names.count(quiz_round.target.name), 1)
                self.assertEqual(len(set(names)), len(names))
                for option in quiz_round.options:
                    self.assertIn(option, self.catalog)

    def test_target_is_last_of_shuffled_catalog(self):
        """Test target and distractors come from the shuffled catalog."""
        quiz_round = generate_round(self.catalog, Difficulty.EASY, IdentityRandom())

        self.assertEqual(quiz_round.target, self.catalog[-1])
        self.assertEqual(quiz_round.options, (self.catalog[-1], self.catalog[0], self.catalog[1]))

    def test_distractors_taken_from_front_of_remainder(self):
        """Test distractors are a prefix of the shuffled remainder."""
        quiz_round = generate_round(self.catalog, Difficulty.EASY, ReversingRandom())

        # Catalog reversed: G F E D C B A -> target A, distractors G F
        self.assertEqual(quiz_round.target, self.catalog[0])
        self.assertEqual(
            quiz_round.options,
            (self.catalog[5], self.catalog[6], self.catalog[0])
        )

    def test_hard_uses_whole_seven_country_catalog(self):
        """Test hard difficulty with exactly seven countries uses all of them."""
        quiz_round = generate_round(self.catalog, Difficulty.HARD, RandomSource(1))
        self.assertEqual(set(quiz_round.options), set(self.catalog))

    def test_catalog_too_small_raises_configuration_error(self):
        """Test hard difficulty with five countries fails."""
        small_catalog = TestFixtures.create_sample_countries(5)

        with self.assertRaises(ConfigurationError) as context:
            generate_round(small_catalog, Difficulty.HARD, RandomSource(1))

        self.assertEqual(context.exception.catalog_size, 5)
        self.assertIs(context.exception.difficulty, Difficulty.HARD)
        self.assertIn("at least 7", str(context.exception))

    def test_empty_catalog_raises_configuration_error(self):
        with self.assertRaises(ConfigurationError):
            generate_round([], Difficulty.EASY, RandomSource(1))

    def test_catalog_not_modified(self):
        """Test generation leaves the catalog untouched."""
        original = list(self.catalog)
        generate_round(self.catalog, Difficulty.MEDIUM, RandomSource(2))
        self.assertEqual(self.catalog, original)

    def test_target_position_varies(self):
        """Test the target is not always at the same option position."""
        random_source = RandomSource(2024)
        positions = set()
        for _ in range(50):
            quiz_round = generate_round(self.catalog, Difficulty.MEDIUM, random_source)
            positions.add(quiz_round.options.index(quiz_round.target))
        self.assertGreater(len(positions), 1)

    def test_every_country_can_be_target(self):
        """Test targets are drawn from the whole catalog."""
        random_source = RandomSource(8)
        targets = {
            generate_round(self.catalog, Difficulty.EASY, random_source).target
            for _ in range(300)
        }
        self.assertEqual(targets, set(self.catalog))


class TestQuizEngine(unittest.TestCase):
    """Test cases for QuizEngine rounds, guesses and scoring."""

    def setUp(self):
        # No automatic advance so guesses can be tested without an event loop
        self.engine = TestFixtures.create_engine(advance_delay_ms=None)

    def test_initial_state(self):
        """Test the engine starts without a round."""
        self.assertIsNone(self.engine.current_round)
        self.assertEqual(self.engine.score, 0)
        self.assertFalse(self.engine.answered)
        self.assertIsNone(self.engine.last_guess)
        self.assertIs(self.engine.difficulty, Difficulty.EASY)

    def test_uses_provided_state(self):
        """Test the engine operates on the state object it was given."""
        state = QuizState(difficulty=Difficulty.MEDIUM, score=3)
        engine = QuizEngine(TestFixtures.create_sample_countries(), state=state, advance_delay_ms=None)

        engine.start_round()

        self.assertIs(engine.state, state)
        self.assertEqual(len(state.current_round.options), 5)
        self.assertEqual(state.score, 3)

    def test_start_round(self):
        """Test a new round is live and unanswered."""
        quiz_round = self.engine.start_round()

        self.assertIs(self.engine.current_round, quiz_round)
        self.assertEqual(len(quiz_round.options), 3)
        self.assertIn(quiz_round.target, quiz_round.options)
        self.assertFalse(self.engine.answered)
        self.assertEqual(self.engine.score, 0)

    def test_round_numbers_increase(self):
        first = self.engine.start_round()
        second = self.engine.start_round()
        self.assertEqual(first.number, 1)
        self.assertEqual(second.number, 2)

    def test_guess_before_round_is_ignored(self):
        result = self.engine.submit_guess(Country("Country A", "flag-a"))
        self.assertIsNone(result)
        self.assertFalse(self.engine.answered)
        self.assertEqual(self.engine.score, 0)

    def test_correct_guess(self):
        """Test guessing the target scores a point."""
        quiz_round = self.engine.start_round()

        outcome = self.engine.submit_guess(quiz_round.target)

        self.assertIs(outcome.kind, OutcomeKind.CORRECT)
        self.assertTrue(outcome.is_correct)
        self.assertEqual(outcome.score, 1)
        self.assertEqual(self.engine.score, 1)
        self.assertTrue(self.engine.answered)
        self.assertEqual(self.engine.last_guess, quiz_round.target.name)
        self.assertEqual(self.engine.feedback.message, "Correct! +1 point")
        self.assertEqual(self.engine.feedback.type, "success")

    def test_incorrect_guess(self):
        """Test guessing a distractor leaves the score unchanged."""
        quiz_round = self.engine.start_round()
        distractor = pick_distractor(quiz_round)

        outcome = self.engine.submit_guess(distractor)

        self.assertIs(outcome.kind, OutcomeKind.INCORRECT)
        self.assertFalse(outcome.is_correct)
        self.assertEqual(outcome.correct_name, quiz_round.target.name)
        self.assertEqual(outcome.guessed_name, distractor.name)
        self.assertEqual(self.engine.score, 0)
        self.assertEqual(self.engine.last_guess, distractor.name)
        self.assertEqual(
            self.engine.feedback.message,
            f"Wrong! The correct answer was {quiz_round.target.name}."
        )
        self.assertEqual(self.engine.feedback.type, "error")

    def test_only_target_is_correct(self):
        """Test each option in turn against a fresh session on the same round."""
        quiz_round = self.engine.start_round()
        for option in quiz_round.options:
            engine = QuizEngine(self.engine.catalog, advance_delay_ms=None)
            engine.state.current_round = quiz_round
            outcome = engine.submit_guess(option)
            self.assertEqual(outcome.is_correct, option == quiz_round.target)
            self.assertEqual(engine.score, 1 if option == quiz_round.target else 0)

    def test_second_guess_is_ignored(self):
        """Test only the first guess of a round counts."""
        quiz_round = self.engine.start_round()
        self.engine.submit_guess(quiz_round.target)

        result = self.engine.submit_guess(pick_distractor(quiz_round))

        self.assertIsNone(result)
        self.assertEqual(self.engine.score, 1)
        self.assertEqual(self.engine.last_guess, quiz_round.target.name)

    def test_second_correct_guess_does_not_score_twice(self):
        quiz_round = self.engine.start_round()
        self.engine.submit_guess(quiz_round.target)
        self.engine.submit_guess(quiz_round.target)
        self.assertEqual(self.engine.score, 1)

    def test_guess_not_among_options_is_incorrect(self):
        """Test a country outside the options is treated as a wrong answer."""
        self.engine.start_round()

        outcome = self.engine.submit_guess(Country("Atlantis", "🏳️"))

        self.assertIs(outcome.kind, OutcomeKind.INCORRECT)
        self.assertEqual(self.engine.score, 0)
        self.assertTrue(self.engine.answered)
        self.assertEqual(self.engine.last_guess, "Atlantis")

    def test_guess_compares_names_only(self):
        """Test correctness is decided by name, not by flag."""
        quiz_round = self.engine.start_round()
        outcome = self.engine.submit_guess(Country(quiz_round.target.name, "other-flag"))
        self.assertTrue(outcome.is_correct)

    def test_new_round_clears_answer(self):
        """Test starting a round resets the answered state."""
        quiz_round = self.engine.start_round()
        self.engine.submit_guess(quiz_round.target)

        self.engine.start_round()

        self.assertFalse(self.engine.answered)
        self.assertIsNone(self.engine.last_guess)
        self.assertIsNone(self.engine.feedback)
        self.assertEqual(self.engine.score, 1)

    def test_score_accumulates_across_rounds(self):
        for _ in range(4):
            quiz_round = self.engine.start_round()
            self.engine.submit_guess(quiz_round.target)
        quiz_round = self.engine.start_round()
        self.engine.submit_guess(pick_distractor(quiz_round))

        self.assertEqual(self.engine.score, 4)
        self.assertEqual(self.engine.state.rounds_played, 5)
        self.assertEqual(self.engine.state.correct_answers, 4)

    def test_set_difficulty_resets_score_and_starts_round(self):
        """Test switching to medium with score 4 gives score 0 and five options."""
        self.engine.start_round()
        self.engine.state.score = 4

        new_round = self.engine.set_difficulty(Difficulty.MEDIUM)

        self.assertEqual(self.engine.score, 0)
        self.assertIs(self.engine.difficulty, Difficulty.MEDIUM)
        self.assertIs(self.engine.current_round, new_round)
        self.assertEqual(len(new_round.options), 5)
        self.assertFalse(self.engine.answered)

    def test_set_difficulty_after_answer_starts_unanswered_round(self):
        quiz_round = self.engine.start_round()
        self.engine.submit_guess(quiz_round.target)

        self.engine.set_difficulty(Difficulty.HARD)

        self.assertFalse(self.engine.answered)
        self.assertEqual(len(self.engine.current_round.options), 7)

    def test_set_difficulty_too_large_for_catalog(self):
        """Test a failed difficulty change leaves the session unchanged."""
        engine = TestFixtures.create_engine(count=5, advance_delay_ms=None)
        quiz_round = engine.start_round()
        engine.submit_guess(quiz_round.target)

        with self.assertRaises(ConfigurationError):
            engine.set_difficulty(Difficulty.HARD)

        self.assertIs(engine.difficulty, Difficulty.EASY)
        self.assertEqual(engine.score, 1)
        self.assertIs(engine.current_round, quiz_round)

    def test_start_round_too_small_catalog(self):
        """Test hard difficulty over five countries fails at round start."""
        engine = QuizEngine(
            TestFixtures.create_sample_countries(5),
            state=QuizState(difficulty=Difficulty.HARD),
            advance_delay_ms=None
        )

        with self.assertRaises(ConfigurationError):
            engine.start_round()

        self.assertIsNone(engine.current_round)

    def test_reset_game(self):
        """Test reset keeps difficulty and zeroes the score."""
        self.engine.set_difficulty(Difficulty.MEDIUM)
        quiz_round = self.engine.current_round
        self.engine.submit_guess(quiz_round.target)

        new_round = self.engine.reset_game()

        self.assertEqual(self.engine.score, 0)
        self.assertIs(self.engine.difficulty, Difficulty.MEDIUM)
        self.assertEqual(len(new_round.options), 5)
        self.assertFalse(self.engine.answered)
        self.assertEqual(new_round.number, quiz_round.number + 1)

    def test_option_status_before_answer(self):
        quiz_round = self.engine.start_round()
        for option in quiz_round.options:
            self.assertIs(self.engine.option_status(option), OptionStatus.AVAILABLE)

    def test_option_status_after_wrong_answer(self):
        """Test option classification after a wrong guess."""
        self.engine.set_difficulty(Difficulty.MEDIUM)
        quiz_round = self.engine.current_round
        distractor = pick_distractor(quiz_round)
        self.engine.submit_guess(distractor)

        for option in quiz_round.options:
            status = self.engine.option_status(option)
            if option == quiz_round.target:
                self.assertIs(status, OptionStatus.CORRECT)
            elif option == distractor:
                self.assertIs(status, OptionStatus.WRONG_SELECTION)
            else:
                self.assertIs(status, OptionStatus.DIMMED)

    def test_option_status_after_correct_answer(self):
        quiz_round = self.engine.start_round()
        self.engine.submit_guess(quiz_round.target)

        statuses = [self.engine.option_status(option) for option in quiz_round.options]

        self.assertEqual(statuses.count(OptionStatus.CORRECT), 1)
        self.assertEqual(statuses.count(OptionStatus.DIMMED), 2)
        self.assertNotIn(OptionStatus.WRONG_SELECTION, statuses)

    def test_get_status(self):
        quiz_round = self.engine.start_round()
        self.engine.submit_guess(quiz_round.target)

        status = self.engine.get_status()

        self.assertEqual(status['score'], 1)
        self.assertEqual(status['difficulty'], "Easy")
        self.assertEqual(status['options_count'], 3)
        self.assertEqual(status['round_number'], 1)
        self.assertTrue(status['answered'])
        self.assertFalse(status['pending_advance'])

    def test_guess_without_event_loop_fails_before_state_change(self):
        """Test auto-advancing engines need a running event loop."""
        engine = TestFixtures.create_engine()
        quiz_round = engine.start_round()

        with self.assertRaises(RuntimeError):
            engine.submit_guess(quiz_round.target)

        self.assertFalse(engine.answered)
        self.assertEqual(engine.score, 0)


class TestEasyScenario(unittest.TestCase):
    """Seven countries on easy with seeded randomness."""

    @async_test
    async def test_easy_round_scenario(self):
        engine = TestFixtures.create_engine(count=7, seed=1234)

        quiz_round = engine.start_round()
        self.assertEqual(len(quiz_round.options), 3)
        self.assertIn(quiz_round.target, quiz_round.options)
        self.assertEqual(engine.score, 0)

        outcome = engine.submit_guess(quiz_round.target)
        self.assertIs(outcome.kind, OutcomeKind.CORRECT)
        self.assertEqual(engine.score, 1)

        self.assertIsNone(engine.submit_guess(pick_distractor(quiz_round)))
        self.assertEqual(engine.score, 1)
        self.assertEqual(engine.last_guess, quiz_round.target.name)

        engine.shutdown()
        await asyncio.sleep(0)

    def test_largest_difficulty_fits_default_catalog_size(self):
        self.assertEqual(MAX_OPTIONS_COUNT, 7)


class TestQuizEngineAutoAdvance(unittest.TestCase):
    """Test cases for the timed advance to the next round."""

    @async_test
    async def test_guess_schedules_advance(self):
        """Test a new round starts by itself after the delay."""
        listener = AsyncMock()
        engine = TestFixtures.create_engine(advance_delay_ms=20, round_listener=listener)
        first = engine.start_round()

        engine.submit_guess(first.target)
        self.assertTrue(engine.has_pending_advance)
        self.assertIs(engine.current_round, first)

        advanced = await AsyncTestHelpers.wait_for(lambda: engine.current_round is not first)

        self.assertTrue(advanced)
        self.assertEqual(engine.current_round.number, first.number + 1)
        self.assertFalse(engine.answered)
        self.assertEqual(engine.score, 1)
        self.assertFalse(engine.has_pending_advance)
        await AsyncTestHelpers.wait_for(lambda: listener.await_count == 1)
        listener.assert_awaited_once_with(engine.current_round)

    @async_test
    async def test_ignored_guess_does_not_schedule_again(self):
        engine = TestFixtures.create_engine(advance_delay_ms=20)
        first = engine.start_round()
        engine.submit_guess(first.target)
        engine.submit_guess(first.target)

        await asyncio.sleep(0.1)

        self.assertEqual(engine.current_round.number, 2)
        engine.shutdown()

    @async_test
    async def test_reset_cancels_pending_advance(self):
        """Test a reset before the delay supersedes the timer."""
        listener = AsyncMock()
        engine = TestFixtures.create_engine(advance_delay_ms=30, round_listener=listener)
        first = engine.start_round()
        engine.submit_guess(first.target)

        reset_round = engine.reset_game()
        self.assertFalse(engine.has_pending_advance)

        await asyncio.sleep(0.1)

        self.assertIs(engine.current_round, reset_round)
        self.assertEqual(reset_round.number, 2)
        self.assertEqual(engine.score, 0)
        listener.assert_not_awaited()

    @async_test
    async def test_set_difficulty_cancels_pending_advance(self):
        engine = TestFixtures.create_engine(advance_delay_ms=30)
        first = engine.start_round()
        engine.submit_guess(pick_distractor(first))

        new_round = engine.set_difficulty(Difficulty.HARD)
        await asyncio.sleep(0.1)

        self.assertIs(engine.current_round, new_round)
        self.assertFalse(engine.answered)

    @async_test
    async def test_manual_round_start_cancels_pending_advance(self):
        engine = TestFixtures.create_engine(advance_delay_ms=30)
        first = engine.start_round()
        engine.submit_guess(first.target)

        manual_round = engine.start_round()
        await asyncio.sleep(0.1)

        self.assertIs(engine.current_round, manual_round)

    @async_test
    async def test_shutdown_cancels_pending_advance(self):
        engine = TestFixtures.create_engine(advance_delay_ms=30)
        first = engine.start_round()
        engine.submit_guess(first.target)

        self.assertTrue(engine.shutdown())
        await asyncio.sleep(0.1)

        self.assertIs(engine.current_round, first)
        self.assertTrue(engine.answered)
        self.assertFalse(engine.shutdown())

    @async_test
    async def test_stale_advance_is_ignored(self):
        """Test a timer for an old round never touches a newer round."""
        engine = TestFixtures.create_engine(advance_delay_ms=None)
        engine.start_round()
        current = engine.start_round()

        with self.assertLogs('flag_quiz.quiz_engine', level='WARNING') as logs:
            await engine._auto_advance(1)

        self.assertIs(engine.current_round, current)
        self.assertTrue(any("RACE_CONDITION" in line for line in logs.output))

    @async_test
    async def test_listener_error_is_logged(self):
        """Test a failing listener does not undo the advance."""
        listener = AsyncMock(side_effect=ValueError("render failed"))
        engine = TestFixtures.create_engine(advance_delay_ms=10, round_listener=listener)
        first = engine.start_round()

        with self.assertLogs('flag_quiz.quiz_engine', level='ERROR') as logs:
            engine.submit_guess(first.target)
            await AsyncTestHelpers.wait_for(lambda: listener.await_count == 1)
            await asyncio.sleep(0.01)

        self.assertEqual(engine.current_round.number, 2)
        self.assertTrue(any("round listener failed" in line for line in logs.output))

    @async_test
    async def test_consecutive_rounds_auto_advance(self):
        """Test the advance repeats round after round."""
        engine = TestFixtures.create_engine(advance_delay_ms=10)
        engine.start_round()

        for expected_number in (2, 3, 4):
            engine.submit_guess(engine.current_round.target)
            await AsyncTestHelpers.wait_for(lambda: engine.current_round.number == expected_number)
            self.assertEqual(engine.current_round.number, expected_number)

        self.assertEqual(engine.score, 3)


if __name__ == '__main__':
    unittest.main()
