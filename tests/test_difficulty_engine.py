"""Tests for the adaptive difficulty ladder."""

import pytest

from quiz_engine.models.quiz import Difficulty
from quiz_engine.services.difficulty_engine import DIFFICULTY_LADDER, difficulty_rank, next_difficulty


class TestNextDifficulty:

    def test_correct_steps_up(self):
        assert next_difficulty(True, Difficulty.EASY) == Difficulty.MEDIUM
        assert next_difficulty(True, Difficulty.MEDIUM) == Difficulty.HARD

    def test_incorrect_steps_down(self):
        assert next_difficulty(False, Difficulty.HARD) == Difficulty.MEDIUM
        assert next_difficulty(False, Difficulty.MEDIUM) == Difficulty.EASY

    def test_saturates_at_extremes(self):
        assert next_difficulty(True, Difficulty.HARD) == Difficulty.HARD
        assert next_difficulty(False, Difficulty.EASY) == Difficulty.EASY

    @pytest.mark.parametrize("current", list(Difficulty))
    def test_correct_never_gets_easier(self, current):
        assert difficulty_rank(next_difficulty(True, current)) >= difficulty_rank(current)

    @pytest.mark.parametrize("current", list(Difficulty))
    def test_incorrect_never_gets_harder(self, current):
        assert difficulty_rank(next_difficulty(False, current)) <= difficulty_rank(current)

    @pytest.mark.parametrize("current", list(Difficulty))
    def test_moves_at_most_one_level(self, current):
        for was_correct in (True, False):
            step = difficulty_rank(next_difficulty(was_correct, current)) - difficulty_rank(current)
            assert abs(step) <= 1

    def test_accepts_plain_strings(self):
        assert next_difficulty(True, "easy") == Difficulty.MEDIUM

    def test_only_last_answer_matters(self):
        """Same input, same output, whatever came before."""
        level = Difficulty.EASY
        for was_correct in (True, True, True, False):
            level = next_difficulty(was_correct, level)
        assert level == next_difficulty(False, Difficulty.HARD)

    def test_ladder_order(self):
        assert DIFFICULTY_LADDER == (Difficulty.EASY, Difficulty.MEDIUM, Difficulty.HARD)
