"""Adaptive difficulty ladder.

The next question's difficulty depends only on whether the most recent answer
was correct:

    correct    → one level harder (stays at "hard")
    incorrect  → one level easier (stays at "easy")

There is no smoothing over earlier answers. The transition table below is
exhaustive over (was_correct, current) so no index arithmetic can step off
the ladder.
"""

from quiz_engine.models.quiz import Difficulty

DIFFICULTY_LADDER = (Difficulty.EASY, Difficulty.MEDIUM, Difficulty.HARD)

_TRANSITIONS = {
    (True, Difficulty.EASY): Difficulty.MEDIUM,
    (True, Difficulty.MEDIUM): Difficulty.HARD,
    (True, Difficulty.HARD): Difficulty.HARD,
    (False, Difficulty.EASY): Difficulty.EASY,
    (False, Difficulty.MEDIUM): Difficulty.EASY,
    (False, Difficulty.HARD): Difficulty.MEDIUM,
}


def next_difficulty(was_correct: bool, current: Difficulty) -> Difficulty:
    """Return the difficulty of the next question."""
    return _TRANSITIONS[(bool(was_correct), Difficulty(current))]


def difficulty_rank(difficulty: Difficulty) -> int:
    return DIFFICULTY_LADDER.index(Difficulty(difficulty))
