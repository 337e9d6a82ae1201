"""
Choice Randomizer

Seeded Fisher–Yates shuffle of the answer choices. The correct index is
relocated by finding the original correct text in the shuffled list, so the
result never depends on the index staying put.
"""

import random
from typing import Callable, List, Protocol

from generation.schemas import Question


class SeededSequence(Protocol):
    def randrange(self, stop: int) -> int: ...


RngFactory = Callable[[int], SeededSequence]


def seeded_rng(seed: int) -> SeededSequence:
    """Default seed -> sequence mapping. Same seed, same sequence."""
    return random.Random(seed)


def fisher_yates(items: List[str], rng: SeededSequence) -> List[str]:
    out = list(items)
    for i in range(len(out) - 1, 0, -1):
        j = rng.randrange(i + 1)
        out[i], out[j] = out[j], out[i]
    return out


def shuffle_choices(question: Question, seed: int, rng_factory: RngFactory = seeded_rng) -> Question:
    """
    Return a copy of `question` with choices reordered deterministically from `seed`.

    If two choices share the same text the first match wins.
    """
    correct_text = question.choices[question.correct_index]
    shuffled = fisher_yates(question.choices, rng_factory(seed))
    new_index = shuffled.index(correct_text)
    return question.model_copy(update={"choices": shuffled, "correct_index": new_index})
