from __future__ import annotations

from generation.fallback_bank import BANK
from generation.randomizer import fisher_yates, shuffle_choices
from generation.schemas import Question
from generation.validator import validate


def _question(**overrides) -> Question:
    data = dict(
        question="Which river flows through Cairo?",
        choices=["Tigris", "Danube", "Nile", "Euphrates"],
        correct_index=2,
        answer_text="Nile",
    )
    data.update(overrides)
    return Question(**data)


class AlwaysZero:
    def randrange(self, stop: int) -> int:
        return 0


def test_same_seed_same_permutation():
    q = _question()
    first = shuffle_choices(q, 42)
    second = shuffle_choices(q, 42)
    assert first.choices == second.choices
    assert first.correct_index == second.correct_index


def test_correct_text_follows_the_shuffle():
    q = _question()
    for seed in range(50):
        shuffled = shuffle_choices(q, seed)
        assert sorted(shuffled.choices) == sorted(q.choices)
        assert shuffled.choices[shuffled.correct_index] == "Nile"


def test_different_seeds_produce_different_orders():
    q = _question()
    orders = {tuple(shuffle_choices(q, seed).choices) for seed in range(30)}
    assert len(orders) > 1


def test_input_question_is_not_mutated():
    q = _question()
    shuffle_choices(q, 7)
    assert q.choices == ["Tigris", "Danube", "Nile", "Euphrates"]
    assert q.correct_index == 2


def test_rng_is_swappable():
    q = _question(choices=["a", "b", "c", "d"], correct_index=0, answer_text="a")
    shuffled = shuffle_choices(q, 0, rng_factory=lambda seed: AlwaysZero())
    assert shuffled.choices == ["b", "c", "d", "a"]
    assert shuffled.correct_index == 3


def test_fisher_yates_keeps_every_item():
    items = ["w", "x", "y", "z"]
    assert sorted(fisher_yates(items, AlwaysZero())) == items


def test_identical_choice_texts_do_not_crash():
    q = _question(choices=["Nile", "Nile", "Danube", "Tigris"], correct_index=1, answer_text=None)
    shuffled = shuffle_choices(q, 3)
    assert shuffled.choices[shuffled.correct_index] == "Nile"


def test_shuffling_preserves_validity():
    for key, questions in BANK.items():
        category = key.split(":")[0]
        for q in questions:
            for seed in (0, 1, 99, 123456):
                assert validate(shuffle_choices(q, seed), category) is None
