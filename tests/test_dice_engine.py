"""Tests for Die and DicePool."""

from __future__ import annotations

import random
from collections import Counter

import pytest

from dice_engine import (
    DiceEngineError,
    DicePool,
    Die,
    InvalidConfigurationError,
    MatchingSet,
    NotRolledYetError,
)


def _rolled_pool(results: list[int], sides: int = 10, strict: bool = False) -> DicePool:
    pool = DicePool(len(results), sides, rng=random.Random(0), strict=strict)
    pool.roll_all()
    pool.last_results = list(results)
    return pool


@pytest.mark.parametrize("sides", [2, 4, 6, 10, 12, 20, 100])
def test_die_rolls_stay_in_range(sides: int) -> None:
    die = Die(sides, random.Random(sides))
    assert all(1 <= die.roll() <= sides for _ in range(2000))


def test_die_distribution_is_roughly_uniform() -> None:
    die = Die(6, random.Random(12345))
    samples = 6000
    counts = Counter(die.roll() for _ in range(samples))
    expected = samples / 6
    chi_square = sum((counts[face] - expected) ** 2 / expected for face in range(1, 7))
    # 5 degrees of freedom, p = 0.001
    assert chi_square < 20.52
    assert set(counts) == {1, 2, 3, 4, 5, 6}


def test_one_sided_die_always_rolls_one() -> None:
    die = Die(1, random.Random(3))
    assert {die.roll() for _ in range(50)} == {1}


@pytest.mark.parametrize("sides", [0, -3, "6", 2.5, True])
def test_die_rejects_bad_sides(sides) -> None:
    with pytest.raises(InvalidConfigurationError):
        Die(sides)


def test_same_seed_gives_same_sequence() -> None:
    first = DicePool(10, 20, rng=random.Random(123))
    second = DicePool(10, 20, rng=random.Random(123))
    assert first.roll_all() == second.roll_all()
    assert first.roll_all() == second.roll_all()


@pytest.mark.parametrize("dice_number, sides", [(0, 6), (-1, 6), (3, 0), (3, -2)])
def test_pool_rejects_out_of_domain_configuration(dice_number: int, sides: int) -> None:
    with pytest.raises(InvalidConfigurationError):
        DicePool(dice_number, sides)


def test_configuration_error_is_an_engine_error() -> None:
    assert issubclass(InvalidConfigurationError, DiceEngineError)
    assert issubclass(NotRolledYetError, DiceEngineError)


@pytest.mark.parametrize("dice_number, sides", [(1, 2), (5, 6), (12, 10), (40, 20)])
def test_roll_all_length_and_range(dice_number: int, sides: int) -> None:
    pool = DicePool(dice_number, sides, rng=random.Random(dice_number))
    rolls = pool.roll_all()
    assert len(rolls) == dice_number
    assert all(1 <= r <= sides for r in rolls)
    assert pool.last_results == rolls


def test_roll_all_overwrites_previous_results(scripted) -> None:
    pool = DicePool(3, 6, rng=scripted(1, 2, 3, 6, 6, 6))
    assert pool.roll_all() == [1, 2, 3]
    assert pool.roll_all() == [6, 6, 6]
    assert pool.last_results == [6, 6, 6]


def test_roll_all_returns_a_copy(scripted) -> None:
    pool = DicePool(2, 6, rng=scripted(4, 5))
    rolls = pool.roll_all()
    rolls.append(99)
    assert pool.last_results == [4, 5]


def test_sum_matches_latest_roll_and_is_idempotent() -> None:
    pool = DicePool(8, 12, rng=random.Random(8))
    rolls = pool.roll_all()
    assert pool.sum() == sum(rolls)
    assert pool.sum() == pool.sum()
    assert pool.last_results == rolls


def test_notation() -> None:
    assert DicePool(6, 10).notation == "6d10"
    assert len(DicePool(4, 6)) == 4


def test_unrolled_pool_is_neutral_by_default() -> None:
    pool = DicePool(4, 6)
    assert not pool.is_rolled
    assert pool.last_results == []
    assert pool.sum() == 0
    assert pool.count_successes(1) == 0
    assert pool.matching_sets() == []


@pytest.mark.parametrize("metric", ["sum", "count_successes", "matching_sets"])
def test_strict_pool_refuses_metrics_before_rolling(metric: str) -> None:
    pool = DicePool(4, 6, strict=True)
    args = (4,) if metric == "count_successes" else ()
    with pytest.raises(NotRolledYetError):
        getattr(pool, metric)(*args)


def test_strict_pool_works_after_rolling(scripted) -> None:
    pool = DicePool(2, 6, rng=scripted(3, 3), strict=True)
    pool.roll_all()
    assert pool.is_rolled
    assert pool.sum() == 6
    assert pool.matching_sets() == [MatchingSet(3, 2)]


def test_count_successes_with_doubles() -> None:
    pool = _rolled_pool([10, 10, 7, 3])
    assert pool.count_successes(7, {10}) == 5


def test_count_successes_without_doubles() -> None:
    pool = _rolled_pool([10, 10, 7, 3])
    assert pool.count_successes(7) == 3
    assert pool.count_successes(7, set()) == 3


def test_count_successes_double_below_threshold_scores_nothing() -> None:
    pool = _rolled_pool([2, 2, 9])
    assert pool.count_successes(7, {2, 9}) == 2


def test_count_successes_all_below_threshold_is_zero() -> None:
    pool = _rolled_pool([1, 2, 3, 6, 6])
    assert pool.count_successes(7, {10, 9}) == 0


def test_count_successes_grows_with_doubled_hits() -> None:
    previous = -1
    for doubled in range(5):
        pool = _rolled_pool([10] * doubled + [8] * (4 - doubled))
        successes = pool.count_successes(7, {10})
        assert successes >= previous
        previous = successes
    assert previous == 8


def test_matching_sets_ordering() -> None:
    pool = _rolled_pool([10, 10, 10, 5, 5, 2])
    assert pool.matching_sets() == [MatchingSet(value=10, count=3), MatchingSet(value=5, count=2)]


def test_matching_sets_ties_break_on_higher_face() -> None:
    pool = _rolled_pool([3, 8, 3, 8, 1, 1, 1, 6])
    assert pool.matching_sets() == [MatchingSet(1, 3), MatchingSet(8, 2), MatchingSet(3, 2)]


def test_matching_sets_exclude_singletons() -> None:
    pool = _rolled_pool([1, 2, 3, 4, 5])
    assert pool.matching_sets() == []


def test_matching_set_display_and_dict() -> None:
    width = MatchingSet(value=7, count=4)
    assert str(width) == "4x7"
    assert width.to_dict() == {"value": 7, "count": 4}
