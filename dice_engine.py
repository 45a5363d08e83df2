"""
Polyroll DiceEngine v1.1.0
==========================

Dice primitives shared by every rule system in Polyroll.

Changelog v1.1.0:
- Injected random source for Die and DicePool (seedable, per-instance)
- Optional strict mode: derived metrics on an un-rolled pool raise NotRolledYetError
- matching_sets() returns MatchingSet records instead of raw dicts

This module provides:
- Die: a single die rolling uniformly over [1, sides]
- DicePool: a homogeneous group of dice rolled together as one unit
- Pool metrics computed from the same draw: sum, success counting with
  doubles, matching-set detection
- The engine error taxonomy

Version: 1.1.0
Author: Polyroll Development Team
License: MIT
"""

import logging
import random
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

__all__ = [
    # Exceptions
    'DiceEngineError', 'InvalidConfigurationError', 'InvalidInputError', 'NotRolledYetError',
    # Data classes
    'MatchingSet',
    # Dice
    'Die', 'DicePool',
]

# ==========================================
# EXCEPTIONS
# ==========================================

class DiceEngineError(Exception):
    """Base exception for dice engine errors."""
    pass

class InvalidConfigurationError(DiceEngineError):
    """Raised when a die or pool is constructed with out-of-domain size or sides."""
    pass

class InvalidInputError(DiceEngineError):
    """Raised when a user-supplied roll parameter cannot be parsed or is out of range."""
    pass

class NotRolledYetError(DiceEngineError):
    """Raised by a strict pool when a metric is read before the first roll."""
    pass

# ==========================================
# DATA CLASSES
# ==========================================

@dataclass(frozen=True)
class MatchingSet:
    """A face value that came up more than once in a single roll (O.R.E. style)."""
    value: int
    count: int

    def to_dict(self) -> Dict[str, int]:
        """Convert the set to a dictionary for serialization."""
        return {"value": self.value, "count": self.count}

    def __str__(self) -> str:
        return f"{self.count}x{self.value}"

# ==========================================
# DIE
# ==========================================

def _check_positive_int(name: str, value: Any, minimum: int) -> int:
    # bool is an int subclass; True must not pass as a one-die pool
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidConfigurationError(f"{name} must be an integer, got {value!r}")
    if value < minimum:
        raise InvalidConfigurationError(f"{name} must be at least {minimum}, got {value}")
    return value

class Die:
    """
    A single die.

    Rolling is a pure function of ``sides`` and the random source; the die
    keeps no record of what it rolled.
    """

    def __init__(self, sides: int, rng: Optional[random.Random] = None):
        """
        Initialize the die.

        Args:
            sides: Number of faces (at least 1; a 1-sided die always rolls 1)
            rng: Random source to draw from (a fresh unseeded one if omitted)

        Raises:
            InvalidConfigurationError: If sides is not a positive integer
        """
        self.sides = _check_positive_int("sides", sides, 1)
        self.rng = rng or random.Random()

    def roll(self) -> int:
        """Roll the die, returning an integer from 1 to sides (inclusive)."""
        return self.rng.randint(1, self.sides)

    def __repr__(self) -> str:
        return f"Die(sides={self.sides})"

# ==========================================
# DICE POOL
# ==========================================

class DicePool:
    """
    A fixed number of identical dice rolled together.

    ``roll_all`` replaces ``last_results``; every metric reads ``last_results``
    without re-rolling, so all metrics for one roll come from the same draw.

    Un-rolled Pool Policy:
    By default metrics on a pool that has never been rolled return neutral
    values (0 or an empty list). With ``strict=True`` they raise
    NotRolledYetError instead.
    """

    def __init__(self, dice_number: int, sides: int,
                 rng: Optional[random.Random] = None, strict: bool = False):
        """
        Initialize the pool.

        Args:
            dice_number: Number of dice in the pool (at least 1)
            sides: Number of faces shared by every die (at least 1)
            rng: Random source shared by all dice in the pool
            strict: Raise NotRolledYetError when reading metrics before a roll

        Raises:
            InvalidConfigurationError: If dice_number or sides is out of range
        """
        self.size = _check_positive_int("dice_number", dice_number, 1)
        self.sides = _check_positive_int("sides", sides, 1)
        self.strict = strict
        self.rng = rng or random.Random()
        self.dice = [Die(self.sides, self.rng) for _ in range(self.size)]
        self.last_results: List[int] = []
        self._rolled = False

        self.logger = logging.getLogger(__name__)

    @property
    def notation(self) -> str:
        """Pool notation such as '6d10'."""
        return f"{self.size}d{self.sides}"

    @property
    def is_rolled(self) -> bool:
        """Whether the pool has been rolled at least once."""
        return self._rolled

    def _results(self, metric: str) -> List[int]:
        if not self._rolled and self.strict:
            raise NotRolledYetError(f"Cannot compute {metric} of {self.notation} before rolling")
        return self.last_results

    def roll_all(self) -> List[int]:
        """
        Roll every die in the pool.

        Returns:
            The new results in die order (a copy; ``last_results`` keeps its own list)
        """
        self.last_results = [die.roll() for die in self.dice]
        self._rolled = True
        self.logger.debug(f"Rolled {self.notation}: {self.last_results}")
        return list(self.last_results)

    def sum(self) -> int:
        """Sum of the most recent roll (0 if the pool has not been rolled)."""
        return sum(self._results("sum"))

    def count_successes(self, threshold: int, double_values: Iterable[int] = frozenset()) -> int:
        """
        Count successes in the most recent roll.

        Each die at or above ``threshold`` scores one success, or two if its
        face is in ``double_values``. Dice below the threshold score nothing.

        Args:
            threshold: Minimum face that counts as a success
            double_values: Faces that score double (may be empty)

        Returns:
            Total number of successes
        """
        doubles = set(double_values)
        successes = 0
        for result in self._results("successes"):
            if result >= threshold:
                successes += 2 if result in doubles else 1
        return successes

    def matching_sets(self) -> List[MatchingSet]:
        """
        Find every face that appears two or more times in the most recent roll.

        Returns:
            Sets ordered widest first; sets of equal width are ordered by
            face value, highest first
        """
        counts = Counter(self._results("matching sets"))
        sets = [MatchingSet(value=value, count=count)
                for value, count in counts.items() if count >= 2]
        sets.sort(key=lambda s: (s.count, s.value), reverse=True)
        return sets

    def __len__(self) -> int:
        return self.size

    def __repr__(self) -> str:
        return f"DicePool({self.notation}, last_results={self.last_results})"

# ==========================================
# RUNTIME SELF-CHECKS
# ==========================================

if __name__ == "__main__":
    print("=== Polyroll DiceEngine v1.1.0 Self-Tests ===\n")

    print("1. Testing die range...")
    die = Die(6, random.Random(42))
    assert all(1 <= die.roll() <= 6 for _ in range(1000)), "Die rolled outside [1, 6]"
    assert Die(1).roll() == 1, "A 1-sided die always rolls 1"
    print("   ✓ Die stays within range")

    print("\n2. Testing pool metrics share one draw...")
    pool = DicePool(6, 10, random.Random(7))
    rolls = pool.roll_all()
    assert len(rolls) == 6
    assert pool.sum() == sum(rolls) == pool.sum()
    print(f"   ✓ {pool.notation} rolled {rolls}, sum={pool.sum()}")

    print("\n3. Testing matching-set ordering...")
    pool.last_results = [10, 10, 10, 5, 5, 2]
    pool._rolled = True
    assert pool.matching_sets() == [MatchingSet(10, 3), MatchingSet(5, 2)]
    print("   ✓ Sets ordered by width then face")

    print("\n4. Testing un-rolled pool policy...")
    assert DicePool(3, 6).sum() == 0
    try:
        DicePool(3, 6, strict=True).sum()
        raise AssertionError("Strict pool should refuse to sum before rolling")
    except NotRolledYetError:
        pass
    print("   ✓ Tolerant and strict pools behave as documented")

    print("\n=== All Self-Tests Passed! ===")
