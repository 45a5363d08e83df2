"""
Polyroll DiceRoller v1.1.0
==========================

Boundary between a UI and the Polyroll engine.

The UI hands over a system tag and raw form values; the roller rolls them
through the RuleEngine, records the display string in the HistoryStore and
returns the structured result. Bad input never escapes as an exception: it
comes back as an InvalidRollResult and leaves the history untouched.

Key behaviours:
- Explicit configuration through RollerConfig (capacity, storage key, seed)
- History loaded at construction and persisted after every roll or clear
- Engine errors logged and converted to an "Error: Invalid Input" result
- Storage failures logged without losing the roll result

Version: 1.1.0
Author: Polyroll Development Team
License: MIT
"""

import logging
import random
from dataclasses import dataclass, asdict, fields
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from dice_engine import DiceEngineError, InvalidConfigurationError
from roll_history import (
    DEFAULT_HISTORY_CAPACITY, DEFAULT_STORAGE_KEY,
    HistoryStorage, HistoryStorageError, HistoryStore, KeyValueHistoryStorage,
)
from rule_engine import RollResult, RuleEngine, RuleSystemType

__all__ = ["RollerConfig", "InvalidRollResult", "DiceRoller", "INVALID_INPUT_MESSAGE"]

INVALID_INPUT_MESSAGE = "Error: Invalid Input"

# ==========================================
# CONFIGURATION
# ==========================================

@dataclass
class RollerConfig:
    """Settings for a DiceRoller."""
    history_capacity: int = DEFAULT_HISTORY_CAPACITY
    storage_key: str = DEFAULT_STORAGE_KEY
    seed: Optional[int] = None
    strict_pools: bool = False

    def __post_init__(self):
        if isinstance(self.history_capacity, bool) or not isinstance(self.history_capacity, int) \
                or self.history_capacity < 1:
            raise InvalidConfigurationError(
                f"history_capacity must be a positive integer, got {self.history_capacity!r}")
        if not self.storage_key:
            raise InvalidConfigurationError("storage_key must not be empty")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'RollerConfig':
        """Build a config from a mapping, ignoring keys it does not know."""
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in known})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

# ==========================================
# INVALID RESULT
# ==========================================

@dataclass
class InvalidRollResult:
    """Placeholder returned instead of a roll when the input was rejected."""
    system: str
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {"system": self.system, "error": INVALID_INPUT_MESSAGE, "reason": self.reason}

    def __str__(self) -> str:
        return INVALID_INPUT_MESSAGE

# ==========================================
# DICE ROLLER
# ==========================================

class DiceRoller:
    """
    Rolls on behalf of a UI and keeps the roll history.

    Lifecycle: history is loaded from storage when the roller is built,
    updated and saved after every successful roll or clear.
    """

    def __init__(self,
                 config: Optional[RollerConfig] = None,
                 storage: Optional[HistoryStorage] = None,
                 rng: Optional[random.Random] = None):
        """
        Initialize the roller.

        Args:
            config: Roller settings (defaults if omitted)
            storage: History persistence backend; an in-memory key-value store
                under ``config.storage_key`` if omitted
            rng: Random source for every roll (overrides ``config.seed``)
        """
        self.config = config or RollerConfig()
        self.engine = RuleEngine(rng=rng, seed=self.config.seed, strict_pools=self.config.strict_pools)
        if storage is None:
            storage = KeyValueHistoryStorage(key=self.config.storage_key)
        self.history = HistoryStore(storage, capacity=self.config.history_capacity)
        self.logger = logging.getLogger(__name__)

    def roll(self, system: Union[RuleSystemType, str],
             params: Optional[Mapping[str, Any]] = None) -> Union[RollResult, InvalidRollResult]:
        """
        Roll a system from raw parameters and record it in the history.

        Args:
            system: Rule system tag or RuleSystemType
            params: Raw form values, usually strings

        Returns:
            The structured RollResult, or an InvalidRollResult if the input
            was rejected (in which case history is not changed)
        """
        tag = system.value if isinstance(system, RuleSystemType) else str(system)
        try:
            result = self.engine.roll(system, params)
        except DiceEngineError as e:
            self.logger.warning(f"Rejected {tag} roll with params {dict(params or {})}: {e}")
            return InvalidRollResult(system=tag, reason=str(e))

        self._record(str(result))
        return result

    def _record(self, entry: str) -> None:
        try:
            self.history.record(entry)
        except HistoryStorageError as e:
            self.logger.error(f"Roll kept in memory but not persisted: {e}")

    def clear_history(self) -> None:
        """Empty the history and persist the empty list."""
        try:
            self.history.clear()
        except HistoryStorageError as e:
            self.logger.error(f"History cleared in memory but not persisted: {e}")

    @property
    def history_entries(self) -> Tuple[str, ...]:
        """Recorded display strings, most recent first."""
        return self.history.entries

    def __repr__(self) -> str:
        return f"DiceRoller(history={len(self.history)}/{self.history.capacity})"

# ==========================================
# RUNTIME SELF-CHECKS
# ==========================================

if __name__ == "__main__":
    print("=== Polyroll DiceRoller v1.1.0 Self-Tests ===\n")

    print("1. Testing history cap...")
    roller = DiceRoller(RollerConfig(seed=42))
    for _ in range(15):
        roller.roll("dnd", {"diceCount": "2", "sides": "6"})
    assert len(roller.history_entries) == 10, "History should keep only 10 entries"
    print(f"   ✓ {roller!r}")

    print("\n2. Testing invalid input leaves history alone...")
    before = roller.history_entries
    bad = roller.roll("dnd", {"diceCount": "lots"})
    assert str(bad) == INVALID_INPUT_MESSAGE
    assert roller.history_entries == before, "Invalid roll must not touch history"
    print("   ✓ Invalid input reported, history unchanged")

    print("\n3. Sample rolls...")
    for tag in RuleEngine.supported_systems():
        print(f"   {roller.roll(tag)}")

    print("\n=== All Self-Tests Passed! ===")
