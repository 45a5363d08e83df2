"""Shared fixtures for the Polyroll test suite."""

from __future__ import annotations

from typing import Iterable, List

import pytest


class ScriptedRandom:
    """Random source that hands out queued faces in order."""

    def __init__(self, faces: Iterable[int]) -> None:
        self.faces: List[int] = list(faces)
        self.calls: List[tuple[int, int]] = []

    def randint(self, a: int, b: int) -> int:
        self.calls.append((a, b))
        if not self.faces:
            raise AssertionError("ScriptedRandom ran out of faces")
        face = self.faces.pop(0)
        assert a <= face <= b, f"scripted face {face} outside [{a}, {b}]"
        return face


@pytest.fixture
def scripted():
    """Factory: ``scripted(10, 10, 7, 3)`` returns a ScriptedRandom."""

    def _make(*faces: int) -> ScriptedRandom:
        return ScriptedRandom(faces)

    return _make
