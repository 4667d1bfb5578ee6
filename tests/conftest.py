# tests/conftest.py
from __future__ import annotations

import pytest

from shiftwise.constraints.context import ValidationContext
from shiftwise.constraints.manager import ConstraintManager
from tests.factories import base_context


@pytest.fixture()
def context() -> ValidationContext:
    """Base snapshot: four employees, three stations, no demands yet."""
    return base_context()


@pytest.fixture()
def manager() -> ConstraintManager:
    """Default rule set evaluated sequentially."""
    return ConstraintManager()
