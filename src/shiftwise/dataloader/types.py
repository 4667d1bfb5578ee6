# src/shiftwise/dataloader/types.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from shiftwise.constraints.context import ValidationContext


@dataclass(slots=True)
class LoadResult:
    """
    Structured result of loading a snapshot document.

    Fields:
        success: True if no row-level issues were found.
        context: Snapshot ready for validation (None if success=False).
        issues: Issue dicts with keys kind, collection, index, id (may be None)
                and message.
        counts: Rows observed per collection.
    """

    success: bool
    context: ValidationContext | None = None
    issues: list[dict[str, Any]] = field(default_factory=list)
    counts: dict[str, int] = field(default_factory=dict)
