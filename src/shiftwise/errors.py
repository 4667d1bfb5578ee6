# src/shiftwise/errors.py
from __future__ import annotations

from datetime import datetime, timezone


class ShiftwiseError(Exception):
    """Base class for all structured Shiftwise exceptions."""

    def __init__(
        self, message: str, source: str | None = None, suggested_action: str | None = None
    ):
        super().__init__(message)
        self.timestamp = datetime.now(timezone.utc).isoformat()
        self.error_type = self.__class__.__name__
        self.source = source or "unknown"
        self.suggested_action = suggested_action

    def __str__(self) -> str:
        base = f"[{self.error_type}] {self.args[0]}"
        if self.source:
            base += f" (source={self.source})"
        if self.suggested_action:
            base += f" | action: {self.suggested_action}"
        return base


class ConfigError(ShiftwiseError):
    """Invalid or missing configuration (config.yaml)"""


class DataError(ShiftwiseError):
    """Malformed or inconsistent input data"""


class NotFoundError(ShiftwiseError):
    """Referenced plan, assignment or domain entity does not exist"""

    def __init__(
        self,
        message: str,
        source: str | None = None,
        suggested_action: str | None = None,
        *,
        entity_type: str | None = None,
        entity_id: str | None = None,
    ):
        super().__init__(message, source=source, suggested_action=suggested_action)
        self.entity_type = entity_type
        self.entity_id = entity_id


class StateTransitionError(ShiftwiseError):
    """Plan lifecycle operation requested from an illegal state"""


class ValidationError(ShiftwiseError):
    """Malformed validation input"""


class SimulationError(ShiftwiseError):
    """What-if scenario could not be applied"""
