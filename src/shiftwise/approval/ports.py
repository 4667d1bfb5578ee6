# src/shiftwise/approval/ports.py
"""
@brief
Collaborator interfaces consumed by the plan approval service.

@details
Persistence and audit storage live outside this package. The service only
depends on these structural protocols; any object with matching methods
can be injected (a database-backed repository, an HTTP client, or the
in-memory implementations in `shiftwise.approval.memory`).
"""

from __future__ import annotations

from datetime import date
from typing import Any, Protocol

from shiftwise.schemas.models import Assignment
from shiftwise.schemas.plan import AuditRecord, Plan, PlanStatus


class PlanRepository(Protocol):
    def find_with_assignments(self, plan_id: str) -> Plan | None: ...

    def find_by_status(self, status: PlanStatus) -> list[Plan]: ...

    def update_status(self, plan_id: str, status: PlanStatus, updated_by: str) -> Plan: ...

    def commit_plan(
        self, plan_id: str, committed_by: str, effective_date: date | None = None
    ) -> Plan: ...

    def save(self, plan: Plan) -> Plan: ...


class AssignmentRepository(Protocol):
    def update(self, assignment_id: str, **fields: Any) -> Assignment: ...


class AuditService(Protocol):
    def log_action(self, record: AuditRecord) -> None: ...


class ConflictChecker(Protocol):
    def __call__(self, assignment: Assignment) -> list[Assignment]: ...


def no_conflicts(assignment: Assignment) -> list[Assignment]:
    """Default checker used when collision detection is not wired in."""
    return []


__all__ = [
    "AssignmentRepository",
    "AuditService",
    "ConflictChecker",
    "PlanRepository",
    "no_conflicts",
]
