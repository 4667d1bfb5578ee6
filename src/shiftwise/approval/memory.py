# src/shiftwise/approval/memory.py
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

from shiftwise.errors import NotFoundError
from shiftwise.schemas.models import Assignment
from shiftwise.schemas.plan import Plan, PlanStatus


class InMemoryPlanRepository:
    """
    @brief
    Dict-backed plan store satisfying both repository protocols.

    @details
    Assignments are owned by their plan, so `update(assignment_id, ...)`
    rewrites the containing plan. Every write stores a new frozen copy.
    """

    def __init__(self, plans: list[Plan] | None = None) -> None:
        self._plans: dict[str, Plan] = {p.id: p for p in plans or []}

    # ---------- PlanRepository ----------
    def find_with_assignments(self, plan_id: str) -> Plan | None:
        return self._plans.get(plan_id)

    def find_by_status(self, status: PlanStatus) -> list[Plan]:
        return [p for p in self._plans.values() if p.status == status]

    def save(self, plan: Plan) -> Plan:
        self._plans[plan.id] = plan
        return plan

    def update_status(self, plan_id: str, status: PlanStatus, updated_by: str) -> Plan:
        plan = self._require(plan_id)
        changes: dict[str, Any] = {"status": status}
        if status in (PlanStatus.APPROVED, PlanStatus.PARTIALLY_APPROVED):
            changes.update(approved_by=updated_by, approved_at=datetime.now(timezone.utc))
        return self.save(plan.with_updates(**changes))

    def commit_plan(
        self, plan_id: str, committed_by: str, effective_date: date | None = None
    ) -> Plan:
        plan = self._require(plan_id)
        return self.save(
            plan.with_updates(
                status=PlanStatus.COMMITTED,
                committed_by=committed_by,
                committed_at=datetime.now(timezone.utc),
            )
        )

    # ---------- AssignmentRepository ----------
    def update(self, assignment_id: str, **fields: Any) -> Assignment:
        for plan in self._plans.values():
            current = plan.assignment(assignment_id)
            if current is None:
                continue
            status = fields.pop("status", None)
            updated = current.with_status(status) if status is not None else current
            updated = updated.model_copy(
                update={**fields, "updated_at": datetime.now(timezone.utc)}
            )
            self.save(
                plan.with_updates(
                    assignments=[updated if a.id == assignment_id else a for a in plan.assignments]
                )
            )
            return updated
        raise NotFoundError(
            f"Assignment {assignment_id} not found",
            source="InMemoryPlanRepository.update",
            entity_type="assignment",
            entity_id=assignment_id,
        )

    def _require(self, plan_id: str) -> Plan:
        plan = self._plans.get(plan_id)
        if plan is None:
            raise NotFoundError(
                f"Plan {plan_id} not found",
                source="InMemoryPlanRepository",
                entity_type="plan",
                entity_id=plan_id,
            )
        return plan
