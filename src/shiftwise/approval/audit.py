# src/shiftwise/approval/audit.py
from __future__ import annotations

import logging

from shiftwise.schemas.plan import AuditRecord

AUDIT_LOGGER_NAME = "shiftwise.audit"


class LoggingAuditService:
    """
    @brief
    Audit sink writing one INFO line per state change to `shiftwise.audit`.

    @details
    Records are also kept in memory (`records`) so callers and tests can
    inspect what was emitted. Persistence of the audit trail is left to
    whatever handler is attached to the audit logger.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger(AUDIT_LOGGER_NAME)
        self.records: list[AuditRecord] = []

    def log_action(self, record: AuditRecord) -> None:
        self.records.append(record)
        self._logger.info(
            "%s %s/%s by %s: %s",
            record.action,
            record.entity_type,
            record.entity_id,
            record.user_id,
            record.changes,
        )

    def for_entity(self, entity_id: str) -> list[AuditRecord]:
        return [r for r in self.records if r.entity_id == entity_id]
