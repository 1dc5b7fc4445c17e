"""Audit helper: audit failures are reported but never block an operation."""
from __future__ import annotations

import logging

from fuel_reimbursement.domain.errors import AuditError
from fuel_reimbursement.domain.repositories import AuditLog

logger = logging.getLogger(__name__)

TELEMETRY_IMPORT = "TELEMETRY_IMPORT"
CALCULATION_SAVED = "CALCULATION_SAVED"
CALCULATION_OVERWRITE = "CALCULATION_OVERWRITE"
HISTORY_ABSENCE_FIX = "HISTORY_ABSENCE_FIX"
REGISTRY_SYNC = "REGISTRY_SYNC"
CONFIG_UPDATE = "CONFIG_UPDATE"


def record_audit(audit_log: AuditLog | None, actor: str, action: str, details: str) -> bool:
    if audit_log is None:
        return False
    try:
        audit_log.record(actor, action, details)
    except AuditError as exc:
        logger.warning("Audit entry %s not written: %s", action, exc)
        return False
    return True
