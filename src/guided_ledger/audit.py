"""Audit trail for warning overrides, validation blocks and period locks."""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

from guided_ledger.store.base import AUDIT, Clock, DocumentStore, SystemClock

logger = structlog.get_logger(__name__)


class AuditEntryType(str, Enum):
    OVERRIDE_WARNING = "OVERRIDE_WARNING"
    VALIDATION_BLOCK = "VALIDATION_BLOCK"
    PERIOD_LOCK = "PERIOD_LOCK"
    PERIOD_UNLOCK = "PERIOD_UNLOCK"


@dataclass
class AuditEntry:
    """One audit record. ``ref`` points at the transaction, document or period."""

    type: AuditEntryType
    entity_type: str
    by: str
    rule_codes: list[str] = field(default_factory=list)
    entity_id: str | None = None
    ref: dict[str, str] = field(default_factory=dict)
    notes: str | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "entity_type": self.entity_type,
            "by": self.by,
            "rule_codes": list(self.rule_codes),
            "ref": dict(self.ref),
            "at": self.at,
        }
        if self.entity_id is not None:
            data["entity_id"] = self.entity_id
        if self.notes is not None:
            data["notes"] = self.notes
        return data


async def log_audit_entry(
    store: DocumentStore,
    company_id: str,
    entry_type: AuditEntryType,
    entity_type: str,
    by: str,
    rule_codes: Sequence[str] = (),
    entity_id: str | None = None,
    ref: dict[str, str] | None = None,
    notes: str | None = None,
    clock: Clock | None = None,
) -> AuditEntry:
    """Persist an audit entry under the company's ``audit`` collection.

    Store failures propagate; a warning override must not go unrecorded.
    """
    clock = clock or SystemClock()
    entry = AuditEntry(
        type=AuditEntryType(entry_type),
        entity_type=str(getattr(entity_type, "value", entity_type)),
        by=by,
        rule_codes=list(rule_codes),
        entity_id=entity_id,
        ref=dict(ref or {}),
        notes=notes,
        at=clock.now().isoformat(),
    )
    await store.put(company_id, AUDIT, entry.id, entry.to_dict())
    logger.info(
        "audit_entry_logged",
        company_id=company_id,
        type=entry.type.value,
        entity_type=entry.entity_type,
        rule_codes=entry.rule_codes,
        by=by,
    )
    return entry
