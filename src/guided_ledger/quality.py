"""Bookkeeping quality score shown on the dashboard."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

import structlog

from guided_ledger.accounts import WellKnownAccounts
from guided_ledger.closing import is_pending_upload
from guided_ledger.config import get_settings
from guided_ledger.ledger import Transaction
from guided_ledger.periods import PeriodLockStatus
from guided_ledger.saldokonto import count_open_items, load_transactions
from guided_ledger.store.base import (
    BANK_MOVEMENTS,
    PERIOD_LOCKS,
    UPLOADS,
    Clock,
    DocumentStore,
    SystemClock,
)

logger = structlog.get_logger(__name__)

# Points per item; locked months add, everything else subtracts
WEIGHTS = {
    "inbox_pending": -5,
    "low_confidence_docs": -3,
    "unpaired_bank_movements": -2,
    "open_items": -1,
    "locked_months": 2,
}


class Grade(str, Enum):
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    F = "F"


GRADE_FLOORS = ((90, Grade.A), (80, Grade.B), (70, Grade.C), (60, Grade.D))


def grade_for(score: int) -> Grade:
    for floor, grade in GRADE_FLOORS:
        if score >= floor:
            return grade
    return Grade.F


@dataclass(frozen=True)
class QualityScore:
    inbox_pending: int = 0
    low_confidence_docs: int = 0
    unpaired_bank_movements: int = 0
    open_311_items: int = 0
    open_321_items: int = 0
    locked_months: int = 0
    total_months: int = 12
    score: int = 100
    grade: Grade = Grade.A

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["grade"] = self.grade.value
        return data


def compute_quality_score(counts: Mapping[str, int], total_months: int = 12) -> QualityScore:
    """Score the counts on a 0-100 scale and grade the result.

    ``counts`` may omit keys; missing counts are zero.
    """
    values = {
        name: int(counts.get(name, 0))
        for name in (
            "inbox_pending",
            "low_confidence_docs",
            "unpaired_bank_movements",
            "open_311_items",
            "open_321_items",
            "locked_months",
        )
    }
    score = (
        100
        + WEIGHTS["inbox_pending"] * values["inbox_pending"]
        + WEIGHTS["low_confidence_docs"] * values["low_confidence_docs"]
        + WEIGHTS["unpaired_bank_movements"] * values["unpaired_bank_movements"]
        + WEIGHTS["open_items"] * (values["open_311_items"] + values["open_321_items"])
        + WEIGHTS["locked_months"] * values["locked_months"]
    )
    score = max(0, min(100, score))
    return QualityScore(**values, total_months=total_months, score=score, grade=grade_for(score))


def _is_low_confidence(record: Mapping[str, Any], threshold: float) -> bool:
    confidence = record.get("confidence")
    if confidence is None:
        return False
    if isinstance(confidence, Mapping):
        return any(float(value) < threshold for value in confidence.values())
    return float(confidence) < threshold


def _is_unpaired(record: Mapping[str, Any]) -> bool:
    return not record.get("paired_transaction_id") and record.get("status") != "PAIRED"


def _gather_counts(
    uploads: list[dict[str, Any]],
    movements: list[dict[str, Any]],
    locks: list[dict[str, Any]],
    transactions: list[Transaction],
    threshold: float,
) -> dict[str, int]:
    pending = [u for u in uploads if is_pending_upload(u)]
    return {
        "inbox_pending": len(pending),
        "low_confidence_docs": sum(1 for u in pending if _is_low_confidence(u, threshold)),
        "unpaired_bank_movements": sum(1 for m in movements if _is_unpaired(m)),
        "open_311_items": count_open_items(transactions, WellKnownAccounts.RECEIVABLES),
        "open_321_items": count_open_items(transactions, WellKnownAccounts.PAYABLES),
        "locked_months": sum(1 for lock in locks if lock.get("status") == PeriodLockStatus.LOCKED.value),
    }


async def calculate_quality_score(
    store: DocumentStore,
    company_id: str,
    clock: Clock | None = None,
    timeout: float | None = None,
) -> QualityScore:
    """Gather the counts for a company and score them.

    This is a dashboard figure: when any read or count fails the neutral
    score is returned and the failure is logged instead of raised.
    """
    clock = clock or SystemClock()
    settings = get_settings()
    timeout = timeout if timeout is not None else settings.store_timeout
    default = QualityScore(total_months=clock.today().month)
    if not company_id:
        return default

    try:
        uploads, movements, locks = await asyncio.wait_for(
            asyncio.gather(
                store.list(company_id, UPLOADS),
                store.list(company_id, BANK_MOVEMENTS),
                store.list(company_id, PERIOD_LOCKS),
            ),
            timeout=timeout,
        )
        transactions = await load_transactions(store, company_id, timeout=timeout)
        counts = _gather_counts(uploads, movements, locks, transactions, settings.low_confidence_threshold)
    except Exception as e:
        logger.warning(
            "quality_score_fallback",
            company_id=company_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        return default

    result = compute_quality_score(counts, total_months=clock.today().month)
    logger.debug("quality_score_computed", company_id=company_id, score=result.score)
    return result
