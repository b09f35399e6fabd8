"""Month-end closing: validate a period, then lock it and its transactions."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import structlog

from guided_ledger.accounts import WellKnownAccounts
from guided_ledger.audit import AuditEntryType, log_audit_entry
from guided_ledger.config import get_settings
from guided_ledger.errors import TransientIOError
from guided_ledger.ledger import Transaction, TransactionStatus
from guided_ledger.periods import PeriodLockService, validate_period
from guided_ledger.rules import (
    EntityType,
    PeriodClosingData,
    RuleContext,
    RuleEngine,
    RuleResult,
)
from guided_ledger.saldokonto import count_open_items, load_transactions
from guided_ledger.store.base import (
    TRANSACTIONS,
    UPLOADS,
    Clock,
    DocumentStore,
    SystemClock,
)

logger = structlog.get_logger(__name__)

# Upload statuses that still wait for a user in the inbox
PENDING_UPLOAD_STATUSES = frozenset({"NEEDS_REVIEW", "EXTRACTED"})


def is_pending_upload(record: dict) -> bool:
    return record.get("status") in PENDING_UPLOAD_STATUSES


async def period_closing_data(
    store: DocumentStore,
    company_id: str,
    period: str,
    period_locks: PeriodLockService,
    timeout: float | None = None,
) -> PeriodClosingData:
    """Collect the closing checklist counts for ``period``.

    Uploads without a period count against every period. Open items are
    counted over the whole ledger, not just the period.
    """
    validate_period(period)
    timeout = timeout if timeout is not None else get_settings().store_timeout
    try:
        uploads = await asyncio.wait_for(store.list(company_id, UPLOADS), timeout=timeout)
    except TimeoutError as e:
        raise TransientIOError("Timed out reading uploads", details={"company_id": company_id}) from e
    transactions = await load_transactions(store, company_id, timeout=timeout)
    lock = await period_locks.get_lock(company_id, period)

    return PeriodClosingData(
        period=period,
        inbox_pending_count=sum(
            1
            for u in uploads
            if is_pending_upload(u) and u.get("period") in (None, "", period)
        ),
        draft_transaction_count=sum(
            1 for t in transactions if t.period == period and t.is_draft
        ),
        open_311_count=count_open_items(transactions, WellKnownAccounts.RECEIVABLES),
        open_321_count=count_open_items(transactions, WellKnownAccounts.PAYABLES),
        is_already_locked=lock.is_locked,
    )


@dataclass
class ClosingOutcome:
    result: RuleResult
    locked: bool = False
    locked_transactions: int = 0


class PeriodClosingService:
    """Runs the closing checklist and locks the period when it passes.

    Blocks stop the close and are written to the audit log. Warnings stop it
    too unless the caller overrides them, in which case the override is
    audited before the lock is taken.
    """

    def __init__(
        self,
        store: DocumentStore,
        engine: RuleEngine | None = None,
        period_locks: PeriodLockService | None = None,
        clock: Clock | None = None,
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._period_locks = period_locks or PeriodLockService(store, clock=self._clock)
        self._engine = engine or RuleEngine(period_locks=self._period_locks)
        self._logger = logger.bind(component="period_closing")

    async def check(self, company_id: str, period: str, by: str | None = None) -> RuleResult:
        data = await period_closing_data(self._store, company_id, period, self._period_locks)
        return await self._engine.validate(
            EntityType.PERIOD_CLOSING,
            data,
            RuleContext(company_id=company_id, user_id=by),
        )

    async def close(
        self,
        company_id: str,
        period: str,
        by: str,
        override_warnings: bool = False,
        notes: str | None = None,
    ) -> ClosingOutcome:
        result = await self.check(company_id, period, by)
        ref = {"period": period}

        if result.blocks:
            await log_audit_entry(
                self._store,
                company_id,
                AuditEntryType.VALIDATION_BLOCK,
                entity_type=EntityType.PERIOD_CLOSING,
                by=by,
                rule_codes=[hit.code for hit in result.blocks],
                ref=ref,
                clock=self._clock,
            )
            self._logger.info(
                "period_close_blocked", company_id=company_id, period=period, codes=result.codes()
            )
            return ClosingOutcome(result=result)

        if result.warnings:
            if not override_warnings:
                self._logger.info(
                    "period_close_needs_override",
                    company_id=company_id,
                    period=period,
                    codes=result.codes(),
                )
                return ClosingOutcome(result=result)
            await log_audit_entry(
                self._store,
                company_id,
                AuditEntryType.OVERRIDE_WARNING,
                entity_type=EntityType.PERIOD_CLOSING,
                by=by,
                rule_codes=[hit.code for hit in result.warnings],
                ref=ref,
                notes=notes,
                clock=self._clock,
            )

        await self._period_locks.lock(company_id, period, by)
        count = await self._set_status(
            company_id, period, TransactionStatus.POSTED, TransactionStatus.LOCKED
        )
        return ClosingOutcome(result=result, locked=True, locked_transactions=count)

    async def reopen(
        self, company_id: str, period: str, by: str, notes: str | None = None
    ) -> int:
        """Unlock ``period`` and return its transactions to POSTED."""
        await self._period_locks.unlock(company_id, period, by, notes=notes)
        return await self._set_status(
            company_id, period, TransactionStatus.LOCKED, TransactionStatus.POSTED
        )

    async def _set_status(
        self,
        company_id: str,
        period: str,
        current: TransactionStatus,
        target: TransactionStatus,
    ) -> int:
        transactions = await load_transactions(self._store, company_id)
        changed = 0
        for transaction in transactions:
            if transaction.period != period or transaction.status != current:
                continue
            if target == TransactionStatus.LOCKED:
                transaction.lock(at=self._clock.now())
            else:
                transaction.unlock()
            await self._store.put(
                company_id,
                TRANSACTIONS,
                transaction.id,
                _status_patch(transaction),
                merge=True,
            )
            changed += 1
        self._logger.info(
            "period_transactions_updated",
            company_id=company_id,
            period=period,
            status=target.value,
            count=changed,
        )
        return changed


def _status_patch(transaction: Transaction) -> dict:
    return {
        "status": transaction.status.value,
        "locked_at": transaction.locked_at.isoformat() if transaction.locked_at else None,
    }
