"""Period locks: the administrative freeze on closed accounting periods."""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

import structlog

from guided_ledger.audit import AuditEntryType, log_audit_entry
from guided_ledger.config import get_settings
from guided_ledger.errors import (
    InvalidTransitionError,
    PeriodLockedError,
    TransientIOError,
)
from guided_ledger.store.base import PERIOD_LOCKS, Clock, DocumentStore, SystemClock

logger = structlog.get_logger(__name__)

PERIOD_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


class PeriodLockStatus(str, Enum):
    LOCKED = "LOCKED"
    UNLOCKED = "UNLOCKED"


def validate_period(period: str) -> str:
    """Return ``period`` if it is a ``YYYY-MM`` string, raise ValueError otherwise."""
    if not PERIOD_PATTERN.match(period):
        raise ValueError(f"Invalid period {period!r}, expected YYYY-MM")
    return period


@dataclass
class PeriodLock:
    period: str
    status: PeriodLockStatus = PeriodLockStatus.UNLOCKED
    locked_at: datetime | None = None
    locked_by: str | None = None

    @property
    def is_locked(self) -> bool:
        return self.status == PeriodLockStatus.LOCKED

    @classmethod
    def from_dict(cls, period: str, data: dict[str, Any]) -> PeriodLock:
        locked_at = data.get("locked_at")
        return cls(
            period=period,
            status=PeriodLockStatus(data.get("status", PeriodLockStatus.UNLOCKED.value)),
            locked_at=datetime.fromisoformat(locked_at) if locked_at else None,
            locked_by=data.get("locked_by"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "period": self.period,
            "status": self.status.value,
            "locked_at": self.locked_at.isoformat() if self.locked_at else None,
            "locked_by": self.locked_by,
        }


class PeriodLockService:
    """Reads and changes period locks for one store.

    Reads are bounded by ``timeout``. A failed or timed-out read raises
    ``TransientIOError`` unless the caller opts in to ``fail_open``, in
    which case the period is reported as not locked and a warning is logged.
    """

    def __init__(
        self,
        store: DocumentStore,
        clock: Clock | None = None,
        timeout: float | None = None,
    ):
        settings = get_settings()
        self._store = store
        self._clock = clock or SystemClock()
        self._timeout = timeout if timeout is not None else settings.store_timeout
        self._logger = logger.bind(component="period_locks")

    async def get_lock(self, company_id: str, period: str) -> PeriodLock:
        validate_period(period)
        try:
            data = await asyncio.wait_for(
                self._store.get(company_id, PERIOD_LOCKS, period), timeout=self._timeout
            )
        except TimeoutError as e:
            raise TransientIOError(
                f"Timed out reading lock for {period}",
                details={"company_id": company_id, "period": period},
            ) from e
        if data is None:
            return PeriodLock(period=period)
        return PeriodLock.from_dict(period, data)

    async def is_locked(
        self, company_id: str, period: str, fail_open: bool | None = None
    ) -> bool:
        if fail_open is None:
            fail_open = get_settings().period_lock_fail_open
        try:
            lock = await self.get_lock(company_id, period)
        except TransientIOError as e:
            if not fail_open:
                raise
            self._logger.warning(
                "period_lock_read_failed_open",
                company_id=company_id,
                period=period,
                error=e.message,
            )
            return False
        return lock.is_locked

    async def assert_period_open(self, company_id: str, period: str) -> None:
        """Raise ``PeriodLockedError`` if no writes may land in ``period``."""
        if await self.is_locked(company_id, period, fail_open=False):
            raise PeriodLockedError(period, details={"company_id": company_id})

    async def lock(self, company_id: str, period: str, by: str) -> PeriodLock:
        current = await self.get_lock(company_id, period)
        if current.is_locked:
            raise InvalidTransitionError(f"Period {period} is already locked")
        lock = PeriodLock(
            period=period,
            status=PeriodLockStatus.LOCKED,
            locked_at=self._clock.now(),
            locked_by=by,
        )
        await self._store.put(company_id, PERIOD_LOCKS, period, lock.to_dict())
        await log_audit_entry(
            self._store,
            company_id,
            AuditEntryType.PERIOD_LOCK,
            entity_type="PERIOD_CLOSING",
            by=by,
            ref={"period": period},
            clock=self._clock,
        )
        self._logger.info("period_locked", company_id=company_id, period=period, by=by)
        return lock

    async def unlock(
        self, company_id: str, period: str, by: str, notes: str | None = None
    ) -> PeriodLock:
        current = await self.get_lock(company_id, period)
        if not current.is_locked:
            raise InvalidTransitionError(f"Period {period} is not locked")
        lock = PeriodLock(period=period, status=PeriodLockStatus.UNLOCKED)
        await self._store.put(company_id, PERIOD_LOCKS, period, lock.to_dict())
        await log_audit_entry(
            self._store,
            company_id,
            AuditEntryType.PERIOD_UNLOCK,
            entity_type="PERIOD_CLOSING",
            by=by,
            ref={"period": period},
            notes=notes,
            clock=self._clock,
        )
        self._logger.info("period_unlocked", company_id=company_id, period=period, by=by)
        return lock

    async def locked_periods(self, company_id: str) -> list[str]:
        try:
            records = await asyncio.wait_for(
                self._store.list(company_id, PERIOD_LOCKS), timeout=self._timeout
            )
        except TimeoutError as e:
            raise TransientIOError(
                "Timed out listing period locks", details={"company_id": company_id}
            ) from e
        return sorted(
            str(r["period"])
            for r in records
            if r.get("status") == PeriodLockStatus.LOCKED.value and r.get("period")
        )
