"""Pytest configuration and fixtures."""

import os
from datetime import UTC, date, datetime
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("LEDGER_STORE_URL", "http://store.test")
os.environ.setdefault("REGISTRY_LOOKUP_URL", "http://registry.test")
os.environ.setdefault("LEDGER_STORE_TIMEOUT", "2")

from guided_ledger.accounts import Side  # noqa: E402
from guided_ledger.ledger import Transaction, TransactionLine, TransactionStatus  # noqa: E402
from guided_ledger.periods import PeriodLockService  # noqa: E402
from guided_ledger.store import FixedClock, InMemoryDocumentStore  # noqa: E402

COMPANY = "company-1"


def line(
    account_code: str,
    side: str,
    amount: str | int,
    partner_id: str | None = None,
    partner_name: str | None = None,
    line_id: str | None = None,
) -> TransactionLine:
    """Build a transaction line with string amounts converted to Decimal."""
    return TransactionLine(
        id=line_id or f"{account_code}-{side}",
        account_code=account_code,
        side=Side(side),
        amount=Decimal(str(amount)),
        partner_id=partner_id,
        partner_name=partner_name,
    )


def transaction(
    *lines: TransactionLine,
    id: str = "trx-1",
    on: date = date(2025, 3, 10),
    status: TransactionStatus = TransactionStatus.POSTED,
    description: str = "FA 2025001 - Služby",
    template_id: str | None = None,
) -> Transaction:
    return Transaction(
        id=id,
        number=f"TRN-{on:%Y%m}-{id}",
        date=on,
        description=description,
        lines=lines,
        status=status,
        template_id=template_id,
    )


@pytest.fixture
def store():
    """Fresh in-memory document store."""
    return InMemoryDocumentStore()


@pytest.fixture
def clock():
    """Clock frozen on 2025-03-20 10:00 UTC."""
    return FixedClock(datetime(2025, 3, 20, 10, 0, tzinfo=UTC))


@pytest.fixture
def period_locks(store, clock):
    return PeriodLockService(store, clock=clock, timeout=1.0)


@pytest.fixture
def mock_httpx_client():
    """Create a mock httpx AsyncClient."""
    client = AsyncMock()
    client.request = AsyncMock()
    client.post = AsyncMock()
    client.aclose = AsyncMock()
    return client
