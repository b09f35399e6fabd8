"""Saldokonto: per-partner open items on receivables (311) and payables (321).

Balances are derived from the full set of non-draft transactions every
time they are asked for. ``OpenItemCache`` is the only memoization and it
is invalidated explicitly by the code that writes transactions.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal

import structlog

from guided_ledger.accounts import Side, WellKnownAccounts
from guided_ledger.config import get_settings
from guided_ledger.errors import TransientIOError
from guided_ledger.ledger import Transaction, TransactionStatus
from guided_ledger.money import EPSILON, ZERO, to_decimal
from guided_ledger.rules import BankPairingData
from guided_ledger.store.base import TRANSACTIONS, DocumentStore

logger = structlog.get_logger(__name__)

UNKNOWN_PARTNER = "Neznámy partner"


def _check_class(account_class: str) -> str:
    if account_class not in WellKnownAccounts.PARTNER_ACCOUNTS:
        raise ValueError(f"Open items are tracked on 311 and 321 only, got {account_class!r}")
    return account_class


def is_open(balance: Decimal) -> bool:
    return abs(balance) > EPSILON


def _signed(account_class: str, side: Side, amount: Decimal) -> Decimal:
    # Receivables grow on MD, payables grow on D
    increasing = Side.MD if account_class == WellKnownAccounts.RECEIVABLES else Side.D
    return amount if side == increasing else -amount


def _partner_lines(transactions: Iterable[Transaction], account_class: str):
    for transaction in transactions:
        if transaction.status == TransactionStatus.DRAFT:
            continue
        for line in transaction.lines:
            if line.account_code[:3] == account_class and line.partner_id:
                yield line


def compute_open_items(
    transactions: Iterable[Transaction], account_class: str
) -> dict[str, Decimal]:
    """Return the signed balance of every partner seen on ``account_class``.

    Partners whose balance nets to zero are included; use ``is_open`` to
    filter.
    """
    _check_class(account_class)
    balances: dict[str, Decimal] = {}
    for line in _partner_lines(transactions, account_class):
        assert line.partner_id is not None
        balances[line.partner_id] = balances.get(line.partner_id, ZERO) + _signed(
            account_class, line.side, line.amount
        )
    return balances


@dataclass(frozen=True)
class PartnerBalance:
    partner_id: str
    partner_name: str
    account_code: str
    debit_total: Decimal
    credit_total: Decimal

    @property
    def balance(self) -> Decimal:
        if self.account_code == WellKnownAccounts.RECEIVABLES:
            return self.debit_total - self.credit_total
        return self.credit_total - self.debit_total

    @property
    def charged(self) -> Decimal:
        """Total invoiced to or by the partner, before payments."""
        if self.account_code == WellKnownAccounts.RECEIVABLES:
            return self.debit_total
        return self.credit_total

    @property
    def is_open(self) -> bool:
        return is_open(self.balance)


def partner_balances(transactions: Iterable[Transaction]) -> list[PartnerBalance]:
    """MD and D totals per partner and account class, sorted by partner name."""
    totals: dict[tuple[str, str], list[Decimal]] = {}
    names: dict[tuple[str, str], str] = {}
    transactions = list(transactions)
    for account_class in sorted(WellKnownAccounts.PARTNER_ACCOUNTS):
        for line in _partner_lines(transactions, account_class):
            assert line.partner_id is not None
            key = (line.partner_id, account_class)
            entry = totals.setdefault(key, [ZERO, ZERO])
            names.setdefault(key, line.partner_name or UNKNOWN_PARTNER)
            if line.side == Side.MD:
                entry[0] += line.amount
            else:
                entry[1] += line.amount

    result = [
        PartnerBalance(
            partner_id=partner_id,
            partner_name=names[(partner_id, account_class)],
            account_code=account_class,
            debit_total=debit,
            credit_total=credit,
        )
        for (partner_id, account_class), (debit, credit) in totals.items()
    ]
    return sorted(result, key=lambda b: (b.partner_name.casefold(), b.account_code))


def open_items(
    transactions: Iterable[Transaction], account_class: str | None = None
) -> list[PartnerBalance]:
    items = [b for b in partner_balances(transactions) if b.is_open]
    if account_class is not None:
        _check_class(account_class)
        items = [b for b in items if b.account_code == account_class]
    return items


def count_open_items(transactions: Iterable[Transaction], account_class: str) -> int:
    balances = compute_open_items(transactions, account_class)
    return sum(1 for balance in balances.values() if is_open(balance))


def pairing_candidate(
    movement_amount: Decimal | float | str,
    open_item: PartnerBalance | None,
    partner_id: str | None = None,
    note: str | None = None,
) -> BankPairingData:
    """Build the bank-pairing entity for the rule engine.

    A payment counts as partial when it is more than a cent below the
    remaining balance of the open item.
    """
    amount = to_decimal(movement_amount)
    remaining = open_item.balance if open_item is not None else ZERO
    return BankPairingData(
        movement_amount=amount,
        open_item_amount=open_item.charged if open_item is not None else ZERO,
        open_item_remaining=remaining,
        is_partial_payment=open_item is not None and abs(amount) < remaining - EPSILON,
        partner_id=partner_id or (open_item.partner_id if open_item is not None else None),
        note=note,
    )


async def load_transactions(
    store: DocumentStore, company_id: str, timeout: float | None = None
) -> list[Transaction]:
    """Read every transaction of a company, bounded by ``timeout``."""
    if timeout is None:
        timeout = get_settings().store_timeout
    try:
        records = await asyncio.wait_for(store.list(company_id, TRANSACTIONS), timeout=timeout)
    except TimeoutError as e:
        raise TransientIOError(
            "Timed out reading transactions", details={"company_id": company_id}
        ) from e
    return [Transaction.from_dict(record) for record in records]


class OpenItemCache:
    """Partner balances memoized per ``(company_id, account_class)``.

    Every transaction write must call ``invalidate`` for the company;
    ``PostingGenerator`` does so after each write.
    """

    def __init__(self, store: DocumentStore, timeout: float | None = None):
        self._store = store
        self._timeout = timeout
        self._entries: dict[tuple[str, str], dict[str, Decimal]] = {}
        self._generations: dict[str, int] = {}
        self._logger = logger.bind(component="open_item_cache")

    async def balances(self, company_id: str, account_class: str) -> Mapping[str, Decimal]:
        key = (company_id, _check_class(account_class))
        cached = self._entries.get(key)
        if cached is None:
            generation = self._generations.get(company_id, 0)
            transactions = await load_transactions(self._store, company_id, self._timeout)
            cached = compute_open_items(transactions, account_class)
            # A write during the load makes this snapshot stale
            if self._generations.get(company_id, 0) == generation:
                self._entries[key] = cached
            self._logger.debug(
                "open_items_computed",
                company_id=company_id,
                account_class=account_class,
                partners=len(cached),
            )
        return dict(cached)

    async def remaining_for(self, company_id: str, account_class: str, partner_id: str) -> Decimal:
        return (await self.balances(company_id, account_class)).get(partner_id, ZERO)

    def invalidate(self, company_id: str, account_class: str | None = None) -> None:
        self._generations[company_id] = self._generations.get(company_id, 0) + 1
        if account_class is None:
            for key in [k for k in self._entries if k[0] == company_id]:
                del self._entries[key]
        else:
            self._entries.pop((company_id, account_class), None)
