"""Account directory: the fixed registry of ledger accounts."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
from enum import Enum

import structlog

from guided_ledger.config.loader import load_chart_of_accounts
from guided_ledger.errors import ConflictError, SystemAccountError

logger = structlog.get_logger(__name__)


class AccountType(str, Enum):
    """Fixed account types."""

    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    REVENUE = "REVENUE"
    EXPENSE = "EXPENSE"


class Side(str, Enum):
    """Side of a double-entry line: MD (Má dať, debit) or D (Dal, credit)."""

    MD = "MD"
    D = "D"


class WellKnownAccounts:
    """Account codes with special meaning for guardrails and postings."""

    BANK = "221"
    RECEIVABLES = "311"
    PAYABLES = "321"
    EMPLOYEES = "331"
    SOCIAL_INSURANCE = "336"
    DIRECT_TAXES = "342"
    WAGES = "521"
    EMPLOYER_CONTRIBUTIONS = "524"

    # Accounts that need a partner on every line for the saldokonto
    PARTNER_ACCOUNTS = frozenset({RECEIVABLES, PAYABLES})
    # Counter-accounts that make a bank line look like a settlement
    SETTLEMENT_ACCOUNTS = frozenset({RECEIVABLES, PAYABLES, EMPLOYEES})


@dataclass(frozen=True)
class Account:
    """A ledger account."""

    code: str
    name: str
    type: AccountType
    normal_side: Side
    is_active: bool = True
    is_system: bool = False
    parent_code: str | None = None
    description: str | None = None

    @property
    def account_class(self) -> str:
        """Three-digit synthetic account (e.g. ``311`` for ``311100``)."""
        return self.code[:3]


def is_receivable(account_code: str) -> bool:
    return account_code[:3] == WellKnownAccounts.RECEIVABLES


def is_payable(account_code: str) -> bool:
    return account_code[:3] == WellKnownAccounts.PAYABLES


class AccountDirectory:
    """In-memory registry of accounts keyed by code.

    Accounts referenced by a posted transaction are frozen except for
    their ``is_active`` flag; system accounts can never be deleted.
    """

    def __init__(self, accounts: Iterable[Account] = ()) -> None:
        self._accounts: dict[str, Account] = {}
        self._referenced: set[str] = set()
        for account in accounts:
            self.add(account)

    @classmethod
    def from_defaults(cls) -> AccountDirectory:
        """Build the directory from the bundled chart of accounts."""
        return cls(
            Account(
                code=item["code"],
                name=item["name"],
                type=AccountType(item["type"]),
                normal_side=Side(item["normal_side"]),
                is_system=item["system"],
            )
            for item in load_chart_of_accounts()
        )

    def __contains__(self, code: object) -> bool:
        return code in self._accounts

    def __len__(self) -> int:
        return len(self._accounts)

    def __iter__(self):
        return iter(sorted(self._accounts.values(), key=lambda a: a.code))

    def get(self, code: str) -> Account | None:
        return self._accounts.get(code)

    def name_for(self, code: str) -> str:
        account = self._accounts.get(code)
        return account.name if account else code

    def add(self, account: Account) -> None:
        if account.code in self._accounts:
            raise ConflictError(f"Account {account.code} already exists")
        self._accounts[account.code] = account

    def mark_referenced(self, codes: Iterable[str]) -> None:
        """Record that posted transactions use these account codes."""
        self._referenced.update(codes)

    def is_referenced(self, code: str) -> bool:
        return code in self._referenced

    def update(self, account: Account) -> Account:
        """Replace an account definition.

        Raises:
            KeyError: Unknown account code.
            SystemAccountError: The account is referenced and something
                other than ``is_active`` changed.
        """
        current = self._accounts[account.code]
        if self.is_referenced(account.code) and replace(
            current, is_active=account.is_active
        ) != account:
            raise SystemAccountError(
                f"Account {account.code} is referenced by posted transactions; "
                "only its active flag may change"
            )
        self._accounts[account.code] = account
        return account

    def set_active(self, code: str, active: bool) -> Account:
        updated = replace(self._accounts[code], is_active=active)
        self._accounts[code] = updated
        logger.info("account_active_changed", account=code, active=active)
        return updated

    def delete(self, code: str) -> None:
        account = self._accounts[code]
        if account.is_system:
            raise SystemAccountError(f"System account {code} cannot be deleted")
        if self.is_referenced(code):
            raise SystemAccountError(
                f"Account {code} is referenced by posted transactions"
            )
        del self._accounts[code]
