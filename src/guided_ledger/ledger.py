"""Transactions and the double-entry invariant enforcer.

Every transaction accepted into the ledger must have at least one MD line,
at least one D line, only positive amounts, and totals that agree within
one cent. ``check_balance`` reports every structural defect in a single
pass so the caller can show the user the complete list.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

import structlog

from guided_ledger.accounts import Side
from guided_ledger.errors import (
    ImmutableTransactionError,
    InvalidTransitionError,
    InvariantViolation,
)
from guided_ledger.money import EPSILON, ZERO, to_decimal

logger = structlog.get_logger(__name__)


class TransactionStatus(str, Enum):
    """Lifecycle of a ledger transaction."""

    DRAFT = "DRAFT"
    POSTED = "POSTED"
    LOCKED = "LOCKED"


class BalanceFailure(str, Enum):
    """Structural defects found by the enforcer. Values double as rule codes."""

    NO_MD_LINE = "TRX_NO_MD_LINE"
    NO_D_LINE = "TRX_NO_D_LINE"
    UNBALANCED = "TRX_UNBALANCED"
    NON_POSITIVE_AMOUNT = "TRX_NEGATIVE_AMOUNT"


def period_of(value: date) -> str:
    """Return the ``YYYY-MM`` accounting period of a date."""
    return f"{value.year:04d}-{value.month:02d}"


def _parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


@dataclass(frozen=True)
class TransactionLine:
    """One MD or D line of a transaction."""

    id: str
    account_code: str
    side: Side
    amount: Decimal
    partner_id: str | None = None
    partner_name: str | None = None
    description: str | None = None
    account_name: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_decimal(self.amount))
        object.__setattr__(self, "side", Side(self.side))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TransactionLine:
        return cls(
            id=str(data.get("id", "")),
            account_code=str(data["accountCode"] if "accountCode" in data else data["account_code"]),
            side=Side(data["side"]),
            amount=data["amount"],
            partner_id=data.get("partnerId", data.get("partner_id")),
            partner_name=data.get("partnerName", data.get("partner_name")),
            description=data.get("description"),
            account_name=data.get("accountName", data.get("account_name")),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "account_code": self.account_code,
            "side": self.side.value,
            "amount": str(self.amount),
        }
        for key in ("partner_id", "partner_name", "description", "account_name"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        return result


@dataclass(frozen=True)
class BalanceCheck:
    """Result of running the enforcer over a set of lines."""

    balanced: bool
    total_md: Decimal
    total_d: Decimal
    diff: Decimal
    failures: tuple[BalanceFailure, ...] = ()
    offending_line: TransactionLine | None = None


def check_balance(lines: Sequence[TransactionLine]) -> BalanceCheck:
    """Validate that ``lines`` form a well-formed, balanced transaction.

    All four checks run independently. ``diff`` equal to exactly one cent
    still passes; anything above fails.
    """
    md_lines = [line for line in lines if line.side == Side.MD]
    d_lines = [line for line in lines if line.side == Side.D]
    total_md = sum((line.amount for line in md_lines), ZERO)
    total_d = sum((line.amount for line in d_lines), ZERO)
    diff = abs(total_md - total_d)

    failures: list[BalanceFailure] = []
    if not md_lines:
        failures.append(BalanceFailure.NO_MD_LINE)
    if not d_lines:
        failures.append(BalanceFailure.NO_D_LINE)
    if diff > EPSILON:
        failures.append(BalanceFailure.UNBALANCED)

    offending = next((line for line in lines if line.amount <= 0), None)
    if offending is not None:
        failures.append(BalanceFailure.NON_POSITIVE_AMOUNT)

    return BalanceCheck(
        balanced=not failures,
        total_md=total_md,
        total_d=total_d,
        diff=diff,
        failures=tuple(failures),
        offending_line=offending,
    )


@dataclass
class Transaction:
    """A ledger transaction. Lines are frozen once the status leaves DRAFT."""

    id: str
    number: str
    date: date
    description: str
    lines: tuple[TransactionLine, ...]
    status: TransactionStatus = TransactionStatus.DRAFT
    period: str = ""
    template_id: str | None = None
    document_id: str | None = None
    document_type: str | None = None
    source_entry_id: str | None = None
    created_by: str | None = None
    posted_by: str | None = None
    posted_at: datetime | None = None
    locked_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.lines = tuple(self.lines)
        self.status = TransactionStatus(self.status)
        if not self.period:
            self.period = period_of(self.date)

    @property
    def total_md(self) -> Decimal:
        return sum((line.amount for line in self.lines if line.side == Side.MD), ZERO)

    @property
    def total_d(self) -> Decimal:
        return sum((line.amount for line in self.lines if line.side == Side.D), ZERO)

    @property
    def is_draft(self) -> bool:
        return self.status == TransactionStatus.DRAFT

    def account_codes(self) -> set[str]:
        return {line.account_code for line in self.lines}

    def replace_lines(self, lines: Iterable[TransactionLine]) -> None:
        """Swap the lines of a draft.

        Raises:
            ImmutableTransactionError: The transaction is posted or locked.
        """
        if not self.is_draft:
            raise ImmutableTransactionError(
                f"Transaction {self.number} is {self.status.value}; lines are immutable"
            )
        self.lines = tuple(lines)

    def post(self, by: str | None = None, at: datetime | None = None) -> None:
        """Move DRAFT -> POSTED after the enforcer accepts the lines."""
        if self.status != TransactionStatus.DRAFT:
            raise InvalidTransitionError(
                f"Cannot post transaction {self.number} in status {self.status.value}"
            )
        check = check_balance(self.lines)
        if not check.balanced:
            raise InvalidTransitionError(
                f"Transaction {self.number} is not balanced",
                details=[failure.value for failure in check.failures],
            )
        self.status = TransactionStatus.POSTED
        self.posted_by = by
        self.posted_at = at or datetime.now(UTC)

    def lock(self, at: datetime | None = None) -> None:
        """Move POSTED -> LOCKED when its period is closed."""
        if self.status != TransactionStatus.POSTED:
            raise InvalidTransitionError(
                f"Only posted transactions can be locked, {self.number} is {self.status.value}"
            )
        self.status = TransactionStatus.LOCKED
        self.locked_at = at or datetime.now(UTC)

    def unlock(self) -> None:
        """Move LOCKED -> POSTED when its period is reopened."""
        if self.status != TransactionStatus.LOCKED:
            raise InvalidTransitionError(
                f"Only locked transactions can be unlocked, {self.number} is {self.status.value}"
            )
        self.status = TransactionStatus.POSTED
        self.locked_at = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Transaction:
        return cls(
            id=str(data["id"]),
            number=str(data.get("number", "")),
            date=_parse_date(data["date"]),
            description=str(data.get("description", "")),
            lines=tuple(TransactionLine.from_dict(line) for line in data.get("lines", [])),
            status=TransactionStatus(data.get("status", TransactionStatus.DRAFT.value)),
            period=str(data.get("period", "")),
            template_id=data.get("template_id", data.get("templateId")),
            document_id=data.get("document_id", data.get("documentId")),
            document_type=data.get("document_type", data.get("documentType")),
            source_entry_id=data.get("source_entry_id", data.get("sourceEntryId")),
            created_by=data.get("created_by"),
            posted_by=data.get("posted_by"),
            posted_at=_parse_datetime(data.get("posted_at")),
            locked_at=_parse_datetime(data.get("locked_at")),
            metadata=dict(data.get("metadata") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "number": self.number,
            "date": self.date.isoformat(),
            "description": self.description,
            "lines": [line.to_dict() for line in self.lines],
            "total_md": str(self.total_md),
            "total_d": str(self.total_d),
            "status": self.status.value,
            "period": self.period,
            "template_id": self.template_id,
            "document_id": self.document_id,
            "document_type": self.document_type,
            "source_entry_id": self.source_entry_id,
            "created_by": self.created_by,
            "posted_by": self.posted_by,
            "posted_at": self.posted_at.isoformat() if self.posted_at else None,
            "locked_at": self.locked_at.isoformat() if self.locked_at else None,
            "metadata": self.metadata,
        }


def audit_transaction(transaction: Transaction) -> None:
    """Re-check a stored transaction.

    Raises:
        InvariantViolation: A non-draft transaction does not balance. This
            means the code that posted it is broken.
    """
    if transaction.is_draft:
        return
    check = check_balance(transaction.lines)
    if not check.balanced:
        logger.error(
            "ledger_invariant_violated",
            transaction=transaction.number,
            total_md=check.total_md,
            total_d=check.total_d,
            failures=[failure.value for failure in check.failures],
        )
        raise InvariantViolation(
            f"Transaction {transaction.number} violates the double-entry invariant",
            details={
                "total_md": str(check.total_md),
                "total_d": str(check.total_d),
                "failures": [failure.value for failure in check.failures],
            },
        )
