"""Posting generator: expands business events into balanced transactions.

An income/expense entry becomes one transaction, a template application
becomes one transaction and a payroll run becomes up to four, written in
a fixed order. Each transaction balances on its own, so a failure after
N of M writes leaves a valid partial ledger.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from functools import lru_cache
from typing import Any

import structlog

from guided_ledger.accounts import AccountDirectory, Side, WellKnownAccounts
from guided_ledger.config import get_settings
from guided_ledger.config.loader import load_category_accounts, load_posting_templates
from guided_ledger.entries import Entry, EntryType
from guided_ledger.errors import (
    ConfigurationError,
    ConflictError,
    DuplicatePayrollRunError,
    InvariantViolation,
    TransientIOError,
)
from guided_ledger.ledger import (
    Transaction,
    TransactionLine,
    TransactionStatus,
    check_balance,
    period_of,
)
from guided_ledger.money import EPSILON, HUNDRED, ZERO, round2, to_decimal
from guided_ledger.payroll import PayrollCalculation, PayrollConfig, PayrollRun, calculate_payroll
from guided_ledger.periods import PeriodLockService, validate_period
from guided_ledger.rules import PayrollData
from guided_ledger.saldokonto import OpenItemCache
from guided_ledger.store.base import (
    PAYROLL_RUNS,
    SETTINGS,
    TRANSACTIONS,
    Clock,
    DocumentStore,
    SystemClock,
)

logger = structlog.get_logger(__name__)

GENERAL_PREFIX = "TRN"
INCOME_PREFIX = "VF"
EXPENSE_PREFIX = "PF"
PAYROLL_DAY = 15
PAYROLL_SETTINGS_KEY = "payroll"


class AmountSource(str, Enum):
    TOTAL = "TOTAL"
    CUSTOM = "CUSTOM"
    PERCENT = "PERCENT"


class PartnerSide(str, Enum):
    SUPPLIER = "SUPPLIER"
    CUSTOMER = "CUSTOMER"


@dataclass(frozen=True)
class TemplateLine:
    id: str
    side: Side
    account_code: str
    amount_source: AmountSource = AmountSource.TOTAL
    amount_value: Decimal | None = None
    partner_side: PartnerSide | None = None
    description: str | None = None
    account_name: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TemplateLine:
        partner_side = data.get("partner_side")
        amount_value = data.get("amount_value")
        return cls(
            id=str(data["id"]),
            side=Side(str(data["side"]).upper()),
            account_code=str(data["account_code"]),
            amount_source=AmountSource(str(data.get("amount_source", "TOTAL")).upper()),
            amount_value=to_decimal(amount_value) if amount_value is not None else None,
            partner_side=PartnerSide(partner_side) if partner_side else None,
            description=data.get("description"),
            account_name=data.get("account_name"),
        )


@dataclass(frozen=True)
class PostingTemplate:
    code: str
    name: str
    lines: tuple[TemplateLine, ...]
    description: str = ""
    applies_to: tuple[str, ...] = ()
    category_default: str | None = None
    enabled: bool = True
    is_system: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], is_system: bool = False) -> PostingTemplate:
        return cls(
            code=str(data["code"]),
            name=str(data.get("name", data["code"])),
            lines=tuple(TemplateLine.from_dict(line) for line in data["lines"]),
            description=str(data.get("description", "")),
            applies_to=tuple(data.get("applies_to") or ()),
            category_default=data.get("category_default"),
            enabled=bool(data.get("enabled", True)),
            is_system=is_system,
        )


@lru_cache
def system_templates() -> dict[str, PostingTemplate]:
    """The built-in posting templates keyed by code."""
    return {
        raw["code"]: PostingTemplate.from_dict(raw, is_system=True)
        for raw in load_posting_templates()
    }


def get_template(code: str) -> PostingTemplate:
    try:
        return system_templates()[code]
    except KeyError:
        raise ConfigurationError(f"Unknown posting template {code}") from None


def templates_for(applies_to: str) -> list[PostingTemplate]:
    return [t for t in system_templates().values() if t.enabled and applies_to in t.applies_to]


def format_number(prefix: str, period: str, sequence: int) -> str:
    """Transaction number in the ``PREFIX-YYYYMM-NNNN`` form."""
    return f"{prefix}-{period.replace('-', '')}-{sequence:04d}"


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class TransactionDraft:
    """A template applied to concrete amounts, not yet written anywhere."""

    date: date
    description: str
    lines: tuple[TransactionLine, ...]
    template_id: str
    document_id: str | None = None
    document_type: str | None = None

    @property
    def total_md(self) -> Decimal:
        return round2(sum((line.amount for line in self.lines if line.side == Side.MD), ZERO))

    @property
    def total_d(self) -> Decimal:
        return round2(sum((line.amount for line in self.lines if line.side == Side.D), ZERO))

    @property
    def is_balanced(self) -> bool:
        return abs(self.total_md - self.total_d) <= EPSILON

    def to_transaction(
        self,
        number: str,
        status: TransactionStatus = TransactionStatus.POSTED,
        created_by: str | None = None,
        at: datetime | None = None,
    ) -> Transaction:
        posted = status != TransactionStatus.DRAFT
        return Transaction(
            id=_new_id(),
            number=number,
            date=self.date,
            description=self.description,
            lines=self.lines,
            status=status,
            template_id=self.template_id,
            document_id=self.document_id,
            document_type=self.document_type,
            created_by=created_by,
            posted_by=created_by if posted else None,
            posted_at=at if posted else None,
        )


def apply_template(
    template: PostingTemplate,
    amount: Decimal | int | str,
    on: date,
    description: str,
    partner_id: str | None = None,
    partner_name: str | None = None,
    document_id: str | None = None,
    document_type: str | None = None,
    custom_amounts: Mapping[str, Decimal | int | str] | None = None,
    accounts: AccountDirectory | None = None,
) -> TransactionDraft:
    """Turn a template into concrete, cent-rounded lines.

    ``TOTAL`` lines take ``amount``, ``CUSTOM`` lines take the caller's value
    for their line id (falling back to ``amount``) and ``PERCENT`` lines take
    ``amount_value`` percent of ``amount``. Only lines with a partner side
    carry the partner.
    """
    total = to_decimal(amount)
    custom = {k: to_decimal(v) for k, v in (custom_amounts or {}).items()}
    lines = []
    for index, line in enumerate(template.lines, start=1):
        line_amount = total
        if line.amount_source == AmountSource.CUSTOM and line.id in custom:
            line_amount = custom[line.id]
        elif line.amount_source == AmountSource.PERCENT and line.amount_value is not None:
            line_amount = total * line.amount_value / HUNDRED
        lines.append(
            TransactionLine(
                id=f"line-{index}",
                account_code=line.account_code,
                side=line.side,
                amount=round2(line_amount),
                partner_id=partner_id if line.partner_side else None,
                partner_name=partner_name if line.partner_side else None,
                description=line.description,
                account_name=(
                    line.account_name
                    or (accounts.name_for(line.account_code) if accounts else line.account_code)
                ),
            )
        )
    return TransactionDraft(
        date=on,
        description=description,
        lines=tuple(lines),
        template_id=template.code,
        document_id=document_id,
        document_type=document_type,
    )


def entry_accounts(entry: Entry) -> tuple[str, str]:
    """Return the ``(MD, D)`` account codes an entry is posted to."""
    mapping = load_category_accounts()
    if entry.type == EntryType.INCOME:
        income = mapping["income"]
        return WellKnownAccounts.RECEIVABLES, income["categories"].get(entry.category, income["default"])
    expense = mapping["expense"]
    return expense["categories"].get(entry.category, expense["default"]), WellKnownAccounts.PAYABLES


def entry_prefix(entry: Entry) -> str:
    return INCOME_PREFIX if entry.type == EntryType.INCOME else EXPENSE_PREFIX


def transaction_from_entry(
    entry: Entry,
    number: str,
    accounts: AccountDirectory | None = None,
    created_by: str | None = None,
    at: datetime | None = None,
    document_id: str | None = None,
) -> Transaction:
    """Post an income entry as MD 311 / D 6xx or an expense as MD 5xx / D 321."""
    accounts = accounts or AccountDirectory.from_defaults()
    md_code, d_code = entry_accounts(entry)
    if entry.type == EntryType.INCOME:
        label, document_type = "Faktúra vydaná", "INVOICE_ISSUED"
    else:
        label, document_type = "Faktúra prijatá", "INVOICE_RECEIVED"

    if entry.description:
        description = f"{label} - {entry.description}"
    else:
        description = label
        if entry.partner_name:
            description += f" - {entry.partner_name}"
        if entry.doc_number:
            description += f" ({entry.doc_number})"

    lines = tuple(
        TransactionLine(
            id=f"line-{index}",
            account_code=code,
            side=side,
            amount=entry.amount,
            partner_id=entry.partner_id,
            partner_name=entry.partner_name,
            description=accounts.name_for(code),
            account_name=accounts.name_for(code),
        )
        for index, (code, side) in enumerate(((md_code, Side.MD), (d_code, Side.D)), start=1)
    )
    return Transaction(
        id=_new_id(),
        number=number,
        date=entry.date,
        description=description,
        lines=lines,
        status=TransactionStatus.POSTED,
        document_id=document_id or entry.id,
        document_type=document_type,
        source_entry_id=entry.id,
        created_by=created_by,
        posted_by=created_by,
        posted_at=at,
    )


def _payroll_line(
    index: int, code: str, side: Side, amount: Decimal, description: str, accounts: AccountDirectory
) -> TransactionLine:
    return TransactionLine(
        id=str(index),
        account_code=code,
        side=side,
        amount=amount,
        description=description,
        account_name=accounts.name_for(code),
    )


def payroll_transactions(
    period: str,
    employee_name: str,
    calculation: PayrollCalculation,
    first_sequence: int,
    accounts: AccountDirectory | None = None,
    created_by: str | None = None,
    at: datetime | None = None,
) -> list[Transaction]:
    """Expand a payroll calculation into its transactions, in posting order.

    1. wage cost: MD 521 gross, MD 524 employer contributions /
       D 331 net, D 336 all insurance, D 342 tax advance
    2. net pay: MD 331 / D 221
    3. insurance payment: MD 336 / D 221
    4. tax advance payment: MD 342 / D 221

    Zero amounts produce no line and a payment of zero produces no
    transaction.
    """
    validate_period(period)
    accounts = accounts or AccountDirectory.from_defaults()
    year, month = (int(part) for part in period.split("-"))
    on = date(year, month, PAYROLL_DAY)
    wk = WellKnownAccounts
    calc = calculation

    wage_lines = [
        (wk.WAGES, Side.MD, calc.gross_salary, "Hrubá mzda"),
        (wk.EMPLOYER_CONTRIBUTIONS, Side.MD, calc.employer_contributions, "Odvody zamestnávateľa"),
        (wk.EMPLOYEES, Side.D, calc.net_salary, "Čistá mzda"),
        (wk.SOCIAL_INSURANCE, Side.D, calc.total_insurance, "Odvody SP+ZP"),
        (wk.DIRECT_TAXES, Side.D, calc.tax_advance, "Preddavok na daň"),
    ]
    plans: list[tuple[str, str, list[tuple[str, Side, Decimal, str]]]] = [
        (
            f"Mzda {period} - {employee_name}",
            "MZDA_NAKLAD",
            [row for row in wage_lines if row[2] > ZERO],
        ),
    ]
    for amount, description, template_id, settled in (
        (calc.net_salary, f"Výplata mzdy {period} - {employee_name}", "VYPLATA_MZDY", wk.EMPLOYEES),
        (calc.total_insurance, f"Úhrada odvodov SP+ZP {period}", "UHRADA_ODVODY", wk.SOCIAL_INSURANCE),
        (calc.tax_advance, f"Úhrada preddavku dane {period}", "UHRADA_DAN", wk.DIRECT_TAXES),
    ):
        if amount <= ZERO:
            continue
        plans.append(
            (
                description,
                template_id,
                [
                    (settled, Side.MD, amount, "Zúčtovanie záväzku"),
                    (wk.BANK, Side.D, amount, "Výdaj z účtu"),
                ],
            )
        )

    transactions = []
    for offset, (description, template_id, lines) in enumerate(plans):
        transactions.append(
            Transaction(
                id=_new_id(),
                number=format_number(GENERAL_PREFIX, period, first_sequence + offset),
                date=on,
                description=description,
                lines=tuple(
                    _payroll_line(i, code, side, amount, text, accounts)
                    for i, (code, side, amount, text) in enumerate(lines, start=1)
                ),
                status=TransactionStatus.POSTED,
                period=period,
                template_id=template_id,
                document_type="PAYROLL",
                created_by=created_by,
                posted_by=created_by,
                posted_at=at,
            )
        )
    return transactions


@dataclass
class PayrollResult:
    run: PayrollRun
    transactions: list[Transaction] = field(default_factory=list)


class PostingGenerator:
    """Writes generated transactions to a document store.

    Every transaction is re-checked by the balance enforcer right before it
    is written; a generated transaction that does not balance is a bug and
    raises ``InvariantViolation``. Writes into a locked period raise
    ``PeriodLockedError``.
    """

    def __init__(
        self,
        store: DocumentStore,
        period_locks: PeriodLockService | None = None,
        accounts: AccountDirectory | None = None,
        open_items: OpenItemCache | None = None,
        clock: Clock | None = None,
        timeout: float | None = None,
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._period_locks = period_locks or PeriodLockService(store, clock=self._clock)
        self._accounts = accounts or AccountDirectory.from_defaults()
        self._open_items = open_items
        self._timeout = timeout if timeout is not None else get_settings().store_timeout
        self._logger = logger.bind(component="posting_generator")

    async def _next_sequence(self, company_id: str) -> int:
        try:
            records = await asyncio.wait_for(
                self._store.list(company_id, TRANSACTIONS), timeout=self._timeout
            )
        except TimeoutError as e:
            raise TransientIOError(
                "Timed out counting transactions", details={"company_id": company_id}
            ) from e
        return len(records) + 1

    async def _write(self, company_id: str, transaction: Transaction) -> Transaction:
        check = check_balance(transaction.lines)
        if not check.balanced:
            self._logger.error(
                "generated_transaction_unbalanced",
                company_id=company_id,
                number=transaction.number,
                total_md=check.total_md,
                total_d=check.total_d,
                failures=[f.value for f in check.failures],
            )
            raise InvariantViolation(
                f"Generated transaction {transaction.number} does not balance",
                details={
                    "total_md": str(check.total_md),
                    "total_d": str(check.total_d),
                    "failures": [f.value for f in check.failures],
                },
            )
        await self._store.create(company_id, TRANSACTIONS, transaction.id, transaction.to_dict())
        if transaction.status != TransactionStatus.DRAFT:
            self._accounts.mark_referenced(transaction.account_codes())
        if self._open_items is not None:
            self._open_items.invalidate(company_id)
        self._logger.info(
            "transaction_written",
            company_id=company_id,
            number=transaction.number,
            period=transaction.period,
            total=check.total_md,
        )
        return transaction

    async def post_entry(self, company_id: str, entry: Entry, by: str | None = None) -> Transaction:
        period = period_of(entry.date)
        await self._period_locks.assert_period_open(company_id, period)
        sequence = await self._next_sequence(company_id)
        transaction = transaction_from_entry(
            entry,
            number=format_number(entry_prefix(entry), period, sequence),
            accounts=self._accounts,
            created_by=by,
            at=self._clock.now(),
        )
        return await self._write(company_id, transaction)

    async def post_template(
        self,
        company_id: str,
        template: PostingTemplate | str,
        amount: Decimal | int | str,
        on: date,
        description: str,
        by: str | None = None,
        partner_id: str | None = None,
        partner_name: str | None = None,
        document_id: str | None = None,
        document_type: str | None = None,
        custom_amounts: Mapping[str, Decimal | int | str] | None = None,
        status: TransactionStatus = TransactionStatus.POSTED,
    ) -> Transaction:
        if isinstance(template, str):
            template = get_template(template)
        period = period_of(on)
        await self._period_locks.assert_period_open(company_id, period)
        draft = apply_template(
            template,
            amount,
            on,
            description,
            partner_id=partner_id,
            partner_name=partner_name,
            document_id=document_id,
            document_type=document_type,
            custom_amounts=custom_amounts,
            accounts=self._accounts,
        )
        sequence = await self._next_sequence(company_id)
        transaction = draft.to_transaction(
            format_number(GENERAL_PREFIX, period, sequence),
            status=status,
            created_by=by,
            at=self._clock.now(),
        )
        return await self._write(company_id, transaction)

    async def payroll_config(self, company_id: str) -> tuple[PayrollConfig, bool]:
        """Return the company's payroll rates and whether they were configured."""
        try:
            data = await asyncio.wait_for(
                self._store.get(company_id, SETTINGS, PAYROLL_SETTINGS_KEY), timeout=self._timeout
            )
        except TimeoutError as e:
            raise TransientIOError(
                "Timed out reading payroll settings", details={"company_id": company_id}
            ) from e
        if data is None:
            return PayrollConfig.default(), False
        return PayrollConfig.from_mapping(data), True

    async def payroll_precheck(
        self,
        company_id: str,
        period: str,
        gross_salary: Decimal | int | str,
        create_payment_transactions: bool = True,
    ) -> PayrollData:
        """Gather the payroll rule input. The duplicate check here is best-effort."""
        try:
            existing = await asyncio.wait_for(
                self._store.get(company_id, PAYROLL_RUNS, period), timeout=self._timeout
            )
        except TimeoutError as e:
            raise TransientIOError(
                f"Timed out reading payroll run for {period}",
                details={"company_id": company_id, "period": period},
            ) from e
        _, configured = await self.payroll_config(company_id)
        return PayrollData(
            period=period,
            gross_salary=to_decimal(gross_salary),
            existing_run_for_period=existing is not None,
            has_payroll_settings=configured,
            create_payment_transactions=create_payment_transactions,
        )

    async def run_payroll(
        self,
        company_id: str,
        period: str,
        gross_salary: Decimal | int | str,
        by: str | None = None,
        employee_name: str = "Zamestnanec",
        config: PayrollConfig | None = None,
    ) -> PayrollResult:
        """Compute and post a payroll run for ``period``.

        The run record is claimed first with a conditional create keyed by
        period, so a concurrent second run fails before any transaction is
        written.

        Raises:
            DuplicatePayrollRunError: A run for the period already exists.
            PeriodLockedError: The period is locked.
        """
        validate_period(period)
        await self._period_locks.assert_period_open(company_id, period)
        if config is None:
            config, _ = await self.payroll_config(company_id)
        calculation = calculate_payroll(gross_salary, config)
        run = PayrollRun(
            period=period,
            employee_name=employee_name,
            calculation=calculation,
            created_by=by,
            status="PROCESSING",
        )

        try:
            await self._store.create(company_id, PAYROLL_RUNS, period, run.to_dict())
        except ConflictError as e:
            self._logger.warning("payroll_duplicate_run", company_id=company_id, period=period)
            raise DuplicatePayrollRunError(period, details={"company_id": company_id}) from e

        sequence = await self._next_sequence(company_id)
        transactions = payroll_transactions(
            period,
            employee_name,
            calculation,
            first_sequence=sequence,
            accounts=self._accounts,
            created_by=by,
            at=self._clock.now(),
        )
        for transaction in transactions:
            await self._write(company_id, transaction)
            run.transaction_ids.append(transaction.id)

        run.status = "PROCESSED"
        await self._store.put(company_id, PAYROLL_RUNS, period, run.to_dict(), merge=True)
        self._logger.info(
            "payroll_run_posted",
            company_id=company_id,
            period=period,
            gross=calculation.gross_salary,
            net=calculation.net_salary,
            transactions=len(transactions),
        )
        return PayrollResult(run=run, transactions=transactions)
