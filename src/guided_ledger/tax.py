"""Corporate income tax, dividend withholding and report reductions.

Every step of ``calculate_taxes`` is rounded half-up to cents right after
it is computed; reports must reproduce to the cent, so rounding is never
deferred to the end.

Brackets are revenue ceilings, not marginal slabs: the whole base is taxed
at the rate of the first bracket whose ceiling covers the income.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, fields
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from functools import lru_cache
from typing import Any

import structlog

from guided_ledger.config.loader import load_tax_defaults
from guided_ledger.entries import Entry, EntryType, PaymentStatus
from guided_ledger.errors import ConfigurationError
from guided_ledger.money import HUNDRED, ZERO, round2, to_decimal

logger = structlog.get_logger(__name__)

ONE = Decimal("1")
MILLION = Decimal("1000000")
SMALL_BRACKET_CEILING = Decimal("100000")


class CorporateTaxMode(str, Enum):
    FIXED = "FIXED"
    AUTO_BRACKETS = "AUTO_BRACKETS"


@dataclass(frozen=True)
class TaxBracket:
    up_to_revenue: Decimal | None
    rate: Decimal


def _rate(value: Any, name: str) -> Decimal:
    try:
        rate = to_decimal(value)
    except ValueError as e:
        raise ConfigurationError(f"{name}: {e}") from e
    if rate < ZERO or rate > ONE:
        raise ConfigurationError(f"{name} must be between 0 and 1, got {rate}")
    return rate


@dataclass(frozen=True)
class TaxSettings:
    year: int
    corporate_tax_mode: CorporateTaxMode
    corporate_tax_fixed_rate: Decimal
    corporate_brackets: tuple[TaxBracket, ...] = ()
    dividend_withholding_rate: Decimal = ZERO
    loss_carryforward: Decimal = ZERO

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> TaxSettings:
        """Build and validate settings from a plain mapping.

        Raises:
            ConfigurationError: A value is missing, not a number or out of range.
        """
        try:
            mode = CorporateTaxMode(data["corporate_tax_mode"])
        except (KeyError, ValueError) as e:
            raise ConfigurationError(f"Invalid corporate_tax_mode: {e}") from e

        brackets = []
        for idx, raw in enumerate(data.get("corporate_brackets") or []):
            ceiling = raw.get("up_to_revenue")
            try:
                up_to = to_decimal(ceiling) if ceiling is not None else None
            except ValueError as e:
                raise ConfigurationError(f"corporate_brackets[{idx}].up_to_revenue: {e}") from e
            brackets.append(
                TaxBracket(
                    up_to_revenue=up_to,
                    rate=_rate(raw.get("rate"), f"corporate_brackets[{idx}].rate"),
                )
            )

        try:
            loss = to_decimal(data.get("loss_carryforward"), default=ZERO)
        except ValueError as e:
            raise ConfigurationError(f"loss_carryforward: {e}") from e

        settings = cls(
            year=int(data.get("year", 0)),
            corporate_tax_mode=mode,
            corporate_tax_fixed_rate=_rate(
                data.get("corporate_tax_fixed_rate"), "corporate_tax_fixed_rate"
            ),
            corporate_brackets=tuple(brackets),
            dividend_withholding_rate=_rate(
                data.get("dividend_withholding_rate"), "dividend_withholding_rate"
            ),
            loss_carryforward=loss,
        )
        settings.validate()
        return settings

    @classmethod
    def default(cls) -> TaxSettings:
        return cls.from_mapping(load_tax_defaults()["settings"])

    def validate(self) -> None:
        """Fail loudly on settings that cannot be evaluated unambiguously.

        A bracket list without an unbounded last bracket is accepted;
        incomes above the last ceiling fall back to the default rate.
        """
        for name in ("corporate_tax_fixed_rate", "dividend_withholding_rate"):
            _rate(getattr(self, name), name)
        if self.loss_carryforward < ZERO:
            raise ConfigurationError("loss_carryforward cannot be negative")

        previous: Decimal | None = None
        for idx, bracket in enumerate(self.corporate_brackets):
            _rate(bracket.rate, f"corporate_brackets[{idx}].rate")
            if bracket.up_to_revenue is None:
                if idx != len(self.corporate_brackets) - 1:
                    raise ConfigurationError("Only the last corporate bracket may be unbounded")
                continue
            if previous is not None and bracket.up_to_revenue <= previous:
                raise ConfigurationError(
                    "Corporate bracket ceilings must be strictly ascending",
                    details={"index": idx, "ceiling": str(bracket.up_to_revenue)},
                )
            previous = bracket.up_to_revenue

        if self.corporate_tax_mode == CorporateTaxMode.AUTO_BRACKETS and not self.corporate_brackets:
            raise ConfigurationError("AUTO_BRACKETS mode needs at least one bracket")


@lru_cache
def fallback_rate() -> Decimal:
    return _rate(load_tax_defaults()["fallback_rate"], "fallback_rate")


@dataclass(frozen=True)
class CorporateTaxRate:
    rate: Decimal
    label: str
    bracket_index: int | None = None
    is_micro: bool = False


def _pct(rate: Decimal) -> Decimal:
    return (rate * HUNDRED).quantize(ONE, rounding=ROUND_HALF_UP)


def _bracket_label(bracket: TaxBracket) -> str:
    pct = _pct(bracket.rate)
    if bracket.up_to_revenue is None:
        return f"{pct}% (nad 5M EUR)"
    if bracket.up_to_revenue <= SMALL_BRACKET_CEILING:
        return f"{pct}% (do 100k EUR)"
    millions = (bracket.up_to_revenue / MILLION).quantize(ONE, rounding=ROUND_HALF_UP)
    return f"{pct}% (do {millions}M EUR)"


def get_corporate_tax_rate(income: Decimal | int | str, settings: TaxSettings) -> CorporateTaxRate:
    """Select the corporate tax rate for a year's income.

    Raises:
        ConfigurationError: The settings are malformed.
    """
    settings.validate()
    income = to_decimal(income)
    if settings.corporate_tax_mode == CorporateTaxMode.FIXED:
        rate = settings.corporate_tax_fixed_rate
        return CorporateTaxRate(rate=rate, label=f"{_pct(rate)}% (fixná sadzba)")

    for idx, bracket in enumerate(settings.corporate_brackets):
        if bracket.up_to_revenue is None or income <= bracket.up_to_revenue:
            return CorporateTaxRate(
                rate=bracket.rate, label=_bracket_label(bracket), bracket_index=idx
            )

    rate = fallback_rate()
    logger.warning(
        "tax_bracket_fallback",
        income=income,
        year=settings.year,
        fallback_rate=rate,
    )
    return CorporateTaxRate(
        rate=rate,
        label=f"{_pct(rate)}% (štandardná)",
        bracket_index=len(settings.corporate_brackets),
    )


@dataclass(frozen=True)
class TaxResult:
    total_income: Decimal
    total_expense: Decimal
    profit_before_tax: Decimal
    deductible_expenses: Decimal
    tax_base: Decimal
    corporate_tax_rate: Decimal
    corporate_tax_rate_label: str
    corporate_tax: Decimal
    profit_after_tax: Decimal
    dividend_payout: Decimal
    dividend_tax: Decimal
    net_dividend: Decimal
    retained_earnings: Decimal
    effective_tax_rate: Decimal


def calculate_taxes(
    income: Decimal | int | str,
    expense: Decimal | int | str,
    deductible_expenses: Decimal | int | str,
    settings: TaxSettings,
    dividend_payout_percent: Decimal | int | str = 100,
) -> TaxResult:
    """Compute corporate tax, dividend withholding and what is left.

    Args:
        income: Total income of the year.
        expense: Total accounting expenses.
        deductible_expenses: Expenses accepted for the tax base.
        settings: Tax settings, validated before use.
        dividend_payout_percent: Share of the after-tax profit paid out, 0-100.
    """
    income = to_decimal(income)
    expense = to_decimal(expense)
    deductible = to_decimal(deductible_expenses)
    payout_pct = to_decimal(dividend_payout_percent)
    if payout_pct < ZERO or payout_pct > HUNDRED:
        raise ValueError(f"dividend_payout_percent must be between 0 and 100, got {payout_pct}")

    profit_before_tax = round2(income - expense)
    tax_base = round2(max(ZERO, income - deductible - settings.loss_carryforward))
    rate = get_corporate_tax_rate(income, settings)
    corporate_tax = round2(tax_base * rate.rate)
    profit_after_tax = round2(profit_before_tax - corporate_tax)
    dividend_payout = round2(max(ZERO, profit_after_tax) * payout_pct / HUNDRED)
    dividend_tax = round2(dividend_payout * settings.dividend_withholding_rate)
    net_dividend = round2(dividend_payout - dividend_tax)
    retained_earnings = round2(profit_after_tax - dividend_payout)
    if profit_before_tax > ZERO:
        effective_tax_rate = round2((corporate_tax + dividend_tax) / profit_before_tax * HUNDRED)
    else:
        effective_tax_rate = ZERO

    return TaxResult(
        total_income=income,
        total_expense=expense,
        profit_before_tax=profit_before_tax,
        deductible_expenses=deductible,
        tax_base=tax_base,
        corporate_tax_rate=rate.rate,
        corporate_tax_rate_label=rate.label,
        corporate_tax=corporate_tax,
        profit_after_tax=profit_after_tax,
        dividend_payout=dividend_payout,
        dividend_tax=dividend_tax,
        net_dividend=net_dividend,
        retained_earnings=retained_earnings,
        effective_tax_rate=effective_tax_rate,
    )


# === Report reductions ===


@dataclass(frozen=True)
class MonthlyData:
    month: str
    income: Decimal
    expense: Decimal
    profit: Decimal


def calculate_monthly_breakdown(entries: Iterable[Entry], year: int) -> list[MonthlyData]:
    """Income, expense and profit for each of the twelve months of ``year``."""
    income = [ZERO] * 12
    expense = [ZERO] * 12
    for entry in entries:
        if entry.date.year != year:
            continue
        if entry.type == EntryType.INCOME:
            income[entry.date.month - 1] += entry.amount
        else:
            expense[entry.date.month - 1] += entry.amount
    return [
        MonthlyData(
            month=f"{year}-{m + 1:02d}",
            income=round2(income[m]),
            expense=round2(expense[m]),
            profit=round2(income[m] - expense[m]),
        )
        for m in range(12)
    ]


@dataclass(frozen=True)
class CategoryData:
    category: str
    amount: Decimal
    percent: Decimal


def calculate_category_breakdown(entries: Iterable[Entry]) -> list[CategoryData]:
    """Totals per category with their share of the grand total, largest first."""
    totals: dict[str, Decimal] = {}
    grand_total = ZERO
    for entry in entries:
        totals[entry.category] = totals.get(entry.category, ZERO) + entry.amount
        grand_total += entry.amount
    result = [
        CategoryData(
            category=category,
            amount=round2(amount),
            percent=round2(amount / grand_total * HUNDRED) if grand_total > ZERO else ZERO,
        )
        for category, amount in totals.items()
    ]
    return sorted(result, key=lambda c: c.amount, reverse=True)


@dataclass(frozen=True)
class UnpaidSummary:
    total_unpaid_income: Decimal = ZERO
    total_unpaid_expense: Decimal = ZERO
    unpaid_income_count: int = 0
    unpaid_expense_count: int = 0


def calculate_unpaid_summary(entries: Iterable[Entry]) -> UnpaidSummary:
    """Sum unpaid and partially paid entries, split by direction."""
    income_total = expense_total = ZERO
    income_count = expense_count = 0
    for entry in entries:
        if entry.payment_status == PaymentStatus.PAID:
            continue
        if entry.type == EntryType.INCOME:
            income_total += entry.amount
            income_count += 1
        else:
            expense_total += entry.amount
            expense_count += 1
    return UnpaidSummary(
        total_unpaid_income=round2(income_total),
        total_unpaid_expense=round2(expense_total),
        unpaid_income_count=income_count,
        unpaid_expense_count=expense_count,
    )


# === Statutory small-taxpayer helpers ===


@dataclass(frozen=True)
class StatutoryRates:
    cit_micro: Decimal
    cit_small: Decimal
    cit_standard: Decimal
    micro_threshold: Decimal
    small_threshold: Decimal
    employer_health: Decimal
    employer_social: Decimal


@lru_cache
def statutory_rates() -> StatutoryRates:
    raw = load_tax_defaults().get("statutory_2025")
    if not isinstance(raw, dict):
        raise ConfigurationError("tax.yaml: statutory_2025 must be a mapping")
    known = {f.name for f in fields(StatutoryRates)}
    missing = known - raw.keys()
    if missing:
        raise ConfigurationError(f"tax.yaml: statutory_2025 is missing {sorted(missing)}")
    return StatutoryRates(
        **{name: to_decimal(raw[name]) for name in known}
    )


def turnover_tax_rate(annual_turnover: Decimal | int | str) -> CorporateTaxRate:
    """Statutory rate by annual turnover, flagging the mikrodaňovník bracket."""
    turnover = to_decimal(annual_turnover)
    rates = statutory_rates()
    if turnover <= rates.small_threshold:
        return CorporateTaxRate(rate=rates.cit_small, label=f"{_pct(rates.cit_small)}% (malý podnikateľ)")
    if turnover <= rates.micro_threshold:
        return CorporateTaxRate(
            rate=rates.cit_micro, label=f"{_pct(rates.cit_micro)}% (mikrodaňovník)", is_micro=True
        )
    return CorporateTaxRate(rate=rates.cit_standard, label=f"{_pct(rates.cit_standard)}% (štandardná)")


@dataclass(frozen=True)
class EmployerCost:
    gross_salary: Decimal
    employer_health: Decimal
    employer_social: Decimal
    total_cost: Decimal


def calculate_employer_cost(gross_salary: Decimal | int | str) -> EmployerCost:
    """Total cost of an employee to the employer under the statutory rates."""
    gross = to_decimal(gross_salary)
    rates = statutory_rates()
    health = gross * rates.employer_health
    social = gross * rates.employer_social
    return EmployerCost(
        gross_salary=gross,
        employer_health=round2(health),
        employer_social=round2(social),
        total_cost=round2(gross + health + social),
    )
