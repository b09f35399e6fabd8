"""Monthly payroll computation for a single employee."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from guided_ledger.config.loader import load_payroll_defaults
from guided_ledger.errors import ConfigurationError
from guided_ledger.money import ZERO, round2, to_decimal

MONTHS = Decimal("12")

RATE_FIELDS = (
    "health_insurance_employee",
    "social_insurance_employee",
    "income_tax_rate",
    "health_insurance_employer",
    "social_insurance_employer",
)


@dataclass(frozen=True)
class PayrollConfig:
    """Contribution and tax rates; ``tax_free_amount`` is annual."""

    year: int
    health_insurance_employee: Decimal
    social_insurance_employee: Decimal
    income_tax_rate: Decimal
    tax_free_amount: Decimal
    health_insurance_employer: Decimal
    social_insurance_employer: Decimal

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> PayrollConfig:
        values: dict[str, Decimal] = {}
        for name in (*RATE_FIELDS, "tax_free_amount"):
            if name not in data:
                raise ConfigurationError(f"Payroll configuration is missing {name}")
            try:
                values[name] = to_decimal(data[name])
            except ValueError as e:
                raise ConfigurationError(f"Payroll {name}: {e}") from e
        for name in RATE_FIELDS:
            if not ZERO <= values[name] <= 1:
                raise ConfigurationError(f"Payroll {name} must be between 0 and 1")
        if values["tax_free_amount"] < ZERO:
            raise ConfigurationError("Payroll tax_free_amount cannot be negative")
        return cls(year=int(data.get("year", 0)), **values)

    @classmethod
    def default(cls) -> PayrollConfig:
        return cls.from_mapping(load_payroll_defaults())


@dataclass(frozen=True)
class PayrollCalculation:
    gross_salary: Decimal
    health_employee: Decimal
    social_employee: Decimal
    tax_advance: Decimal
    net_salary: Decimal
    health_employer: Decimal
    social_employer: Decimal

    @property
    def employee_deductions(self) -> Decimal:
        return self.health_employee + self.social_employee

    @property
    def employer_contributions(self) -> Decimal:
        return self.health_employer + self.social_employer

    @property
    def total_insurance(self) -> Decimal:
        """Everything owed to the health and social insurers (account 336)."""
        return self.employee_deductions + self.employer_contributions

    @property
    def total_employer_cost(self) -> Decimal:
        return self.gross_salary + self.employer_contributions


def calculate_payroll(gross_salary: Decimal | int | str, config: PayrollConfig) -> PayrollCalculation:
    """Split a gross monthly salary into deductions, tax advance and net pay.

    The tax advance is charged on gross minus employee contributions minus
    one twelfth of the annual tax-free amount, never below zero.
    """
    gross = round2(to_decimal(gross_salary))
    if gross <= ZERO:
        raise ValueError(f"Gross salary must be positive, got {gross}")

    health_employee = round2(gross * config.health_insurance_employee)
    social_employee = round2(gross * config.social_insurance_employee)
    tax_base = gross - health_employee - social_employee
    taxable = max(ZERO, tax_base - config.tax_free_amount / MONTHS)
    tax_advance = round2(taxable * config.income_tax_rate)
    net_salary = round2(gross - health_employee - social_employee - tax_advance)

    return PayrollCalculation(
        gross_salary=gross,
        health_employee=health_employee,
        social_employee=social_employee,
        tax_advance=tax_advance,
        net_salary=net_salary,
        health_employer=round2(gross * config.health_insurance_employer),
        social_employer=round2(gross * config.social_insurance_employer),
    )


@dataclass
class PayrollRun:
    """Stored record of a processed payroll, one per period."""

    period: str
    employee_name: str
    calculation: PayrollCalculation
    transaction_ids: list[str] = field(default_factory=list)
    created_by: str | None = None
    status: str = "PROCESSED"

    def to_dict(self) -> dict[str, Any]:
        calc = self.calculation
        return {
            "period": self.period,
            "employee_name": self.employee_name,
            "gross_salary": str(calc.gross_salary),
            "health_insurance_employee": str(calc.health_employee),
            "social_insurance_employee": str(calc.social_employee),
            "income_tax_advance": str(calc.tax_advance),
            "net_salary": str(calc.net_salary),
            "health_insurance_employer": str(calc.health_employer),
            "social_insurance_employer": str(calc.social_employer),
            "total_employer_cost": str(calc.total_employer_cost),
            "transaction_ids": list(self.transaction_ids),
            "status": self.status,
            "created_by": self.created_by,
        }
