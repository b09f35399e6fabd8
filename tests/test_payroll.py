"""Tests for payroll computation."""

from decimal import Decimal

import pytest

from guided_ledger.errors import ConfigurationError
from guided_ledger.payroll import PayrollConfig, PayrollRun, calculate_payroll


@pytest.fixture
def config():
    return PayrollConfig.default()


class TestCalculatePayroll:
    def test_gross_2000(self, config):
        calc = calculate_payroll(2000, config)

        assert calc.health_employee == Decimal("80.00")
        assert calc.social_employee == Decimal("188.00")
        # (2000 - 268 - 4922.82 / 12) * 0.19 = 251.135...
        assert calc.tax_advance == Decimal("251.14")
        assert calc.net_salary == Decimal("1480.86")
        assert calc.health_employer == Decimal("200.00")
        assert calc.social_employer == Decimal("504.00")
        assert calc.total_insurance == Decimal("972.00")
        assert calc.total_employer_cost == Decimal("2704.00")

    def test_low_salary_has_no_tax_advance(self, config):
        calc = calculate_payroll(400, config)

        assert calc.tax_advance == Decimal("0.00")
        assert calc.net_salary == calc.gross_salary - calc.employee_deductions

    @pytest.mark.parametrize("gross", [0, -100])
    def test_non_positive_gross_rejected(self, config, gross):
        with pytest.raises(ValueError):
            calculate_payroll(gross, config)


class TestPayrollConfig:
    def test_defaults(self, config):
        assert config.income_tax_rate == Decimal("0.19")
        assert config.tax_free_amount == Decimal("4922.82")

    def test_missing_rate(self):
        with pytest.raises(ConfigurationError, match="income_tax_rate"):
            PayrollConfig.from_mapping(
                {
                    "health_insurance_employee": "0.04",
                    "social_insurance_employee": "0.094",
                    "tax_free_amount": "0",
                    "health_insurance_employer": "0.1",
                    "social_insurance_employer": "0.252",
                }
            )

    def test_rate_above_one(self):
        data = {
            "health_insurance_employee": "4",
            "social_insurance_employee": "0.094",
            "income_tax_rate": "0.19",
            "tax_free_amount": "0",
            "health_insurance_employer": "0.1",
            "social_insurance_employer": "0.252",
        }
        with pytest.raises(ConfigurationError):
            PayrollConfig.from_mapping(data)


def test_run_record_serializes_amounts_as_strings(config):
    run = PayrollRun(
        period="2025-03",
        employee_name="Ján Novák",
        calculation=calculate_payroll(2000, config),
        transaction_ids=["a", "b"],
    )

    data = run.to_dict()

    assert data["net_salary"] == "1480.86"
    assert data["transaction_ids"] == ["a", "b"]
    assert data["status"] == "PROCESSED"


def test_gross_is_rounded_to_cents(config):
    calc = calculate_payroll("1000.005", config)

    assert calc.gross_salary == Decimal("1000.01")
    assert calc.gross_salary.as_tuple().exponent == -2
