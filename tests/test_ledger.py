"""Tests for the transaction model and the balance enforcer."""

from datetime import UTC, date, datetime
from decimal import Decimal

import pytest
from conftest import line, transaction

from guided_ledger.errors import (
    ImmutableTransactionError,
    InvalidTransitionError,
    InvariantViolation,
)
from guided_ledger.ledger import (
    BalanceFailure,
    Transaction,
    TransactionStatus,
    audit_transaction,
    check_balance,
    period_of,
)


class TestCheckBalance:
    """Tests for check_balance."""

    def test_balanced_transaction(self):
        check = check_balance([line("311", "MD", "120.00"), line("602", "D", "120.00")])

        assert check.balanced
        assert check.failures == ()
        assert check.total_md == Decimal("120.00")
        assert check.diff == Decimal("0")

    def test_one_cent_difference_passes(self):
        """A diff of exactly one cent is within tolerance."""
        check = check_balance([line("311", "MD", "100.00"), line("601", "D", "99.99")])

        assert check.balanced
        assert check.diff == Decimal("0.01")

    def test_above_one_cent_blocks(self):
        check = check_balance([line("311", "MD", "100.00"), line("601", "D", "99.98")])

        assert not check.balanced
        assert check.failures == (BalanceFailure.UNBALANCED,)

    def test_reports_every_failure_together(self):
        check = check_balance([line("311", "MD", "0")])

        assert set(check.failures) == {
            BalanceFailure.NO_D_LINE,
            BalanceFailure.NON_POSITIVE_AMOUNT,
        }
        assert check.offending_line.account_code == "311"

    def test_empty_lines(self):
        check = check_balance([])

        assert BalanceFailure.NO_MD_LINE in check.failures
        assert BalanceFailure.NO_D_LINE in check.failures
        assert BalanceFailure.UNBALANCED not in check.failures

    def test_negative_amount_blocks_even_when_totals_agree(self):
        check = check_balance(
            [
                line("311", "MD", "-50"),
                line("311", "MD", "150", line_id="b"),
                line("602", "D", "100"),
            ]
        )

        assert check.failures == (BalanceFailure.NON_POSITIVE_AMOUNT,)

    def test_failure_values_are_rule_codes(self):
        assert BalanceFailure.NON_POSITIVE_AMOUNT.value == "TRX_NEGATIVE_AMOUNT"


class TestTransactionLifecycle:
    """Tests for DRAFT -> POSTED -> LOCKED transitions."""

    def _draft(self):
        return transaction(
            line("518", "MD", "80"),
            line("321", "D", "80", partner_id="p-1"),
            status=TransactionStatus.DRAFT,
        )

    def test_period_derived_from_date(self):
        assert self._draft().period == "2025-03"
        assert period_of(date(2024, 11, 30)) == "2024-11"

    def test_post_sets_audit_fields(self):
        trx = self._draft()
        at = datetime(2025, 3, 11, tzinfo=UTC)

        trx.post(by="user-1", at=at)

        assert trx.status == TransactionStatus.POSTED
        assert trx.posted_by == "user-1"
        assert trx.posted_at == at

    def test_post_unbalanced_draft_fails(self):
        trx = transaction(
            line("518", "MD", "80"), line("321", "D", "79"), status=TransactionStatus.DRAFT
        )

        with pytest.raises(InvalidTransitionError):
            trx.post(by="user-1")
        assert trx.status == TransactionStatus.DRAFT

    def test_replace_lines_only_on_draft(self):
        trx = self._draft()
        trx.replace_lines([line("518", "MD", "90"), line("321", "D", "90")])
        assert trx.total_md == Decimal("90")

        trx.post(by="user-1")
        with pytest.raises(ImmutableTransactionError):
            trx.replace_lines([line("518", "MD", "1"), line("321", "D", "1")])

    def test_lock_and_unlock(self):
        trx = self._draft()
        with pytest.raises(InvalidTransitionError):
            trx.lock()

        trx.post(by="user-1")
        trx.lock()
        assert trx.status == TransactionStatus.LOCKED
        assert trx.locked_at is not None

        trx.unlock()
        assert trx.status == TransactionStatus.POSTED
        assert trx.locked_at is None

        with pytest.raises(InvalidTransitionError):
            trx.unlock()


class TestSerialization:
    def test_round_trip_keeps_lines_and_status(self):
        trx = transaction(
            line("311", "MD", "100.50", partner_id="p-1", partner_name="Alfa s.r.o."),
            line("602", "D", "100.50"),
            template_id="FA_VYDANA_SLUZBY",
        )

        restored = Transaction.from_dict(trx.to_dict())

        assert restored.lines == trx.lines
        assert restored.status == TransactionStatus.POSTED
        assert restored.template_id == "FA_VYDANA_SLUZBY"
        assert restored.period == "2025-03"

    def test_from_dict_accepts_camel_case_lines(self):
        data = {
            "id": "t1",
            "date": "2025-01-05T00:00:00",
            "lines": [
                {"id": "1", "accountCode": "311", "side": "MD", "amount": 10, "partnerId": "p"},
                {"id": "2", "accountCode": "602", "side": "D", "amount": 10},
            ],
            "status": "POSTED",
        }

        trx = Transaction.from_dict(data)

        assert trx.date == date(2025, 1, 5)
        assert trx.lines[0].partner_id == "p"
        assert trx.lines[0].amount == Decimal("10")


class TestAuditTransaction:
    def test_unbalanced_posted_transaction_is_fatal(self):
        trx = transaction(line("311", "MD", "100"), line("602", "D", "90"))

        with pytest.raises(InvariantViolation) as exc_info:
            audit_transaction(trx)

        assert "TRX_UNBALANCED" in exc_info.value.details["failures"]

    def test_drafts_are_not_audited(self):
        trx = transaction(line("311", "MD", "100"), status=TransactionStatus.DRAFT)

        audit_transaction(trx)

    def test_balanced_posted_transaction_passes(self):
        audit_transaction(transaction(line("311", "MD", "5"), line("602", "D", "5")))
