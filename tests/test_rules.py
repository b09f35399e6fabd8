"""Tests for the guardrail rule engine."""

from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from conftest import COMPANY, line, transaction

from guided_ledger.audit import AuditEntryType
from guided_ledger.errors import ConfigurationError, TransientIOError
from guided_ledger.rules import (
    BankPairingData,
    DocumentData,
    EntityType,
    PayrollData,
    PeriodClosingData,
    RuleContext,
    RuleEngine,
    RuleHit,
    RuleResult,
    Severity,
    TransactionData,
    record_override,
)
from guided_ledger.store import AUDIT, ExtractedField


@pytest.fixture
def engine(period_locks):
    return RuleEngine(period_locks=period_locks, low_confidence_threshold=0.7)


@pytest.fixture
def context():
    return RuleContext(company_id=COMPANY, period="2025-03", user_id="user-1")


def tx_data(*lines, description="FA 2025001 - Služby", template_id=None):
    return TransactionData(description=description, lines=list(lines), template_id=template_id)


class TestTransactionRules:
    """Tests for the transaction rule set."""

    @pytest.mark.asyncio
    async def test_clean_transaction(self, engine, context):
        data = tx_data(line("311", "MD", "100", partner_id="p-1"), line("602", "D", "100"))

        result = await engine.validate(EntityType.TRANSACTION, data, context)

        assert result.is_valid
        assert result.codes() == []

    @pytest.mark.asyncio
    async def test_one_cent_difference_passes(self, engine, context):
        data = tx_data(line("311", "MD", "100.00", partner_id="p"), line("601", "D", "99.99"))

        result = await engine.validate(EntityType.TRANSACTION, data, context)

        assert "TRX_UNBALANCED" not in result.codes()
        assert result.is_valid

    @pytest.mark.asyncio
    async def test_two_cent_difference_blocks(self, engine, context):
        data = tx_data(line("311", "MD", "100.00", partner_id="p"), line("601", "D", "99.98"))

        result = await engine.validate(EntityType.TRANSACTION, data, context)

        assert [hit.code for hit in result.blocks] == ["TRX_UNBALANCED"]
        assert "0.02 €" in result.blocks[0].message

    @pytest.mark.asyncio
    async def test_locked_period_blocks(self, engine, context, period_locks):
        await period_locks.lock(COMPANY, "2025-03", by="user-1")
        data = tx_data(line("311", "MD", "10", partner_id="p"), line("602", "D", "10"))

        result = await engine.validate(EntityType.TRANSACTION, data, context)

        assert [hit.code for hit in result.blocks] == ["TRX_PERIOD_LOCKED"]

    @pytest.mark.asyncio
    async def test_all_rules_run_after_a_block(self, engine, context):
        data = tx_data(line("311", "MD", "10"), description=" x ")

        result = await engine.validate(EntityType.TRANSACTION, data, context)

        assert result.codes() == [
            "TRX_NO_D_LINE",
            "TRX_UNBALANCED",
            "TRX_NO_DESCRIPTION",
            "TRX_311_321_NO_PARTNER",
        ]
        assert result.warnings[1].field_path == "lines.311-MD.partner_id"

    @pytest.mark.asyncio
    async def test_payment_template_without_bank(self, engine, context):
        data = tx_data(
            line("321", "MD", "50", partner_id="p"),
            line("211", "D", "50"),
            template_id="UHRADA_DODAVATEL",
        )

        result = await engine.validate(EntityType.TRANSACTION, data, context)

        assert result.codes() == ["TRX_PAYMENT_NO_BANK"]
        assert result.is_valid

    @pytest.mark.asyncio
    async def test_bank_settlement_suggests_template(self, engine, context):
        data = tx_data(line("221", "MD", "50"), line("311", "D", "50", partner_id="p"))

        result = await engine.validate(EntityType.TRANSACTION, data, context)

        assert [hit.code for hit in result.infos] == ["TRX_SUGGEST_TEMPLATE"]

    @pytest.mark.asyncio
    async def test_accepts_transaction_objects(self, engine, context):
        trx = transaction(line("311", "MD", "10", partner_id="p"), line("602", "D", "10"))

        result = await engine.validate(EntityType.TRANSACTION, trx, context)

        assert result.is_valid

    @pytest.mark.asyncio
    async def test_lock_read_failure_propagates(self, context):
        locks = AsyncMock()
        locks.is_locked.side_effect = TransientIOError("store down")
        engine = RuleEngine(period_locks=locks)
        data = tx_data(line("311", "MD", "10", partner_id="p"), line("602", "D", "10"))

        with pytest.raises(TransientIOError):
            await engine.validate(EntityType.TRANSACTION, data, context)

    @pytest.mark.asyncio
    async def test_fail_open_is_passed_to_lock_service(self, context):
        locks = AsyncMock()
        locks.is_locked.return_value = False
        engine = RuleEngine(period_locks=locks, fail_open=True)
        data = tx_data(line("311", "MD", "10", partner_id="p"), line("602", "D", "10"))

        await engine.validate(EntityType.TRANSACTION, data, context)

        locks.is_locked.assert_awaited_once_with(COMPANY, "2025-03", fail_open=True)

    @pytest.mark.asyncio
    async def test_period_without_lock_service_is_a_configuration_error(self, context):
        data = tx_data(line("311", "MD", "10", partner_id="p"), line("602", "D", "10"))

        with pytest.raises(ConfigurationError):
            await RuleEngine().validate(EntityType.TRANSACTION, data, context)

    @pytest.mark.asyncio
    async def test_wrong_data_type(self, engine, context):
        with pytest.raises(TypeError):
            await engine.validate(EntityType.PAYROLL, tx_data(), context)


class TestDocumentRules:
    @pytest.mark.asyncio
    async def test_missing_amount_and_date(self, engine):
        result = await engine.validate(
            EntityType.DOCUMENT, DocumentData(doc_number="1"), RuleContext(COMPANY)
        )

        assert [hit.code for hit in result.blocks] == ["DOC_NO_AMOUNT", "DOC_NO_DATE"]
        assert result.infos == []

    @pytest.mark.asyncio
    async def test_low_confidence_and_missing_ico(self, engine):
        data = DocumentData(
            amount="99.90",
            issue_date=date(2025, 3, 3),
            partner_name="Beta a.s.",
            extracted_fields={
                "amount": ExtractedField(value="99.90", confidence=0.55),
                "supplier": ExtractedField(value="Beta a.s.", confidence=0.69),
            },
        )

        result = await engine.validate(EntityType.DOCUMENT, data, RuleContext(COMPANY))

        assert result.is_valid
        assert [hit.code for hit in result.warnings] == [
            "DOC_LOW_CONFIDENCE_AMOUNT",
            "DOC_LOW_CONFIDENCE_SUPPLIER",
            "DOC_SUPPLIER_NO_ICO",
            "DOC_NO_NUMBER",
        ]
        assert "55%" in result.warnings[0].message
        assert [hit.code for hit in result.infos] == ["DOC_SUGGEST_TEMPLATE"]

    @pytest.mark.asyncio
    async def test_confidence_at_threshold_is_fine(self, engine):
        data = DocumentData(
            amount=10,
            issue_date=date(2025, 3, 3),
            doc_number="FA-1",
            extracted_fields={"amount": ExtractedField(value=10, confidence=0.7)},
        )

        result = await engine.validate(EntityType.DOCUMENT, data, RuleContext(COMPANY))

        assert result.codes() == ["DOC_SUGGEST_TEMPLATE"]


class TestBankPairingRules:
    @pytest.mark.asyncio
    async def test_overpayment_blocks(self, engine):
        data = BankPairingData(
            movement_amount=150, open_item_amount=100, open_item_remaining=100, partner_id="p"
        )

        result = await engine.validate(EntityType.BANK_PAIRING, data, RuleContext(COMPANY))

        assert [hit.code for hit in result.blocks] == ["BANK_OVERPAYMENT"]

    @pytest.mark.asyncio
    async def test_one_cent_over_is_tolerated(self, engine):
        data = BankPairingData(
            movement_amount="100.01", open_item_amount=100, open_item_remaining=100, partner_id="p"
        )

        result = await engine.validate(EntityType.BANK_PAIRING, data, RuleContext(COMPANY))

        assert result.is_valid

    @pytest.mark.asyncio
    async def test_partial_payment_without_note_or_partner(self, engine):
        data = BankPairingData(
            movement_amount=40, open_item_amount=100, open_item_remaining=100, is_partial_payment=True
        )

        result = await engine.validate(EntityType.BANK_PAIRING, data, RuleContext(COMPANY))

        assert [hit.code for hit in result.warnings] == ["BANK_PARTIAL_NO_NOTE", "BANK_NO_PARTNER"]

    @pytest.mark.asyncio
    async def test_no_open_item(self, engine):
        data = BankPairingData(
            movement_amount=0, open_item_amount=0, open_item_remaining=0, partner_id="p"
        )

        result = await engine.validate(EntityType.BANK_PAIRING, data, RuleContext(COMPANY))

        assert [hit.code for hit in result.infos] == ["BANK_NO_OPEN_ITEM"]


class TestPayrollRules:
    @pytest.mark.asyncio
    async def test_duplicate_blocks_even_when_everything_else_is_valid(self, engine):
        data = PayrollData(
            period="2025-03",
            gross_salary=Decimal("2000"),
            existing_run_for_period=True,
            has_payroll_settings=True,
        )

        result = await engine.validate(EntityType.PAYROLL, data, RuleContext(COMPANY))

        assert [hit.code for hit in result.blocks] == ["PAYROLL_DUPLICATE"]
        assert not result.is_valid

    @pytest.mark.asyncio
    async def test_invalid_salary_and_missing_settings(self, engine):
        data = PayrollData(period="2025-03", gross_salary=0, create_payment_transactions=True)

        result = await engine.validate(EntityType.PAYROLL, data, RuleContext(COMPANY))

        assert result.codes() == [
            "PAYROLL_INVALID_SALARY",
            "PAYROLL_NO_SETTINGS",
            "PAYROLL_AUTO_TRANSACTIONS",
        ]


class TestPeriodClosingRules:
    @pytest.mark.asyncio
    async def test_open_receivables_warn(self, engine):
        data = PeriodClosingData(period="2025-03", open_311_count=2)

        result = await engine.validate(EntityType.PERIOD_CLOSING, data, RuleContext(COMPANY))

        assert result.is_valid
        assert [hit.code for hit in result.warnings] == ["CLOSING_OPEN_311"]
        assert [hit.code for hit in result.infos] == ["CLOSING_INFO_LOCK"]

    @pytest.mark.asyncio
    async def test_blocks(self, engine):
        data = PeriodClosingData(
            period="2025-03",
            inbox_pending_count=1,
            draft_transaction_count=3,
            open_321_count=1,
            is_already_locked=True,
        )

        result = await engine.validate("PERIOD_CLOSING", data, RuleContext(COMPANY))

        assert result.codes() == [
            "CLOSING_ALREADY_LOCKED",
            "CLOSING_INBOX_NOT_EMPTY",
            "CLOSING_DRAFT_TRANSACTIONS",
            "CLOSING_OPEN_321",
            "CLOSING_INFO_LOCK",
        ]


class TestRuleResult:
    def test_hits_in_severity_order(self):
        result = RuleResult()
        for code, severity in (("I", Severity.INFO), ("W", Severity.WARN), ("B", Severity.BLOCK)):
            result.add(_hit(code, severity))

        assert result.codes() == ["B", "W", "I"]
        assert result.to_dict()["is_valid"] is False


def _hit(code, severity):
    return RuleHit(code=code, severity=severity, title=code, message=code, fix_suggestion="")


class TestRecordOverride:
    @pytest.mark.asyncio
    async def test_warning_override_is_audited(self, store, clock):
        result = RuleResult(warnings=[_hit("TRX_NO_DESCRIPTION", Severity.WARN)])
        context = RuleContext(COMPANY, period="2025-03", user_id="user-1")

        entry = await record_override(
            store, result, EntityType.TRANSACTION, context, entity_id="trx-1", clock=clock
        )

        assert entry.type == AuditEntryType.OVERRIDE_WARNING
        stored = await store.get(COMPANY, AUDIT, entry.id)
        assert stored["rule_codes"] == ["TRX_NO_DESCRIPTION"]
        assert stored["ref"] == {"period": "2025-03"}
        assert stored["by"] == "user-1"

    @pytest.mark.asyncio
    async def test_blocks_are_logged_as_validation_block(self, store, clock):
        result = RuleResult(blocks=[_hit("TRX_UNBALANCED", Severity.BLOCK)])

        entry = await record_override(
            store, result, EntityType.TRANSACTION, RuleContext(COMPANY), clock=clock
        )

        assert entry.type == AuditEntryType.VALIDATION_BLOCK

    @pytest.mark.asyncio
    async def test_nothing_to_override(self, store):
        assert await record_override(
            store, RuleResult(), EntityType.TRANSACTION, RuleContext(COMPANY)
        ) is None
        assert await store.list(COMPANY, AUDIT) == []
