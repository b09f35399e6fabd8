"""Tests for the posting generator."""

import asyncio
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from conftest import COMPANY

from guided_ledger.accounts import AccountDirectory, Side
from guided_ledger.entries import Entry, EntryType
from guided_ledger.errors import (
    ConfigurationError,
    DuplicatePayrollRunError,
    InvariantViolation,
    PeriodLockedError,
    TransientIOError,
)
from guided_ledger.ledger import TransactionStatus, check_balance
from guided_ledger.payroll import PayrollConfig, calculate_payroll
from guided_ledger.postings import (
    PostingGenerator,
    PostingTemplate,
    apply_template,
    format_number,
    get_template,
    payroll_transactions,
    templates_for,
    transaction_from_entry,
)
from guided_ledger.rules import EntityType, RuleContext, RuleEngine
from guided_ledger.saldokonto import OpenItemCache
from guided_ledger.store import PAYROLL_RUNS, SETTINGS, TRANSACTIONS


def income_entry(**overrides):
    data = {
        "id": "entry-1",
        "type": EntryType.INCOME,
        "date": date(2025, 3, 4),
        "amount": "1200.00",
        "category": "Tržby za služby",
        "description": "Webstránka",
        "partner_id": "p-1",
        "partner_name": "Alfa s.r.o.",
        "doc_number": "2025001",
    }
    data.update(overrides)
    return Entry(**data)


class TestTemplates:
    def test_system_templates_loaded(self):
        template = get_template("FA_VYDANA_SLUZBY")

        assert template.is_system
        assert [line.account_code for line in template.lines] == ["311", "602"]

    def test_unknown_template(self):
        with pytest.raises(ConfigurationError):
            get_template("NEEXISTUJE")

    def test_templates_for_document_type(self):
        codes = {t.code for t in templates_for("INVOICE_RECEIVED")}

        assert codes == {"FA_PRIJATA_SLUZBY", "NAJOM_AUTA"}


class TestApplyTemplate:
    def test_partner_only_on_partner_side(self):
        draft = apply_template(
            get_template("FA_VYDANA_SLUZBY"),
            Decimal("120"),
            date(2025, 3, 1),
            "FA 2025001",
            partner_id="p-1",
            partner_name="Alfa s.r.o.",
            accounts=AccountDirectory.from_defaults(),
        )

        receivable, revenue = draft.lines
        assert (receivable.id, revenue.id) == ("line-1", "line-2")
        assert receivable.partner_id == "p-1"
        assert revenue.partner_id is None
        assert revenue.account_name == "Tržby z predaja služieb"
        assert draft.is_balanced
        assert draft.total_md == Decimal("120.00")

    def test_custom_and_percent_amounts(self):
        template = PostingTemplate.from_dict(
            {
                "code": "TEST_SPLIT",
                "lines": [
                    {"id": "a", "side": "MD", "account_code": "518", "amount_source": "PERCENT",
                     "amount_value": "80"},
                    {"id": "b", "side": "MD", "account_code": "548", "amount_source": "CUSTOM"},
                    {"id": "c", "side": "D", "account_code": "321", "amount_source": "TOTAL",
                     "partner_side": "SUPPLIER"},
                ],
            }
        )

        draft = apply_template(
            template, "100.01", date(2025, 3, 1), "Split", custom_amounts={"b": "20"}
        )

        assert [line.amount for line in draft.lines] == [
            Decimal("80.01"),
            Decimal("20.00"),
            Decimal("100.01"),
        ]
        assert draft.is_balanced

    def test_custom_without_value_uses_total(self):
        draft = apply_template(get_template("MZDA_NAKLAD"), "10", date(2025, 3, 1), "x")

        assert all(line.amount == Decimal("10.00") for line in draft.lines)
        assert not draft.is_balanced


class TestEntryTransactions:
    def test_income_entry(self):
        trx = transaction_from_entry(income_entry(), format_number("VF", "2025-03", 1))

        assert trx.number == "VF-202503-0001"
        assert trx.description == "Faktúra vydaná - Webstránka"
        assert trx.document_type == "INVOICE_ISSUED"
        assert trx.document_id == "entry-1"
        md, d = trx.lines
        assert (md.account_code, md.side) == ("311", Side.MD)
        assert (d.account_code, d.side) == ("602", Side.D)
        assert md.partner_id == d.partner_id == "p-1"
        assert check_balance(trx.lines).balanced

    def test_expense_entry_without_description(self):
        entry = income_entry(type=EntryType.EXPENSE, category="Energie", description="")

        trx = transaction_from_entry(entry, "PF-202503-0002")

        assert trx.description == "Faktúra prijatá - Alfa s.r.o. (2025001)"
        assert [line.account_code for line in trx.lines] == ["502", "321"]
        assert trx.document_type == "INVOICE_RECEIVED"

    def test_unknown_category_uses_default_account(self):
        trx = transaction_from_entry(income_entry(category="Neznáma"), "VF-202503-0001")

        assert trx.lines[1].account_code == "602"


class TestPayrollTransactions:
    def test_four_balanced_transactions_in_order(self):
        calc = calculate_payroll(2000, PayrollConfig.default())

        transactions = payroll_transactions("2025-03", "Ján Novák", calc, first_sequence=5)

        assert [t.template_id for t in transactions] == [
            "MZDA_NAKLAD",
            "VYPLATA_MZDY",
            "UHRADA_ODVODY",
            "UHRADA_DAN",
        ]
        assert [t.number for t in transactions] == [
            "TRN-202503-0005",
            "TRN-202503-0006",
            "TRN-202503-0007",
            "TRN-202503-0008",
        ]
        assert all(check_balance(t.lines).balanced for t in transactions)
        assert all(t.status == TransactionStatus.POSTED for t in transactions)
        assert all(t.date == date(2025, 3, 15) for t in transactions)

        wage = transactions[0]
        assert wage.total_md == wage.total_d == Decimal("2704.00")
        assert {line.account_code: line.amount for line in wage.lines}["342"] == Decimal("251.14")

    def test_zero_tax_advance_skips_fourth_transaction(self):
        calc = calculate_payroll(400, PayrollConfig.default())

        transactions = payroll_transactions("2025-03", "Ján Novák", calc, first_sequence=1)

        assert len(transactions) == 3
        assert "342" not in transactions[0].account_codes()
        assert all(line.amount > 0 for t in transactions for line in t.lines)

    def test_sub_cent_gross_posts_cent_amounts(self):
        calc = calculate_payroll("1000.005", PayrollConfig.default())

        transactions = payroll_transactions("2025-03", "Ján Novák", calc, first_sequence=1)

        wage = transactions[0]
        assert {line.account_code: line.amount for line in wage.lines}["521"] == Decimal("1000.01")
        assert all(
            line.amount.as_tuple().exponent == -2 for t in transactions for line in t.lines
        )
        assert wage.total_md == wage.total_d


class TestPostingGenerator:
    @pytest.fixture
    def generator(self, store, period_locks, clock):
        return PostingGenerator(
            store,
            period_locks=period_locks,
            open_items=OpenItemCache(store, timeout=1.0),
            clock=clock,
            timeout=1.0,
        )

    @pytest.mark.asyncio
    async def test_post_entry_numbers_sequentially(self, generator, store):
        first = await generator.post_entry(COMPANY, income_entry(), by="user-1")
        second = await generator.post_entry(
            COMPANY, income_entry(id="entry-2", type=EntryType.EXPENSE), by="user-1"
        )

        assert first.number == "VF-202503-0001"
        assert second.number == "PF-202503-0002"
        stored = await store.get(COMPANY, TRANSACTIONS, first.id)
        assert stored["status"] == "POSTED"
        assert stored["posted_by"] == "user-1"

    @pytest.mark.asyncio
    async def test_post_into_locked_period(self, generator, period_locks, store):
        await period_locks.lock(COMPANY, "2025-03", by="user-1")

        with pytest.raises(PeriodLockedError):
            await generator.post_entry(COMPANY, income_entry())

        assert await store.list(COMPANY, TRANSACTIONS) == []

    @pytest.mark.asyncio
    async def test_unbalanced_generated_transaction_is_never_written(self, generator, store):
        with pytest.raises(InvariantViolation):
            await generator.post_template(
                COMPANY, "MZDA_NAKLAD", "100", date(2025, 3, 15), "Mzda", custom_amounts={"1": "90"}
            )

        assert await store.list(COMPANY, TRANSACTIONS) == []

    @pytest.mark.asyncio
    async def test_post_template_invalidates_open_items(self, generator, store):
        cache = OpenItemCache(store, timeout=1.0)
        generator._open_items = cache
        assert await cache.balances(COMPANY, "311") == {}

        await generator.post_template(
            COMPANY, "FA_VYDANA_SLUZBY", "250", date(2025, 3, 2), "FA 2025002", partner_id="p-9"
        )

        assert await cache.balances(COMPANY, "311") == {"p-9": Decimal("250.00")}

    @pytest.mark.asyncio
    async def test_run_payroll(self, generator, store):
        result = await generator.run_payroll(COMPANY, "2025-03", 2000, by="user-1")

        assert len(result.transactions) == 4
        assert len(await store.list(COMPANY, TRANSACTIONS)) == 4
        run = await store.get(COMPANY, PAYROLL_RUNS, "2025-03")
        assert run["status"] == "PROCESSED"
        assert run["transaction_ids"] == [t.id for t in result.transactions]

    @pytest.mark.asyncio
    async def test_second_run_for_period_is_rejected(self, generator, store):
        await generator.run_payroll(COMPANY, "2025-03", 2000, by="user-1")

        with pytest.raises(DuplicatePayrollRunError):
            await generator.run_payroll(COMPANY, "2025-03", 2500, by="user-1")

        assert len(await store.list(COMPANY, TRANSACTIONS)) == 4

    @pytest.mark.asyncio
    async def test_company_payroll_settings(self, generator, store):
        await store.put(
            COMPANY,
            SETTINGS,
            "payroll",
            {
                "health_insurance_employee": "0.04",
                "social_insurance_employee": "0.094",
                "income_tax_rate": "0",
                "tax_free_amount": "0",
                "health_insurance_employer": "0.1",
                "social_insurance_employer": "0.252",
            },
        )

        config, configured = await generator.payroll_config(COMPANY)
        result = await generator.run_payroll(COMPANY, "2025-04", 1000)

        assert configured
        assert config.income_tax_rate == Decimal("0")
        assert len(result.transactions) == 3

    @pytest.mark.asyncio
    async def test_precheck_feeds_payroll_rules(self, generator):
        await generator.run_payroll(COMPANY, "2025-03", 2000)

        data = await generator.payroll_precheck(COMPANY, "2025-03", 2000)
        result = await RuleEngine().validate(
            EntityType.PAYROLL, data, RuleContext(company_id=COMPANY)
        )

        assert "PAYROLL_DUPLICATE" in [hit.code for hit in result.blocks]
        assert "PAYROLL_NO_SETTINGS" in [hit.code for hit in result.warnings]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("collection", [SETTINGS, PAYROLL_RUNS])
    async def test_payroll_reads_time_out_as_transient(self, period_locks, clock, collection):
        store = AsyncMock()

        async def get(company_id, name, key):
            if name == collection:
                await asyncio.sleep(1)
            return None

        store.get.side_effect = get
        generator = PostingGenerator(store, period_locks=period_locks, clock=clock, timeout=0.01)

        with pytest.raises(TransientIOError):
            await generator.payroll_precheck(COMPANY, "2025-03", 2000)
        if collection == SETTINGS:
            with pytest.raises(TransientIOError):
                await generator.payroll_config(COMPANY)
