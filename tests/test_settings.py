"""Tests for configuration settings, YAML defaults and logging setup."""

import pytest
import structlog

from guided_ledger.config import loader
from guided_ledger.config.logging import (
    bind_ledger_context,
    clear_ledger_context,
    configure_logging,
)
from guided_ledger.config.settings import get_settings
from guided_ledger.errors import ConfigurationError


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_settings_loads_from_env():
    """Test that settings loads from environment variables."""
    settings = get_settings()

    assert settings.store_url == "http://store.test"
    assert settings.registry_lookup_url == "http://registry.test"
    assert settings.store_timeout == 2.0


def test_settings_has_defaults():
    """Test that settings has sensible defaults."""
    settings = get_settings()

    assert settings.store_max_retries == 3
    assert settings.low_confidence_threshold == 0.7
    assert settings.period_lock_fail_open is False
    assert settings.store_token is None


def test_settings_override(monkeypatch):
    monkeypatch.setenv("PERIOD_LOCK_FAIL_OPEN", "true")
    monkeypatch.setenv("LEDGER_STORE_TOKEN", "tok")

    settings = get_settings()

    assert settings.period_lock_fail_open is True
    assert settings.store_token.get_secret_value() == "tok"


def test_threshold_must_be_a_probability(monkeypatch):
    monkeypatch.setenv("LOW_CONFIDENCE_THRESHOLD", "1.5")

    with pytest.raises(ValueError):
        get_settings()


def test_settings_are_cached():
    """Test that get_settings returns cached instance."""
    assert get_settings() is get_settings()


class TestLoaders:
    @pytest.fixture
    def data_dir(self, tmp_path, monkeypatch):
        monkeypatch.setattr(loader, "DATA_DIR", tmp_path)
        for fn in (
            loader.load_chart_of_accounts,
            loader.load_posting_templates,
            loader.load_category_accounts,
            loader.load_payroll_defaults,
        ):
            fn.cache_clear()
        yield tmp_path
        for fn in (
            loader.load_chart_of_accounts,
            loader.load_posting_templates,
            loader.load_category_accounts,
            loader.load_payroll_defaults,
        ):
            fn.cache_clear()

    def test_bundled_defaults_load(self):
        assert len(loader.load_chart_of_accounts()) > 10
        assert {t["code"] for t in loader.load_posting_templates()} >= {
            "FA_VYDANA_SLUZBY",
            "MZDA_NAKLAD",
            "UHRADA_DAN",
        }
        assert loader.load_category_accounts()["expense"]["default"] == "518"

    def test_missing_file(self, data_dir):
        with pytest.raises(ConfigurationError, match="Missing"):
            loader.load_payroll_defaults()

    def test_duplicate_account(self, data_dir):
        (data_dir / "chart_of_accounts.yaml").write_text(
            "accounts:\n"
            "  - {code: '221', name: Banka, type: ASSET, normal_side: MD}\n"
            "  - {code: '221', name: Banka 2, type: ASSET, normal_side: MD}\n",
            encoding="utf-8",
        )

        with pytest.raises(ConfigurationError, match="duplicate"):
            loader.load_chart_of_accounts()

    def test_invalid_amount_source(self, data_dir):
        (data_dir / "posting_templates.yaml").write_text(
            "templates:\n"
            "  - code: X\n"
            "    lines:\n"
            "      - {id: '1', side: MD, account_code: '221', amount_source: HALF}\n",
            encoding="utf-8",
        )

        with pytest.raises(ConfigurationError, match="amount_source"):
            loader.load_posting_templates()

    def test_category_section_needs_default(self, data_dir):
        (data_dir / "categories.yaml").write_text(
            "income: {categories: {}}\nexpense: {default: '518'}\n", encoding="utf-8"
        )

        with pytest.raises(ConfigurationError):
            loader.load_category_accounts()


class TestLogging:
    def test_configure_json_logging(self):
        configure_logging(level="DEBUG", format="json")

        try:
            processors = structlog.get_config()["processors"]
            assert isinstance(processors[-1], structlog.processors.JSONRenderer)
        finally:
            structlog.reset_defaults()

    def test_ledger_context_binding(self):
        bind_ledger_context("company-1", period="2025-03")

        assert structlog.contextvars.get_contextvars() == {
            "company_id": "company-1",
            "period": "2025-03",
        }

        clear_ledger_context()
        assert structlog.contextvars.get_contextvars() == {}
