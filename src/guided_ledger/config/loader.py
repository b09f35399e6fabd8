"""Utilities for loading bundled ledger defaults from YAML files."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from guided_ledger.errors import ConfigurationError

DATA_DIR = Path(__file__).resolve().parent / "data"

VALID_ACCOUNT_TYPES = {"ASSET", "LIABILITY", "EQUITY", "REVENUE", "EXPENSE"}
VALID_SIDES = {"MD", "D"}
VALID_AMOUNT_SOURCES = {"TOTAL", "CUSTOM", "PERCENT"}


def _read_yaml(filename: str) -> dict[str, Any]:
    path = DATA_DIR / filename
    if not path.exists():
        raise ConfigurationError(f"Missing configuration file {filename}")
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{filename}: top level must be a mapping")
    return data


@lru_cache
def load_chart_of_accounts() -> list[dict[str, Any]]:
    """Load the default chart of accounts.

    Returns:
        List of account mappings with ``code``, ``name``, ``type``,
        ``normal_side`` and ``system`` keys.
    """
    data = _read_yaml("chart_of_accounts.yaml")
    accounts = data.get("accounts")
    if not isinstance(accounts, list):
        raise ConfigurationError("chart_of_accounts.yaml: accounts must be a list")

    normalized: list[dict[str, Any]] = []
    seen: set[str] = set()
    for idx, item in enumerate(accounts):
        if not isinstance(item, dict):
            raise ConfigurationError(
                f"chart_of_accounts.yaml: accounts[{idx}] must be a mapping"
            )
        code = str(item.get("code", "")).strip()
        if not code:
            raise ConfigurationError(f"chart_of_accounts.yaml: accounts[{idx}] has no code")
        if code in seen:
            raise ConfigurationError(f"chart_of_accounts.yaml: duplicate account {code}")
        account_type = str(item.get("type", "")).upper()
        if account_type not in VALID_ACCOUNT_TYPES:
            raise ConfigurationError(
                f"chart_of_accounts.yaml: invalid type {account_type!r} for {code}"
            )
        side = str(item.get("normal_side", "")).upper()
        if side not in VALID_SIDES:
            raise ConfigurationError(
                f"chart_of_accounts.yaml: invalid normal_side {side!r} for {code}"
            )
        seen.add(code)
        normalized.append(
            {
                "code": code,
                "name": str(item.get("name", code)),
                "type": account_type,
                "normal_side": side,
                "system": bool(item.get("system", False)),
            }
        )
    return normalized


@lru_cache
def load_posting_templates() -> list[dict[str, Any]]:
    """Load the system posting templates."""
    data = _read_yaml("posting_templates.yaml")
    templates = data.get("templates")
    if not isinstance(templates, list):
        raise ConfigurationError("posting_templates.yaml: templates must be a list")

    for idx, template in enumerate(templates):
        if not isinstance(template, dict) or not template.get("code"):
            raise ConfigurationError(
                f"posting_templates.yaml: templates[{idx}] needs a code"
            )
        lines = template.get("lines")
        if not isinstance(lines, list) or not lines:
            raise ConfigurationError(
                f"posting_templates.yaml: {template['code']} has no lines"
            )
        for line in lines:
            if str(line.get("side", "")).upper() not in VALID_SIDES:
                raise ConfigurationError(
                    f"posting_templates.yaml: {template['code']} line has invalid side"
                )
            source = str(line.get("amount_source", "TOTAL")).upper()
            if source not in VALID_AMOUNT_SOURCES:
                raise ConfigurationError(
                    f"posting_templates.yaml: {template['code']} invalid amount_source {source!r}"
                )
    return templates


@lru_cache
def load_category_accounts() -> dict[str, dict[str, Any]]:
    """Load income/expense category mappings.

    Returns:
        ``{"income": {"default": code, "categories": {...}}, "expense": {...}}``
    """
    data = _read_yaml("categories.yaml")
    result: dict[str, dict[str, Any]] = {}
    for direction in ("income", "expense"):
        section = data.get(direction)
        if not isinstance(section, dict) or "default" not in section:
            raise ConfigurationError(f"categories.yaml: {direction} needs a default account")
        categories = section.get("categories") or {}
        if not isinstance(categories, dict):
            raise ConfigurationError(f"categories.yaml: {direction}.categories must be a mapping")
        result[direction] = {
            "default": str(section["default"]),
            "categories": {str(k): str(v) for k, v in categories.items()},
        }
    return result


@lru_cache
def load_tax_defaults() -> dict[str, Any]:
    """Load default tax settings, the fallback rate and statutory constants."""
    data = _read_yaml("tax.yaml")
    if not isinstance(data.get("settings"), dict):
        raise ConfigurationError("tax.yaml: settings must be a mapping")
    if "fallback_rate" not in data:
        raise ConfigurationError("tax.yaml: fallback_rate is required")
    return data


@lru_cache
def load_payroll_defaults() -> dict[str, Any]:
    """Load default payroll contribution rates."""
    data = _read_yaml("payroll.yaml")
    payroll = data.get("payroll")
    if not isinstance(payroll, dict):
        raise ConfigurationError("payroll.yaml: payroll must be a mapping")
    return payroll
