"""Guided double-entry bookkeeping engine for small Slovak companies."""

from guided_ledger.accounts import Account, AccountDirectory, AccountType, Side, WellKnownAccounts
from guided_ledger.closing import PeriodClosingService
from guided_ledger.errors import (
    ConfigurationError,
    ConflictError,
    DuplicatePayrollRunError,
    GuidedLedgerError,
    ImmutableTransactionError,
    InvalidTransitionError,
    InvariantViolation,
    PeriodLockedError,
    StoreRequestError,
    SystemAccountError,
    TransientIOError,
)
from guided_ledger.ledger import (
    BalanceCheck,
    Transaction,
    TransactionLine,
    TransactionStatus,
    audit_transaction,
    check_balance,
)
from guided_ledger.periods import PeriodLockService
from guided_ledger.postings import PostingGenerator, apply_template, payroll_transactions
from guided_ledger.quality import QualityScore, calculate_quality_score, compute_quality_score
from guided_ledger.rules import EntityType, RuleContext, RuleEngine, RuleResult, Severity
from guided_ledger.saldokonto import OpenItemCache, compute_open_items
from guided_ledger.tax import TaxSettings, calculate_taxes, get_corporate_tax_rate

__version__ = "0.1.0"

__all__ = [
    "Account",
    "AccountDirectory",
    "AccountType",
    "BalanceCheck",
    "ConfigurationError",
    "ConflictError",
    "DuplicatePayrollRunError",
    "EntityType",
    "GuidedLedgerError",
    "ImmutableTransactionError",
    "InvalidTransitionError",
    "InvariantViolation",
    "OpenItemCache",
    "PeriodClosingService",
    "PeriodLockService",
    "PeriodLockedError",
    "PostingGenerator",
    "QualityScore",
    "RuleContext",
    "RuleEngine",
    "RuleResult",
    "Severity",
    "Side",
    "StoreRequestError",
    "SystemAccountError",
    "TaxSettings",
    "Transaction",
    "TransactionLine",
    "TransactionStatus",
    "TransientIOError",
    "WellKnownAccounts",
    "apply_template",
    "audit_transaction",
    "calculate_quality_score",
    "calculate_taxes",
    "check_balance",
    "compute_open_items",
    "compute_quality_score",
    "get_corporate_tax_rate",
    "payroll_transactions",
    "__version__",
]
