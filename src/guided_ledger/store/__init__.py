"""External collaborators: document store, registry lookup, extraction, clock."""

from guided_ledger.store.base import (
    AUDIT,
    BANK_MOVEMENTS,
    PAYROLL_RUNS,
    PERIOD_LOCKS,
    SETTINGS,
    TRANSACTIONS,
    UPLOADS,
    Clock,
    CompanyInfo,
    DocumentStore,
    ExtractedField,
    ExtractionService,
    FixedClock,
    LookupService,
    SystemClock,
)
from guided_ledger.store.http import HTTPDocumentStore
from guided_ledger.store.lookup import CompanyLookupClient, normalize_ico
from guided_ledger.store.memory import InMemoryDocumentStore

__all__ = [
    "AUDIT",
    "BANK_MOVEMENTS",
    "PAYROLL_RUNS",
    "PERIOD_LOCKS",
    "SETTINGS",
    "TRANSACTIONS",
    "UPLOADS",
    "Clock",
    "CompanyInfo",
    "CompanyLookupClient",
    "DocumentStore",
    "ExtractedField",
    "ExtractionService",
    "FixedClock",
    "HTTPDocumentStore",
    "InMemoryDocumentStore",
    "LookupService",
    "SystemClock",
    "normalize_ico",
]
