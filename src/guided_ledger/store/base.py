"""Interfaces of the external collaborators the engine reads from and writes to."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import Any, Protocol

# Collection names, one namespace per company
TRANSACTIONS = "transactions"
PERIOD_LOCKS = "period_locks"
UPLOADS = "uploads"
BANK_MOVEMENTS = "bank_movements"
PAYROLL_RUNS = "payroll_runs"
AUDIT = "audit"
SETTINGS = "settings"


class Clock(Protocol):
    def now(self) -> datetime: ...

    def today(self) -> date: ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(UTC)

    def today(self) -> date:
        return self.now().date()


@dataclass
class FixedClock:
    """Clock frozen at a given instant, for deterministic tests and replays."""

    instant: datetime

    def now(self) -> datetime:
        return self.instant

    def today(self) -> date:
        return self.instant.date()


class DocumentStore(Protocol):
    """Company-scoped document store.

    ``get`` returns ``None`` for a missing record; errors are raised as
    ``TransientIOError``. ``create`` is a conditional write that raises
    ``ConflictError`` when the key is taken.
    """

    async def get(self, company_id: str, collection: str, key: str) -> dict[str, Any] | None: ...

    async def list(self, company_id: str, collection: str) -> list[dict[str, Any]]: ...

    async def put(
        self,
        company_id: str,
        collection: str,
        key: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None: ...

    async def create(
        self, company_id: str, collection: str, key: str, data: dict[str, Any]
    ) -> None: ...

    async def delete(self, company_id: str, collection: str, key: str) -> None: ...


@dataclass(frozen=True)
class CompanyInfo:
    """Registry record used to pre-fill partner data."""

    ico: str
    name: str
    dic: str | None = None
    icdph: str | None = None
    street: str | None = None
    city: str | None = None
    zip: str | None = None
    country: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CompanyInfo:
        return cls(
            ico=str(data["ico"]),
            name=str(data["name"]),
            dic=data.get("dic"),
            icdph=data.get("icdph"),
            street=data.get("street"),
            city=data.get("city"),
            zip=data.get("zip"),
            country=data.get("country"),
        )


class LookupService(Protocol):
    async def lookup(self, ico: str) -> CompanyInfo | None: ...


@dataclass(frozen=True)
class ExtractedField:
    """A candidate value pulled out of an uploaded document."""

    value: Any
    confidence: float


class ExtractionService(Protocol):
    """Returns candidate fields (``amount``, ``supplier``, ``doc_number``...)."""

    async def extract(self, company_id: str, upload_id: str) -> dict[str, ExtractedField]: ...
