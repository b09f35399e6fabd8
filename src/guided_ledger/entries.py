"""Simple-bookkeeping income and expense entries.

Entries are the business events a user records before they are turned
into double-entry transactions, and the input of the tax reports.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from guided_ledger.money import to_decimal


class EntryType(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class PaymentStatus(str, Enum):
    PAID = "PAID"
    UNPAID = "UNPAID"
    PARTIAL = "PARTIAL"


@dataclass
class Entry:
    id: str
    type: EntryType
    date: date
    amount: Decimal
    category: str = ""
    description: str = ""
    partner_id: str | None = None
    partner_name: str | None = None
    doc_number: str | None = None
    payment_status: PaymentStatus = PaymentStatus.UNPAID

    def __post_init__(self) -> None:
        self.type = EntryType(self.type)
        self.payment_status = PaymentStatus(self.payment_status)
        self.amount = to_decimal(self.amount)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Entry:
        raw_date = data["date"]
        return cls(
            id=str(data["id"]),
            type=EntryType(data["type"]),
            date=raw_date if isinstance(raw_date, date) else date.fromisoformat(str(raw_date)[:10]),
            amount=data["amount"],
            category=str(data.get("category", "")),
            description=str(data.get("description", "")),
            partner_id=data.get("partner_id"),
            partner_name=data.get("partner_name"),
            doc_number=data.get("doc_number"),
            payment_status=PaymentStatus(data.get("payment_status", PaymentStatus.UNPAID.value)),
        )
