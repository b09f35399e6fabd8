"""Guardrail rule engine.

Checks a candidate entity (transaction, uploaded document, bank pairing,
payroll run or period closing) and reports every finding as a BLOCK, WARN
or INFO hit. Findings are data, not exceptions: all rules of a set run in
a fixed order even after a BLOCK so the user sees the complete report.
User-facing texts are Slovak; codes are stable identifiers.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

import structlog

from guided_ledger.accounts import WellKnownAccounts, is_payable, is_receivable
from guided_ledger.audit import AuditEntry, AuditEntryType, log_audit_entry
from guided_ledger.config import get_settings
from guided_ledger.errors import ConfigurationError
from guided_ledger.ledger import BalanceFailure, Transaction, TransactionLine, check_balance
from guided_ledger.money import EPSILON, ZERO, to_decimal
from guided_ledger.periods import PeriodLockService
from guided_ledger.store.base import Clock, DocumentStore, ExtractedField

logger = structlog.get_logger(__name__)

# Template ids containing this marker describe a payment through the bank
PAYMENT_TEMPLATE_MARKER = "UHRADA"
GUIDE_DOUBLE_ENTRY = "/uctovnictvo/navody#podvojne-uctovnictvo"
GUIDE_SALDOKONTO = "/uctovnictvo/saldokonto"
GUIDE_TEMPLATES = "/uctovnictvo/sablony"
GUIDE_PAYROLL = "/uctovnictvo/mzdy"


class EntityType(str, Enum):
    TRANSACTION = "TRANSACTION"
    DOCUMENT = "DOCUMENT"
    BANK_PAIRING = "BANK_PAIRING"
    PAYROLL = "PAYROLL"
    PERIOD_CLOSING = "PERIOD_CLOSING"


class Severity(str, Enum):
    BLOCK = "BLOCK"
    WARN = "WARN"
    INFO = "INFO"


@dataclass(frozen=True)
class RuleHit:
    code: str
    severity: Severity
    title: str
    message: str
    fix_suggestion: str
    field_path: str | None = None
    link_to_guide: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "severity": self.severity.value,
            "title": self.title,
            "message": self.message,
            "fix_suggestion": self.fix_suggestion,
            "field_path": self.field_path,
            "link_to_guide": self.link_to_guide,
        }


@dataclass
class RuleResult:
    blocks: list[RuleHit] = field(default_factory=list)
    warnings: list[RuleHit] = field(default_factory=list)
    infos: list[RuleHit] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.blocks

    @property
    def hits(self) -> Iterator[RuleHit]:
        """All findings, blocks first, then warnings, then infos."""
        yield from self.blocks
        yield from self.warnings
        yield from self.infos

    def codes(self) -> list[str]:
        return [hit.code for hit in self.hits]

    def add(self, hit: RuleHit) -> None:
        match hit.severity:
            case Severity.BLOCK:
                self.blocks.append(hit)
            case Severity.WARN:
                self.warnings.append(hit)
            case Severity.INFO:
                self.infos.append(hit)

    def to_dict(self) -> dict[str, Any]:
        return {
            "blocks": [h.to_dict() for h in self.blocks],
            "warnings": [h.to_dict() for h in self.warnings],
            "infos": [h.to_dict() for h in self.infos],
            "is_valid": self.is_valid,
        }


@dataclass(frozen=True)
class RuleContext:
    """Explicit tenant context threaded through every validation."""

    company_id: str
    period: str | None = None
    user_id: str | None = None


@dataclass
class TransactionData:
    description: str
    lines: Sequence[TransactionLine]
    date: date | None = None
    id: str | None = None
    status: str | None = None
    document_id: str | None = None
    template_id: str | None = None

    @classmethod
    def from_transaction(cls, transaction: Transaction) -> TransactionData:
        return cls(
            description=transaction.description,
            lines=transaction.lines,
            date=transaction.date,
            id=transaction.id,
            status=transaction.status.value,
            document_id=transaction.document_id,
            template_id=transaction.template_id,
        )


@dataclass
class DocumentData:
    """An uploaded document as reviewed before posting."""

    amount: Decimal | None = None
    issue_date: date | None = None
    id: str | None = None
    partner_id: str | None = None
    partner_name: str | None = None
    partner_ico: str | None = None
    doc_number: str | None = None
    description: str | None = None
    confidence: float | None = None
    extracted_fields: Mapping[str, ExtractedField] = field(default_factory=dict)
    status: str | None = None

    def __post_init__(self) -> None:
        if self.amount is not None:
            self.amount = to_decimal(self.amount)


@dataclass
class BankPairingData:
    """A proposed match of a bank movement against a partner's open item."""

    movement_amount: Decimal
    open_item_amount: Decimal
    open_item_remaining: Decimal
    is_partial_payment: bool = False
    partner_id: str | None = None
    note: str | None = None

    def __post_init__(self) -> None:
        self.movement_amount = to_decimal(self.movement_amount)
        self.open_item_amount = to_decimal(self.open_item_amount)
        self.open_item_remaining = to_decimal(self.open_item_remaining)


@dataclass
class PayrollData:
    period: str
    gross_salary: Decimal
    existing_run_for_period: bool = False
    has_payroll_settings: bool = False
    create_payment_transactions: bool = False

    def __post_init__(self) -> None:
        self.gross_salary = to_decimal(self.gross_salary)


@dataclass
class PeriodClosingData:
    period: str
    inbox_pending_count: int = 0
    draft_transaction_count: int = 0
    open_311_count: int = 0
    open_321_count: int = 0
    is_already_locked: bool = False


EntityData = (
    TransactionData | Transaction | DocumentData | BankPairingData | PayrollData | PeriodClosingData
)


def _money(value: Decimal) -> str:
    return f"{value:.2f} €"


def _expect(data: Any, expected: type, entity_type: EntityType) -> None:
    if not isinstance(data, expected):
        raise TypeError(
            f"{entity_type.value} validation expects {expected.__name__}, got {type(data).__name__}"
        )


class RuleEngine:
    """Runs the rule set matching an entity type.

    The only I/O is the period-lock read done for transactions when the
    context carries a period.
    """

    def __init__(
        self,
        period_locks: PeriodLockService | None = None,
        low_confidence_threshold: float | None = None,
        fail_open: bool | None = None,
    ):
        settings = get_settings()
        self._period_locks = period_locks
        self._low_confidence = (
            low_confidence_threshold
            if low_confidence_threshold is not None
            else settings.low_confidence_threshold
        )
        self._fail_open = fail_open if fail_open is not None else settings.period_lock_fail_open
        self._logger = logger.bind(component="rule_engine")

    async def validate(
        self, entity_type: EntityType, data: EntityData, context: RuleContext
    ) -> RuleResult:
        entity_type = EntityType(entity_type)
        result = RuleResult()
        match entity_type:
            case EntityType.TRANSACTION:
                if isinstance(data, Transaction):
                    data = TransactionData.from_transaction(data)
                _expect(data, TransactionData, EntityType.TRANSACTION)
                await self._validate_transaction(data, context, result)  # type: ignore[arg-type]
            case EntityType.DOCUMENT:
                _expect(data, DocumentData, EntityType.DOCUMENT)
                self._validate_document(data, result)  # type: ignore[arg-type]
            case EntityType.BANK_PAIRING:
                _expect(data, BankPairingData, EntityType.BANK_PAIRING)
                self._validate_bank_pairing(data, result)  # type: ignore[arg-type]
            case EntityType.PAYROLL:
                _expect(data, PayrollData, EntityType.PAYROLL)
                self._validate_payroll(data, result)  # type: ignore[arg-type]
            case EntityType.PERIOD_CLOSING:
                _expect(data, PeriodClosingData, EntityType.PERIOD_CLOSING)
                self._validate_period_closing(data, result)  # type: ignore[arg-type]

        self._logger.debug(
            "entity_validated",
            entity_type=entity_type.value,
            company_id=context.company_id,
            blocks=len(result.blocks),
            warnings=len(result.warnings),
            infos=len(result.infos),
        )
        return result

    # === Transaction rules ===

    async def _validate_transaction(
        self, data: TransactionData, context: RuleContext, result: RuleResult
    ) -> None:
        if context.period:
            if self._period_locks is None:
                raise ConfigurationError("Transaction validation with a period needs a PeriodLockService")
            locked = await self._period_locks.is_locked(
                context.company_id, context.period, fail_open=self._fail_open
            )
            if locked:
                result.add(
                    RuleHit(
                        code="TRX_PERIOD_LOCKED",
                        severity=Severity.BLOCK,
                        title="Obdobie je zamknuté",
                        message=(
                            f"Obdobie {context.period} je zamknuté. "
                            "Transakcie v tomto období nie je možné upravovať."
                        ),
                        fix_suggestion=(
                            "Odomknite obdobie v Uzávierkach alebo vytvorte transakciu v inom období."
                        ),
                        link_to_guide="/uctovnictvo/uzavierky",
                    )
                )

        check = check_balance(data.lines)
        for failure in check.failures:
            match failure:
                case BalanceFailure.NO_MD_LINE:
                    result.add(
                        RuleHit(
                            code=failure.value,
                            severity=Severity.BLOCK,
                            title="Chýba strana MD",
                            message="Transakcia musí mať aspoň jeden riadok na strane Má dať (MD).",
                            fix_suggestion="Pridajte riadok s účtom na stranu MD.",
                            field_path="lines",
                            link_to_guide=GUIDE_DOUBLE_ENTRY,
                        )
                    )
                case BalanceFailure.NO_D_LINE:
                    result.add(
                        RuleHit(
                            code=failure.value,
                            severity=Severity.BLOCK,
                            title="Chýba strana D",
                            message="Transakcia musí mať aspoň jeden riadok na strane Dal (D).",
                            fix_suggestion="Pridajte riadok s účtom na stranu D.",
                            field_path="lines",
                            link_to_guide=GUIDE_DOUBLE_ENTRY,
                        )
                    )
                case BalanceFailure.UNBALANCED:
                    result.add(
                        RuleHit(
                            code=failure.value,
                            severity=Severity.BLOCK,
                            title="Transakcia nie je vyvážená",
                            message=(
                                f"Súčet MD ({_money(check.total_md)}) sa nerovná súčtu D "
                                f"({_money(check.total_d)}). Rozdiel: {_money(check.diff)}"
                            ),
                            fix_suggestion=(
                                "Skontrolujte sumy na jednotlivých riadkoch. "
                                "V podvojnom účtovníctve musí platiť ΣMD = ΣD."
                            ),
                            field_path="lines",
                            link_to_guide=GUIDE_DOUBLE_ENTRY,
                        )
                    )
                case BalanceFailure.NON_POSITIVE_AMOUNT:
                    line = check.offending_line
                    assert line is not None
                    result.add(
                        RuleHit(
                            code=failure.value,
                            severity=Severity.BLOCK,
                            title="Záporná alebo nulová suma",
                            message=(
                                f"Riadok s účtom {line.account_code} má neplatnú sumu "
                                f"({line.amount} €)."
                            ),
                            fix_suggestion=(
                                "Suma musí byť kladné číslo. Ak potrebujete storno, "
                                "použite opačnú stranu (MD↔D)."
                            ),
                            field_path=f"lines.{line.id}.amount",
                        )
                    )

        if not data.description or len(data.description.strip()) < 3:
            result.add(
                RuleHit(
                    code="TRX_NO_DESCRIPTION",
                    severity=Severity.WARN,
                    title="Chýba popis transakcie",
                    message=(
                        "Transakcia nemá popis. Bez popisu bude ťažké neskôr "
                        "identifikovať, o čo išlo."
                    ),
                    fix_suggestion=(
                        "Pridajte stručný popis, napr. 'FA 2024001 - Služby IT' alebo 'Mzda 01/2024'."
                    ),
                    field_path="description",
                )
            )

        missing_partner = next(
            (
                line
                for line in data.lines
                if (is_receivable(line.account_code) or is_payable(line.account_code))
                and not line.partner_id
            ),
            None,
        )
        if missing_partner is not None:
            kind = "pohľadávky" if is_receivable(missing_partner.account_code) else "záväzky"
            result.add(
                RuleHit(
                    code="TRX_311_321_NO_PARTNER",
                    severity=Severity.WARN,
                    title="Pohľadávka/záväzok bez partnera",
                    message=(
                        f"Účet {missing_partner.account_code} ({kind}) nemá priradeného partnera."
                    ),
                    fix_suggestion=(
                        "Pre správne saldokonto priraďte partnera (odberateľa/dodávateľa) "
                        "k tomuto riadku."
                    ),
                    field_path=f"lines.{missing_partner.id}.partner_id",
                    link_to_guide=GUIDE_SALDOKONTO,
                )
            )

        classes = {line.account_code[:3] for line in data.lines}
        has_bank = WellKnownAccounts.BANK in classes
        has_settlement = bool(classes & WellKnownAccounts.SETTLEMENT_ACCOUNTS)

        if data.template_id and PAYMENT_TEMPLATE_MARKER in data.template_id and not has_bank:
            result.add(
                RuleHit(
                    code="TRX_PAYMENT_NO_BANK",
                    severity=Severity.WARN,
                    title="Úhrada bez bankového účtu",
                    message="Transakcia typu 'úhrada' by mala obsahovať účet 221 (banka).",
                    fix_suggestion="Pridajte riadok s účtom 221 na príslušnú stranu.",
                    link_to_guide="/uctovnictvo/banka",
                )
            )

        if not data.template_id and has_bank and has_settlement:
            result.add(
                RuleHit(
                    code="TRX_SUGGEST_TEMPLATE",
                    severity=Severity.INFO,
                    title="Tip: Použite šablónu",
                    message="Pre bankové pohyby odporúčame použiť predpripravené šablóny účtovania.",
                    fix_suggestion=(
                        "Prejdite do Šablóny účtovania a vyberte vhodnú šablónu pre tento typ operácie."
                    ),
                    link_to_guide=GUIDE_TEMPLATES,
                )
            )

    # === Document rules ===

    def _validate_document(self, data: DocumentData, result: RuleResult) -> None:
        amount_valid = data.amount is not None and data.amount > ZERO
        if not amount_valid:
            result.add(
                RuleHit(
                    code="DOC_NO_AMOUNT",
                    severity=Severity.BLOCK,
                    title="Chýba suma dokladu",
                    message="Doklad nemá zadanú sumu alebo je suma neplatná.",
                    fix_suggestion="Zadajte sumu dokladu manuálne alebo skontrolujte AI extrakciu.",
                    field_path="amount",
                )
            )

        if data.issue_date is None:
            result.add(
                RuleHit(
                    code="DOC_NO_DATE",
                    severity=Severity.BLOCK,
                    title="Chýba dátum dokladu",
                    message="Doklad nemá zadaný dátum vystavenia.",
                    fix_suggestion="Zadajte dátum dokladu (dátum vystavenia faktúry).",
                    field_path="issue_date",
                )
            )

        amount_field = data.extracted_fields.get("amount")
        if amount_field is not None and amount_field.confidence < self._low_confidence:
            result.add(
                RuleHit(
                    code="DOC_LOW_CONFIDENCE_AMOUNT",
                    severity=Severity.WARN,
                    title="Nízka istota pri extrakcii sumy",
                    message=(
                        "AI extrakcia sumy má nízku istotu "
                        f"({round(amount_field.confidence * 100)}%). Skontrolujte hodnotu."
                    ),
                    fix_suggestion=(
                        "Porovnajte extrahovanú sumu s originálnym dokladom a opravte ak treba."
                    ),
                    field_path="amount",
                )
            )

        supplier_field = data.extracted_fields.get("supplier")
        if supplier_field is not None and supplier_field.confidence < self._low_confidence:
            result.add(
                RuleHit(
                    code="DOC_LOW_CONFIDENCE_SUPPLIER",
                    severity=Severity.WARN,
                    title="Nízka istota pri extrakcii dodávateľa",
                    message=(
                        "AI extrakcia dodávateľa má nízku istotu "
                        f"({round(supplier_field.confidence * 100)}%)."
                    ),
                    fix_suggestion="Skontrolujte názov dodávateľa a jeho IČO.",
                    field_path="partner_id",
                )
            )

        if data.partner_name and not data.partner_ico:
            result.add(
                RuleHit(
                    code="DOC_SUPPLIER_NO_ICO",
                    severity=Severity.WARN,
                    title="Dodávateľ bez IČO",
                    message=f'Dodávateľ "{data.partner_name}" nemá zadané IČO.',
                    fix_suggestion="Vyhľadajte IČO dodávateľa a doplňte ho pre správnu identifikáciu.",
                    field_path="partner_ico",
                    link_to_guide="/partneri",
                )
            )

        if not data.doc_number:
            result.add(
                RuleHit(
                    code="DOC_NO_NUMBER",
                    severity=Severity.WARN,
                    title="Chýba číslo dokladu",
                    message="Doklad nemá zadané číslo (číslo faktúry).",
                    fix_suggestion="Doplňte číslo dokladu pre lepšiu identifikáciu a párovanie platieb.",
                    field_path="doc_number",
                )
            )

        if amount_valid:
            result.add(
                RuleHit(
                    code="DOC_SUGGEST_TEMPLATE",
                    severity=Severity.INFO,
                    title="Odporúčaná šablóna",
                    message=(
                        "Pre prijatú faktúru za služby použite šablónu "
                        "'Prijatá FA (služby)': MD 518 / D 321."
                    ),
                    fix_suggestion="Vyberte šablónu pri zaúčtovaní dokladu.",
                    link_to_guide=GUIDE_TEMPLATES,
                )
            )

    # === Bank pairing rules ===

    def _validate_bank_pairing(self, data: BankPairingData, result: RuleResult) -> None:
        paid = abs(data.movement_amount)
        if paid > data.open_item_remaining + EPSILON:
            result.add(
                RuleHit(
                    code="BANK_OVERPAYMENT",
                    severity=Severity.BLOCK,
                    title="Preplatenie otvorenej položky",
                    message=(
                        f"Suma úhrady ({_money(paid)}) presahuje zostatok otvorenej položky "
                        f"({_money(data.open_item_remaining)})."
                    ),
                    fix_suggestion=(
                        "Znížte sumu párovania alebo vyberte inú otvorenú položku. "
                        "Ak ide o preplatok, vytvorte novú pohľadávku/záväzok."
                    ),
                    field_path="amount",
                )
            )

        if data.is_partial_payment and not data.note:
            result.add(
                RuleHit(
                    code="BANK_PARTIAL_NO_NOTE",
                    severity=Severity.WARN,
                    title="Čiastočná úhrada bez poznámky",
                    message=(
                        "Párujete čiastočnú úhradu bez poznámky. "
                        "Neskôr môže byť ťažké identifikovať dôvod."
                    ),
                    fix_suggestion=(
                        "Pridajte poznámku vysvetľujúcu čiastočnú úhradu "
                        "(napr. 'Záloha', 'Splátka 1/3')."
                    ),
                    field_path="note",
                )
            )

        if not data.partner_id:
            result.add(
                RuleHit(
                    code="BANK_NO_PARTNER",
                    severity=Severity.WARN,
                    title="Úhrada bez partnera",
                    message="Bankový pohyb nemá priradeného partnera.",
                    fix_suggestion="Pre správne saldokonto priraďte partnera k tejto úhrade.",
                    field_path="partner_id",
                )
            )

        if data.open_item_remaining <= ZERO:
            result.add(
                RuleHit(
                    code="BANK_NO_OPEN_ITEM",
                    severity=Severity.INFO,
                    title="Žiadna otvorená položka",
                    message="Pre tohto partnera neexistuje otvorená položka na párovanie.",
                    fix_suggestion=(
                        "Najprv zaúčtujte faktúru (vytvorí sa pohľadávka/záväzok), "
                        "potom spárujte platbu."
                    ),
                    link_to_guide=GUIDE_SALDOKONTO,
                )
            )

    # === Payroll rules ===

    def _validate_payroll(self, data: PayrollData, result: RuleResult) -> None:
        if data.existing_run_for_period:
            result.add(
                RuleHit(
                    code="PAYROLL_DUPLICATE",
                    severity=Severity.BLOCK,
                    title="Duplicitný mzdový výpočet",
                    message=f"Pre obdobie {data.period} už existuje mzdový výpočet.",
                    fix_suggestion="Vymažte existujúci výpočet alebo vyberte iné obdobie.",
                    field_path="period",
                    link_to_guide=GUIDE_PAYROLL,
                )
            )

        if data.gross_salary <= ZERO:
            result.add(
                RuleHit(
                    code="PAYROLL_INVALID_SALARY",
                    severity=Severity.BLOCK,
                    title="Neplatná hrubá mzda",
                    message="Hrubá mzda musí byť kladné číslo.",
                    fix_suggestion="Zadajte platnú hrubú mzdu.",
                    field_path="gross_salary",
                )
            )

        if not data.has_payroll_settings:
            result.add(
                RuleHit(
                    code="PAYROLL_NO_SETTINGS",
                    severity=Severity.WARN,
                    title="Chýbajú nastavenia miezd",
                    message=(
                        "Nie sú nastavené sadzby pre výpočet miezd. Použijú sa predvolené hodnoty."
                    ),
                    fix_suggestion=(
                        "Prejdite do Nastavenia miezd a skontrolujte/upravte sadzby odvodov a dane."
                    ),
                    link_to_guide=GUIDE_PAYROLL,
                )
            )

        if data.create_payment_transactions:
            result.add(
                RuleHit(
                    code="PAYROLL_AUTO_TRANSACTIONS",
                    severity=Severity.INFO,
                    title="Automatické transakcie",
                    message=(
                        "Systém automaticky vytvorí 4 transakcie: mzdový náklad, "
                        "výplata mzdy, úhrada odvodov, úhrada dane."
                    ),
                    fix_suggestion="Po vytvorení skontrolujte transakcie v Účtovnom denníku.",
                    link_to_guide="/uctovnictvo/dennik",
                )
            )

    # === Period closing rules ===

    def _validate_period_closing(self, data: PeriodClosingData, result: RuleResult) -> None:
        if data.is_already_locked:
            result.add(
                RuleHit(
                    code="CLOSING_ALREADY_LOCKED",
                    severity=Severity.BLOCK,
                    title="Obdobie je už zamknuté",
                    message=f"Obdobie {data.period} je už zamknuté.",
                    fix_suggestion="Ak potrebujete zmeny, najprv odomknite obdobie.",
                )
            )

        if data.inbox_pending_count > 0:
            result.add(
                RuleHit(
                    code="CLOSING_INBOX_NOT_EMPTY",
                    severity=Severity.BLOCK,
                    title="Nezaúčtované doklady v Inboxe",
                    message=(
                        f"V Inboxe je {data.inbox_pending_count} nezaúčtovaných dokladov "
                        "pre toto obdobie."
                    ),
                    fix_suggestion="Zaúčtujte alebo odmietnite všetky doklady pred uzávierkou.",
                    link_to_guide="/doklady",
                )
            )

        if data.draft_transaction_count > 0:
            result.add(
                RuleHit(
                    code="CLOSING_DRAFT_TRANSACTIONS",
                    severity=Severity.BLOCK,
                    title="Nezaúčtované transakcie",
                    message=f"Existuje {data.draft_transaction_count} transakcií v stave DRAFT.",
                    fix_suggestion="Zaúčtujte (POST) alebo zmažte všetky koncepty pred uzávierkou.",
                    link_to_guide="/uctovnictvo/transakcie",
                )
            )

        if data.open_311_count > 0:
            result.add(
                RuleHit(
                    code="CLOSING_OPEN_311",
                    severity=Severity.WARN,
                    title="Otvorené pohľadávky",
                    message=f"Existuje {data.open_311_count} neuhradených pohľadávok (311).",
                    fix_suggestion=(
                        "Skontrolujte saldokonto 311. Ak sú správne, pokračujte. "
                        "Ak nie, spárujte platby."
                    ),
                    link_to_guide=GUIDE_SALDOKONTO,
                )
            )

        if data.open_321_count > 0:
            result.add(
                RuleHit(
                    code="CLOSING_OPEN_321",
                    severity=Severity.WARN,
                    title="Otvorené záväzky",
                    message=f"Existuje {data.open_321_count} neuhradených záväzkov (321).",
                    fix_suggestion=(
                        "Skontrolujte saldokonto 321. Ak sú správne, pokračujte. "
                        "Ak nie, spárujte platby."
                    ),
                    link_to_guide=GUIDE_SALDOKONTO,
                )
            )

        result.add(
            RuleHit(
                code="CLOSING_INFO_LOCK",
                severity=Severity.INFO,
                title="Čo znamená zamknutie",
                message="Po zamknutí nebude možné upravovať ani mazať transakcie v tomto období.",
                fix_suggestion=(
                    "Uistite sa, že všetko je správne. "
                    "V prípade potreby môžete obdobie neskôr odomknúť."
                ),
            )
        )


async def record_override(
    store: DocumentStore,
    result: RuleResult,
    entity_type: EntityType,
    context: RuleContext,
    entity_id: str | None = None,
    notes: str | None = None,
    clock: Clock | None = None,
) -> AuditEntry | None:
    """Audit-log a user's decision to submit despite warnings.

    Returns ``None`` when there is nothing to override. Blocks cannot be
    overridden; they are logged as ``VALIDATION_BLOCK`` instead.
    """
    if result.blocks:
        return await log_audit_entry(
            store,
            context.company_id,
            AuditEntryType.VALIDATION_BLOCK,
            entity_type=entity_type.value,
            by=context.user_id or "unknown",
            rule_codes=[hit.code for hit in result.blocks],
            entity_id=entity_id,
            ref={"period": context.period} if context.period else None,
            notes=notes,
            clock=clock,
        )
    if not result.warnings:
        return None
    return await log_audit_entry(
        store,
        context.company_id,
        AuditEntryType.OVERRIDE_WARNING,
        entity_type=entity_type.value,
        by=context.user_id or "unknown",
        rule_codes=[hit.code for hit in result.warnings],
        entity_id=entity_id,
        ref={"period": context.period} if context.period else None,
        notes=notes,
        clock=clock,
    )
