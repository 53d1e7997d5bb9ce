"""Domain records for companies, clients, quotes and invoices.

Records are plain dataclasses loaded from the store; mutations go through
:class:`backend.apps.documents.service.DocumentService` so that the status
rules and the numbering counters stay consistent.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from .calculations import ZERO


class VatRegime(str, Enum):
    FRANCHISE = "FRANCHISE"
    NORMAL = "NORMAL"


class Plan(str, Enum):
    FREE = "FREE"
    STARTER = "STARTER"
    PRO = "PRO"
    BUSINESS = "BUSINESS"


class Unit(str, Enum):
    HOUR = "HOUR"
    DAY = "DAY"
    UNIT = "UNIT"
    FIXED = "FIXED"
    SQM = "SQM"
    LM = "LM"
    KG = "KG"
    LOT = "LOT"


class QuoteStatus(str, Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    ACCEPTED = "ACCEPTED"
    REFUSED = "REFUSED"
    # Declared for compatibility with stored data; nothing moves a quote here yet
    EXPIRED = "EXPIRED"


class InvoiceStatus(str, Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    PAID = "PAID"
    CANCELLED = "CANCELLED"
    # Read-time projection only, never persisted
    OVERDUE = "OVERDUE"


@dataclass(frozen=True, slots=True)
class Company:
    id: str
    name: str
    vat_regime: VatRegime = VatRegime.NORMAL
    plan: Plan = Plan.FREE
    quote_prefix: str = "DE"
    invoice_prefix: str = "FA"
    next_quote_num: int = 1
    next_invoice_num: int = 1
    siret: Optional[str] = None
    vat_number: Optional[str] = None
    address: Optional[str] = None
    zip_code: Optional[str] = None
    city: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    @property
    def is_franchise(self) -> bool:
        return self.vat_regime == VatRegime.FRANCHISE


@dataclass(frozen=True, slots=True)
class Client:
    id: str
    company_id: str
    name: str
    email: Optional[str] = None
    address: Optional[str] = None
    zip_code: Optional[str] = None
    city: Optional[str] = None
    siret: Optional[str] = None
    vat_number: Optional[str] = None
    archived_at: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class LineItem:
    description: str
    quantity: Decimal
    unit_price_ht: Decimal
    vat_rate: Decimal
    unit: Unit = Unit.UNIT
    discount_percent: Decimal = ZERO
    total_ht: Decimal = ZERO
    position: int = 0


@dataclass(slots=True)
class Quote:
    id: str
    company_id: str
    client_id: str
    number: str
    status: QuoteStatus
    issue_date: date
    valid_until: date
    created_at: datetime
    subject: Optional[str] = None
    notes: Optional[str] = None
    discount_percent: Decimal = ZERO
    total_ht: Decimal = ZERO
    total_vat: Decimal = ZERO
    total_ttc: Decimal = ZERO
    sent_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    refused_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None
    items: List[LineItem] = field(default_factory=list)
    invoice_id: Optional[str] = None


@dataclass(slots=True)
class Invoice:
    id: str
    company_id: str
    client_id: str
    number: str
    status: InvoiceStatus
    issue_date: date
    due_date: date
    created_at: datetime
    quote_id: Optional[str] = None
    subject: Optional[str] = None
    notes: Optional[str] = None
    discount_percent: Decimal = ZERO
    total_ht: Decimal = ZERO
    total_vat: Decimal = ZERO
    total_ttc: Decimal = ZERO
    sent_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    paid_amount: Optional[Decimal] = None
    payment_method: Optional[str] = None
    archived_at: Optional[datetime] = None
    facturx_xml: Optional[str] = None
    pdp_provider: Optional[str] = None
    pdp_invoice_id: Optional[str] = None
    pdp_status: Optional[str] = None
    pdp_submitted_at: Optional[datetime] = None
    pdp_error: Optional[str] = None
    items: List[LineItem] = field(default_factory=list)

    def display_status(self, today: date) -> InvoiceStatus:
        """Status as shown to users: SENT past its due date reads as OVERDUE."""
        if self.status == InvoiceStatus.SENT and self.due_date < today:
            return InvoiceStatus.OVERDUE
        return self.status


@dataclass(frozen=True, slots=True)
class TransmissionState:
    submitted: bool
    pdp_provider: Optional[str] = None
    pdp_invoice_id: Optional[str] = None
    pdp_status: Optional[str] = None
    pdp_submitted_at: Optional[datetime] = None
    pdp_error: Optional[str] = None
    status_text: Optional[str] = None
    refresh_error: Optional[str] = None


__all__ = [
    "Client",
    "Company",
    "Invoice",
    "InvoiceStatus",
    "LineItem",
    "Plan",
    "Quote",
    "QuoteStatus",
    "TransmissionState",
    "Unit",
    "VatRegime",
]
