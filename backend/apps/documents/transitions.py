"""Status transition tables for quotes and invoices.

Every allowed move is listed as ``(current status, action) -> target``; any
pair missing from the table is rejected. Timestamps and payment fields are
written by the service, never by callers.
"""

from __future__ import annotations

from typing import Dict, Tuple

from .dto import InvoiceStatus, QuoteStatus
from .errors import InvalidTransitionError

QUOTE_TRANSITIONS: Dict[Tuple[QuoteStatus, str], QuoteStatus] = {
    (QuoteStatus.DRAFT, "send"): QuoteStatus.SENT,
    (QuoteStatus.SENT, "accept"): QuoteStatus.ACCEPTED,
    (QuoteStatus.SENT, "refuse"): QuoteStatus.REFUSED,
}

INVOICE_TRANSITIONS: Dict[Tuple[InvoiceStatus, str], InvoiceStatus] = {
    (InvoiceStatus.DRAFT, "send"): InvoiceStatus.SENT,
    (InvoiceStatus.SENT, "pay"): InvoiceStatus.PAID,
    (InvoiceStatus.DRAFT, "cancel"): InvoiceStatus.CANCELLED,
    (InvoiceStatus.SENT, "cancel"): InvoiceStatus.CANCELLED,
}

_ACTION_TARGETS = {
    "send": "SENT",
    "accept": "ACCEPTED",
    "refuse": "REFUSED",
    "pay": "PAID",
    "cancel": "CANCELLED",
}


def next_quote_status(current: QuoteStatus, action: str) -> QuoteStatus:
    try:
        return QUOTE_TRANSITIONS[(QuoteStatus(current), action)]
    except KeyError:
        raise InvalidTransitionError(
            "Quote", QuoteStatus(current).value, action, _ACTION_TARGETS.get(action)
        ) from None


def next_invoice_status(current: InvoiceStatus, action: str) -> InvoiceStatus:
    try:
        return INVOICE_TRANSITIONS[(InvoiceStatus(current), action)]
    except KeyError:
        raise InvalidTransitionError(
            "Invoice", InvoiceStatus(current).value, action, _ACTION_TARGETS.get(action)
        ) from None


__all__ = [
    "INVOICE_TRANSITIONS",
    "QUOTE_TRANSITIONS",
    "next_invoice_status",
    "next_quote_status",
]
