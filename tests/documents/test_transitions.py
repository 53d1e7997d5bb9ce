from __future__ import annotations

import pytest

from backend.apps.documents.dto import InvoiceStatus, QuoteStatus
from backend.apps.documents.errors import InvalidTransitionError
from backend.apps.documents.transitions import (
    INVOICE_TRANSITIONS,
    QUOTE_TRANSITIONS,
    next_invoice_status,
    next_quote_status,
)

QUOTE_ACTIONS = ("send", "accept", "refuse")
INVOICE_ACTIONS = ("send", "pay", "cancel")


@pytest.mark.parametrize(
    "current,action,target",
    [
        (QuoteStatus.DRAFT, "send", QuoteStatus.SENT),
        (QuoteStatus.SENT, "accept", QuoteStatus.ACCEPTED),
        (QuoteStatus.SENT, "refuse", QuoteStatus.REFUSED),
    ],
)
def test_allowed_quote_transitions(current, action, target):
    assert next_quote_status(current, action) == target


@pytest.mark.parametrize(
    "current,action,target",
    [
        (InvoiceStatus.DRAFT, "send", InvoiceStatus.SENT),
        (InvoiceStatus.SENT, "pay", InvoiceStatus.PAID),
        (InvoiceStatus.DRAFT, "cancel", InvoiceStatus.CANCELLED),
        (InvoiceStatus.SENT, "cancel", InvoiceStatus.CANCELLED),
    ],
)
def test_allowed_invoice_transitions(current, action, target):
    assert next_invoice_status(current, action) == target


def test_every_other_quote_pair_is_rejected():
    for status in QuoteStatus:
        for action in QUOTE_ACTIONS:
            if (status, action) in QUOTE_TRANSITIONS:
                continue
            with pytest.raises(InvalidTransitionError):
                next_quote_status(status, action)


def test_every_other_invoice_pair_is_rejected():
    for status in InvoiceStatus:
        for action in INVOICE_ACTIONS:
            if (status, action) in INVOICE_TRANSITIONS:
                continue
            with pytest.raises(InvalidTransitionError):
                next_invoice_status(status, action)


def test_error_names_current_and_requested_state():
    with pytest.raises(InvalidTransitionError) as exc_info:
        next_invoice_status(InvoiceStatus.PAID, "send")

    assert exc_info.value.current == "PAID"
    assert exc_info.value.target == "SENT"
    assert str(exc_info.value) == "Invoice cannot go from PAID to SENT"


def test_terminal_states_have_no_exit():
    for status in (QuoteStatus.ACCEPTED, QuoteStatus.REFUSED):
        assert not [key for key in QUOTE_TRANSITIONS if key[0] == status]
    for status in (InvoiceStatus.PAID, InvoiceStatus.CANCELLED):
        assert not [key for key in INVOICE_TRANSITIONS if key[0] == status]
