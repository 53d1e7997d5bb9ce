from __future__ import annotations

from decimal import Decimal

import pytest

from backend.apps.documents.dto import Company, Plan, VatRegime
from backend.apps.documents.errors import DocumentValidationError
from backend.apps.documents.validators import (
    parse_client_input,
    parse_invoice_input,
    parse_payment_input,
    parse_quote_input,
)

from conftest import line

NORMAL = Company(id="c1", name="Normal", vat_regime=VatRegime.NORMAL, plan=Plan.PRO)
FRANCHISE = Company(id="c2", name="Micro", vat_regime=VatRegime.FRANCHISE, plan=Plan.FREE)


def _fields(exc_info) -> list[str]:
    return [err["field"] for err in exc_info.value.errors]


def test_valid_invoice_input_is_parsed_to_decimals():
    payload = parse_invoice_input(
        {"client_id": "cl-1", "items": [line(quantity="1.5", price="19.90")]}, NORMAL
    )

    assert payload.items[0].quantity == Decimal("1.5")
    assert payload.items[0].unit_price_ht == Decimal("19.90")
    assert payload.discount_percent == Decimal("0")


@pytest.mark.parametrize(
    "item,field",
    [
        (line(quantity="0"), "items.0.quantity"),
        (line(price="-1"), "items.0.unit_price_ht"),
        (line(vat="120"), "items.0.vat_rate"),
        (line(discount="101"), "items.0.discount_percent"),
        (line(description=""), "items.0.description"),
        (line(unit="PARSEC"), "items.0.unit"),
    ],
)
def test_line_item_ranges(item, field):
    with pytest.raises(DocumentValidationError) as exc_info:
        parse_invoice_input({"client_id": "cl-1", "items": [item]}, NORMAL)

    assert field in _fields(exc_info)


def test_document_needs_at_least_one_item():
    with pytest.raises(DocumentValidationError) as exc_info:
        parse_quote_input({"client_id": "cl-1", "items": []}, NORMAL)

    assert _fields(exc_info) == ["items"]


def test_global_discount_range():
    with pytest.raises(DocumentValidationError) as exc_info:
        parse_quote_input({"client_id": "cl-1", "discount_percent": "150", "items": [line()]}, NORMAL)

    assert _fields(exc_info) == ["discount_percent"]


def test_due_date_cannot_precede_issue_date():
    with pytest.raises(DocumentValidationError) as exc_info:
        parse_invoice_input(
            {
                "client_id": "cl-1",
                "issue_date": "2026-03-15",
                "due_date": "2026-03-01",
                "items": [line()],
            },
            NORMAL,
        )

    assert _fields(exc_info) == ["due_date"]


def test_franchise_lines_must_carry_zero_vat():
    with pytest.raises(DocumentValidationError) as exc_info:
        parse_quote_input(
            {"client_id": "cl-1", "items": [line(vat="0"), line(vat="5.5")]}, FRANCHISE
        )

    assert _fields(exc_info) == ["items.1.vat_rate"]


def test_client_input_patterns():
    assert parse_client_input({"name": "Client", "siret": "12345678900012"}).siret == "12345678900012"
    with pytest.raises(DocumentValidationError) as exc_info:
        parse_client_input({"name": "Client", "email": "not-an-email", "siret": "123"})

    assert sorted(_fields(exc_info)) == ["email", "siret"]


def test_payment_input_defaults():
    payment = parse_payment_input(None)

    assert payment.paid_amount is None
    assert payment.payment_method is None


@pytest.mark.parametrize(
    "payload,field",
    [
        ({"items": [line(price="0.125")]}, "items.0.unit_price_ht"),
        ({"items": [line(quantity="1.2345")]}, "items.0.quantity"),
        ({"items": [line(discount="12.345")]}, "items.0.discount_percent"),
        ({"items": [line(vat="5.555")]}, "items.0.vat_rate"),
        ({"discount_percent": "12.345", "items": [line()]}, "discount_percent"),
    ],
)
def test_precision_beyond_storage_is_rejected(payload, field):
    with pytest.raises(DocumentValidationError) as exc_info:
        parse_invoice_input({"client_id": "cl-1", **payload}, NORMAL)

    assert _fields(exc_info) == [field]


def test_precision_within_storage_is_accepted():
    payload = parse_invoice_input(
        {
            "client_id": "cl-1",
            "discount_percent": "12.35",
            "items": [line(quantity="2.125", price="0.12", vat="5.5", discount="2.50")],
        },
        NORMAL,
    )

    item = payload.items[0]
    assert (item.quantity, item.unit_price_ht) == (Decimal("2.125"), Decimal("0.12"))
    assert payload.discount_percent == Decimal("12.35")


def test_paid_amount_precision():
    with pytest.raises(DocumentValidationError) as exc_info:
        parse_payment_input({"paid_amount": "10.001"})

    assert _fields(exc_info) == ["paid_amount"]
