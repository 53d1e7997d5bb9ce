"""Input models for document and client edits.

Payloads are validated with pydantic before they reach the monetary engine or
the store. Failures are flattened into ``{"field", "message"}`` entries with
dotted paths (``items.0.quantity``) and raised as
:class:`~backend.apps.documents.errors.DocumentValidationError`.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .dto import Company, Unit
from .errors import DocumentValidationError

_ModelT = TypeVar("_ModelT", bound=BaseModel)


class LineItemInput(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)
    # precision mirrors the Numeric columns in tables.py

    description: str = Field(..., min_length=1, max_length=2000)
    quantity: Decimal = Field(..., gt=0, max_digits=12, decimal_places=3)
    unit: Unit = Unit.UNIT
    unit_price_ht: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    vat_rate: Decimal = Field(..., ge=0, le=100, decimal_places=2)
    discount_percent: Decimal = Field(Decimal("0"), ge=0, le=100, decimal_places=2)


class _DocumentInput(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    client_id: str = Field(..., min_length=1)
    subject: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None
    issue_date: Optional[date] = None
    discount_percent: Decimal = Field(Decimal("0"), ge=0, le=100, decimal_places=2)
    items: List[LineItemInput] = Field(..., min_length=1)


class QuoteInput(_DocumentInput):
    valid_until: Optional[date] = None


class InvoiceInput(_DocumentInput):
    due_date: Optional[date] = None
    payment_method: Optional[str] = Field(None, max_length=50)


class ClientInput(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=200)
    email: Optional[str] = Field(None, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    address: Optional[str] = None
    zip_code: Optional[str] = Field(None, max_length=10)
    city: Optional[str] = None
    siret: Optional[str] = Field(None, pattern=r"^\d{14}$")
    vat_number: Optional[str] = Field(None, max_length=20)


class PaymentInput(BaseModel):
    paid_amount: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)
    payment_method: Optional[str] = Field(None, max_length=50)


def _field_path(loc: tuple) -> str:
    return ".".join(str(part) for part in loc) or "__root__"


def _errors_from(exc: ValidationError) -> List[Dict[str, str]]:
    return [{"field": _field_path(err["loc"]), "message": err["msg"]} for err in exc.errors()]


def _parse(model: Type[_ModelT], data: Mapping[str, Any] | _ModelT) -> _ModelT:
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise DocumentValidationError(_errors_from(exc)) from None


def _check_regime(company: Company, items: List[LineItemInput]) -> None:
    if not company.is_franchise:
        return
    errors = [
        {
            "field": f"items.{index}.vat_rate",
            "message": "VAT must be 0 under the franchise regime (art. 293 B du CGI)",
        }
        for index, item in enumerate(items)
        if item.vat_rate != 0
    ]
    if errors:
        raise DocumentValidationError(errors)


def parse_quote_input(data: Mapping[str, Any] | QuoteInput, company: Company) -> QuoteInput:
    payload = _parse(QuoteInput, data)
    _check_regime(company, payload.items)
    if payload.valid_until and payload.issue_date and payload.valid_until < payload.issue_date:
        raise DocumentValidationError(
            [{"field": "valid_until", "message": "Validity date precedes issue date"}]
        )
    return payload


def parse_invoice_input(data: Mapping[str, Any] | InvoiceInput, company: Company) -> InvoiceInput:
    payload = _parse(InvoiceInput, data)
    _check_regime(company, payload.items)
    if payload.due_date and payload.issue_date and payload.due_date < payload.issue_date:
        raise DocumentValidationError(
            [{"field": "due_date", "message": "Due date precedes issue date"}]
        )
    return payload


def parse_client_input(data: Mapping[str, Any] | ClientInput) -> ClientInput:
    return _parse(ClientInput, data)


def parse_payment_input(data: Mapping[str, Any] | PaymentInput | None) -> PaymentInput:
    return _parse(PaymentInput, data or {})


__all__ = [
    "ClientInput",
    "InvoiceInput",
    "LineItemInput",
    "PaymentInput",
    "QuoteInput",
    "parse_client_input",
    "parse_invoice_input",
    "parse_payment_input",
    "parse_quote_input",
]
