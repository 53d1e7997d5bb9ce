"""Document lifecycle HTTP API (v1).

Every route acts on behalf of the company named by ``X-Company-ID``. Domain
errors are translated by :func:`translate_errors`: validation 422, unknown
records 404, quota and plan limits 403, any other rule violation 409.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, ConfigDict, Field

from backend.core.company.context import require_company
from backend.core.database import get_engine
from einvoice.facturx import FacturXBuildError

from .dto import Invoice, InvoiceStatus, QuoteStatus, Unit
from .errors import (
    DocumentError,
    DocumentNotFoundError,
    DocumentValidationError,
    PlanFeatureError,
    QuotaExceededError,
)
from .service import DocumentService
from .validators import PaymentInput

router = APIRouter(prefix="/api/v1")


def _error(status_code: int, code: str, detail: Any):
    raise HTTPException(status_code=status_code, detail={"error": code, "detail": detail})


@contextmanager
def translate_errors() -> Iterator[None]:
    try:
        yield
    except DocumentValidationError as exc:
        _error(status.HTTP_422_UNPROCESSABLE_ENTITY, "validation_error", exc.errors)
    except DocumentNotFoundError as exc:
        _error(status.HTTP_404_NOT_FOUND, exc.code, str(exc))
    except (QuotaExceededError, PlanFeatureError) as exc:
        _error(status.HTTP_403_FORBIDDEN, exc.code, str(exc))
    except DocumentError as exc:
        _error(status.HTTP_409_CONFLICT, exc.code, str(exc))
    except FacturXBuildError as exc:
        _error(status.HTTP_409_CONFLICT, "facturx_build_failed", str(exc))


def get_document_service() -> DocumentService:
    return DocumentService(get_engine())


class LineItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    position: int
    description: str
    quantity: Decimal
    unit: Unit
    unit_price_ht: Decimal
    vat_rate: Decimal
    discount_percent: Decimal
    total_ht: Decimal


class _DocumentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    number: str
    client_id: str
    subject: Optional[str] = None
    notes: Optional[str] = None
    issue_date: date
    discount_percent: Decimal
    total_ht: Decimal
    total_vat: Decimal
    total_ttc: Decimal
    sent_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None
    created_at: datetime
    items: List[LineItemOut]


class QuoteOut(_DocumentOut):
    status: QuoteStatus
    valid_until: date
    accepted_at: Optional[datetime] = None
    refused_at: Optional[datetime] = None
    invoice_id: Optional[str] = None


class InvoiceOut(_DocumentOut):
    status: InvoiceStatus
    due_date: date
    quote_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    paid_amount: Optional[Decimal] = None
    payment_method: Optional[str] = None
    pdp_provider: Optional[str] = None
    pdp_invoice_id: Optional[str] = None
    pdp_status: Optional[str] = None
    pdp_submitted_at: Optional[datetime] = None
    pdp_error: Optional[str] = None


class ClientOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: Optional[str] = None
    address: Optional[str] = None
    zip_code: Optional[str] = None
    city: Optional[str] = None
    siret: Optional[str] = None
    vat_number: Optional[str] = None
    archived_at: Optional[datetime] = None


class BulkRequest(BaseModel):
    ids: List[str] = Field(..., min_length=1)


def _invoice_out(service: DocumentService, invoice: Invoice) -> Dict[str, Any]:
    data = InvoiceOut.model_validate(invoice).model_dump(mode="json")
    data["display_status"] = service.display_status(invoice).value
    return data


def _quote_out(quote) -> Dict[str, Any]:
    return QuoteOut.model_validate(quote).model_dump(mode="json")


# Clients ----------------------------------------------------------------------


@router.post("/clients", status_code=status.HTTP_201_CREATED)
def create_client(
    payload: Dict[str, Any] = Body(...),
    company_id: str = Depends(require_company),
    service: DocumentService = Depends(get_document_service),
):
    with translate_errors():
        client = service.create_client(company_id, payload)
    return ClientOut.model_validate(client).model_dump(mode="json")


@router.post("/clients/{client_id}/archive")
def archive_client(
    client_id: str,
    company_id: str = Depends(require_company),
    service: DocumentService = Depends(get_document_service),
):
    with translate_errors():
        client = service.archive_client(company_id, client_id)
    return ClientOut.model_validate(client).model_dump(mode="json")


@router.post("/clients/{client_id}/restore")
def restore_client(
    client_id: str,
    company_id: str = Depends(require_company),
    service: DocumentService = Depends(get_document_service),
):
    with translate_errors():
        client = service.restore_client(company_id, client_id)
    return ClientOut.model_validate(client).model_dump(mode="json")


# Quotes -----------------------------------------------------------------------


@router.get("/quotes")
def list_quotes(
    include_archived: bool = Query(False),
    company_id: str = Depends(require_company),
    service: DocumentService = Depends(get_document_service),
):
    with translate_errors():
        quotes = service.list_quotes(company_id, include_archived=include_archived)
    return {"items": [_quote_out(q) for q in quotes]}


@router.post("/quotes", status_code=status.HTTP_201_CREATED)
def create_quote(
    payload: Dict[str, Any] = Body(...),
    company_id: str = Depends(require_company),
    service: DocumentService = Depends(get_document_service),
):
    with translate_errors():
        quote = service.create_quote(company_id, payload)
    return _quote_out(quote)


@router.post("/quotes/bulk/archive")
def bulk_archive_quotes(
    body: BulkRequest,
    company_id: str = Depends(require_company),
    service: DocumentService = Depends(get_document_service),
):
    with translate_errors():
        count = service.bulk_archive_quotes(company_id, body.ids)
    return {"count": count}


@router.post("/quotes/bulk/delete")
def bulk_delete_quotes(
    body: BulkRequest,
    company_id: str = Depends(require_company),
    service: DocumentService = Depends(get_document_service),
):
    with translate_errors():
        count = service.bulk_delete_quotes(company_id, body.ids)
    return {"count": count}


@router.get("/quotes/{quote_id}")
def get_quote(
    quote_id: str,
    company_id: str = Depends(require_company),
    service: DocumentService = Depends(get_document_service),
):
    with translate_errors():
        quote = service.get_quote(company_id, quote_id)
    return _quote_out(quote)


@router.put("/quotes/{quote_id}")
def update_quote(
    quote_id: str,
    payload: Dict[str, Any] = Body(...),
    company_id: str = Depends(require_company),
    service: DocumentService = Depends(get_document_service),
):
    with translate_errors():
        quote = service.update_quote(company_id, quote_id, payload)
    return _quote_out(quote)


@router.delete("/quotes/{quote_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_quote(
    quote_id: str,
    company_id: str = Depends(require_company),
    service: DocumentService = Depends(get_document_service),
):
    with translate_errors():
        service.delete_quote(company_id, quote_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


_QUOTE_ACTIONS = {
    "send": DocumentService.send_quote,
    "accept": DocumentService.accept_quote,
    "refuse": DocumentService.refuse_quote,
    "archive": DocumentService.archive_quote,
    "restore": DocumentService.restore_quote,
    "duplicate": DocumentService.duplicate_quote,
}


@router.post("/quotes/{quote_id}/{action}")
def quote_action(
    quote_id: str,
    action: str,
    company_id: str = Depends(require_company),
    service: DocumentService = Depends(get_document_service),
):
    if action == "convert":
        with translate_errors():
            invoice = service.convert_quote(company_id, quote_id)
        return _invoice_out(service, invoice)
    handler = _QUOTE_ACTIONS.get(action)
    if handler is None:
        _error(status.HTTP_404_NOT_FOUND, "unknown_action", f"Unknown quote action: {action}")
    with translate_errors():
        quote = handler(service, company_id, quote_id)
    return _quote_out(quote)


# Invoices ---------------------------------------------------------------------


@router.get("/invoices")
def list_invoices(
    include_archived: bool = Query(False),
    company_id: str = Depends(require_company),
    service: DocumentService = Depends(get_document_service),
):
    with translate_errors():
        invoices = service.list_invoices(company_id, include_archived=include_archived)
    return {"items": [_invoice_out(service, inv) for inv in invoices]}


@router.post("/invoices", status_code=status.HTTP_201_CREATED)
def create_invoice(
    payload: Dict[str, Any] = Body(...),
    company_id: str = Depends(require_company),
    service: DocumentService = Depends(get_document_service),
):
    with translate_errors():
        invoice = service.create_invoice(company_id, payload)
    return _invoice_out(service, invoice)


@router.post("/invoices/bulk/archive")
def bulk_archive_invoices(
    body: BulkRequest,
    company_id: str = Depends(require_company),
    service: DocumentService = Depends(get_document_service),
):
    with translate_errors():
        count = service.bulk_archive_invoices(company_id, body.ids)
    return {"count": count}


@router.post("/invoices/bulk/delete")
def bulk_delete_invoices(
    body: BulkRequest,
    company_id: str = Depends(require_company),
    service: DocumentService = Depends(get_document_service),
):
    with translate_errors():
        count = service.bulk_delete_invoices(company_id, body.ids)
    return {"count": count}


@router.get("/invoices/{invoice_id}")
def get_invoice(
    invoice_id: str,
    company_id: str = Depends(require_company),
    service: DocumentService = Depends(get_document_service),
):
    with translate_errors():
        invoice = service.get_invoice(company_id, invoice_id)
    return _invoice_out(service, invoice)


@router.put("/invoices/{invoice_id}")
def update_invoice(
    invoice_id: str,
    payload: Dict[str, Any] = Body(...),
    company_id: str = Depends(require_company),
    service: DocumentService = Depends(get_document_service),
):
    with translate_errors():
        invoice = service.update_invoice(company_id, invoice_id, payload)
    return _invoice_out(service, invoice)


@router.delete("/invoices/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_invoice(
    invoice_id: str,
    company_id: str = Depends(require_company),
    service: DocumentService = Depends(get_document_service),
):
    with translate_errors():
        service.delete_invoice(company_id, invoice_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/invoices/{invoice_id}/pay")
def pay_invoice(
    invoice_id: str,
    payment: Optional[PaymentInput] = Body(None),
    company_id: str = Depends(require_company),
    service: DocumentService = Depends(get_document_service),
):
    payment = payment or PaymentInput()
    with translate_errors():
        invoice = service.pay_invoice(
            company_id,
            invoice_id,
            paid_amount=payment.paid_amount,
            payment_method=payment.payment_method,
        )
    return _invoice_out(service, invoice)


_INVOICE_ACTIONS = {
    "send": DocumentService.send_invoice,
    "cancel": DocumentService.cancel_invoice,
    "archive": DocumentService.archive_invoice,
    "restore": DocumentService.restore_invoice,
    "duplicate": DocumentService.duplicate_invoice,
}


@router.post("/invoices/{invoice_id}/{action}")
def invoice_action(
    invoice_id: str,
    action: str,
    company_id: str = Depends(require_company),
    service: DocumentService = Depends(get_document_service),
):
    handler = _INVOICE_ACTIONS.get(action)
    if handler is None:
        _error(status.HTTP_404_NOT_FOUND, "unknown_action", f"Unknown invoice action: {action}")
    with translate_errors():
        invoice = handler(service, company_id, invoice_id)
    return _invoice_out(service, invoice)
