from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, status

from backend.apps.documents.api import _error, get_document_service, translate_errors
from backend.apps.documents.service import DocumentService
from backend.core.company.context import require_company
from backend.integrations.brevo_client import BrevoClient, get_mailer
from backend.integrations.pdp_client import PdpClient, get_pdp_client

from .service import MailDeliveryError, TransmissionError, TransmissionService

router = APIRouter(prefix="/api/v1")


def get_transmission_service(
    documents: DocumentService = Depends(get_document_service),
    pdp_client: PdpClient = Depends(get_pdp_client),
    mailer: BrevoClient = Depends(get_mailer),
) -> TransmissionService:
    return TransmissionService(documents, pdp_client=pdp_client, mailer=mailer)


@router.post("/invoices/{invoice_id}/pdp")
def submit_invoice(
    invoice_id: str,
    company_id: str = Depends(require_company),
    service: TransmissionService = Depends(get_transmission_service),
):
    """Submit the Factur-X XML of an invoice to the PDP."""
    with translate_errors():
        try:
            result = service.submit(company_id, invoice_id)
        except TransmissionError as exc:
            _error(status.HTTP_502_BAD_GATEWAY, exc.code, str(exc))
    return asdict(result)


@router.get("/invoices/{invoice_id}/pdp")
def transmission_state(
    invoice_id: str,
    company_id: str = Depends(require_company),
    service: TransmissionService = Depends(get_transmission_service),
):
    """Transmission fields, refreshed from the PDP when the invoice was submitted."""
    with translate_errors():
        state = service.transmission_state(company_id, invoice_id)
    return asdict(state)


@router.post("/invoices/{invoice_id}/deliver")
def deliver_invoice(
    invoice_id: str,
    company_id: str = Depends(require_company),
    service: TransmissionService = Depends(get_transmission_service),
):
    with translate_errors():
        try:
            result = service.deliver_invoice(company_id, invoice_id)
        except MailDeliveryError as exc:
            _error(status.HTTP_502_BAD_GATEWAY, exc.code, str(exc))
    return {
        "invoice_id": result.invoice.id,
        "number": result.invoice.number,
        "status": result.invoice.status.value,
        "facturx": result.facturx,
        "dry_run": result.mail.dry_run,
        "pdp": asdict(result.pdp) if result.pdp else None,
        "pdp_error": result.pdp_error,
    }
