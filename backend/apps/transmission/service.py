"""E-invoice transmission: PDP submission, status refresh and email delivery.

Remote calls never run inside a database transaction. Their outcome is written
back afterwards through :meth:`DocumentService.record_transmission`, which
only touches the cached XML and the ``pdp_*`` fields; the business status of
an invoice is never changed by a transmission result.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from html import escape
from typing import Optional

from backend.apps.documents.dto import (
    Client,
    Company,
    Invoice,
    InvoiceStatus,
    TransmissionState,
    VatRegime,
)
from backend.apps.documents.errors import (
    DocumentValidationError,
    InvalidTransitionError,
    NotSubmittedError,
    PlanFeatureError,
)
from backend.apps.documents.plans import get_plan_limits
from backend.apps.documents.service import DocumentService
from backend.core.logging import get_logger
from backend.integrations.brevo_client import BrevoClient, BrevoResponse, MailAttachment, get_mailer
from backend.integrations.pdp_client import (
    PdpClient,
    PdpClientError,
    PdpSubmitResult,
    get_pdp_client,
)
from einvoice.facturx import (
    FacturXBuildError,
    build_facturx_document,
    build_facturx_xml,
    embed_xml_to_pdf,
)
from einvoice.render import Renderer, render_document_pdf

logger = get_logger(__name__)

PDP_STATUS_ERROR = "error"


class TransmissionError(RuntimeError):
    """The clearance platform could not be reached or rejected the request."""

    code = "transmission_failed"


class MailDeliveryError(RuntimeError):
    code = "mail_delivery_failed"


@dataclass(frozen=True)
class DeliveryResult:
    invoice: Invoice
    facturx: bool
    mail: BrevoResponse
    pdp: Optional[PdpSubmitResult] = None
    pdp_error: Optional[str] = None


def _money(value) -> str:
    return f"{value:,.2f} €".replace(",", " ")


def _invoice_email_html(invoice: Invoice, company: Company) -> str:
    amount = invoice.total_ht if company.vat_regime == VatRegime.FRANCHISE else invoice.total_ttc
    subject_line = (
        f"<p><strong>Objet :</strong> {escape(invoice.subject)}</p>" if invoice.subject else ""
    )
    due = invoice.due_date.strftime("%d/%m/%Y")
    contact = " - ".join(part for part in (company.name, company.phone, company.email) if part)
    return (
        f"<h2>Facture {escape(invoice.number)}</h2>"
        f"<p>De la part de {escape(company.name)}</p>"
        f"{subject_line}"
        f"<p><strong>Montant :</strong> {_money(amount)}</p>"
        f"<p><strong>Date d'émission :</strong> {invoice.issue_date.strftime('%d/%m/%Y')}</p>"
        f"<p><strong>Échéance :</strong> {due}</p>"
        f"<p>Bonjour,<br><br>Veuillez trouver ci-joint notre facture {escape(invoice.number)}. "
        f"Le règlement est attendu avant le {due}.</p>"
        f"<p>{escape(contact)}</p>"
    )


class TransmissionService:
    def __init__(
        self,
        documents: DocumentService,
        *,
        pdp_client: Optional[PdpClient] = None,
        mailer: Optional[BrevoClient] = None,
        renderer: Renderer = render_document_pdf,
    ) -> None:
        self._documents = documents
        self._pdp_client = pdp_client
        self._mailer = mailer
        self._renderer = renderer

    @property
    def pdp_client(self) -> PdpClient:
        if self._pdp_client is None:
            self._pdp_client = get_pdp_client()
        return self._pdp_client

    @property
    def mailer(self) -> BrevoClient:
        if self._mailer is None:
            self._mailer = get_mailer()
        return self._mailer

    def _now(self) -> datetime:
        return self._documents.now()

    def _require_facturx(self, company: Company) -> None:
        if not get_plan_limits(company.plan).facturx:
            raise PlanFeatureError(
                f"PDP transmission requires the PRO or BUSINESS plan (current: {company.plan.value})"
            )

    def ensure_xml(self, company: Company, invoice: Invoice, client: Optional[Client] = None) -> str:
        """Cached Factur-X XML of ``invoice``, built and stored on first use."""
        if invoice.facturx_xml:
            return invoice.facturx_xml
        client = client or self._documents.get_client(company.id, invoice.client_id)
        xml = build_facturx_xml(invoice, company, client)
        self._documents.record_transmission(company.id, invoice.id, facturx_xml=xml)
        return xml

    def submit(self, company_id: str, invoice_id: str) -> PdpSubmitResult:
        company = self._documents.get_company(company_id)
        self._require_facturx(company)
        invoice = self._documents.get_invoice(company_id, invoice_id)
        xml = self.ensure_xml(company, invoice)
        client = self.pdp_client

        try:
            result = client.submit(xml)
        except PdpClientError as exc:
            self._documents.record_transmission(
                company_id,
                invoice_id,
                pdp_provider=client.provider,
                pdp_status=PDP_STATUS_ERROR,
                pdp_error=str(exc),
                pdp_submitted_at=self._now(),
            )
            logger.error(
                "pdp_submission_failed",
                extra={
                    "company_id": company_id,
                    "invoice_id": invoice_id,
                    "number": invoice.number,
                    "error": str(exc),
                },
            )
            raise TransmissionError(str(exc)) from exc

        self._documents.record_transmission(
            company_id,
            invoice_id,
            pdp_provider=result.provider,
            pdp_invoice_id=result.remote_invoice_id,
            pdp_status=result.status,
            pdp_submitted_at=self._now(),
            pdp_error=None,
        )
        logger.info(
            "pdp_submission_recorded",
            extra={
                "company_id": company_id,
                "invoice_id": invoice_id,
                "number": invoice.number,
                "remote_invoice_id": result.remote_invoice_id,
                "status": result.status,
            },
        )
        return result

    def refresh_status(self, company_id: str, invoice_id: str) -> str:
        """Pull the remote status; returns the human readable status text."""
        invoice = self._documents.get_invoice(company_id, invoice_id)
        if not invoice.pdp_invoice_id:
            raise NotSubmittedError(f"Invoice {invoice.number} has not been submitted to the PDP")

        try:
            status = self.pdp_client.get_status(invoice.pdp_invoice_id)
        except PdpClientError as exc:
            self._documents.record_transmission(company_id, invoice_id, pdp_error=str(exc))
            logger.warning(
                "pdp_status_refresh_failed",
                extra={"company_id": company_id, "invoice_id": invoice_id, "error": str(exc)},
            )
            raise TransmissionError(str(exc)) from exc

        self._documents.record_transmission(
            company_id, invoice_id, pdp_status=status.status, pdp_error=None
        )
        return status.status_text

    def transmission_state(self, company_id: str, invoice_id: str) -> TransmissionState:
        invoice = self._documents.get_invoice(company_id, invoice_id)
        if not invoice.pdp_invoice_id:
            return TransmissionState(submitted=False)

        try:
            status_text = self.refresh_status(company_id, invoice_id)
        except TransmissionError as exc:
            # Stale but readable: the fields as they were before the refresh
            return TransmissionState(
                submitted=True,
                pdp_provider=invoice.pdp_provider,
                pdp_invoice_id=invoice.pdp_invoice_id,
                pdp_status=invoice.pdp_status,
                pdp_submitted_at=invoice.pdp_submitted_at,
                pdp_error=invoice.pdp_error,
                refresh_error=str(exc),
            )

        updated = self._documents.get_invoice(company_id, invoice_id)
        return TransmissionState(
            submitted=True,
            pdp_provider=updated.pdp_provider,
            pdp_invoice_id=updated.pdp_invoice_id,
            pdp_status=updated.pdp_status,
            pdp_submitted_at=updated.pdp_submitted_at,
            pdp_error=updated.pdp_error,
            status_text=status_text,
        )

    def deliver_invoice(self, company_id: str, invoice_id: str) -> DeliveryResult:
        """Email the invoice PDF to the client, then hand it to the PDP.

        Plans with Factur-X attach the hybrid PDF. A cached XML is embedded as
        is; otherwise it is built and cached, falling back to the plain PDF
        when the build fails. A DRAFT invoice becomes SENT once the mail
        is out. PDP submission failures are logged, not raised.
        """

        company = self._documents.get_company(company_id)
        invoice = self._documents.get_invoice(company_id, invoice_id)
        client = self._documents.get_client(company_id, invoice.client_id)
        if not client.email:
            raise DocumentValidationError(
                [{"field": "client.email", "message": "Client has no email address"}]
            )
        if invoice.status not in (InvoiceStatus.DRAFT, InvoiceStatus.SENT):
            raise InvalidTransitionError("Invoice", invoice.status.value, "send", "SENT")

        pdf = self._renderer(invoice, company, client)
        facturx = False
        wants_facturx = get_plan_limits(company.plan).facturx
        if wants_facturx and invoice.facturx_xml:
            # an issued invoice keeps the XML it was first built with
            pdf = embed_xml_to_pdf(pdf, invoice.facturx_xml, invoice.number, author=company.name)
            facturx = True
        elif wants_facturx:
            try:
                document = build_facturx_document(invoice, company, client, pdf)
            except FacturXBuildError as exc:
                logger.warning(
                    "facturx_fallback_plain_pdf",
                    extra={"company_id": company_id, "invoice_id": invoice_id, "error": str(exc)},
                )
            else:
                pdf = document.pdf
                facturx = True
                self._documents.record_transmission(company_id, invoice_id, facturx_xml=document.xml)

        subject = f"Facture {invoice.number}" + (f" - {invoice.subject}" if invoice.subject else "")
        mail = self.mailer.send_transactional(
            client.email,
            subject,
            _invoice_email_html(invoice, company),
            MailAttachment(filename=f"{invoice.number}.pdf", content=pdf),
            company_id=company_id,
        )
        if not mail.success:
            raise MailDeliveryError(mail.error or "mail delivery failed")

        if invoice.status == InvoiceStatus.DRAFT:
            invoice = self._documents.send_invoice(company_id, invoice_id)

        pdp_result: Optional[PdpSubmitResult] = None
        pdp_error: Optional[str] = None
        if facturx:
            try:
                pdp_result = self.submit(company_id, invoice_id)
            except TransmissionError as exc:
                pdp_error = str(exc)
            invoice = self._documents.get_invoice(company_id, invoice_id)

        logger.info(
            "invoice_delivered",
            extra={
                "company_id": company_id,
                "invoice_id": invoice_id,
                "number": invoice.number,
                "facturx": facturx,
                "pdp_status": invoice.pdp_status,
            },
        )
        return DeliveryResult(
            invoice=invoice, facturx=facturx, mail=mail, pdp=pdp_result, pdp_error=pdp_error
        )


__all__ = [
    "DeliveryResult",
    "MailDeliveryError",
    "PDP_STATUS_ERROR",
    "TransmissionError",
    "TransmissionService",
]
