"""Transmission flows: PDP submission, status refresh and email delivery."""

import pytest

from backend.apps.documents.dto import InvoiceStatus, Plan, VatRegime
from backend.apps.documents.errors import (
    DocumentValidationError,
    InvalidTransitionError,
    NotSubmittedError,
    PlanFeatureError,
)
from backend.apps.transmission import service as transmission_module
from backend.apps.transmission.service import (
    MailDeliveryError,
    TransmissionError,
    TransmissionService,
)
from backend.integrations.brevo_client import BrevoResponse
from backend.integrations.pdp_client import PdpResponseError, PdpStatusResult, PdpSubmitResult
from conftest import line, scenario_payload
from einvoice import FacturXBuildError, extract_facturx_xml


class FakePdp:
    provider = "superpdp"

    def __init__(self):
        self.submissions = []
        self.fail_submit = False
        self.fail_status = False
        self.status = PdpStatusResult(status="fr:205", status_text="Approuvée", events=[])

    def submit(self, xml):
        self.submissions.append(xml)
        if self.fail_submit:
            raise PdpResponseError(422, "XML rejected", "submission")
        return PdpSubmitResult(provider=self.provider, remote_invoice_id="4711", status="api:uploaded")

    def get_status(self, remote_invoice_id):
        if self.fail_status:
            raise PdpResponseError(503, "maintenance", "status check")
        return self.status


class FakeMailer:
    def __init__(self, response=None):
        self.sent = []
        self.response = response or BrevoResponse(success=True, message_id="msg-1")

    def send_transactional(self, to, subject, html, attachment=None, *, company_id=None, dry_run=False):
        self.sent.append(
            {"to": to, "subject": subject, "html": html, "attachment": attachment, "company_id": company_id}
        )
        return self.response


@pytest.fixture
def pdp():
    return FakePdp()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def transmission(service, pdp, mailer):
    return TransmissionService(service, pdp_client=pdp, mailer=mailer)


@pytest.fixture
def invoice(service, company, client_record):
    return service.create_invoice(company.id, scenario_payload(client_record.id))


def _starter_setup(service):
    company = service.create_company("Starter SARL", plan=Plan.STARTER)
    client = service.create_client(company.id, {"name": "Client", "email": "client@example.fr"})
    invoice = service.create_invoice(company.id, {"client_id": client.id, "items": [line()]})
    return company, invoice


class TestSubmit:
    def test_success_records_remote_state(self, service, transmission, pdp, company, invoice):
        result = transmission.submit(company.id, invoice.id)

        assert result.remote_invoice_id == "4711"
        stored = service.get_invoice(company.id, invoice.id)
        assert stored.pdp_provider == "superpdp"
        assert stored.pdp_invoice_id == "4711"
        assert stored.pdp_status == "api:uploaded"
        assert stored.pdp_submitted_at is not None
        assert stored.pdp_error is None
        assert stored.facturx_xml == pdp.submissions[0]
        # transmission never moves the business status
        assert stored.status == InvoiceStatus.DRAFT

    def test_failure_is_recorded_and_raised(self, service, transmission, pdp, company, invoice):
        pdp.fail_submit = True

        with pytest.raises(TransmissionError, match="422"):
            transmission.submit(company.id, invoice.id)

        stored = service.get_invoice(company.id, invoice.id)
        assert stored.pdp_status == "error"
        assert "XML rejected" in stored.pdp_error
        assert stored.pdp_invoice_id is None
        assert stored.status == InvoiceStatus.DRAFT

    def test_retry_after_failure_clears_error(self, service, transmission, pdp, company, invoice):
        pdp.fail_submit = True
        with pytest.raises(TransmissionError):
            transmission.submit(company.id, invoice.id)

        pdp.fail_submit = False
        transmission.submit(company.id, invoice.id)

        stored = service.get_invoice(company.id, invoice.id)
        assert stored.pdp_status == "api:uploaded"
        assert stored.pdp_error is None

    def test_resubmission_sends_identical_xml(self, transmission, pdp, company, invoice):
        transmission.submit(company.id, invoice.id)
        transmission.submit(company.id, invoice.id)

        assert len(pdp.submissions) == 2
        assert pdp.submissions[0] == pdp.submissions[1]

    def test_plan_without_facturx_is_refused(self, service, transmission, pdp):
        company, invoice = _starter_setup(service)

        with pytest.raises(PlanFeatureError):
            transmission.submit(company.id, invoice.id)
        assert pdp.submissions == []


class TestStatus:
    def test_refresh_requires_submission(self, transmission, company, invoice):
        with pytest.raises(NotSubmittedError):
            transmission.refresh_status(company.id, invoice.id)

    def test_refresh_updates_status(self, service, transmission, company, invoice):
        transmission.submit(company.id, invoice.id)

        assert transmission.refresh_status(company.id, invoice.id) == "Approuvée"
        assert service.get_invoice(company.id, invoice.id).pdp_status == "fr:205"

    def test_failed_refresh_keeps_status(self, service, transmission, pdp, company, invoice):
        transmission.submit(company.id, invoice.id)
        pdp.fail_status = True

        with pytest.raises(TransmissionError):
            transmission.refresh_status(company.id, invoice.id)

        stored = service.get_invoice(company.id, invoice.id)
        assert stored.pdp_status == "api:uploaded"
        assert "maintenance" in stored.pdp_error

    def test_state_of_unsubmitted_invoice(self, transmission, company, invoice):
        state = transmission.transmission_state(company.id, invoice.id)
        assert not state.submitted
        assert state.pdp_status is None

    def test_state_after_refresh(self, transmission, company, invoice):
        transmission.submit(company.id, invoice.id)

        state = transmission.transmission_state(company.id, invoice.id)

        assert state.submitted
        assert state.pdp_status == "fr:205"
        assert state.status_text == "Approuvée"
        assert state.refresh_error is None

    def test_state_is_stale_when_refresh_fails(self, transmission, pdp, company, invoice):
        transmission.submit(company.id, invoice.id)
        pdp.fail_status = True

        state = transmission.transmission_state(company.id, invoice.id)

        assert state.submitted
        assert state.pdp_invoice_id == "4711"
        assert state.pdp_status == "api:uploaded"
        assert "maintenance" in state.refresh_error
        assert state.status_text is None


class TestDeliver:
    def test_pro_plan_sends_hybrid_pdf_and_submits(self, service, transmission, pdp, mailer, company, invoice):
        result = transmission.deliver_invoice(company.id, invoice.id)

        assert result.facturx
        assert result.invoice.status == InvoiceStatus.SENT
        assert result.pdp.remote_invoice_id == "4711"
        assert result.pdp_error is None

        mail = mailer.sent[0]
        assert mail["to"] == "compta@boulangerie-martin.fr"
        assert mail["subject"] == "Facture FA-2026-0001 - Rénovation cuisine"
        assert mail["company_id"] == company.id
        assert mail["attachment"].filename == "FA-2026-0001.pdf"
        embedded = extract_facturx_xml(mail["attachment"].content)
        assert embedded == pdp.submissions[0].encode("utf-8")
        assert "204.17 €" in mail["html"]

        stored = service.get_invoice(company.id, invoice.id)
        assert stored.facturx_xml == pdp.submissions[0]
        assert stored.pdp_status == "api:uploaded"

    def test_plan_without_facturx_sends_plain_pdf(self, service, transmission, pdp, mailer):
        company, invoice = _starter_setup(service)

        result = transmission.deliver_invoice(company.id, invoice.id)

        assert not result.facturx
        assert result.pdp is None
        assert pdp.submissions == []
        assert result.invoice.status == InvoiceStatus.SENT
        with pytest.raises(FacturXBuildError):
            extract_facturx_xml(mailer.sent[0]["attachment"].content)

    def test_build_failure_falls_back_to_plain_pdf(self, monkeypatch, transmission, pdp, mailer, company, invoice):
        def broken(*args, **kwargs):
            raise FacturXBuildError("stored totals do not reconcile")

        monkeypatch.setattr(transmission_module, "build_facturx_document", broken)

        result = transmission.deliver_invoice(company.id, invoice.id)

        assert not result.facturx
        assert pdp.submissions == []
        assert result.invoice.status == InvoiceStatus.SENT
        assert mailer.sent[0]["attachment"].content.startswith(b"%PDF")

    def test_pdp_failure_does_not_fail_delivery(self, transmission, pdp, company, invoice):
        pdp.fail_submit = True

        result = transmission.deliver_invoice(company.id, invoice.id)

        assert result.invoice.status == InvoiceStatus.SENT
        assert result.pdp is None
        assert "XML rejected" in result.pdp_error
        assert result.invoice.pdp_status == "error"

    def test_sent_invoice_can_be_redelivered(self, service, transmission, mailer, company, invoice):
        service.send_invoice(company.id, invoice.id)
        result = transmission.deliver_invoice(company.id, invoice.id)

        assert result.invoice.status == InvoiceStatus.SENT
        assert len(mailer.sent) == 1

    def test_redelivery_embeds_cached_xml(
        self, monkeypatch, service, transmission, pdp, mailer, company, invoice
    ):
        transmission.deliver_invoice(company.id, invoice.id)
        issued = service.get_invoice(company.id, invoice.id).facturx_xml

        def rebuilt(*args, **kwargs):
            raise AssertionError("cached XML must be reused")

        monkeypatch.setattr(transmission_module, "build_facturx_document", rebuilt)
        result = transmission.deliver_invoice(company.id, invoice.id)

        assert result.facturx
        assert extract_facturx_xml(mailer.sent[1]["attachment"].content) == issued.encode("utf-8")
        assert pdp.submissions == [issued, issued]
        assert service.get_invoice(company.id, invoice.id).facturx_xml == issued

    def test_paid_invoice_is_refused(self, service, transmission, mailer, company, invoice):
        service.send_invoice(company.id, invoice.id)
        service.pay_invoice(company.id, invoice.id)

        with pytest.raises(InvalidTransitionError):
            transmission.deliver_invoice(company.id, invoice.id)
        assert mailer.sent == []

    def test_client_without_email(self, service, transmission, company):
        client = service.create_client(company.id, {"name": "Sans Mail"})
        invoice = service.create_invoice(company.id, {"client_id": client.id, "items": [line()]})

        with pytest.raises(DocumentValidationError) as excinfo:
            transmission.deliver_invoice(company.id, invoice.id)
        assert excinfo.value.errors[0]["field"] == "client.email"

    def test_mail_failure_keeps_draft(self, service, pdp, company, invoice):
        mailer = FakeMailer(BrevoResponse(success=False, error="Brevo API error: 401"))
        transmission = TransmissionService(service, pdp_client=pdp, mailer=mailer)

        with pytest.raises(MailDeliveryError, match="401"):
            transmission.deliver_invoice(company.id, invoice.id)

        assert service.get_invoice(company.id, invoice.id).status == InvoiceStatus.DRAFT
        assert pdp.submissions == []

    def test_franchise_mail_shows_net_amount(self, service, pdp, mailer):
        company = service.create_company("Julie Peinture", vat_regime=VatRegime.FRANCHISE, plan=Plan.PRO)
        client = service.create_client(company.id, {"name": "M. Bernard", "email": "bernard@example.fr"})
        invoice = service.create_invoice(
            company.id,
            {"client_id": client.id, "items": [line("Peinture", quantity="3", price="412.50", vat="0")]},
        )
        transmission = TransmissionService(service, pdp_client=pdp, mailer=mailer)

        transmission.deliver_invoice(company.id, invoice.id)

        html = mailer.sent[0]["html"]
        assert "1 237.50 €" in html
        assert "Julie Peinture" in html
