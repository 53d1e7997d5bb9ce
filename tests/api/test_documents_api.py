"""HTTP surface of the document lifecycle (FastAPI TestClient)."""

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from backend.app import create_app
from backend.apps.documents.api import get_document_service
from backend.apps.documents.dto import Plan
from backend.core import health
from conftest import line, scenario_payload

COMPANY_ID = "11111111-1111-4111-8111-111111111111"
HEADERS = {"X-Company-ID": COMPANY_ID}


@pytest.fixture
def api(service, company):
    app = create_app()
    app.dependency_overrides[get_document_service] = lambda: service
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def quote_id(api, client_record):
    response = api.post("/api/v1/quotes", json=scenario_payload(client_record.id), headers=HEADERS)
    assert response.status_code == 201
    return response.json()["id"]


class TestCompanyHeader:
    def test_missing_header(self, api):
        response = api.get("/api/v1/quotes")
        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "company_missing"

    def test_malformed_header(self, api):
        response = api.get("/api/v1/quotes", headers={"X-Company-ID": "acme"})
        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "company_malformed"

    def test_uppercase_uuid_is_normalized(self, api, quote_id):
        response = api.get("/api/v1/quotes", headers={"X-Company-ID": COMPANY_ID.upper()})
        assert response.status_code == 200
        assert [q["id"] for q in response.json()["items"]] == [quote_id]

    def test_unknown_company(self, api):
        response = api.get(
            "/api/v1/quotes/whatever", headers={"X-Company-ID": "22222222-2222-4222-8222-222222222222"}
        )
        assert response.status_code == 404


class TestQuotes:
    def test_create_returns_totals_as_strings(self, api, client_record):
        response = api.post("/api/v1/quotes", json=scenario_payload(client_record.id), headers=HEADERS)

        assert response.status_code == 201
        body = response.json()
        assert body["number"] == "DE-2026-0001"
        assert body["status"] == "DRAFT"
        assert (body["total_ht"], body["total_vat"], body["total_ttc"]) == ("170.14", "34.03", "204.17")
        assert body["items"][0]["total_ht"] == "179.10"
        assert body["items"][0]["unit"] == "SQM"

    def test_validation_error_lists_fields(self, api, client_record):
        payload = scenario_payload(client_record.id, items=[line(quantity="0")])
        response = api.post("/api/v1/quotes", json=payload, headers=HEADERS)

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["error"] == "validation_error"
        assert [err["field"] for err in detail["detail"]] == ["items.0.quantity"]

    def test_unknown_quote(self, api):
        response = api.get("/api/v1/quotes/does-not-exist", headers=HEADERS)
        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "not_found"

    def test_invalid_transition_is_conflict(self, api, quote_id):
        response = api.post(f"/api/v1/quotes/{quote_id}/accept", headers=HEADERS)
        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "invalid_transition"

    def test_unknown_action(self, api, quote_id):
        response = api.post(f"/api/v1/quotes/{quote_id}/expire", headers=HEADERS)
        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "unknown_action"

    def test_send_accept_convert(self, api, quote_id):
        assert api.post(f"/api/v1/quotes/{quote_id}/send", headers=HEADERS).json()["status"] == "SENT"
        assert api.post(f"/api/v1/quotes/{quote_id}/accept", headers=HEADERS).json()["status"] == "ACCEPTED"

        response = api.post(f"/api/v1/quotes/{quote_id}/convert", headers=HEADERS)

        assert response.status_code == 200
        invoice = response.json()
        assert invoice["quote_id"] == quote_id
        assert invoice["number"] == "FA-2026-0001"
        assert invoice["status"] == "DRAFT"
        assert invoice["display_status"] == "DRAFT"
        assert invoice["total_ttc"] == "204.17"

        again = api.post(f"/api/v1/quotes/{quote_id}/convert", headers=HEADERS)
        assert again.status_code == 409
        assert again.json()["detail"]["error"] == "quote_already_converted"

    def test_update_sent_quote_is_locked(self, api, quote_id, client_record):
        api.post(f"/api/v1/quotes/{quote_id}/send", headers=HEADERS)
        response = api.put(
            f"/api/v1/quotes/{quote_id}", json=scenario_payload(client_record.id), headers=HEADERS
        )
        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "document_locked"

    def test_delete_and_bulk_archive(self, api, quote_id, client_record):
        other = api.post("/api/v1/quotes", json=scenario_payload(client_record.id), headers=HEADERS).json()
        api.post(f"/api/v1/quotes/{other['id']}/send", headers=HEADERS)

        response = api.post("/api/v1/quotes/bulk/archive", json={"ids": [other["id"]]}, headers=HEADERS)
        assert response.json() == {"count": 1}
        assert [q["id"] for q in api.get("/api/v1/quotes", headers=HEADERS).json()["items"]] == [quote_id]
        archived = api.get("/api/v1/quotes?include_archived=true", headers=HEADERS).json()["items"]
        assert len(archived) == 2

        assert api.delete(f"/api/v1/quotes/{quote_id}", headers=HEADERS).status_code == 204
        assert api.get(f"/api/v1/quotes/{quote_id}", headers=HEADERS).status_code == 404

    def test_bulk_requires_ids(self, api):
        response = api.post("/api/v1/quotes/bulk/delete", json={"ids": []}, headers=HEADERS)
        assert response.status_code == 422


class TestInvoices:
    def _create(self, api, client_record):
        response = api.post("/api/v1/invoices", json=scenario_payload(client_record.id), headers=HEADERS)
        assert response.status_code == 201
        return response.json()

    def test_send_and_pay(self, api, client_record):
        invoice = self._create(api, client_record)
        api.post(f"/api/v1/invoices/{invoice['id']}/send", headers=HEADERS)

        response = api.post(
            f"/api/v1/invoices/{invoice['id']}/pay",
            json={"payment_method": "virement"},
            headers=HEADERS,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "PAID"
        assert body["payment_method"] == "virement"
        assert body["paid_at"] is not None

    def test_pay_without_body(self, api, client_record):
        invoice = self._create(api, client_record)
        api.post(f"/api/v1/invoices/{invoice['id']}/send", headers=HEADERS)
        assert api.post(f"/api/v1/invoices/{invoice['id']}/pay", headers=HEADERS).json()["status"] == "PAID"

    def test_overdue_is_projected_on_read(self, api, clock, client_record):
        invoice = self._create(api, client_record)
        api.post(f"/api/v1/invoices/{invoice['id']}/send", headers=HEADERS)

        clock.now = datetime(2026, 5, 1, 9, 0, tzinfo=timezone.utc)
        body = api.get(f"/api/v1/invoices/{invoice['id']}", headers=HEADERS).json()

        assert body["status"] == "SENT"
        assert body["display_status"] == "OVERDUE"

    def test_cancel_paid_invoice_conflicts(self, api, client_record):
        invoice = self._create(api, client_record)
        api.post(f"/api/v1/invoices/{invoice['id']}/send", headers=HEADERS)
        api.post(f"/api/v1/invoices/{invoice['id']}/pay", headers=HEADERS)

        response = api.post(f"/api/v1/invoices/{invoice['id']}/cancel", headers=HEADERS)
        assert response.status_code == 409

    def test_duplicate(self, api, client_record):
        invoice = self._create(api, client_record)
        copy = api.post(f"/api/v1/invoices/{invoice['id']}/duplicate", headers=HEADERS).json()

        assert copy["id"] != invoice["id"]
        assert copy["number"] == "FA-2026-0002"
        assert copy["subject"] == "Rénovation cuisine (copie)"
        assert copy["status"] == "DRAFT"

    def test_free_plan_quota_is_forbidden(self, api, service):
        free_id = "33333333-3333-4333-8333-333333333333"
        service.create_company("Petit Atelier", plan=Plan.FREE, company_id=free_id)
        headers = {"X-Company-ID": free_id}
        client_id = api.post("/api/v1/clients", json={"name": "Client"}, headers=headers).json()["id"]

        for _ in range(3):
            assert api.post("/api/v1/invoices", json=scenario_payload(client_id), headers=headers).status_code == 201
        response = api.post("/api/v1/invoices", json=scenario_payload(client_id), headers=headers)

        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "quota_exceeded"


class TestClients:
    def test_create_archive_restore(self, api):
        created = api.post(
            "/api/v1/clients", json={"name": "Garage Petit", "siret": "11122233300044"}, headers=HEADERS
        )
        assert created.status_code == 201
        client_id = created.json()["id"]

        archived = api.post(f"/api/v1/clients/{client_id}/archive", headers=HEADERS).json()
        assert archived["archived_at"] is not None
        restored = api.post(f"/api/v1/clients/{client_id}/restore", headers=HEADERS).json()
        assert restored["archived_at"] is None

    def test_invalid_siret(self, api):
        response = api.post("/api/v1/clients", json={"name": "X", "siret": "123"}, headers=HEADERS)
        assert response.status_code == 422
        assert response.json()["detail"]["detail"][0]["field"] == "siret"


class TestHealth:
    def test_live(self, api):
        assert api.get("/health/live").json() == {"status": "OK"}

    def test_ready_reports_database(self, api, engine, monkeypatch):
        monkeypatch.setattr(health, "get_engine", lambda: engine)

        body = api.get("/health/ready").json()

        assert body["status"] == "OK"
        assert body["db"] == "OK"
        assert body["version"] == "0.1.0"
