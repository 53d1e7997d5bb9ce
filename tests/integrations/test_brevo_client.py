"""Tests for the Brevo transactional mail client."""

import base64
import json

import httpx

from backend.integrations.brevo_client import BrevoClient, MailAttachment


class TestBrevoClient:
    """Brevo client against a mock transport."""

    def test_missing_api_key_means_dry_run(self):
        calls = []
        client = BrevoClient(
            api_key="",
            transport=httpx.MockTransport(lambda request: calls.append(request) or httpx.Response(500)),
        )

        response = client.send_transactional("a@example.fr", "Facture FA-2026-0001", "<p>Bonjour</p>")

        assert response.success
        assert response.dry_run
        assert response.message_id is None
        assert calls == []

    def test_explicit_dry_run_with_key(self):
        calls = []
        client = BrevoClient(
            api_key="key",
            transport=httpx.MockTransport(lambda request: calls.append(request) or httpx.Response(201)),
        )
        assert client.send_transactional("a@example.fr", "s", "<p/>", dry_run=True).dry_run
        assert calls == []

    def test_send_with_attachment(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["request"] = request
            return httpx.Response(201, json={"messageId": "<msg-1@brevo>"})

        client = BrevoClient(api_key="key-123", transport=httpx.MockTransport(handler))
        response = client.send_transactional(
            "compta@boulangerie-martin.fr",
            "Facture FA-2026-0001",
            "<h2>Facture</h2>",
            MailAttachment(filename="FA-2026-0001.pdf", content=b"%PDF-1.4 test"),
            company_id="company-1",
        )

        assert response.success
        assert not response.dry_run
        assert response.message_id == "<msg-1@brevo>"

        request = captured["request"]
        assert request.url.path.endswith("/smtp/email")
        assert request.headers["api-key"] == "key-123"
        body = json.loads(request.content)
        assert body["to"] == [{"email": "compta@boulangerie-martin.fr"}]
        assert body["subject"] == "Facture FA-2026-0001"
        assert body["htmlContent"] == "<h2>Facture</h2>"
        assert body["attachment"][0]["name"] == "FA-2026-0001.pdf"
        assert base64.b64decode(body["attachment"][0]["content"]) == b"%PDF-1.4 test"

    def test_api_error_is_returned_not_raised(self):
        client = BrevoClient(
            api_key="key",
            transport=httpx.MockTransport(lambda request: httpx.Response(400, text="invalid sender")),
        )
        response = client.send_transactional("a@example.fr", "s", "<p/>")

        assert not response.success
        assert "400" in response.error
        assert "invalid sender" in response.error

    def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with BrevoClient(api_key="key", transport=httpx.MockTransport(handler)) as client:
            response = client.send_transactional("a@example.fr", "s", "<p/>")

        assert not response.success
        assert response.error.startswith("Network error")
