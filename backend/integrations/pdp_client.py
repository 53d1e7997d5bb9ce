"""Client for the e-invoicing clearance platform (PDP, Super PDP API).

Authentication uses OAuth2 client credentials. The access token is cached in
memory and renewed ``PDP_TOKEN_REFRESH_MARGIN_S`` seconds before it expires.
Invoices are submitted as raw CII XML; the platform answers with the invoice
record and its event history, whose last event carries the current status.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, List, Optional

import httpx
from pydantic import BaseModel, Field, ValidationError

from backend.core.config import settings

PROVIDER_SUPERPDP = "superpdp"
SUPPORTED_PROVIDERS = (PROVIDER_SUPERPDP,)
TOKEN_PATH = "/oauth2/token"
INVOICES_PATH = "/v1.beta/invoices"

DEFAULT_SUBMIT_STATUS = "uploaded"
DEFAULT_STATUS = "unknown"
DEFAULT_STATUS_TEXT = "Inconnu"

_BODY_PREVIEW = 500


class PdpClientError(RuntimeError):
    """Transport failure or timeout while talking to the platform."""


class PdpConfigurationError(PdpClientError):
    """API URL or client credentials are missing."""


class PdpAuthError(PdpClientError):
    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"PDP authentication failed: {status_code} {body[:300]}")


class PdpResponseError(PdpClientError):
    def __init__(self, status_code: int, body: str, action: str = "request"):
        self.status_code = status_code
        self.body = body
        super().__init__(f"PDP {action} failed: {status_code} {body[:_BODY_PREVIEW]}")


class PdpEvent(BaseModel):
    id: int | str
    created_at: str
    invoice_id: int | str
    status_code: str
    status_text: str = ""


class PdpInvoiceResponse(BaseModel):
    id: int | str
    company_id: int | str | None = None
    created_at: str | None = None
    direction: str | None = None
    events: List[PdpEvent] = Field(default_factory=list)

    @property
    def last_event(self) -> Optional[PdpEvent]:
        return self.events[-1] if self.events else None


class TokenResponse(BaseModel):
    access_token: str
    expires_in: int = 3600
    token_type: str = "Bearer"


@dataclass(frozen=True)
class PdpSubmitResult:
    provider: str
    remote_invoice_id: str
    status: str


@dataclass(frozen=True)
class PdpStatusResult:
    status: str
    status_text: str
    events: List[PdpEvent]


@dataclass
class _CachedToken:
    access_token: str
    expires_at: float


class PdpClient:
    """Super PDP REST client (httpx)."""

    def __init__(
        self,
        *,
        provider: Optional[str] = None,
        api_url: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        timeout_ms: Optional[int] = None,
        refresh_margin_s: Optional[int] = None,
        transport: Optional[httpx.BaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.logger = logging.getLogger(__name__)
        self.provider = provider if provider is not None else settings.PDP_PROVIDER
        self.api_url = (api_url if api_url is not None else settings.PDP_API_URL).rstrip("/")
        self.client_id = client_id if client_id is not None else settings.PDP_CLIENT_ID
        self.client_secret = (
            client_secret if client_secret is not None else settings.PDP_CLIENT_SECRET
        )
        self.refresh_margin_s = (
            refresh_margin_s if refresh_margin_s is not None else settings.PDP_TOKEN_REFRESH_MARGIN_S
        )
        timeout_ms = timeout_ms if timeout_ms is not None else settings.PDP_TIMEOUT_MS
        self._clock = clock
        self._token: Optional[_CachedToken] = None
        self._token_lock = threading.Lock()

        self._client = httpx.Client(
            base_url=self.api_url or "http://pdp.invalid",
            headers={"Accept": "application/json"},
            timeout=timeout_ms / 1000.0,
            transport=transport,
        )

    def _ensure_configured(self) -> None:
        if self.provider not in SUPPORTED_PROVIDERS:
            raise PdpConfigurationError(f"Unsupported PDP provider: {self.provider!r}")
        missing = [
            name
            for name, value in (
                ("PDP_API_URL", self.api_url),
                ("PDP_CLIENT_ID", self.client_id),
                ("PDP_CLIENT_SECRET", self.client_secret),
            )
            if not value
        ]
        if missing:
            raise PdpConfigurationError(f"Missing PDP configuration: {', '.join(missing)}")

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            self.logger.error("pdp_timeout", extra={"path": path, "error": str(e)})
            raise PdpClientError(f"PDP request timed out: {method} {path}") from e
        except httpx.RequestError as e:
            self.logger.error("pdp_network_error", extra={"path": path, "error": str(e)})
            raise PdpClientError(f"PDP network error: {e}") from e

    def get_token(self) -> str:
        """Return a valid access token, fetching a new one when needed."""
        self._ensure_configured()
        with self._token_lock:
            now = self._clock()
            if self._token and now < self._token.expires_at - self.refresh_margin_s:
                return self._token.access_token

            response = self._request(
                "POST",
                TOKEN_PATH,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                },
            )
            if response.status_code != 200:
                self.logger.error("pdp_auth_failed", extra={"status_code": response.status_code})
                raise PdpAuthError(response.status_code, response.text)
            try:
                token = TokenResponse.model_validate(response.json())
            except (ValueError, ValidationError) as e:
                raise PdpAuthError(response.status_code, response.text) from e

            self._token = _CachedToken(token.access_token, now + token.expires_in)
            self.logger.info("pdp_token_refreshed", extra={"expires_in": token.expires_in})
            return token.access_token

    def _parse_invoice(self, response: httpx.Response, action: str) -> PdpInvoiceResponse:
        try:
            return PdpInvoiceResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise PdpResponseError(response.status_code, response.text, action) from e

    def submit(self, xml: str | bytes) -> PdpSubmitResult:
        """Upload CII XML; returns the remote id and the current status code."""
        token = self.get_token()
        payload = xml.encode("utf-8") if isinstance(xml, str) else xml
        response = self._request(
            "POST",
            INVOICES_PATH,
            content=payload,
            headers={"Authorization": f"Bearer {token}", "Content-Type": "application/xml"},
        )
        if not response.is_success:
            self.logger.error(
                "pdp_submit_failed",
                extra={"status_code": response.status_code, "body": response.text[:_BODY_PREVIEW]},
            )
            raise PdpResponseError(response.status_code, response.text, "submission")

        data = self._parse_invoice(response, "submission")
        last = data.last_event
        result = PdpSubmitResult(
            provider=self.provider,
            remote_invoice_id=str(data.id),
            status=last.status_code if last else DEFAULT_SUBMIT_STATUS,
        )
        self.logger.info(
            "pdp_submitted",
            extra={"remote_invoice_id": result.remote_invoice_id, "status": result.status},
        )
        return result

    def get_status(self, remote_invoice_id: str) -> PdpStatusResult:
        token = self.get_token()
        response = self._request(
            "GET",
            f"{INVOICES_PATH}/{remote_invoice_id}",
            headers={"Authorization": f"Bearer {token}"},
        )
        if not response.is_success:
            raise PdpResponseError(response.status_code, response.text, "status check")

        data = self._parse_invoice(response, "status check")
        last = data.last_event
        return PdpStatusResult(
            status=last.status_code if last else DEFAULT_STATUS,
            status_text=last.status_text if last else DEFAULT_STATUS_TEXT,
            events=data.events,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


@lru_cache(maxsize=1)
def get_pdp_client() -> PdpClient:
    """Process-wide client; its OAuth2 token cache is shared by all requests."""
    return PdpClient()


def close_pdp_client() -> None:
    if get_pdp_client.cache_info().currsize:
        get_pdp_client().close()
        get_pdp_client.cache_clear()


__all__ = [
    "PROVIDER_SUPERPDP",
    "SUPPORTED_PROVIDERS",
    "PdpAuthError",
    "PdpClient",
    "PdpClientError",
    "PdpConfigurationError",
    "PdpEvent",
    "PdpInvoiceResponse",
    "PdpResponseError",
    "PdpStatusResult",
    "PdpSubmitResult",
    "close_pdp_client",
    "get_pdp_client",
]
