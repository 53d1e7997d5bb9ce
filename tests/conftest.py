import inspect
import json
import socket
import warnings
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

import httpx
import pytest
import sqlalchemy as sa
from sqlalchemy.pool import StaticPool

from backend.apps.documents.dto import Plan, VatRegime
from backend.apps.documents.service import DocumentService
from backend.apps.documents.tables import METADATA


VIOLATIONS = []
ARTIFACTS_DIR = Path("artifacts")
ARTIFACTS_DIR.mkdir(parents=True, exist_ok=True)
REPORT = ARTIFACTS_DIR / "egress-violations.json"

FIXED_NOW = datetime(2026, 3, 15, 10, 0, tzinfo=timezone.utc)

warnings.filterwarnings(
    "ignore",
    message=".*does \\*not\\* support Decimal objects natively.*",
)


def _is_allowed_callstack(allowed_paths: list[str]) -> bool:
    for frame in inspect.stack():
        filename = (frame.filename or "").replace("\\", "/")
        for ap in allowed_paths:
            if ap in filename:
                return True
    return False


@pytest.fixture(autouse=True, scope="session")
def egress_guard():
    # httpx clients may only be built from test code (MockTransport / TestClient)
    allowed_client_paths = ["/tests/"]

    real_getaddrinfo = socket.getaddrinfo
    real_create_connection = socket.create_connection
    real_httpx_init = httpx.Client.__init__

    def guard_getaddrinfo(host, *args, **kwargs):
        VIOLATIONS.append({"fn": "getaddrinfo", "host": str(host)})
        raise RuntimeError("Egress blocked: getaddrinfo disallowed")

    def guard_create_connection(address, *args, **kwargs):
        VIOLATIONS.append({"fn": "create_connection", "address": str(address)})
        raise RuntimeError("Egress blocked: create_connection disallowed")

    def guard_httpx_init(self, *args, **kwargs):
        if not _is_allowed_callstack(allowed_client_paths):
            VIOLATIONS.append({"fn": "httpx.Client.__init__"})
            raise RuntimeError("Egress blocked: httpx.Client not allowed from this callsite")
        return real_httpx_init(self, *args, **kwargs)

    socket.getaddrinfo = guard_getaddrinfo  # type: ignore[assignment]
    socket.create_connection = guard_create_connection  # type: ignore[assignment]
    httpx.Client.__init__ = guard_httpx_init  # type: ignore[assignment]

    yield

    # Restore
    socket.getaddrinfo = real_getaddrinfo  # type: ignore[assignment]
    socket.create_connection = real_create_connection  # type: ignore[assignment]
    httpx.Client.__init__ = real_httpx_init  # type: ignore[assignment]

    REPORT.write_text(json.dumps(VIOLATIONS, indent=2))


class MutableClock:
    """Settable clock for lifecycle tests."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def engine():
    engine = sa.create_engine(
        "sqlite://",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    METADATA.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def service(engine, clock) -> DocumentService:
    return DocumentService(engine, clock=clock)


@pytest.fixture
def company(service):
    return service.create_company(
        "Atelier Durand",
        vat_regime=VatRegime.NORMAL,
        plan=Plan.PRO,
        company_id="11111111-1111-4111-8111-111111111111",
        siret="12345678900012",
        vat_number="FR12345678900",
        address="12 rue des Lilas",
        zip_code="75011",
        city="Paris",
        email="contact@atelier-durand.fr",
    )


@pytest.fixture
def client_record(service, company):
    return service.create_client(
        company.id,
        {
            "name": "Boulangerie Martin",
            "email": "compta@boulangerie-martin.fr",
            "address": "3 place du Marché",
            "zip_code": "69002",
            "city": "Lyon",
            "siret": "98765432100015",
        },
    )


def line(description="Prestation", quantity="1", price="100.00", vat="20", discount="0", unit="UNIT"):
    return {
        "description": description,
        "quantity": quantity,
        "unit": unit,
        "unit_price_ht": price,
        "vat_rate": vat,
        "discount_percent": discount,
    }


def scenario_payload(client_id: str, **extra) -> dict:
    """Single line 10 x 19.90, VAT 20 %, line discount 10 %, global discount 5 %."""
    payload = {
        "client_id": client_id,
        "subject": "Rénovation cuisine",
        "discount_percent": "5",
        "items": [line("Carrelage", quantity="10", price="19.90", vat="20", discount="10", unit="SQM")],
    }
    payload.update(extra)
    return payload


SCENARIO_TOTALS = {
    "total_ht": Decimal("170.14"),
    "total_vat": Decimal("34.03"),
    "total_ttc": Decimal("204.17"),
}
