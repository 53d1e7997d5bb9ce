from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

from fastapi import Header, HTTPException, status

from backend.core.logging import get_logger, set_company_id

logger = get_logger(__name__)

Reason = Literal["missing", "malformed", "ok"]

UUID_RE = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)


@dataclass
class CompanyHeaderResult:
    ok: bool
    reason: Reason


def validate_company_header(value: str | None) -> CompanyHeaderResult:
    if not value or not value.strip():
        return CompanyHeaderResult(ok=False, reason="missing")
    if not UUID_RE.match(value.strip()):
        return CompanyHeaderResult(ok=False, reason="malformed")
    return CompanyHeaderResult(ok=True, reason="ok")


async def require_company(
    company_header: str | None = Header(None, alias="X-Company-ID", convert_underscores=False)
) -> str:
    """FastAPI dependency resolving the acting company from ``X-Company-ID``.

    Returns the company id (UUID string) and binds it to the logging context;
    raises HTTPException(401) when the header is missing or malformed. Whether
    the company exists is decided by the service layer (404).
    """
    res = validate_company_header(company_header)
    if not res.ok:
        logger.warning("company_header_rejected", extra={"reason": res.reason})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": f"company_{res.reason}", "detail": res.reason},
        )
    company_id = company_header.strip().lower()  # type: ignore[union-attr]
    set_company_id(company_id)
    return company_id
