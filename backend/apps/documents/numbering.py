"""Per-company document numbering (``{PREFIX}-{YEAR}-{0000}``)."""

from __future__ import annotations

from typing import Literal

from sqlalchemy import select, update
from sqlalchemy.engine import Connection

from .errors import DocumentNotFoundError
from .tables import companies

DocumentKind = Literal["quote", "invoice"]

_COUNTERS = {
    "quote": (companies.c.next_quote_num, companies.c.quote_prefix),
    "invoice": (companies.c.next_invoice_num, companies.c.invoice_prefix),
}


def format_number(prefix: str, year: int, sequence: int) -> str:
    return f"{prefix}-{year}-{sequence:04d}"


def allocate_number(conn: Connection, company_id: str, kind: DocumentKind, year: int) -> str:
    """Consume the next counter value for ``kind`` and return the formatted number.

    Must run inside the transaction that inserts the document. The counter is
    bumped with ``UPDATE ... SET n = n + 1`` before it is read back, so the row
    lock is taken up front and concurrent creators serialise on it. A rollback
    of the surrounding transaction releases the value again.
    """

    counter, prefix_col = _COUNTERS[kind]
    result = conn.execute(
        update(companies).where(companies.c.id == company_id).values({counter: counter + 1})
    )
    if result.rowcount == 0:
        raise DocumentNotFoundError("Company", company_id)

    row = conn.execute(
        select(counter.label("next_value"), prefix_col.label("prefix")).where(
            companies.c.id == company_id
        )
    ).one()
    return format_number(row.prefix, year, row.next_value - 1)


__all__ = ["DocumentKind", "allocate_number", "format_number"]
