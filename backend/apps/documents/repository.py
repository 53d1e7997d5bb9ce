"""Row mapping and statements for the document store.

Functions take an open :class:`~sqlalchemy.engine.Connection`; transaction
boundaries belong to the service layer.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import Table, and_, delete, func, insert, select, update
from sqlalchemy.engine import Connection

from .calculations import round2
from .dto import (
    Client,
    Company,
    Invoice,
    InvoiceStatus,
    LineItem,
    Plan,
    Quote,
    QuoteStatus,
    Unit,
    VatRegime,
)
from .errors import DocumentNotFoundError
from .numbering import DocumentKind
from .tables import clients, companies, invoice_items, invoices, quote_items, quotes

_DOCUMENTS = {
    "quote": (quotes, quote_items, quote_items.c.quote_id),
    "invoice": (invoices, invoice_items, invoice_items.c.invoice_id),
}


def _ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _money(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    return round2(Decimal(str(value)))


def _quantity(value: Any) -> Decimal:
    return Decimal(str(value))


def row_to_company(row) -> Company:
    return Company(
        id=row.id,
        name=row.name,
        vat_regime=VatRegime(row.vat_regime),
        plan=Plan(row.plan),
        quote_prefix=row.quote_prefix,
        invoice_prefix=row.invoice_prefix,
        next_quote_num=row.next_quote_num,
        next_invoice_num=row.next_invoice_num,
        siret=row.siret,
        vat_number=row.vat_number,
        address=row.address,
        zip_code=row.zip_code,
        city=row.city,
        email=row.email,
        phone=row.phone,
    )


def row_to_client(row) -> Client:
    return Client(
        id=row.id,
        company_id=row.company_id,
        name=row.name,
        email=row.email,
        address=row.address,
        zip_code=row.zip_code,
        city=row.city,
        siret=row.siret,
        vat_number=row.vat_number,
        archived_at=_ensure_utc(row.archived_at),
    )


def row_to_item(row) -> LineItem:
    return LineItem(
        description=row.description,
        quantity=_quantity(row.quantity),
        unit=Unit(row.unit),
        unit_price_ht=_money(row.unit_price_ht),
        vat_rate=_money(row.vat_rate),
        discount_percent=_money(row.discount_percent),
        total_ht=_money(row.total_ht),
        position=row.position,
    )


def row_to_quote(row, items: List[LineItem], invoice_id: Optional[str] = None) -> Quote:
    return Quote(
        id=row.id,
        company_id=row.company_id,
        client_id=row.client_id,
        number=row.number,
        status=QuoteStatus(row.status),
        issue_date=row.issue_date,
        valid_until=row.valid_until,
        created_at=_ensure_utc(row.created_at),
        subject=row.subject,
        notes=row.notes,
        discount_percent=_money(row.discount_percent),
        total_ht=_money(row.total_ht),
        total_vat=_money(row.total_vat),
        total_ttc=_money(row.total_ttc),
        sent_at=_ensure_utc(row.sent_at),
        accepted_at=_ensure_utc(row.accepted_at),
        refused_at=_ensure_utc(row.refused_at),
        archived_at=_ensure_utc(row.archived_at),
        items=items,
        invoice_id=invoice_id,
    )


def row_to_invoice(row, items: List[LineItem]) -> Invoice:
    return Invoice(
        id=row.id,
        company_id=row.company_id,
        client_id=row.client_id,
        quote_id=row.quote_id,
        number=row.number,
        status=InvoiceStatus(row.status),
        issue_date=row.issue_date,
        due_date=row.due_date,
        created_at=_ensure_utc(row.created_at),
        subject=row.subject,
        notes=row.notes,
        discount_percent=_money(row.discount_percent),
        total_ht=_money(row.total_ht),
        total_vat=_money(row.total_vat),
        total_ttc=_money(row.total_ttc),
        sent_at=_ensure_utc(row.sent_at),
        paid_at=_ensure_utc(row.paid_at),
        paid_amount=_money(row.paid_amount),
        payment_method=row.payment_method,
        archived_at=_ensure_utc(row.archived_at),
        facturx_xml=row.facturx_xml,
        pdp_provider=row.pdp_provider,
        pdp_invoice_id=row.pdp_invoice_id,
        pdp_status=row.pdp_status,
        pdp_submitted_at=_ensure_utc(row.pdp_submitted_at),
        pdp_error=row.pdp_error,
        items=items,
    )


# Companies and clients -----------------------------------------------------


def insert_company(conn: Connection, values: Dict[str, Any]) -> None:
    conn.execute(insert(companies).values(**values))


def fetch_company(conn: Connection, company_id: str) -> Company:
    row = conn.execute(select(companies).where(companies.c.id == company_id)).fetchone()
    if row is None:
        raise DocumentNotFoundError("Company", company_id)
    return row_to_company(row)


def insert_client(conn: Connection, values: Dict[str, Any]) -> None:
    conn.execute(insert(clients).values(**values))


def fetch_client(conn: Connection, company_id: str, client_id: str) -> Client:
    row = conn.execute(
        select(clients).where(clients.c.id == client_id).where(clients.c.company_id == company_id)
    ).fetchone()
    if row is None:
        raise DocumentNotFoundError("Client", client_id)
    return row_to_client(row)


def set_client_archived(
    conn: Connection, company_id: str, client_id: str, archived_at: Optional[datetime]
) -> None:
    conn.execute(
        update(clients)
        .where(clients.c.id == client_id)
        .where(clients.c.company_id == company_id)
        .values(archived_at=archived_at)
    )


def count_active_clients(conn: Connection, company_id: str) -> int:
    return conn.execute(
        select(func.count())
        .select_from(clients)
        .where(clients.c.company_id == company_id)
        .where(clients.c.archived_at.is_(None))
    ).scalar_one()


# Documents ---------------------------------------------------------------------


def document_table(kind: DocumentKind) -> Table:
    return _DOCUMENTS[kind][0]


def fetch_items(conn: Connection, kind: DocumentKind, document_id: str) -> List[LineItem]:
    _, items_table, fk = _DOCUMENTS[kind]
    rows = conn.execute(
        select(items_table).where(fk == document_id).order_by(items_table.c.position)
    ).fetchall()
    return [row_to_item(row) for row in rows]


def replace_items(
    conn: Connection, kind: DocumentKind, document_id: str, items: Iterable[LineItem]
) -> None:
    _, items_table, fk = _DOCUMENTS[kind]
    conn.execute(delete(items_table).where(fk == document_id))
    rows = [
        {
            fk.key: document_id,
            "position": item.position,
            "description": item.description,
            "quantity": item.quantity,
            "unit": Unit(item.unit).value,
            "unit_price_ht": item.unit_price_ht,
            "vat_rate": item.vat_rate,
            "discount_percent": item.discount_percent,
            "total_ht": item.total_ht,
        }
        for item in items
    ]
    if rows:
        conn.execute(insert(items_table), rows)


def fetch_quote(conn: Connection, company_id: str, quote_id: str) -> Quote:
    row = conn.execute(
        select(quotes).where(quotes.c.id == quote_id).where(quotes.c.company_id == company_id)
    ).fetchone()
    if row is None:
        raise DocumentNotFoundError("Quote", quote_id)
    invoice_id = conn.execute(
        select(invoices.c.id).where(invoices.c.quote_id == quote_id)
    ).scalar_one_or_none()
    return row_to_quote(row, fetch_items(conn, "quote", quote_id), invoice_id)


def fetch_invoice(conn: Connection, company_id: str, invoice_id: str) -> Invoice:
    row = conn.execute(
        select(invoices)
        .where(invoices.c.id == invoice_id)
        .where(invoices.c.company_id == company_id)
    ).fetchone()
    if row is None:
        raise DocumentNotFoundError("Invoice", invoice_id)
    return row_to_invoice(row, fetch_items(conn, "invoice", invoice_id))


def insert_document(conn: Connection, kind: DocumentKind, values: Dict[str, Any]) -> None:
    conn.execute(insert(document_table(kind)).values(**values))


def update_document(
    conn: Connection,
    kind: DocumentKind,
    company_id: str,
    document_id: str,
    values: Dict[str, Any],
    *,
    expected_status: Optional[str] = None,
) -> int:
    """Update one document; with ``expected_status`` the row must still be in it."""

    table = document_table(kind)
    stmt = (
        update(table)
        .where(table.c.id == document_id)
        .where(table.c.company_id == company_id)
    )
    if expected_status is not None:
        stmt = stmt.where(table.c.status == expected_status)
    return conn.execute(stmt.values(**values)).rowcount


def delete_document(conn: Connection, kind: DocumentKind, document_id: str) -> None:
    table, items_table, fk = _DOCUMENTS[kind]
    conn.execute(delete(items_table).where(fk == document_id))
    conn.execute(delete(table).where(table.c.id == document_id))


def count_created_since(
    conn: Connection, kind: DocumentKind, company_id: str, since: datetime
) -> int:
    table = document_table(kind)
    return conn.execute(
        select(func.count())
        .select_from(table)
        .where(table.c.company_id == company_id)
        .where(table.c.created_at >= since)
    ).scalar_one()


def eligible_ids(
    conn: Connection,
    kind: DocumentKind,
    company_id: str,
    ids: Iterable[str],
    *,
    draft: bool,
    unarchived: bool = False,
) -> List[str]:
    """Ids among ``ids`` owned by the company that are (or are not) drafts.

    With ``unarchived`` set, documents that already carry ``archived_at`` are
    left out.
    """

    table = document_table(kind)
    wanted = list(ids)
    if not wanted:
        return []
    status_clause = table.c.status == "DRAFT" if draft else table.c.status != "DRAFT"
    clauses = [table.c.company_id == company_id, table.c.id.in_(wanted), status_clause]
    if unarchived:
        clauses.append(table.c.archived_at.is_(None))
    rows = conn.execute(select(table.c.id).where(and_(*clauses))).fetchall()
    return [row.id for row in rows]


def list_quote_rows(conn: Connection, company_id: str, *, include_archived: bool) -> List[Quote]:
    stmt = select(quotes).where(quotes.c.company_id == company_id)
    if not include_archived:
        stmt = stmt.where(quotes.c.archived_at.is_(None))
    rows = conn.execute(stmt.order_by(quotes.c.created_at.desc(), quotes.c.number.desc())).fetchall()
    return [row_to_quote(row, fetch_items(conn, "quote", row.id)) for row in rows]


def list_invoice_rows(
    conn: Connection, company_id: str, *, include_archived: bool
) -> List[Invoice]:
    stmt = select(invoices).where(invoices.c.company_id == company_id)
    if not include_archived:
        stmt = stmt.where(invoices.c.archived_at.is_(None))
    rows = conn.execute(
        stmt.order_by(invoices.c.created_at.desc(), invoices.c.number.desc())
    ).fetchall()
    return [row_to_invoice(row, fetch_items(conn, "invoice", row.id)) for row in rows]


__all__ = [
    "count_active_clients",
    "count_created_since",
    "delete_document",
    "document_table",
    "eligible_ids",
    "fetch_client",
    "fetch_company",
    "fetch_invoice",
    "fetch_items",
    "fetch_quote",
    "insert_client",
    "insert_company",
    "insert_document",
    "list_invoice_rows",
    "list_quote_rows",
    "replace_items",
    "set_client_archived",
    "update_document",
]
