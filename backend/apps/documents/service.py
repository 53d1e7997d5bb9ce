"""Lifecycle operations for quotes, invoices and clients.

Each public method runs in its own ``engine.begin()`` transaction. Document
creation (including duplication and quote conversion) bumps the company
counter, checks the plan quota and inserts the document in that same
transaction, so a rejected creation never consumes a number.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from backend.core.config import settings
from backend.core.logging import get_logger

from . import repository as repo
from .calculations import DocumentTotals, calculate_document_totals, calculate_line_totals
from .dto import (
    Client,
    Company,
    Invoice,
    InvoiceStatus,
    LineItem,
    Plan,
    Quote,
    QuoteStatus,
    VatRegime,
)
from .errors import (
    ArchiveNotAllowedError,
    DocumentLockedError,
    DocumentNotFoundError,
    InvalidTransitionError,
    QuotaExceededError,
    QuoteAlreadyConvertedError,
    QuoteNotAcceptedError,
)
from .numbering import DocumentKind, allocate_number
from .plans import get_plan_limits, within_limit
from .transitions import next_invoice_status, next_quote_status
from .validators import (
    InvoiceInput,
    LineItemInput,
    QuoteInput,
    parse_client_input,
    parse_invoice_input,
    parse_payment_input,
    parse_quote_input,
)

logger = get_logger(__name__)

COPY_SUFFIX = " (copie)"

TRANSMISSION_FIELDS = frozenset(
    (
        "facturx_xml",
        "pdp_provider",
        "pdp_invoice_id",
        "pdp_status",
        "pdp_submitted_at",
        "pdp_error",
    )
)


def _default_clock() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def build_line_items(inputs: Iterable[LineItemInput]) -> List[LineItem]:
    items: List[LineItem] = []
    for position, item in enumerate(inputs):
        totals = calculate_line_totals(
            item.quantity, item.unit_price_ht, item.vat_rate, item.discount_percent
        )
        items.append(
            LineItem(
                description=item.description,
                quantity=item.quantity,
                unit=item.unit,
                unit_price_ht=item.unit_price_ht,
                vat_rate=item.vat_rate,
                discount_percent=item.discount_percent,
                total_ht=totals.total_ht,
                position=position,
            )
        )
    return items


def _totals_values(totals: DocumentTotals) -> Dict[str, Decimal]:
    return {
        "total_ht": totals.total_ht,
        "total_vat": totals.total_vat,
        "total_ttc": totals.total_ttc,
    }


_QUOTA_RESOURCES = {"quote": "quotes per month", "invoice": "invoices per month"}


class DocumentService:
    """Quote/invoice lifecycle on top of a SQLAlchemy engine."""

    def __init__(self, engine: Engine, *, clock: Callable[[], datetime] | None = None) -> None:
        self._engine = engine
        self._clock = clock or _default_clock

    # Helpers -----------------------------------------------------------------

    def now(self) -> datetime:
        return self._clock()

    def today(self) -> date:
        return self._clock().date()

    def _month_start(self, now: datetime) -> datetime:
        return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    def _check_document_quota(
        self, conn: Connection, company: Company, kind: DocumentKind, now: datetime
    ) -> None:
        limits = get_plan_limits(company.plan)
        limit = limits.max_quotes_per_month if kind == "quote" else limits.max_invoices_per_month
        count = repo.count_created_since(conn, kind, company.id, self._month_start(now))
        if not within_limit(limit, count):
            logger.warning(
                "quota_exceeded",
                extra={"company_id": company.id, "kind": kind, "limit": limit, "count": count},
            )
            raise QuotaExceededError(_QUOTA_RESOURCES[kind], limit, company.plan.value)

    def _reserve_number(
        self, conn: Connection, company_id: str, kind: DocumentKind, now: datetime
    ) -> str:
        # Counter first: the row lock is held for the rest of the transaction
        number = allocate_number(conn, company_id, kind, now.year)
        company = repo.fetch_company(conn, company_id)
        self._check_document_quota(conn, company, kind, now)
        return number

    # Companies and clients -----------------------------------------------------

    def create_company(
        self,
        name: str,
        *,
        vat_regime: VatRegime | str = VatRegime.NORMAL,
        plan: Plan | str = Plan.FREE,
        quote_prefix: str = "DE",
        invoice_prefix: str = "FA",
        company_id: Optional[str] = None,
        **details: Optional[str],
    ) -> Company:
        company_id = company_id or _new_id()
        values: Dict[str, Any] = {
            "id": company_id,
            "name": name,
            "vat_regime": VatRegime(vat_regime).value,
            "plan": Plan(plan).value,
            "quote_prefix": quote_prefix,
            "invoice_prefix": invoice_prefix,
            "next_quote_num": 1,
            "next_invoice_num": 1,
            "created_at": self.now(),
        }
        for key in ("siret", "vat_number", "address", "zip_code", "city", "email", "phone"):
            values[key] = details.get(key)
        with self._engine.begin() as conn:
            repo.insert_company(conn, values)
            company = repo.fetch_company(conn, company_id)
        logger.info("company_created", extra={"company_id": company_id})
        return company

    def get_company(self, company_id: str) -> Company:
        with self._engine.connect() as conn:
            return repo.fetch_company(conn, company_id)

    def create_client(self, company_id: str, data: Mapping[str, Any]) -> Client:
        payload = parse_client_input(data)
        client_id = _new_id()
        with self._engine.begin() as conn:
            company = repo.fetch_company(conn, company_id)
            limit = get_plan_limits(company.plan).max_clients
            if not within_limit(limit, repo.count_active_clients(conn, company_id)):
                raise QuotaExceededError("active clients", limit, company.plan.value)
            repo.insert_client(
                conn,
                {
                    "id": client_id,
                    "company_id": company_id,
                    "created_at": self.now(),
                    **payload.model_dump(),
                },
            )
            client = repo.fetch_client(conn, company_id, client_id)
        logger.info("client_created", extra={"company_id": company_id, "client_id": client_id})
        return client

    def get_client(self, company_id: str, client_id: str) -> Client:
        with self._engine.connect() as conn:
            return repo.fetch_client(conn, company_id, client_id)

    def archive_client(self, company_id: str, client_id: str) -> Client:
        with self._engine.begin() as conn:
            client = repo.fetch_client(conn, company_id, client_id)
            if client.archived_at is None:
                repo.set_client_archived(conn, company_id, client_id, self.now())
            return repo.fetch_client(conn, company_id, client_id)

    def restore_client(self, company_id: str, client_id: str) -> Client:
        with self._engine.begin() as conn:
            repo.fetch_client(conn, company_id, client_id)
            repo.set_client_archived(conn, company_id, client_id, None)
            return repo.fetch_client(conn, company_id, client_id)

    # Quotes ------------------------------------------------------------------

    def get_quote(self, company_id: str, quote_id: str) -> Quote:
        with self._engine.connect() as conn:
            return repo.fetch_quote(conn, company_id, quote_id)

    def list_quotes(self, company_id: str, *, include_archived: bool = False) -> List[Quote]:
        with self._engine.connect() as conn:
            return repo.list_quote_rows(conn, company_id, include_archived=include_archived)

    def create_quote(self, company_id: str, data: Mapping[str, Any] | QuoteInput) -> Quote:
        payload = parse_quote_input(data, self.get_company(company_id))
        items = build_line_items(payload.items)
        totals = calculate_document_totals(items, payload.discount_percent)
        now = self.now()
        issue_date = payload.issue_date or now.date()
        valid_until = payload.valid_until or issue_date + timedelta(
            days=settings.DEFAULT_QUOTE_VALIDITY_DAYS
        )
        quote_id = _new_id()

        with self._engine.begin() as conn:
            number = self._reserve_number(conn, company_id, "quote", now)
            repo.fetch_client(conn, company_id, payload.client_id)
            repo.insert_document(
                conn,
                "quote",
                {
                    "id": quote_id,
                    "company_id": company_id,
                    "client_id": payload.client_id,
                    "number": number,
                    "status": QuoteStatus.DRAFT.value,
                    "subject": payload.subject,
                    "notes": payload.notes,
                    "issue_date": issue_date,
                    "valid_until": valid_until,
                    "discount_percent": payload.discount_percent,
                    "created_at": now,
                    **_totals_values(totals),
                },
            )
            repo.replace_items(conn, "quote", quote_id, items)
            quote = repo.fetch_quote(conn, company_id, quote_id)

        logger.info(
            "quote_created",
            extra={"company_id": company_id, "quote_id": quote_id, "number": number},
        )
        return quote

    def update_quote(
        self, company_id: str, quote_id: str, data: Mapping[str, Any] | QuoteInput
    ) -> Quote:
        payload = parse_quote_input(data, self.get_company(company_id))
        items = build_line_items(payload.items)
        totals = calculate_document_totals(items, payload.discount_percent)

        with self._engine.begin() as conn:
            quote = repo.fetch_quote(conn, company_id, quote_id)
            if quote.status != QuoteStatus.DRAFT:
                raise DocumentLockedError(f"Quote {quote.number} is {quote.status.value}; only drafts can be edited")
            repo.fetch_client(conn, company_id, payload.client_id)
            values: Dict[str, Any] = {
                "client_id": payload.client_id,
                "subject": payload.subject,
                "notes": payload.notes,
                "discount_percent": payload.discount_percent,
                **_totals_values(totals),
            }
            if payload.issue_date:
                values["issue_date"] = payload.issue_date
            if payload.valid_until:
                values["valid_until"] = payload.valid_until
            updated = repo.update_document(
                conn, "quote", company_id, quote_id, values, expected_status=QuoteStatus.DRAFT.value
            )
            if not updated:
                raise DocumentLockedError(f"Quote {quote.number} changed concurrently")
            repo.replace_items(conn, "quote", quote_id, items)
            quote = repo.fetch_quote(conn, company_id, quote_id)

        logger.info("quote_updated", extra={"company_id": company_id, "quote_id": quote_id})
        return quote

    def _transition_quote(
        self, company_id: str, quote_id: str, action: str, stamp: Optional[str]
    ) -> Quote:
        with self._engine.begin() as conn:
            quote = repo.fetch_quote(conn, company_id, quote_id)
            target = next_quote_status(quote.status, action)
            values: Dict[str, Any] = {"status": target.value}
            if stamp:
                values[stamp] = self.now()
            if not repo.update_document(
                conn, "quote", company_id, quote_id, values, expected_status=quote.status.value
            ):
                raise InvalidTransitionError("Quote", quote.status.value, action, target.value)
            quote = repo.fetch_quote(conn, company_id, quote_id)

        logger.info(
            "quote_status_changed",
            extra={
                "company_id": company_id,
                "quote_id": quote_id,
                "number": quote.number,
                "status": quote.status.value,
            },
        )
        return quote

    def send_quote(self, company_id: str, quote_id: str) -> Quote:
        return self._transition_quote(company_id, quote_id, "send", "sent_at")

    def accept_quote(self, company_id: str, quote_id: str) -> Quote:
        return self._transition_quote(company_id, quote_id, "accept", "accepted_at")

    def refuse_quote(self, company_id: str, quote_id: str) -> Quote:
        return self._transition_quote(company_id, quote_id, "refuse", "refused_at")

    def delete_quote(self, company_id: str, quote_id: str) -> None:
        self._delete(company_id, "quote", quote_id)

    def archive_quote(self, company_id: str, quote_id: str) -> Quote:
        self._set_archived(company_id, "quote", quote_id, archive=True)
        return self.get_quote(company_id, quote_id)

    def restore_quote(self, company_id: str, quote_id: str) -> Quote:
        self._set_archived(company_id, "quote", quote_id, archive=False)
        return self.get_quote(company_id, quote_id)

    def bulk_archive_quotes(self, company_id: str, quote_ids: Iterable[str]) -> int:
        return self._bulk_archive(company_id, "quote", quote_ids)

    def bulk_delete_quotes(self, company_id: str, quote_ids: Iterable[str]) -> int:
        return self._bulk_delete(company_id, "quote", quote_ids)

    def duplicate_quote(self, company_id: str, quote_id: str) -> Quote:
        now = self.now()
        new_id = _new_id()
        with self._engine.begin() as conn:
            source = repo.fetch_quote(conn, company_id, quote_id)
            number = self._reserve_number(conn, company_id, "quote", now)
            repo.insert_document(
                conn,
                "quote",
                {
                    "id": new_id,
                    "company_id": company_id,
                    "client_id": source.client_id,
                    "number": number,
                    "status": QuoteStatus.DRAFT.value,
                    "subject": f"{source.subject}{COPY_SUFFIX}" if source.subject else None,
                    "notes": source.notes,
                    "issue_date": now.date(),
                    "valid_until": now.date() + timedelta(days=settings.DEFAULT_QUOTE_VALIDITY_DAYS),
                    "discount_percent": source.discount_percent,
                    "total_ht": source.total_ht,
                    "total_vat": source.total_vat,
                    "total_ttc": source.total_ttc,
                    "created_at": now,
                },
            )
            repo.replace_items(conn, "quote", new_id, source.items)
            quote = repo.fetch_quote(conn, company_id, new_id)

        logger.info(
            "quote_duplicated",
            extra={"company_id": company_id, "source_id": quote_id, "quote_id": new_id, "number": number},
        )
        return quote

    def convert_quote(self, company_id: str, quote_id: str) -> Invoice:
        """Create the invoice for an accepted quote.

        Client, items, subject, notes, global discount and totals are copied
        verbatim; nothing is recomputed. A quote converts at most once.
        """

        now = self.now()
        invoice_id = _new_id()
        try:
            with self._engine.begin() as conn:
                quote = repo.fetch_quote(conn, company_id, quote_id)
                if quote.status != QuoteStatus.ACCEPTED:
                    raise QuoteNotAcceptedError(
                        f"Quote {quote.number} is {quote.status.value}; only accepted quotes convert"
                    )
                if quote.invoice_id:
                    raise QuoteAlreadyConvertedError(
                        f"Quote {quote.number} already converted to invoice {quote.invoice_id}"
                    )
                number = self._reserve_number(conn, company_id, "invoice", now)
                repo.insert_document(
                    conn,
                    "invoice",
                    {
                        "id": invoice_id,
                        "company_id": company_id,
                        "client_id": quote.client_id,
                        "quote_id": quote.id,
                        "number": number,
                        "status": InvoiceStatus.DRAFT.value,
                        "subject": quote.subject,
                        "notes": quote.notes,
                        "issue_date": now.date(),
                        "due_date": now.date() + timedelta(days=settings.DEFAULT_PAYMENT_DAYS),
                        "discount_percent": quote.discount_percent,
                        "total_ht": quote.total_ht,
                        "total_vat": quote.total_vat,
                        "total_ttc": quote.total_ttc,
                        "created_at": now,
                    },
                )
                repo.replace_items(conn, "invoice", invoice_id, quote.items)
                invoice = repo.fetch_invoice(conn, company_id, invoice_id)
        except IntegrityError as exc:
            # unique invoices.quote_id: another conversion won the race
            raise QuoteAlreadyConvertedError(f"Quote {quote_id} already converted") from exc

        logger.info(
            "quote_converted",
            extra={
                "company_id": company_id,
                "quote_id": quote_id,
                "invoice_id": invoice_id,
                "number": number,
            },
        )
        return invoice

    # Invoices ----------------------------------------------------------------

    def get_invoice(self, company_id: str, invoice_id: str) -> Invoice:
        with self._engine.connect() as conn:
            return repo.fetch_invoice(conn, company_id, invoice_id)

    def list_invoices(self, company_id: str, *, include_archived: bool = False) -> List[Invoice]:
        with self._engine.connect() as conn:
            return repo.list_invoice_rows(conn, company_id, include_archived=include_archived)

    def display_status(self, invoice: Invoice) -> InvoiceStatus:
        return invoice.display_status(self.today())

    def create_invoice(self, company_id: str, data: Mapping[str, Any] | InvoiceInput) -> Invoice:
        payload = parse_invoice_input(data, self.get_company(company_id))
        items = build_line_items(payload.items)
        totals = calculate_document_totals(items, payload.discount_percent)
        now = self.now()
        issue_date = payload.issue_date or now.date()
        due_date = payload.due_date or issue_date + timedelta(days=settings.DEFAULT_PAYMENT_DAYS)
        invoice_id = _new_id()

        with self._engine.begin() as conn:
            number = self._reserve_number(conn, company_id, "invoice", now)
            repo.fetch_client(conn, company_id, payload.client_id)
            repo.insert_document(
                conn,
                "invoice",
                {
                    "id": invoice_id,
                    "company_id": company_id,
                    "client_id": payload.client_id,
                    "number": number,
                    "status": InvoiceStatus.DRAFT.value,
                    "subject": payload.subject,
                    "notes": payload.notes,
                    "issue_date": issue_date,
                    "due_date": due_date,
                    "discount_percent": payload.discount_percent,
                    "payment_method": payload.payment_method,
                    "created_at": now,
                    **_totals_values(totals),
                },
            )
            repo.replace_items(conn, "invoice", invoice_id, items)
            invoice = repo.fetch_invoice(conn, company_id, invoice_id)

        logger.info(
            "invoice_created",
            extra={"company_id": company_id, "invoice_id": invoice_id, "number": number},
        )
        return invoice

    def update_invoice(
        self, company_id: str, invoice_id: str, data: Mapping[str, Any] | InvoiceInput
    ) -> Invoice:
        payload = parse_invoice_input(data, self.get_company(company_id))
        items = build_line_items(payload.items)
        totals = calculate_document_totals(items, payload.discount_percent)

        with self._engine.begin() as conn:
            invoice = repo.fetch_invoice(conn, company_id, invoice_id)
            if invoice.status != InvoiceStatus.DRAFT:
                raise DocumentLockedError(
                    f"Invoice {invoice.number} is {invoice.status.value}; only drafts can be edited"
                )
            repo.fetch_client(conn, company_id, payload.client_id)
            values: Dict[str, Any] = {
                "client_id": payload.client_id,
                "subject": payload.subject,
                "notes": payload.notes,
                "discount_percent": payload.discount_percent,
                "payment_method": payload.payment_method,
                # A cached e-invoice no longer matches the edited content
                "facturx_xml": None,
                **_totals_values(totals),
            }
            if payload.issue_date:
                values["issue_date"] = payload.issue_date
            if payload.due_date:
                values["due_date"] = payload.due_date
            updated = repo.update_document(
                conn,
                "invoice",
                company_id,
                invoice_id,
                values,
                expected_status=InvoiceStatus.DRAFT.value,
            )
            if not updated:
                raise DocumentLockedError(f"Invoice {invoice.number} changed concurrently")
            repo.replace_items(conn, "invoice", invoice_id, items)
            invoice = repo.fetch_invoice(conn, company_id, invoice_id)

        logger.info("invoice_updated", extra={"company_id": company_id, "invoice_id": invoice_id})
        return invoice

    def _transition_invoice(
        self, company_id: str, invoice_id: str, action: str, extra: Optional[Dict[str, Any]] = None
    ) -> Invoice:
        with self._engine.begin() as conn:
            invoice = repo.fetch_invoice(conn, company_id, invoice_id)
            target = next_invoice_status(invoice.status, action)
            values: Dict[str, Any] = {"status": target.value}
            if action == "send":
                values["sent_at"] = self.now()
            elif action == "pay":
                payment = parse_payment_input(extra)
                values["paid_at"] = self.now()
                values["paid_amount"] = (
                    payment.paid_amount if payment.paid_amount is not None else invoice.total_ttc
                )
                if payment.payment_method:
                    values["payment_method"] = payment.payment_method
            if not repo.update_document(
                conn,
                "invoice",
                company_id,
                invoice_id,
                values,
                expected_status=invoice.status.value,
            ):
                raise InvalidTransitionError("Invoice", invoice.status.value, action, target.value)
            invoice = repo.fetch_invoice(conn, company_id, invoice_id)

        logger.info(
            "invoice_status_changed",
            extra={
                "company_id": company_id,
                "invoice_id": invoice_id,
                "number": invoice.number,
                "status": invoice.status.value,
            },
        )
        return invoice

    def send_invoice(self, company_id: str, invoice_id: str) -> Invoice:
        return self._transition_invoice(company_id, invoice_id, "send")

    def pay_invoice(
        self,
        company_id: str,
        invoice_id: str,
        *,
        paid_amount: Optional[Decimal] = None,
        payment_method: Optional[str] = None,
    ) -> Invoice:
        return self._transition_invoice(
            company_id,
            invoice_id,
            "pay",
            {"paid_amount": paid_amount, "payment_method": payment_method},
        )

    def cancel_invoice(self, company_id: str, invoice_id: str) -> Invoice:
        return self._transition_invoice(company_id, invoice_id, "cancel")

    def delete_invoice(self, company_id: str, invoice_id: str) -> None:
        self._delete(company_id, "invoice", invoice_id)

    def archive_invoice(self, company_id: str, invoice_id: str) -> Invoice:
        self._set_archived(company_id, "invoice", invoice_id, archive=True)
        return self.get_invoice(company_id, invoice_id)

    def restore_invoice(self, company_id: str, invoice_id: str) -> Invoice:
        self._set_archived(company_id, "invoice", invoice_id, archive=False)
        return self.get_invoice(company_id, invoice_id)

    def bulk_archive_invoices(self, company_id: str, invoice_ids: Iterable[str]) -> int:
        return self._bulk_archive(company_id, "invoice", invoice_ids)

    def bulk_delete_invoices(self, company_id: str, invoice_ids: Iterable[str]) -> int:
        return self._bulk_delete(company_id, "invoice", invoice_ids)

    def duplicate_invoice(self, company_id: str, invoice_id: str) -> Invoice:
        now = self.now()
        new_id = _new_id()
        with self._engine.begin() as conn:
            source = repo.fetch_invoice(conn, company_id, invoice_id)
            number = self._reserve_number(conn, company_id, "invoice", now)
            repo.insert_document(
                conn,
                "invoice",
                {
                    "id": new_id,
                    "company_id": company_id,
                    "client_id": source.client_id,
                    "number": number,
                    "status": InvoiceStatus.DRAFT.value,
                    "subject": f"{source.subject}{COPY_SUFFIX}" if source.subject else None,
                    "notes": source.notes,
                    "issue_date": now.date(),
                    "due_date": now.date() + timedelta(days=settings.DEFAULT_PAYMENT_DAYS),
                    "discount_percent": source.discount_percent,
                    "total_ht": source.total_ht,
                    "total_vat": source.total_vat,
                    "total_ttc": source.total_ttc,
                    "created_at": now,
                },
            )
            repo.replace_items(conn, "invoice", new_id, source.items)
            invoice = repo.fetch_invoice(conn, company_id, new_id)

        logger.info(
            "invoice_duplicated",
            extra={
                "company_id": company_id,
                "source_id": invoice_id,
                "invoice_id": new_id,
                "number": number,
            },
        )
        return invoice

    def record_transmission(self, company_id: str, invoice_id: str, **fields: Any) -> Invoice:
        """Write e-invoice cache and PDP fields; business fields stay untouched."""

        unknown = set(fields) - TRANSMISSION_FIELDS
        if unknown:
            raise ValueError(f"Not a transmission field: {', '.join(sorted(unknown))}")
        with self._engine.begin() as conn:
            if not repo.update_document(conn, "invoice", company_id, invoice_id, fields):
                raise DocumentNotFoundError("Invoice", invoice_id)
            return repo.fetch_invoice(conn, company_id, invoice_id)

    # Shared ------------------------------------------------------------------

    def _fetch(self, conn: Connection, kind: DocumentKind, company_id: str, document_id: str):
        if kind == "quote":
            return repo.fetch_quote(conn, company_id, document_id)
        return repo.fetch_invoice(conn, company_id, document_id)

    def _delete(self, company_id: str, kind: DocumentKind, document_id: str) -> None:
        with self._engine.begin() as conn:
            document = self._fetch(conn, kind, company_id, document_id)
            if document.status.value != "DRAFT":
                raise DocumentLockedError(
                    f"{document.number} is {document.status.value}; only drafts can be deleted"
                )
            repo.delete_document(conn, kind, document_id)
        logger.info(
            f"{kind}_deleted",
            extra={"company_id": company_id, "document_id": document_id, "number": document.number},
        )

    def _set_archived(
        self, company_id: str, kind: DocumentKind, document_id: str, *, archive: bool
    ) -> None:
        with self._engine.begin() as conn:
            document = self._fetch(conn, kind, company_id, document_id)
            if document.status.value == "DRAFT":
                raise ArchiveNotAllowedError(
                    f"{document.number} is a draft; delete it instead of archiving"
                )
            if archive and document.archived_at is None:
                repo.update_document(conn, kind, company_id, document_id, {"archived_at": self.now()})
            elif not archive and document.archived_at is not None:
                repo.update_document(conn, kind, company_id, document_id, {"archived_at": None})
        logger.info(
            f"{kind}_{'archived' if archive else 'restored'}",
            extra={"company_id": company_id, "document_id": document_id},
        )

    def _bulk_archive(self, company_id: str, kind: DocumentKind, ids: Iterable[str]) -> int:
        now = self.now()
        with self._engine.begin() as conn:
            eligible = repo.eligible_ids(conn, kind, company_id, ids, draft=False, unarchived=True)
            for document_id in eligible:
                repo.update_document(conn, kind, company_id, document_id, {"archived_at": now})
        logger.info(
            f"{kind}_bulk_archived", extra={"company_id": company_id, "count": len(eligible)}
        )
        return len(eligible)

    def _bulk_delete(self, company_id: str, kind: DocumentKind, ids: Iterable[str]) -> int:
        with self._engine.begin() as conn:
            eligible = repo.eligible_ids(conn, kind, company_id, ids, draft=True)
            for document_id in eligible:
                repo.delete_document(conn, kind, document_id)
        logger.info(f"{kind}_bulk_deleted", extra={"company_id": company_id, "count": len(eligible)})
        return len(eligible)


__all__ = ["COPY_SUFFIX", "DocumentService", "TRANSMISSION_FIELDS", "build_line_items"]
