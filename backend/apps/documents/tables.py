"""SQLAlchemy Core tables for the document store."""

from __future__ import annotations

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
)

METADATA = MetaData()

MONEY = Numeric(12, 2)
QUANTITY = Numeric(12, 3)
PERCENT = Numeric(5, 2)


companies = Table(
    "companies",
    METADATA,
    Column("id", String(36), primary_key=True),
    Column("name", String(200), nullable=False),
    Column("vat_regime", String(16), nullable=False, default="NORMAL"),
    Column("plan", String(16), nullable=False, default="FREE"),
    Column("quote_prefix", String(10), nullable=False, default="DE"),
    Column("invoice_prefix", String(10), nullable=False, default="FA"),
    Column("next_quote_num", Integer, nullable=False, default=1),
    Column("next_invoice_num", Integer, nullable=False, default=1),
    Column("siret", String(14)),
    Column("vat_number", String(20)),
    Column("address", Text),
    Column("zip_code", String(10)),
    Column("city", String(100)),
    Column("email", String(200)),
    Column("phone", String(30)),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

clients = Table(
    "clients",
    METADATA,
    Column("id", String(36), primary_key=True),
    Column("company_id", String(36), ForeignKey("companies.id"), nullable=False, index=True),
    Column("name", String(200), nullable=False),
    Column("email", String(200)),
    Column("address", Text),
    Column("zip_code", String(10)),
    Column("city", String(100)),
    Column("siret", String(14)),
    Column("vat_number", String(20)),
    Column("archived_at", DateTime(timezone=True)),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

quotes = Table(
    "quotes",
    METADATA,
    Column("id", String(36), primary_key=True),
    Column("company_id", String(36), ForeignKey("companies.id"), nullable=False, index=True),
    Column("client_id", String(36), ForeignKey("clients.id"), nullable=False),
    Column("number", String(40), nullable=False),
    Column("status", String(16), nullable=False, default="DRAFT"),
    Column("subject", String(500)),
    Column("notes", Text),
    Column("issue_date", Date, nullable=False),
    Column("valid_until", Date, nullable=False),
    Column("discount_percent", PERCENT, nullable=False, default=0),
    Column("total_ht", MONEY, nullable=False, default=0),
    Column("total_vat", MONEY, nullable=False, default=0),
    Column("total_ttc", MONEY, nullable=False, default=0),
    Column("sent_at", DateTime(timezone=True)),
    Column("accepted_at", DateTime(timezone=True)),
    Column("refused_at", DateTime(timezone=True)),
    Column("archived_at", DateTime(timezone=True)),
    Column("created_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("company_id", "number", name="uq_quotes_company_number"),
)

quote_items = Table(
    "quote_items",
    METADATA,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("quote_id", String(36), ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("position", Integer, nullable=False),
    Column("description", Text, nullable=False),
    Column("quantity", QUANTITY, nullable=False),
    Column("unit", String(8), nullable=False, default="UNIT"),
    Column("unit_price_ht", MONEY, nullable=False),
    Column("vat_rate", PERCENT, nullable=False),
    Column("discount_percent", PERCENT, nullable=False, default=0),
    Column("total_ht", MONEY, nullable=False),
)

invoices = Table(
    "invoices",
    METADATA,
    Column("id", String(36), primary_key=True),
    Column("company_id", String(36), ForeignKey("companies.id"), nullable=False, index=True),
    Column("client_id", String(36), ForeignKey("clients.id"), nullable=False),
    Column("quote_id", String(36), ForeignKey("quotes.id"), unique=True),
    Column("number", String(40), nullable=False),
    Column("status", String(16), nullable=False, default="DRAFT"),
    Column("subject", String(500)),
    Column("notes", Text),
    Column("issue_date", Date, nullable=False),
    Column("due_date", Date, nullable=False),
    Column("discount_percent", PERCENT, nullable=False, default=0),
    Column("total_ht", MONEY, nullable=False, default=0),
    Column("total_vat", MONEY, nullable=False, default=0),
    Column("total_ttc", MONEY, nullable=False, default=0),
    Column("sent_at", DateTime(timezone=True)),
    Column("paid_at", DateTime(timezone=True)),
    Column("paid_amount", MONEY),
    Column("payment_method", String(50)),
    Column("archived_at", DateTime(timezone=True)),
    Column("facturx_xml", Text),
    Column("pdp_provider", String(32)),
    Column("pdp_invoice_id", String(64)),
    Column("pdp_status", String(32)),
    Column("pdp_submitted_at", DateTime(timezone=True)),
    Column("pdp_error", Text),
    Column("created_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("company_id", "number", name="uq_invoices_company_number"),
)

invoice_items = Table(
    "invoice_items",
    METADATA,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "invoice_id",
        String(36),
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("position", Integer, nullable=False),
    Column("description", Text, nullable=False),
    Column("quantity", QUANTITY, nullable=False),
    Column("unit", String(8), nullable=False, default="UNIT"),
    Column("unit_price_ht", MONEY, nullable=False),
    Column("vat_rate", PERCENT, nullable=False),
    Column("discount_percent", PERCENT, nullable=False, default=0),
    Column("total_ht", MONEY, nullable=False),
)


__all__ = [
    "METADATA",
    "clients",
    "companies",
    "invoice_items",
    "invoices",
    "quote_items",
    "quotes",
]
