"""Documents baseline: companies, clients, quotes, invoices and their items

Revision ID: 20261001_documents_baseline
Revises:
Create Date: 2026-10-01 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261001_documents_baseline"
down_revision = None
branch_labels = None
depends_on = None

MONEY = sa.Numeric(12, 2)
QUANTITY = sa.Numeric(12, 3)
PERCENT = sa.Numeric(5, 2)


def _item_columns(parent: str):
    return [
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            f"{parent}_id",
            sa.String(36),
            sa.ForeignKey(f"{parent}s.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("quantity", QUANTITY, nullable=False),
        sa.Column("unit", sa.String(8), nullable=False, server_default="UNIT"),
        sa.Column("unit_price_ht", MONEY, nullable=False),
        sa.Column("vat_rate", PERCENT, nullable=False),
        sa.Column("discount_percent", PERCENT, nullable=False, server_default="0"),
        sa.Column("total_ht", MONEY, nullable=False),
    ]


def _totals_columns():
    return [
        sa.Column("discount_percent", PERCENT, nullable=False, server_default="0"),
        sa.Column("total_ht", MONEY, nullable=False, server_default="0"),
        sa.Column("total_vat", MONEY, nullable=False, server_default="0"),
        sa.Column("total_ttc", MONEY, nullable=False, server_default="0"),
    ]


def upgrade() -> None:
    op.create_table(
        "companies",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("vat_regime", sa.String(16), nullable=False, server_default="NORMAL"),
        sa.Column("plan", sa.String(16), nullable=False, server_default="FREE"),
        sa.Column("quote_prefix", sa.String(10), nullable=False, server_default="DE"),
        sa.Column("invoice_prefix", sa.String(10), nullable=False, server_default="FA"),
        sa.Column("next_quote_num", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("next_invoice_num", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("siret", sa.String(14)),
        sa.Column("vat_number", sa.String(20)),
        sa.Column("address", sa.Text()),
        sa.Column("zip_code", sa.String(10)),
        sa.Column("city", sa.String(100)),
        sa.Column("email", sa.String(200)),
        sa.Column("phone", sa.String(30)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "clients",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("company_id", sa.String(36), sa.ForeignKey("companies.id"), nullable=False, index=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(200)),
        sa.Column("address", sa.Text()),
        sa.Column("zip_code", sa.String(10)),
        sa.Column("city", sa.String(100)),
        sa.Column("siret", sa.String(14)),
        sa.Column("vat_number", sa.String(20)),
        sa.Column("archived_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "quotes",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("company_id", sa.String(36), sa.ForeignKey("companies.id"), nullable=False, index=True),
        sa.Column("client_id", sa.String(36), sa.ForeignKey("clients.id"), nullable=False),
        sa.Column("number", sa.String(40), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="DRAFT"),
        sa.Column("subject", sa.String(500)),
        sa.Column("notes", sa.Text()),
        sa.Column("issue_date", sa.Date(), nullable=False),
        sa.Column("valid_until", sa.Date(), nullable=False),
        *_totals_columns(),
        sa.Column("sent_at", sa.DateTime(timezone=True)),
        sa.Column("accepted_at", sa.DateTime(timezone=True)),
        sa.Column("refused_at", sa.DateTime(timezone=True)),
        sa.Column("archived_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("company_id", "number", name="uq_quotes_company_number"),
    )
    op.create_table("quote_items", *_item_columns("quote"))

    op.create_table(
        "invoices",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("company_id", sa.String(36), sa.ForeignKey("companies.id"), nullable=False, index=True),
        sa.Column("client_id", sa.String(36), sa.ForeignKey("clients.id"), nullable=False),
        sa.Column("quote_id", sa.String(36), sa.ForeignKey("quotes.id"), unique=True),
        sa.Column("number", sa.String(40), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="DRAFT"),
        sa.Column("subject", sa.String(500)),
        sa.Column("notes", sa.Text()),
        sa.Column("issue_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        *_totals_columns(),
        sa.Column("sent_at", sa.DateTime(timezone=True)),
        sa.Column("paid_at", sa.DateTime(timezone=True)),
        sa.Column("paid_amount", MONEY),
        sa.Column("payment_method", sa.String(50)),
        sa.Column("archived_at", sa.DateTime(timezone=True)),
        sa.Column("facturx_xml", sa.Text()),
        sa.Column("pdp_provider", sa.String(32)),
        sa.Column("pdp_invoice_id", sa.String(64)),
        sa.Column("pdp_status", sa.String(32)),
        sa.Column("pdp_submitted_at", sa.DateTime(timezone=True)),
        sa.Column("pdp_error", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("company_id", "number", name="uq_invoices_company_number"),
    )
    op.create_table("invoice_items", *_item_columns("invoice"))


def downgrade() -> None:
    op.drop_table("invoice_items")
    op.drop_table("invoices")
    op.drop_table("quote_items")
    op.drop_table("quotes")
    op.drop_table("clients")
    op.drop_table("companies")
