"""initial schema: audit, sequences, banking, receivables, payables, cash, stock, inventory counts

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19T12:00:00Z
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


# Los enums se guardan por nombre de miembro
ENUMS = {
    "documentstatus": ("OPEN", "SETTLED", "CANCELED"),
    "paymentmethod": ("CASH", "PIX", "DEBIT_CARD", "CREDIT_CARD", "CHECK", "BANK_TRANSFER", "BANK_SLIP", "OTHER"),
    "entrydirection": ("CREDIT", "DEBIT"),
    "entrycategory": ("RECEIPT", "PAYMENT", "TILL_WITHDRAWAL", "ADJUSTMENT"),
    "origintype": ("RECEIVABLE_POSTING", "PAYABLE_POSTING", "CASH_POSTING", "MANUAL"),
    "receivabledocumenttype": ("DUPLICATE", "BANK_SLIP", "CHECK", "CARD", "PIX", "OTHER"),
    "payabledocumenttype": ("DUPLICATE", "BANK_SLIP", "INVOICE", "BILL", "RECEIPT", "OTHER"),
    "payablecategory": ("GOODS", "SERVICE", "FIXED_EXPENSE", "VARIABLE_EXPENSE", "TAX", "OTHER"),
    "cashsessionstatus": ("OPEN", "CLOSED"),
    "cashpostingkind": ("SUPPLY", "WITHDRAWAL", "SALE"),
    "cashdirection": ("IN", "OUT"),
    "stockmovementtype": ("ENTRY", "EXIT"),
    "stockmovementreason": ("INVENTORY_ADJUSTMENT", "PURCHASE", "SALE", "TRANSFER", "OTHER"),
    "inventorycountstatus": ("DRAFT", "COUNTING", "FINALIZED", "ADJUSTED", "CANCELED"),
    "inventorycounttype": ("FULL", "PARTIAL", "ROTATING"),
}


def enum(name):
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def uuid(name, *args, **kwargs):
    return sa.Column(name, postgresql.UUID(as_uuid=True), *args, **kwargs)


def money(name, nullable=False, default=None):
    server_default = sa.text("0") if default is not None else None
    return sa.Column(name, sa.Numeric(15, 2), nullable=nullable, server_default=server_default)


def base_columns(branch=False):
    columns = [
        uuid("id", primary_key=True),
        uuid("tenant_id", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]
    if branch:
        columns.append(uuid("branch_id", nullable=True))
    return columns


def base_indexes(table, branch=False, extra=()):
    columns = ["id", "tenant_id"] + (["branch_id"] if branch else []) + list(extra)
    for column in columns:
        op.create_index(f"ix_{table}_{column}", table, [column])


def ledger_document_columns():
    return [
        sa.Column("document_number", sa.String(60), nullable=False),
        sa.Column("description", sa.String(255), nullable=True),
        uuid("counterparty_id", nullable=False),
        sa.Column("counterparty_name", sa.String(150), nullable=True),
        sa.Column("issue_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        money("original_amount"),
        money("interest_amount", default=0),
        money("penalty_amount", default=0),
        money("discount_amount", default=0),
        money("total_amount"),
        money("balance"),
        sa.Column("status", enum("documentstatus"), nullable=False),
        sa.Column("installment", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("total_installments", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("payment_method", enum("paymentmethod"), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("settled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
        uuid("canceled_by", nullable=True),
        sa.Column("cancel_reason", sa.Text(), nullable=True),
        uuid("created_by", nullable=False),
        uuid("bank_account_id", sa.ForeignKey("bank_accounts.id"), nullable=True),
    ]


def posting_columns(document_table):
    return [
        uuid("document_id", sa.ForeignKey(f"{document_table}.id"), nullable=False),
        money("applied_amount"),
        money("interest_amount", default=0),
        money("penalty_amount", default=0),
        money("discount_amount", default=0),
        money("net_amount"),
        sa.Column("effective_date", sa.Date(), nullable=False),
        money("balance_after"),
        sa.Column("note", sa.Text(), nullable=True),
        uuid("created_by", nullable=False),
        uuid("bank_account_id", sa.ForeignKey("bank_accounts.id"), nullable=True),
    ]


def posting_method_columns(posting_table):
    return [
        uuid("posting_id", sa.ForeignKey(f"{posting_table}.id"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("payment_method", enum("paymentmethod"), nullable=False),
        money("amount"),
    ]


def create_ledger_tables(prefix, extra_columns, extra_indexes):
    op.create_table(
        prefix,
        *base_columns(branch=True),
        *ledger_document_columns(),
        *extra_columns,
        sa.UniqueConstraint("tenant_id", "document_number", name=f"uq_{prefix[:-1]}_tenant_number"),
    )
    base_indexes(prefix, branch=True, extra=("document_number", "counterparty_id", "due_date", "status") + extra_indexes)

    op.create_table(f"{prefix[:-1]}_postings", *base_columns(), *posting_columns(prefix))
    base_indexes(f"{prefix[:-1]}_postings", extra=("document_id", "effective_date"))

    op.create_table(
        f"{prefix[:-1]}_posting_methods", *base_columns(), *posting_method_columns(f"{prefix[:-1]}_postings")
    )
    base_indexes(f"{prefix[:-1]}_posting_methods", extra=("posting_id",))


def upgrade():
    bind = op.get_bind()
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    # Auditoría
    op.create_table(
        "audit_logs",
        uuid("id", primary_key=True),
        uuid("tenant_id", nullable=False),
        uuid("actor_id", nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        uuid("entity_id", nullable=True),
        sa.Column("before", sa.JSON(), nullable=True),
        sa.Column("after", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    for column in ("tenant_id", "actor_id", "action", "entity_type", "entity_id"):
        op.create_index(f"ix_audit_logs_{column}", "audit_logs", [column])
    op.create_index("ix_audit_logs_tenant_entity", "audit_logs", ["tenant_id", "entity_type", "entity_id"])

    # Numeración
    op.create_table(
        "document_sequences",
        *base_columns(branch=True),
        sa.Column("document_type", sa.String(40), nullable=False),
        sa.Column("prefix", sa.String(20), nullable=False, server_default=""),
        sa.Column("suffix", sa.String(20), nullable=False, server_default=""),
        sa.Column("width", sa.Integer(), nullable=False, server_default=sa.text("6")),
        sa.Column("last_number", sa.Integer(), nullable=False, server_default=sa.text("0")),
    )
    base_indexes("document_sequences", branch=True)
    op.create_index(
        "uq_document_sequences_branch", "document_sequences", ["tenant_id", "document_type", "branch_id"],
        unique=True, postgresql_where=sa.text("branch_id IS NOT NULL"),
    )
    op.create_index(
        "uq_document_sequences_tenant", "document_sequences", ["tenant_id", "document_type"],
        unique=True, postgresql_where=sa.text("branch_id IS NULL"),
    )

    # Bancos
    op.create_table(
        "bank_accounts",
        *base_columns(branch=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("bank_name", sa.String(100), nullable=True),
        sa.Column("agency", sa.String(20), nullable=True),
        sa.Column("account_number", sa.String(40), nullable=True),
        money("opening_balance", default=0),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    base_indexes("bank_accounts", branch=True)

    op.create_table(
        "bank_ledger_entries",
        *base_columns(),
        uuid("bank_account_id", sa.ForeignKey("bank_accounts.id"), nullable=False),
        sa.Column("direction", enum("entrydirection"), nullable=False),
        sa.Column("category", enum("entrycategory"), nullable=False),
        money("amount"),
        sa.Column("entry_date", sa.Date(), nullable=False),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("reference", sa.String(60), nullable=True),
        sa.Column("origin_type", enum("origintype"), nullable=False),
        uuid("origin_id", nullable=True),
        uuid("created_by", nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
    )
    base_indexes("bank_ledger_entries", extra=("bank_account_id", "entry_date", "reference"))
    op.create_index("ix_bank_ledger_entries_origin", "bank_ledger_entries", ["origin_type", "origin_id"])

    # Cuentas por cobrar y por pagar
    create_ledger_tables(
        "receivables",
        [
            sa.Column("document_type", enum("receivabledocumenttype"), nullable=False),
            uuid("sale_id", nullable=True),
            sa.Column("bank_slip_line", sa.String(60), nullable=True),
            sa.Column("barcode", sa.String(60), nullable=True),
        ],
        ("sale_id",),
    )
    create_ledger_tables(
        "payables",
        [
            sa.Column("document_type", enum("payabledocumenttype"), nullable=False),
            sa.Column("category", enum("payablecategory"), nullable=False),
            sa.Column("cost_center", sa.String(60), nullable=True),
            uuid("purchase_order_id", nullable=True),
            sa.Column("bank_slip_line", sa.String(60), nullable=True),
            sa.Column("barcode", sa.String(60), nullable=True),
            sa.Column("pix_key", sa.String(100), nullable=True),
        ],
        ("category", "purchase_order_id"),
    )

    # Caja
    op.create_table(
        "tills",
        *base_columns(branch=True),
        sa.Column("name", sa.String(100), nullable=False),
        uuid("bank_account_id", sa.ForeignKey("bank_accounts.id"), nullable=True),
        money("withdrawal_limit", nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    base_indexes("tills", branch=True)

    op.create_table(
        "cash_sessions",
        *base_columns(),
        uuid("till_id", sa.ForeignKey("tills.id"), nullable=False),
        uuid("operator_id", nullable=False),
        sa.Column("status", enum("cashsessionstatus"), nullable=False),
        money("opening_amount", default=0),
        sa.Column("opened_at", sa.DateTime(), nullable=False),
        sa.Column("opening_notes", sa.Text(), nullable=True),
        sa.Column("closed_at", sa.DateTime(), nullable=True),
        uuid("closed_by", nullable=True),
        sa.Column("closing_notes", sa.Text(), nullable=True),
        money("system_amount", nullable=True),
        money("informed_amount", nullable=True),
        money("discrepancy", nullable=True),
        sa.Column("system_breakdown", sa.JSON(), nullable=True),
        sa.Column("informed_breakdown", sa.JSON(), nullable=True),
    )
    base_indexes("cash_sessions", extra=("till_id", "operator_id", "status"))
    op.create_index(
        "uq_cash_sessions_open_till", "cash_sessions", ["till_id"],
        unique=True, postgresql_where=sa.text("status = 'OPEN'"),
    )
    op.create_index(
        "uq_cash_sessions_open_operator", "cash_sessions", ["tenant_id", "operator_id"],
        unique=True, postgresql_where=sa.text("status = 'OPEN'"),
    )

    op.create_table(
        "cash_postings",
        *base_columns(),
        uuid("session_id", sa.ForeignKey("cash_sessions.id"), nullable=False),
        sa.Column("kind", enum("cashpostingkind"), nullable=False),
        sa.Column("direction", enum("cashdirection"), nullable=False),
        sa.Column("payment_method", enum("paymentmethod"), nullable=False),
        money("amount"),
        sa.Column("note", sa.Text(), nullable=True),
        uuid("reference_id", nullable=True),
        uuid("destination_bank_account_id", sa.ForeignKey("bank_accounts.id"), nullable=True),
        uuid("created_by", nullable=False),
    )
    base_indexes("cash_postings", extra=("session_id",))

    # Existencias
    op.create_table(
        "stock_locations",
        *base_columns(branch=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    base_indexes("stock_locations", branch=True)

    op.create_table(
        "products",
        *base_columns(),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("sku", sa.String(50), nullable=False),
        sa.Column("bar_code", sa.String(50), nullable=True),
        money("cost_price", default=0),
        uuid("category_id", nullable=True),
        uuid("brand_id", nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint("tenant_id", "sku", name="uq_product_tenant_sku"),
    )
    base_indexes("products", extra=("category_id", "brand_id"))

    op.create_table(
        "stocks",
        *base_columns(),
        uuid("product_id", sa.ForeignKey("products.id"), nullable=False),
        uuid("location_id", sa.ForeignKey("stock_locations.id"), nullable=False),
        sa.Column("quantity", sa.Numeric(15, 3), nullable=False, server_default=sa.text("0")),
        money("average_cost", nullable=True),
        sa.UniqueConstraint("tenant_id", "product_id", "location_id", name="uq_stock_tenant_product_location"),
    )
    base_indexes("stocks")

    op.create_table(
        "stock_movements",
        *base_columns(),
        uuid("product_id", sa.ForeignKey("products.id"), nullable=False),
        uuid("location_id", sa.ForeignKey("stock_locations.id"), nullable=False),
        sa.Column("movement_type", enum("stockmovementtype"), nullable=False),
        sa.Column("reason", enum("stockmovementreason"), nullable=False),
        sa.Column("quantity", sa.Numeric(15, 3), nullable=False),
        money("unit_cost", nullable=True),
        sa.Column("previous_quantity", sa.Numeric(15, 3), nullable=False),
        sa.Column("new_quantity", sa.Numeric(15, 3), nullable=False),
        sa.Column("origin_type", sa.String(40), nullable=True),
        uuid("origin_id", nullable=True),
        sa.Column("notes", sa.String(255), nullable=True),
        uuid("created_by", nullable=False),
    )
    base_indexes("stock_movements", extra=("product_id", "location_id"))
    op.create_index("ix_stock_movements_origin", "stock_movements", ["origin_type", "origin_id"])

    # Conteo de inventario
    op.create_table(
        "inventory_counts",
        *base_columns(branch=True),
        sa.Column("number", sa.String(30), nullable=False),
        uuid("location_id", sa.ForeignKey("stock_locations.id"), nullable=False),
        sa.Column("count_type", enum("inventorycounttype"), nullable=False),
        sa.Column("status", enum("inventorycountstatus"), nullable=False),
        uuid("responsible_id", nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("finalized_at", sa.DateTime(), nullable=True),
        sa.Column("adjusted_at", sa.DateTime(), nullable=True),
        uuid("adjusted_by", nullable=True),
        sa.Column("canceled_at", sa.DateTime(), nullable=True),
        sa.Column("cancel_reason", sa.Text(), nullable=True),
        uuid("created_by", nullable=False),
        sa.UniqueConstraint("tenant_id", "number", name="uq_inventory_count_tenant_number"),
    )
    base_indexes("inventory_counts", branch=True, extra=("number", "location_id", "status"))
    op.create_index(
        "uq_inventory_counts_active_location", "inventory_counts", ["location_id"],
        unique=True, postgresql_where=sa.text("status IN ('DRAFT', 'COUNTING')"),
    )

    op.create_table(
        "inventory_count_lines",
        *base_columns(),
        uuid("count_id", sa.ForeignKey("inventory_counts.id"), nullable=False),
        uuid("product_id", sa.ForeignKey("products.id"), nullable=False),
        sa.Column("product_name", sa.String(100), nullable=False),
        sa.Column("sku", sa.String(50), nullable=False),
        sa.Column("system_quantity", sa.Numeric(15, 3), nullable=False),
        money("unit_cost", default=0),
        sa.Column("counted_quantity", sa.Numeric(15, 3), nullable=True),
        sa.Column("lot", sa.String(50), nullable=True),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("note", sa.String(255), nullable=True),
        sa.Column("counted_at", sa.DateTime(), nullable=True),
        uuid("counted_by", nullable=True),
        sa.Column("adjusted", sa.Boolean(), nullable=False, server_default=sa.false()),
        uuid("movement_id", sa.ForeignKey("stock_movements.id"), nullable=True),
        sa.UniqueConstraint("count_id", "product_id", name="uq_inventory_count_line_product"),
    )
    base_indexes("inventory_count_lines", extra=("count_id",))


def downgrade():
    for table in (
        "inventory_count_lines", "inventory_counts", "stock_movements", "stocks", "products",
        "stock_locations", "cash_postings", "cash_sessions", "tills",
        "payable_posting_methods", "payable_postings", "payables",
        "receivable_posting_methods", "receivable_postings", "receivables",
        "bank_ledger_entries", "bank_accounts", "document_sequences", "audit_logs",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for name in ENUMS:
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)
