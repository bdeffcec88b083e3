"""initial schema

Revision ID: 202610190000
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610190000"
down_revision = None
branch_labels = None
depends_on = None

BANK_TYPES = ("debit", "credit")
RULE_CONDITIONS = (
    "contains",
    "startsWith",
    "endsWith",
    "equals",
    "merchantContains",
    "merchantStartsWith",
    "merchantEndsWith",
    "merchantEquals",
)


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "banks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("email_filter", sa.String(length=200), nullable=False),
        sa.Column("statement_day", sa.Integer(), nullable=False),
        sa.Column("due_day", sa.Integer()),
        sa.Column(
            "bank_type", sa.Enum(*BANK_TYPES, name="banktype"), nullable=False
        ),
        sa.Column("color", sa.String(length=9), nullable=False),
        sa.Column(
            "parser_type",
            sa.String(length=40),
            nullable=False,
            server_default="generic",
        ),
        *_timestamps(),
        sa.CheckConstraint(
            "statement_day BETWEEN 1 AND 31", name="ck_banks_statement_day_range"
        ),
        sa.CheckConstraint(
            "due_day IS NULL OR due_day BETWEEN 1 AND 31",
            name="ck_banks_due_day_range",
        ),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "bank_id",
            sa.Integer(),
            sa.ForeignKey("banks.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("email_id", sa.String(length=255), unique=True),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="IDR"),
        sa.Column("idr_amount", sa.Float()),
        sa.Column("merchant", sa.String(length=200), nullable=False),
        sa.Column(
            "category",
            sa.String(length=100),
            nullable=False,
            server_default="Uncategorized",
        ),
        sa.Column("date", sa.DateTime(), nullable=False),
        sa.Column("installment_terms", sa.Integer()),
        sa.Column("raw_content", sa.Text()),
        *_timestamps(),
        sa.CheckConstraint(
            "installment_terms IS NULL OR installment_terms IN (3, 6, 12, 24)",
            name="ck_transactions_installment_terms",
        ),
    )
    op.create_index("ix_transactions_bank_date", "transactions", ["bank_id", "date"])
    op.create_index(
        "ix_transactions_bank_terms", "transactions", ["bank_id", "installment_terms"]
    )

    op.create_table(
        "rules",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "condition", sa.Enum(*RULE_CONDITIONS, name="rulecondition"), nullable=False
        ),
        sa.Column("condition_value", sa.String(length=200), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("bank_type", sa.Enum(*BANK_TYPES, name="banktype")),
        *_timestamps(),
    )
    op.create_index("ix_rules_priority", "rules", ["priority", "id"])

    op.create_table(
        "settings",
        sa.Column("key", sa.String(length=100), primary_key=True),
        sa.Column("value", sa.Text(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False, unique=True),
        sa.Column("color", sa.String(length=9), nullable=False, server_default="#6B7280"),
        *_timestamps(),
    )

    op.create_table(
        "sync_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "bank_id",
            sa.Integer(),
            sa.ForeignKey("banks.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("synced_at", sa.DateTime(), nullable=False),
        sa.Column("email_count", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_sync_logs_bank_synced", "sync_logs", ["bank_id", "synced_at"])


def downgrade():
    op.drop_index("ix_sync_logs_bank_synced", table_name="sync_logs")
    op.drop_table("sync_logs")
    op.drop_table("categories")
    op.drop_table("settings")
    op.drop_index("ix_rules_priority", table_name="rules")
    op.drop_table("rules")
    op.drop_index("ix_transactions_bank_terms", table_name="transactions")
    op.drop_index("ix_transactions_bank_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("banks")
