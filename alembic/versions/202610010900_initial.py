"""initial wallet schema

Revision ID: 202610010900
Revises:
Create Date: 2026-10-01 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610010900"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column(
            "type",
            sa.Enum(
                "bank",
                "wallet",
                "cash",
                "card",
                "other",
                name="accounttype",
                create_constraint=True,
            ),
            nullable=False,
        ),
        sa.Column("currency_default", sa.String(length=3), nullable=False),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("amount_native_cents", sa.Integer(), nullable=False),
        sa.Column("currency_native", sa.String(length=3), nullable=False),
        sa.Column("amount_base_cents", sa.Integer()),
        sa.Column("currency_base", sa.String(length=3)),
        sa.Column("fx_rate_micros", sa.Integer()),
        sa.Column(
            "direction",
            sa.Enum("in", "out", name="transactiondirection", create_constraint=True),
            nullable=False,
        ),
        sa.Column("description_raw", sa.Text()),
        sa.Column("description_clean", sa.Text()),
        sa.Column("category", sa.String(length=100)),
        sa.Column("category_confidence", sa.Float()),
        sa.Column("account_id", sa.Integer(), sa.ForeignKey("accounts.id")),
        sa.Column("txn_datetime", sa.DateTime(), nullable=False),
        sa.Column("ingested_at", sa.DateTime(), nullable=False),
        sa.Column(
            "source",
            sa.Enum(
                "sms",
                "email",
                "push",
                "manual",
                name="transactionsource",
                create_constraint=True,
            ),
            nullable=False,
        ),
        sa.Column("source_meta", sa.Text()),
        sa.Column("dedupe_hash", sa.String(length=128), unique=True),
        sa.Column("parser_version", sa.String(length=20)),
        sa.Column(
            "is_transfer", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("is_refund", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("edited", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("notes", sa.Text()),
        sa.CheckConstraint(
            "amount_native_cents > 0", name="ck_transactions_amount_positive"
        ),
    )
    op.create_index(
        "ix_transactions_txn_datetime", "transactions", ["txn_datetime"]
    )
    op.create_index("ix_transactions_category", "transactions", ["category"])

    op.create_table(
        "rules",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("pattern", sa.String(length=200), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="100"),
    )

    op.create_table(
        "fx_rates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("base", sa.String(length=3), nullable=False),
        sa.Column("quote", sa.String(length=3), nullable=False),
        sa.Column("rate_micros", sa.Integer(), nullable=False),
    )

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False, unique=True),
    )


def downgrade():
    op.drop_table("categories")
    op.drop_table("fx_rates")
    op.drop_table("rules")
    op.drop_index("ix_transactions_category", table_name="transactions")
    op.drop_index("ix_transactions_txn_datetime", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("accounts")
