"""Create categories, accounts, cards, transactions, recurring transactions and assets"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261019_create_smart_import_tables"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not inspector.has_table("categories"):
        op.create_table(
            "categories",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("type", sa.String(), nullable=False),
            sa.Column("color", sa.String(), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id", "name", "type", name="uq_categories_user_name_type"),
        )
        op.create_index("ix_categories_id", "categories", ["id"], unique=False)
        op.create_index("ix_categories_user_id", "categories", ["user_id"], unique=False)

    if not inspector.has_table("accounts"):
        op.create_table(
            "accounts",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("account_type", sa.String(), nullable=False),
            sa.Column("balance", sa.Numeric(12, 2), nullable=True),
            sa.Column("currency", sa.String(), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_accounts_id", "accounts", ["id"], unique=False)
        op.create_index("ix_accounts_user_id", "accounts", ["user_id"], unique=False)

    if not inspector.has_table("credit_cards"):
        op.create_table(
            "credit_cards",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("last_four_digits", sa.String(length=4), nullable=True),
            sa.Column("credit_limit", sa.Float(), nullable=True),
            sa.Column("closing_day", sa.Integer(), nullable=True),
            sa.Column("due_day", sa.Integer(), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_credit_cards_user_id", "credit_cards", ["user_id"], unique=False)
        op.create_index("ix_credit_cards_user_last_four", "credit_cards", ["user_id", "last_four_digits"], unique=False)

    if not inspector.has_table("transactions"):
        op.create_table(
            "transactions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("account_id", sa.Integer(), nullable=True),
            sa.Column("card_id", sa.Integer(), nullable=True),
            sa.Column("amount", sa.Float(), nullable=False),
            sa.Column("transaction_type", sa.String(), nullable=False),
            sa.Column("category_id", sa.Integer(), nullable=True),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("transaction_date", sa.Date(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="confirmado"),
            sa.Column("notes", sa.Text(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["account_id"], ["accounts.id"]),
            sa.ForeignKeyConstraint(["card_id"], ["credit_cards.id"]),
            sa.ForeignKeyConstraint(["category_id"], ["categories.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_transactions_id", "transactions", ["id"], unique=False)
        op.create_index("ix_transactions_user_date", "transactions", ["user_id", "transaction_date"], unique=False)
        op.create_index("ix_transactions_user_category", "transactions", ["user_id", "category_id"], unique=False)

    if not inspector.has_table("recurring_transactions"):
        op.create_table(
            "recurring_transactions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("account_id", sa.Integer(), nullable=True),
            sa.Column("card_id", sa.Integer(), nullable=True),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("amount", sa.Float(), nullable=False),
            sa.Column("transaction_type", sa.String(), nullable=False),
            sa.Column("category_id", sa.Integer(), nullable=True),
            sa.Column("day_of_month", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("start_date", sa.Date(), nullable=False),
            sa.Column("end_date", sa.Date(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            *_timestamps(),
            sa.ForeignKeyConstraint(["account_id"], ["accounts.id"]),
            sa.ForeignKeyConstraint(["card_id"], ["credit_cards.id"]),
            sa.ForeignKeyConstraint(["category_id"], ["categories.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_recurring_transactions_id", "recurring_transactions", ["id"], unique=False)
        op.create_index(
            "ix_recurring_transactions_user_active", "recurring_transactions", ["user_id", "active"], unique=False
        )

    if not inspector.has_table("assets"):
        op.create_table(
            "assets",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("category", sa.String(length=30), nullable=False, server_default="outros"),
            sa.Column("subcategory", sa.String(), nullable=True),
            sa.Column("current_value", sa.Float(), nullable=False),
            sa.Column("acquisition_value", sa.Float(), nullable=True),
            sa.Column("acquisition_date", sa.Date(), nullable=True),
            sa.Column("institution", sa.String(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_assets_id", "assets", ["id"], unique=False)
        op.create_index("ix_assets_user_category", "assets", ["user_id", "category"], unique=False)


def downgrade() -> None:
    for table in ("assets", "recurring_transactions", "transactions", "credit_cards", "accounts", "categories"):
        op.drop_table(table)
