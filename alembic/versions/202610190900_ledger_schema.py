"""ledger schema: accounts, cards, categories, transactions, expenses

Revision ID: 202610190900
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610190900"
down_revision = None
branch_labels = None
depends_on = None


TRANSACTION_TYPE = sa.Enum("INCOME", "EXPENSE", name="transactiontype")
RECURRENCE_TYPE = sa.Enum("DAILY", "WEEKLY", "MONTHLY", "CUSTOM", name="recurrencetype")
RECURRENCE_UNIT = sa.Enum("DAYS", "WEEKS", "MONTHS", "YEARS", name="recurrenceunit")


def _recurrence_columns():
    return [
        sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("recurrence_type", RECURRENCE_TYPE),
        sa.Column("recurrence_interval", sa.Integer()),
        sa.Column("recurrence_unit", RECURRENCE_UNIT),
        sa.Column("next_run_date", sa.DateTime()),
        sa.Column("last_run_date", sa.DateTime()),
    ]


def _recurrence_checks(table: str, prefix: str):
    return [
        sa.CheckConstraint(
            "recurrence_interval IS NULL OR recurrence_interval >= 1",
            name=f"ck_{table}_{prefix}_interval_positive",
        ),
        sa.CheckConstraint(
            "(is_recurring AND next_run_date IS NOT NULL) OR "
            "(NOT is_recurring AND next_run_date IS NULL AND last_run_date IS NULL)",
            name=f"ck_{table}_{prefix}_recurrence_dates",
        ),
    ]


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "bank_accounts",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("bank_name", sa.String(length=120)),
        sa.Column(
            "kind",
            sa.Enum("BANK", "WALLET", "CREDIT_CARD", name="accountkind"),
            nullable=False,
        ),
        sa.Column("balance_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="AED"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint(
            "kind != 'CREDIT_CARD'", name="ck_bank_accounts_bank_account_kind"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_bank_accounts"),
    )
    op.create_index("ix_bank_accounts_user", "bank_accounts", ["user_id"])

    op.create_table(
        "credit_cards",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("issuer", sa.String(length=120)),
        sa.Column(
            "credit_limit_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column(
            "used_amount_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="AED"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_credit_cards"),
    )
    op.create_index("ix_credit_cards_user", "credit_cards", ["user_id"])

    op.create_table(
        "categories",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("type", TRANSACTION_TYPE, nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_categories"),
        sa.UniqueConstraint(
            "user_id", "type", "name", name="uq_category_user_type_name"
        ),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("type", TRANSACTION_TYPE, nullable=False),
        sa.Column("date", sa.DateTime(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("merchant", sa.String(length=200)),
        sa.Column(
            "source",
            sa.Enum(
                "MANUAL",
                "AI",
                "AUTO_RECURRING",
                "SMS",
                "RECEIPT",
                name="transactionsource",
            ),
            nullable=False,
        ),
        sa.Column("category_id", sa.String(length=36)),
        sa.Column("account_id", sa.String(length=36)),
        sa.Column("credit_card_id", sa.String(length=36)),
        sa.Column("to_bank_account_id", sa.String(length=36)),
        *_recurrence_columns(),
        sa.Column("parent_id", sa.String(length=36)),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_transactions"),
        sa.ForeignKeyConstraint(
            ["category_id"],
            ["categories.id"],
            name="fk_transactions_category_id_categories",
        ),
        sa.ForeignKeyConstraint(
            ["account_id"],
            ["bank_accounts.id"],
            name="fk_transactions_account_id_bank_accounts",
        ),
        sa.ForeignKeyConstraint(
            ["credit_card_id"],
            ["credit_cards.id"],
            name="fk_transactions_credit_card_id_credit_cards",
        ),
        sa.ForeignKeyConstraint(
            ["to_bank_account_id"],
            ["bank_accounts.id"],
            name="fk_transactions_to_bank_account_id_bank_accounts",
        ),
        sa.ForeignKeyConstraint(
            ["parent_id"],
            ["transactions.id"],
            name="fk_transactions_parent_id_transactions",
        ),
        sa.CheckConstraint(
            "amount_cents > 0", name="ck_transactions_transaction_amount_positive"
        ),
        *_recurrence_checks("transactions", "transaction"),
    )
    op.create_index("ix_transactions_user_date", "transactions", ["user_id", "date"])
    op.create_index(
        "ix_transactions_user_type_date", "transactions", ["user_id", "type", "date"]
    )
    op.create_index(
        "ix_transactions_recurring_due",
        "transactions",
        ["is_recurring", "next_run_date"],
    )

    op.create_table(
        "expenses",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("transaction_id", sa.String(length=36)),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("date", sa.DateTime(), nullable=False),
        sa.Column(
            "category", sa.String(length=100), nullable=False, server_default="General"
        ),
        sa.Column("merchant", sa.String(length=200)),
        sa.Column("notes", sa.Text()),
        sa.Column(
            "payment_method",
            sa.Enum("cash", "debit_card", "credit_card", "bank", name="paymentmethod"),
            nullable=False,
        ),
        sa.Column("account_id", sa.String(length=36)),
        sa.Column("credit_card_id", sa.String(length=36)),
        sa.Column("to_bank_account_id", sa.String(length=36)),
        sa.Column("source", sa.String(length=40), nullable=False, server_default="manual"),
        *_recurrence_columns(),
        sa.Column("parent_id", sa.String(length=36)),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_expenses"),
        sa.UniqueConstraint("transaction_id", name="uq_expenses_transaction_id"),
        sa.ForeignKeyConstraint(
            ["transaction_id"],
            ["transactions.id"],
            name="fk_expenses_transaction_id_transactions",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["account_id"],
            ["bank_accounts.id"],
            name="fk_expenses_account_id_bank_accounts",
        ),
        sa.ForeignKeyConstraint(
            ["credit_card_id"],
            ["credit_cards.id"],
            name="fk_expenses_credit_card_id_credit_cards",
        ),
        sa.ForeignKeyConstraint(
            ["to_bank_account_id"],
            ["bank_accounts.id"],
            name="fk_expenses_to_bank_account_id_bank_accounts",
        ),
        sa.ForeignKeyConstraint(
            ["parent_id"], ["expenses.id"], name="fk_expenses_parent_id_expenses"
        ),
        sa.CheckConstraint("amount_cents > 0", name="ck_expenses_expense_amount_positive"),
        sa.CheckConstraint(
            "transaction_id IS NULL OR NOT is_recurring",
            name="ck_expenses_expense_mirror_not_recurring",
        ),
        *_recurrence_checks("expenses", "expense"),
    )
    op.create_index("ix_expenses_user_date", "expenses", ["user_id", "date"])
    op.create_index(
        "ix_expenses_recurring_due", "expenses", ["is_recurring", "next_run_date"]
    )


def downgrade():
    op.drop_index("ix_expenses_recurring_due", table_name="expenses")
    op.drop_index("ix_expenses_user_date", table_name="expenses")
    op.drop_table("expenses")
    op.drop_index("ix_transactions_recurring_due", table_name="transactions")
    op.drop_index("ix_transactions_user_type_date", table_name="transactions")
    op.drop_index("ix_transactions_user_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("categories")
    op.drop_index("ix_credit_cards_user", table_name="credit_cards")
    op.drop_table("credit_cards")
    op.drop_index("ix_bank_accounts_user", table_name="bank_accounts")
    op.drop_table("bank_accounts")
