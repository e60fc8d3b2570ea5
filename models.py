import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def _values_enum(enum_cls: type[Enum], name: str) -> SAEnum:
    return SAEnum(
        enum_cls,
        name=name,
        values_callable=lambda cls: [member.value for member in cls],
    )


class TransactionType(str, Enum):
    income = "INCOME"
    expense = "EXPENSE"


class TransactionSource(str, Enum):
    manual = "MANUAL"
    ai = "AI"
    auto_recurring = "AUTO_RECURRING"
    sms = "SMS"
    receipt = "RECEIPT"


class RecurrenceType(str, Enum):
    daily = "DAILY"
    weekly = "WEEKLY"
    monthly = "MONTHLY"
    custom = "CUSTOM"


class RecurrenceUnit(str, Enum):
    days = "DAYS"
    weeks = "WEEKS"
    months = "MONTHS"
    years = "YEARS"


class AccountKind(str, Enum):
    bank = "BANK"
    wallet = "WALLET"
    credit_card = "CREDIT_CARD"


class PaymentMethod(str, Enum):
    cash = "cash"
    debit_card = "debit_card"
    credit_card = "credit_card"
    bank = "bank"


TRANSACTION_TYPE_ENUM = _values_enum(TransactionType, "transactiontype")
TRANSACTION_SOURCE_ENUM = _values_enum(TransactionSource, "transactionsource")
RECURRENCE_TYPE_ENUM = _values_enum(RecurrenceType, "recurrencetype")
RECURRENCE_UNIT_ENUM = _values_enum(RecurrenceUnit, "recurrenceunit")
ACCOUNT_KIND_ENUM = _values_enum(AccountKind, "accountkind")
PAYMENT_METHOD_ENUM = _values_enum(PaymentMethod, "paymentmethod")


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class RecurrenceMixin:
    is_recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    recurrence_type: Mapped[Optional[RecurrenceType]] = mapped_column(
        RECURRENCE_TYPE_ENUM
    )
    recurrence_interval: Mapped[Optional[int]] = mapped_column(Integer)
    recurrence_unit: Mapped[Optional[RecurrenceUnit]] = mapped_column(
        RECURRENCE_UNIT_ENUM
    )
    next_run_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    last_run_date: Mapped[Optional[datetime]] = mapped_column(DateTime)


def _recurrence_constraints(prefix: str) -> tuple:
    return (
        CheckConstraint(
            "recurrence_interval IS NULL OR recurrence_interval >= 1",
            name=f"{prefix}_interval_positive",
        ),
        CheckConstraint(
            "(is_recurring AND next_run_date IS NOT NULL) OR "
            "(NOT is_recurring AND next_run_date IS NULL AND last_run_date IS NULL)",
            name=f"{prefix}_recurrence_dates",
        ),
    )


class BankAccount(Base, TimestampMixin):
    __tablename__ = "bank_accounts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    bank_name: Mapped[Optional[str]] = mapped_column(String(120))
    kind: Mapped[AccountKind] = mapped_column(
        ACCOUNT_KIND_ENUM, nullable=False, default=AccountKind.bank
    )
    balance_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="AED")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("kind != 'CREDIT_CARD'", name="bank_account_kind"),
        Index("ix_bank_accounts_user", "user_id"),
    )


class CreditCard(Base, TimestampMixin):
    __tablename__ = "credit_cards"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    issuer: Mapped[Optional[str]] = mapped_column(String(120))
    credit_limit_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    used_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="AED")

    __table_args__ = (Index("ix_credit_cards_user", "user_id"),)

    @property
    def kind(self) -> AccountKind:
        return AccountKind.credit_card

    @property
    def available_cents(self) -> int:
        return self.credit_limit_cents - self.used_amount_cents


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        TRANSACTION_TYPE_ENUM, nullable=False
    )

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="category"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "type", "name", name="uq_category_user_type_name"),
    )


class Transaction(Base, TimestampMixin, RecurrenceMixin):
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        TRANSACTION_TYPE_ENUM, nullable=False, default=TransactionType.expense
    )
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    merchant: Mapped[Optional[str]] = mapped_column(String(200))
    source: Mapped[TransactionSource] = mapped_column(
        TRANSACTION_SOURCE_ENUM, nullable=False, default=TransactionSource.manual
    )
    category_id: Mapped[Optional[str]] = mapped_column(ForeignKey("categories.id"))
    account_id: Mapped[Optional[str]] = mapped_column(ForeignKey("bank_accounts.id"))
    credit_card_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("credit_cards.id")
    )
    to_bank_account_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("bank_accounts.id")
    )
    parent_id: Mapped[Optional[str]] = mapped_column(ForeignKey("transactions.id"))

    category: Mapped[Optional["Category"]] = relationship(
        "Category", back_populates="transactions"
    )
    mirror: Mapped[Optional["Expense"]] = relationship(
        "Expense",
        back_populates="transaction",
        uselist=False,
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_transactions_user_date", "user_id", "date"),
        Index("ix_transactions_user_type_date", "user_id", "type", "date"),
        Index("ix_transactions_recurring_due", "is_recurring", "next_run_date"),
        CheckConstraint("amount_cents > 0", name="transaction_amount_positive"),
        *_recurrence_constraints("transaction"),
    )


class Expense(Base, TimestampMixin, RecurrenceMixin):
    __tablename__ = "expenses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    transaction_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("transactions.id", ondelete="CASCADE"), unique=True
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False, default="General")
    merchant: Mapped[Optional[str]] = mapped_column(String(200))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    payment_method: Mapped[PaymentMethod] = mapped_column(
        PAYMENT_METHOD_ENUM, nullable=False, default=PaymentMethod.cash
    )
    account_id: Mapped[Optional[str]] = mapped_column(ForeignKey("bank_accounts.id"))
    credit_card_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("credit_cards.id")
    )
    to_bank_account_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("bank_accounts.id")
    )
    source: Mapped[str] = mapped_column(String(40), nullable=False, default="manual")
    parent_id: Mapped[Optional[str]] = mapped_column(ForeignKey("expenses.id"))

    transaction: Mapped[Optional["Transaction"]] = relationship(
        "Transaction", back_populates="mirror"
    )

    __table_args__ = (
        Index("ix_expenses_user_date", "user_id", "date"),
        Index("ix_expenses_recurring_due", "is_recurring", "next_run_date"),
        CheckConstraint("amount_cents > 0", name="expense_amount_positive"),
        CheckConstraint(
            "transaction_id IS NULL OR NOT is_recurring",
            name="expense_mirror_not_recurring",
        ),
        *_recurrence_constraints("expense"),
    )
