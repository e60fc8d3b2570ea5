from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from models import (
    PaymentMethod,
    RecurrenceType,
    RecurrenceUnit,
    TransactionSource,
    TransactionType,
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TransactionCreate(_CamelModel):
    amount_cents: int
    type: TransactionType = TransactionType.expense
    date: Optional[datetime] = None
    description: Optional[str] = Field(default=None, max_length=500)
    merchant: Optional[str] = Field(default=None, max_length=200)
    source: TransactionSource = TransactionSource.manual
    category_id: Optional[str] = None
    account_id: Optional[str] = None
    credit_card_id: Optional[str] = None
    to_bank_account_id: Optional[str] = None
    is_recurring: bool = False
    recurrence_type: Optional[RecurrenceType] = None
    recurrence_interval: Optional[int] = Field(default=None, ge=1)
    recurrence_unit: Optional[RecurrenceUnit] = None


class TransactionUpdate(_CamelModel):
    amount_cents: Optional[int] = None
    type: Optional[TransactionType] = None
    date: Optional[datetime] = None
    description: Optional[str] = Field(default=None, max_length=500)
    merchant: Optional[str] = Field(default=None, max_length=200)
    category_id: Optional[str] = None
    account_id: Optional[str] = None
    credit_card_id: Optional[str] = None
    to_bank_account_id: Optional[str] = None
    is_recurring: Optional[bool] = None
    recurrence_type: Optional[RecurrenceType] = None
    recurrence_interval: Optional[int] = Field(default=None, ge=1)
    recurrence_unit: Optional[RecurrenceUnit] = None


class TransactionOut(_CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )

    id: str
    user_id: str
    amount_cents: int
    type: TransactionType
    date: datetime
    description: Optional[str]
    merchant: Optional[str]
    source: TransactionSource
    category_id: Optional[str]
    account_id: Optional[str]
    credit_card_id: Optional[str]
    to_bank_account_id: Optional[str]
    is_recurring: bool
    recurrence_type: Optional[RecurrenceType]
    recurrence_interval: Optional[int]
    recurrence_unit: Optional[RecurrenceUnit]
    next_run_date: Optional[datetime]
    last_run_date: Optional[datetime]
    parent_id: Optional[str]


class ParsedKind(str, Enum):
    gold = "GOLD"
    stock = "STOCK"
    bond = "BOND"
    expense = "EXPENSE"
    income = "INCOME"
    bank_deposit = "BANK_DEPOSIT"


class ParsedTransaction(_CamelModel):
    """Structured output of the AI text/SMS parser."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    kind: ParsedKind = Field(default=ParsedKind.expense, alias="type")
    amount: Decimal
    currency: Optional[str] = None
    date: Optional[datetime] = None
    merchant: Optional[str] = Field(default=None, max_length=200)
    category: Optional[str] = Field(default=None, max_length=100)
    account_id: Optional[str] = None
    credit_card_id: Optional[str] = None


class ExpenseCreate(_CamelModel):
    amount_cents: int
    date: Optional[datetime] = None
    category: str = Field(default="General", min_length=1, max_length=100)
    merchant: Optional[str] = Field(default=None, max_length=200)
    notes: Optional[str] = None
    payment_method: PaymentMethod = PaymentMethod.cash
    account_id: Optional[str] = None
    credit_card_id: Optional[str] = None
    to_bank_account_id: Optional[str] = None
    source: str = Field(default="manual", max_length=40)
    is_recurring: bool = False
    recurrence_type: Optional[RecurrenceType] = None
    recurrence_interval: Optional[int] = Field(default=None, ge=1)
    recurrence_unit: Optional[RecurrenceUnit] = None


class ExpenseUpdate(_CamelModel):
    amount_cents: Optional[int] = None
    date: Optional[datetime] = None
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    merchant: Optional[str] = Field(default=None, max_length=200)
    notes: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    account_id: Optional[str] = None
    credit_card_id: Optional[str] = None
    to_bank_account_id: Optional[str] = None
    is_recurring: Optional[bool] = None
    recurrence_type: Optional[RecurrenceType] = None
    recurrence_interval: Optional[int] = Field(default=None, ge=1)
    recurrence_unit: Optional[RecurrenceUnit] = None


class ExpenseOut(_CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )

    id: str
    user_id: str
    transaction_id: Optional[str]
    amount_cents: int
    date: datetime
    category: str
    merchant: Optional[str]
    notes: Optional[str]
    payment_method: PaymentMethod
    account_id: Optional[str]
    credit_card_id: Optional[str]
    to_bank_account_id: Optional[str]
    source: str
    is_recurring: bool
    recurrence_type: Optional[RecurrenceType]
    recurrence_interval: Optional[int]
    recurrence_unit: Optional[RecurrenceUnit]
    next_run_date: Optional[datetime]
    last_run_date: Optional[datetime]
    parent_id: Optional[str]


class SummaryOut(_CamelModel):
    income: int
    expense: int
    net: int


class CategorySliceOut(_CamelModel):
    name: str
    value: int
    percent: float


class RecentItemOut(_CamelModel):
    id: str
    kind: str
    type: TransactionType
    amount_cents: int
    description: Optional[str]
    merchant: Optional[str]
    date: datetime
    category: str


class TrendPointOut(_CamelModel):
    label: str
    date: datetime
    net: int


class DashboardOut(_CamelModel):
    period: str
    from_date: datetime
    to_date: datetime
    summary: SummaryOut
    category_breakdown: list[CategorySliceOut]
    recent: list[RecentItemOut]
    trend: list[TrendPointOut]


class ReportPreset(str, Enum):
    today = "today"
    this_week = "this_week"
    this_month = "this_month"
    last_3_months = "last_3_months"
    last_6_months = "last_6_months"
    last_12_months = "last_12_months"


class ExpenseReportFilter(_CamelModel):
    date_preset: Optional[ReportPreset] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    categories: list[str] = Field(default_factory=list)
    payment_methods: list[PaymentMethod] = Field(default_factory=list)
    account_ids: list[str] = Field(default_factory=list)
    credit_card_ids: list[str] = Field(default_factory=list)


class MonthTotalOut(_CamelModel):
    month: str
    amount: int


class ExpenseInsightsOut(_CamelModel):
    total: int
    count: int
    by_category: dict[str, int]
    by_payment_method: dict[str, int]
    monthly_trend: list[MonthTotalOut]


class DateRangeOut(_CamelModel):
    from_date: datetime = Field(alias="from")
    to_date: datetime = Field(alias="to")


class ReportSummaryOut(_CamelModel):
    total: int
    count: int
    by_category: dict[str, int]
    by_payment_method: dict[str, int]
    date_range: DateRangeOut


class ExpenseReportOut(_CamelModel):
    expenses: list[ExpenseOut]
    summary: ReportSummaryOut
