from __future__ import annotations

import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Optional

from rapidfuzz.distance import Levenshtein
from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session, joinedload

from balances import (
    apply_effect,
    check_references,
    ensure_references,
    effect_for_expense,
    effect_for_transaction,
)
from database import atomic
from errors import NotFoundError, ValidationError
from models import (
    Category,
    Expense,
    PaymentMethod,
    RecurrenceType,
    RecurrenceUnit,
    Transaction,
    TransactionSource,
    TransactionType,
)
from periods import Window, resolve_report_window, resolve_window
from recurrence import add_months, as_local_naive, local_now, next_run_date
from schemas import (
    ExpenseCreate,
    ExpenseReportFilter,
    ExpenseUpdate,
    ParsedKind,
    ParsedTransaction,
    TransactionCreate,
    TransactionUpdate,
)


logger = logging.getLogger(__name__)

DEFAULT_EXPENSE_CATEGORY = "General"
RECURRING_DESCRIPTION = "Recurring Transaction"
RECENT_LIMIT = 5
TREND_POINTS = 7
INSIGHT_MONTHS = 6
RECURRING_EXPENSE_NOTE = "Auto-generated from recurring expense"
RECURRING_EXPENSE_SOURCE = "system_recurrence"
CADENCE_FIELDS = frozenset({"recurrence_type", "recurrence_interval", "recurrence_unit"})
ASSET_KINDS = frozenset({ParsedKind.gold, ParsedKind.stock, ParsedKind.bond})

AssetHandler = Callable[[str, ParsedTransaction], Any]


def to_cents(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _require_positive(amount_cents: Optional[int]) -> None:
    if amount_cents is None or amount_cents <= 0:
        raise ValidationError("Amount must be greater than zero")


def _require_cadence(
    recurrence_type: Optional[RecurrenceType],
    recurrence_unit: Optional[RecurrenceUnit],
) -> None:
    if recurrence_type is None:
        raise ValidationError("Recurring entries need a recurrence type")
    if recurrence_type == RecurrenceType.custom and recurrence_unit is None:
        raise ValidationError("Custom recurrence needs a recurrence unit")


def _start_recurrence(
    row: Any,
    when: datetime,
    recurrence_type: Optional[RecurrenceType],
    interval: Optional[int],
    unit: Optional[RecurrenceUnit],
) -> None:
    _require_cadence(recurrence_type, unit)
    row.is_recurring = True
    row.recurrence_type = recurrence_type
    row.recurrence_interval = interval or 1
    row.recurrence_unit = unit
    row.last_run_date = when
    row.next_run_date = next_run_date(when, recurrence_type, row.recurrence_interval, unit)


def _apply_recurrence_changes(row: Any, changes: dict[str, Any]) -> None:
    """Apply recurrence edits to a transaction or stand-alone expense."""
    for field in CADENCE_FIELDS & changes.keys():
        setattr(row, field, changes[field])

    turn_on = changes.get("is_recurring")
    if turn_on is False:
        row.is_recurring = False
        row.next_run_date = None
        row.last_run_date = None
        return

    if turn_on and not row.is_recurring:
        _start_recurrence(
            row, row.date, row.recurrence_type, row.recurrence_interval, row.recurrence_unit
        )
        return

    touched = bool(CADENCE_FIELDS & changes.keys()) or "date" in changes
    if row.is_recurring and (turn_on or touched):
        _require_cadence(row.recurrence_type, row.recurrence_unit)
        seed = row.date
        if row.last_run_date and row.last_run_date > seed:
            seed = row.last_run_date
        if row.last_run_date is None:
            row.last_run_date = row.date
        row.next_run_date = next_run_date(
            seed, row.recurrence_type, row.recurrence_interval, row.recurrence_unit
        )


def _totals_by(rows: Any) -> dict[str, int]:
    totals: dict[str, int] = {}
    for key, total in rows:
        key = getattr(key, "value", key) or "Uncategorized"
        totals[key] = totals.get(key, 0) + int(total or 0)
    return totals


class CategoryService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def get(self, category_id: str) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise NotFoundError("Category not found")
        return category

    def list_all(self, type: Optional[TransactionType] = None) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.type, Category.name)
        )
        if type is not None:
            stmt = stmt.where(Category.type == type)
        return list(self.session.scalars(stmt).all())

    def create(self, name: str, type: TransactionType) -> Category:
        with atomic(self.session):
            category = self._add(name, type)
        return category

    def resolve(self, name: str, type: TransactionType) -> Category:
        """Find a category by name, tolerating one typo, or create it.

        Flushes only; the caller owns the unit of work.
        """
        cleaned = name.strip()
        if not cleaned:
            raise ValidationError("Category name cannot be empty")
        lowered = cleaned.lower()
        exact = self.session.scalar(
            select(Category).where(
                Category.user_id == self.user_id,
                Category.type == type,
                func.lower(Category.name) == lowered,
            )
        )
        if exact:
            return exact

        candidates = self.session.scalars(
            select(Category).where(
                Category.user_id == self.user_id, Category.type == type
            )
        ).all()
        best_distance: Optional[int] = None
        best: list[Category] = []
        for category in candidates:
            dist = int(Levenshtein.distance(lowered, category.name.strip().lower()))
            if best_distance is None or dist < best_distance:
                best_distance = dist
                best = [category]
            elif dist == best_distance:
                best.append(category)

        if best_distance is not None and best_distance <= 1:
            if len(best) > 1:
                options = ", ".join(sorted({c.name for c in best}))
                raise ValidationError(
                    f"Category '{cleaned}' is ambiguous; matches: {options}"
                )
            return best[0]
        return self._add(cleaned, type)

    def _add(self, name: str, type: TransactionType) -> Category:
        cleaned = name.strip()
        if not cleaned:
            raise ValidationError("Category name cannot be empty")
        exists = self.session.scalar(
            select(Category.id).where(
                Category.user_id == self.user_id,
                Category.type == type,
                Category.name == cleaned,
            )
        )
        if exists:
            raise ValidationError("Category with this name already exists")
        category = Category(user_id=self.user_id, name=cleaned, type=type)
        self.session.add(category)
        self.session.flush()
        return category


class TransactionService:
    def __init__(
        self,
        session: Session,
        user_id: str,
        asset_handlers: Optional[dict[ParsedKind, AssetHandler]] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id
        asset_handlers = dict(asset_handlers or {})
        unknown = set(asset_handlers) - ASSET_KINDS
        if unknown:
            names = ", ".join(sorted(kind.value for kind in unknown))
            raise ValueError(f"Asset handlers only cover GOLD/STOCK/BOND, got {names}")
        self.asset_handlers = asset_handlers

    def get(self, transaction_id: str) -> Transaction:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(
                Transaction.user_id == self.user_id, Transaction.id == transaction_id
            )
        )
        txn = self.session.scalar(stmt)
        if not txn:
            raise NotFoundError("Transaction not found")
        return txn

    def list(self, account_id: Optional[str] = None) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.date.desc(), Transaction.id.desc())
        )
        if account_id:
            stmt = stmt.where(
                or_(
                    Transaction.account_id == account_id,
                    Transaction.to_bank_account_id == account_id,
                )
            )
        return list(self.session.scalars(stmt).all())

    def create(self, data: TransactionCreate) -> Transaction:
        with atomic(self.session):
            txn = self._create(data)
        logger.debug(f"transaction_created: id={txn.id} user={self.user_id}")
        return txn

    def update(self, transaction_id: str, data: TransactionUpdate) -> Transaction:
        changes = data.model_dump(exclude_unset=True)
        with atomic(self.session):
            txn = self.get(transaction_id)
            apply_effect(self.session, self.user_id, effect_for_transaction(txn), -1)

            # No flush until references are checked.
            with self.session.no_autoflush:
                for field in ("amount_cents", "type", "date"):
                    if changes.get(field) is not None:
                        value = changes[field]
                        setattr(
                            txn, field, as_local_naive(value) if field == "date" else value
                        )
                for field in (
                    "description",
                    "merchant",
                    "category_id",
                    "account_id",
                    "credit_card_id",
                    "to_bank_account_id",
                ):
                    if field in changes:
                        setattr(txn, field, changes[field])

                _require_positive(txn.amount_cents)
                check_references(
                    txn.account_id, txn.credit_card_id, txn.to_bank_account_id
                )
                ensure_references(
                    self.session,
                    self.user_id,
                    txn.account_id,
                    txn.credit_card_id,
                    txn.to_bank_account_id,
                )
                if txn.category_id and "category_id" in changes:
                    CategoryService(self.session, self.user_id).get(txn.category_id)
                _apply_recurrence_changes(txn, changes)

            self.session.flush()
            apply_effect(self.session, self.user_id, effect_for_transaction(txn), 1)
            self._sync_mirror(txn)
            self.session.flush()
        logger.debug(f"transaction_updated: id={transaction_id} user={self.user_id}")
        return txn

    def remove(self, transaction_id: str) -> None:
        with atomic(self.session):
            txn = self.get(transaction_id)
            apply_effect(self.session, self.user_id, effect_for_transaction(txn), -1)
            self.session.execute(
                update(Transaction)
                .where(Transaction.parent_id == txn.id)
                .values(parent_id=None)
            )
            # The mirrored expense goes with it (delete-orphan cascade).
            self.session.delete(txn)
        logger.debug(f"transaction_removed: id={transaction_id} user={self.user_id}")

    def materialize(self, parent: Transaction, now: datetime) -> Transaction:
        """One concrete, non-recurring occurrence of ``parent``, dated ``now``."""
        data = TransactionCreate(
            amount_cents=parent.amount_cents,
            type=parent.type,
            date=now,
            description=parent.description or RECURRING_DESCRIPTION,
            merchant=parent.merchant,
            source=TransactionSource.auto_recurring,
            category_id=parent.category_id,
            account_id=parent.account_id,
            credit_card_id=parent.credit_card_id,
            to_bank_account_id=parent.to_bank_account_id,
        )
        return self._create(data, parent_id=parent.id)

    def create_from_parsed(self, parsed: ParsedTransaction) -> Any:
        handlers: dict[ParsedKind, Callable[[ParsedTransaction], Any]] = {
            ParsedKind.expense: self._create_general,
            ParsedKind.income: self._create_general,
            ParsedKind.bank_deposit: self._create_general,
        }
        for kind, handler in self.asset_handlers.items():
            handlers[kind] = lambda payload, handler=handler: handler(
                self.user_id, payload
            )
        handler = handlers.get(parsed.kind)
        if handler is None:
            raise ValidationError(f"No handler registered for {parsed.kind.value}")
        return handler(parsed)

    def _create_general(self, parsed: ParsedTransaction) -> Transaction:
        is_income = parsed.kind in (ParsedKind.income, ParsedKind.bank_deposit)
        txn_type = TransactionType.income if is_income else TransactionType.expense
        label = parsed.merchant or ("Income" if is_income else "Expense")
        with atomic(self.session):
            category_id = None
            if parsed.category:
                category_id = (
                    CategoryService(self.session, self.user_id)
                    .resolve(parsed.category, txn_type)
                    .id
                )
            txn = self._create(
                TransactionCreate(
                    amount_cents=to_cents(parsed.amount),
                    type=txn_type,
                    date=parsed.date,
                    description=f"{label} - from AI",
                    merchant=parsed.merchant,
                    source=TransactionSource.ai,
                    category_id=category_id,
                    account_id=parsed.account_id,
                    credit_card_id=parsed.credit_card_id,
                )
            )
        return txn

    def _create(
        self, data: TransactionCreate, parent_id: Optional[str] = None
    ) -> Transaction:
        _require_positive(data.amount_cents)
        check_references(data.account_id, data.credit_card_id, data.to_bank_account_id)
        ensure_references(
            self.session,
            self.user_id,
            data.account_id,
            data.credit_card_id,
            data.to_bank_account_id,
        )
        if data.category_id:
            CategoryService(self.session, self.user_id).get(data.category_id)

        when = as_local_naive(data.date) if data.date else local_now()
        txn = Transaction(
            user_id=self.user_id,
            amount_cents=data.amount_cents,
            type=data.type,
            date=when,
            description=data.description,
            merchant=data.merchant,
            source=data.source,
            category_id=data.category_id,
            account_id=data.account_id,
            credit_card_id=data.credit_card_id,
            to_bank_account_id=data.to_bank_account_id,
            is_recurring=False,
            parent_id=parent_id,
        )
        if data.is_recurring:
            _start_recurrence(
                txn,
                when,
                data.recurrence_type,
                data.recurrence_interval,
                data.recurrence_unit,
            )

        self.session.add(txn)
        self.session.flush()
        apply_effect(self.session, self.user_id, effect_for_transaction(txn), 1)
        self._sync_mirror(txn)
        self.session.flush()
        return txn

    @staticmethod
    def _needs_mirror(txn: Transaction) -> bool:
        return txn.type == TransactionType.expense and bool(
            txn.account_id or txn.credit_card_id
        )

    @staticmethod
    def _payment_method(txn: Transaction) -> PaymentMethod:
        if txn.credit_card_id and not txn.account_id:
            return PaymentMethod.credit_card
        if txn.to_bank_account_id or txn.credit_card_id:
            return PaymentMethod.bank
        return PaymentMethod.debit_card

    def _sync_mirror(self, txn: Transaction) -> None:
        if not self._needs_mirror(txn):
            if txn.mirror is not None:
                txn.mirror = None
            return

        category_name = DEFAULT_EXPENSE_CATEGORY
        if txn.category_id:
            category_name = CategoryService(self.session, self.user_id).get(
                txn.category_id
            ).name

        mirror = txn.mirror
        if mirror is None:
            mirror = Expense(user_id=self.user_id, source=txn.source.value.lower())
            txn.mirror = mirror
        mirror.amount_cents = txn.amount_cents
        mirror.date = txn.date
        mirror.merchant = txn.merchant
        mirror.notes = txn.description
        mirror.category = category_name
        mirror.payment_method = self._payment_method(txn)
        mirror.account_id = txn.account_id
        mirror.credit_card_id = txn.credit_card_id
        mirror.to_bank_account_id = txn.to_bank_account_id


class ExpenseService:
    """Stand-alone expenses entered without a transaction, plus the
    insight and report views over every expense the user has."""

    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def get(self, expense_id: str) -> Expense:
        expense = self.session.get(Expense, expense_id)
        if not expense or expense.user_id != self.user_id:
            raise NotFoundError("Expense not found")
        return expense

    def list(self) -> list[Expense]:
        stmt = (
            select(Expense)
            .where(Expense.user_id == self.user_id)
            .order_by(Expense.date.desc(), Expense.id.desc())
        )
        return list(self.session.scalars(stmt).all())

    def create(self, data: ExpenseCreate) -> Expense:
        with atomic(self.session):
            expense = self._create(data)
        logger.debug(f"expense_created: id={expense.id} user={self.user_id}")
        return expense

    def update(self, expense_id: str, data: ExpenseUpdate) -> Expense:
        changes = data.model_dump(exclude_unset=True)
        with atomic(self.session):
            expense = self._standalone(expense_id)
            apply_effect(self.session, self.user_id, effect_for_expense(expense), -1)
            with self.session.no_autoflush:
                for field, value in changes.items():
                    if field in CADENCE_FIELDS or field == "is_recurring":
                        continue
                    if value is None and field in (
                        "amount_cents",
                        "date",
                        "category",
                        "payment_method",
                    ):
                        continue
                    if field == "date":
                        value = as_local_naive(value)
                    setattr(expense, field, value)
                _require_positive(expense.amount_cents)
                check_references(
                    expense.account_id, expense.credit_card_id, expense.to_bank_account_id
                )
                ensure_references(
                    self.session,
                    self.user_id,
                    expense.account_id,
                    expense.credit_card_id,
                    expense.to_bank_account_id,
                )
                _apply_recurrence_changes(expense, changes)
            self.session.flush()
            apply_effect(self.session, self.user_id, effect_for_expense(expense), 1)
        logger.debug(f"expense_updated: id={expense_id} user={self.user_id}")
        return expense

    def delete(self, expense_id: str) -> None:
        with atomic(self.session):
            expense = self._standalone(expense_id)
            apply_effect(self.session, self.user_id, effect_for_expense(expense), -1)
            self.session.execute(
                update(Expense)
                .where(Expense.parent_id == expense.id)
                .values(parent_id=None)
            )
            self.session.delete(expense)
        logger.debug(f"expense_deleted: id={expense_id} user={self.user_id}")

    def materialize(self, parent: Expense, now: datetime) -> Expense:
        """One concrete, non-recurring copy of ``parent``, dated ``now``."""
        data = ExpenseCreate(
            amount_cents=parent.amount_cents,
            date=now,
            category=parent.category,
            merchant=parent.merchant,
            notes=RECURRING_EXPENSE_NOTE,
            payment_method=parent.payment_method,
            account_id=parent.account_id,
            credit_card_id=parent.credit_card_id,
            to_bank_account_id=parent.to_bank_account_id,
            source=RECURRING_EXPENSE_SOURCE,
        )
        return self._create(data, parent_id=parent.id)

    def insights(self, *, now: Optional[datetime] = None) -> dict[str, Any]:
        """Totals over all expenses plus spending per month for the last
        six calendar months, oldest first, with empty months as zero."""
        now = now or local_now()
        owned = Expense.user_id == self.user_id
        total, count = self.session.execute(
            select(
                func.coalesce(func.sum(Expense.amount_cents), 0), func.count(Expense.id)
            ).where(owned)
        ).one()

        first_month = add_months(
            now.replace(day=1, hour=0, minute=0, second=0, microsecond=0),
            -(INSIGHT_MONTHS - 1),
        )
        months = {
            add_months(first_month, i).strftime("%b %y"): 0
            for i in range(INSIGHT_MONTHS)
        }
        recent = self.session.execute(
            select(Expense.date, Expense.amount_cents).where(
                owned, Expense.date >= first_month
            )
        ).all()
        for row in recent:
            label = row.date.strftime("%b %y")
            if label in months:
                months[label] += int(row.amount_cents)

        return {
            "total": int(total or 0),
            "count": int(count or 0),
            "by_category": self._group_totals(Expense.category),
            "by_payment_method": self._group_totals(Expense.payment_method),
            "monthly_trend": [
                {"month": label, "amount": amount} for label, amount in months.items()
            ],
        }

    def report(
        self, filters: ExpenseReportFilter, *, now: Optional[datetime] = None
    ) -> dict[str, Any]:
        window = resolve_report_window(
            filters.date_preset, filters.date_from, filters.date_to, now=now or local_now()
        )
        criteria = [Expense.date.between(window.start, window.end)]
        if filters.categories:
            criteria.append(Expense.category.in_(filters.categories))
        if filters.payment_methods:
            criteria.append(Expense.payment_method.in_(filters.payment_methods))
        # An expense matches when it used any listed account or card.
        sources = []
        if filters.account_ids:
            sources.append(Expense.account_id.in_(filters.account_ids))
        if filters.credit_card_ids:
            sources.append(Expense.credit_card_id.in_(filters.credit_card_ids))
        if sources:
            criteria.append(or_(*sources))

        expenses = list(
            self.session.scalars(
                select(Expense)
                .where(Expense.user_id == self.user_id, *criteria)
                .order_by(Expense.date.desc(), Expense.id.desc())
            ).all()
        )
        return {
            "expenses": expenses,
            "summary": {
                "total": sum(expense.amount_cents for expense in expenses),
                "count": len(expenses),
                "by_category": self._group_totals(Expense.category, *criteria),
                "by_payment_method": self._group_totals(
                    Expense.payment_method, *criteria
                ),
                "date_range": {"from_date": window.start, "to_date": window.end},
            },
        }

    def _group_totals(self, column: Any, *criteria: Any) -> dict[str, int]:
        rows = self.session.execute(
            select(column, func.sum(Expense.amount_cents))
            .where(Expense.user_id == self.user_id, *criteria)
            .group_by(column)
        ).all()
        return _totals_by(rows)

    def _create(self, data: ExpenseCreate, parent_id: Optional[str] = None) -> Expense:
        _require_positive(data.amount_cents)
        check_references(data.account_id, data.credit_card_id, data.to_bank_account_id)
        ensure_references(
            self.session,
            self.user_id,
            data.account_id,
            data.credit_card_id,
            data.to_bank_account_id,
        )
        when = as_local_naive(data.date) if data.date else local_now()
        expense = Expense(
            user_id=self.user_id,
            amount_cents=data.amount_cents,
            date=when,
            category=data.category.strip(),
            merchant=data.merchant,
            notes=data.notes,
            payment_method=data.payment_method,
            account_id=data.account_id,
            credit_card_id=data.credit_card_id,
            to_bank_account_id=data.to_bank_account_id,
            source=data.source,
            is_recurring=False,
            parent_id=parent_id,
        )
        if data.is_recurring:
            _start_recurrence(
                expense,
                when,
                data.recurrence_type,
                data.recurrence_interval,
                data.recurrence_unit,
            )
        self.session.add(expense)
        self.session.flush()
        apply_effect(self.session, self.user_id, effect_for_expense(expense), 1)
        return expense

    def _standalone(self, expense_id: str) -> Expense:
        expense = self.get(expense_id)
        if expense.transaction_id is not None:
            raise ValidationError(
                "This expense mirrors a transaction; edit the transaction instead"
            )
        return expense


class DashboardService:
    """Read-only aggregates over a time window. Never writes."""

    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def dashboard(
        self,
        period: Optional[str] = None,
        start_date: Optional[Any] = None,
        end_date: Optional[Any] = None,
        *,
        now: Optional[datetime] = None,
    ) -> dict[str, Any]:
        window = resolve_window(period, start_date, end_date, now=now or local_now())
        income = self.income_total(window)
        expense = self.expense_total(window)
        return {
            "period": window.period,
            "from_date": window.start,
            "to_date": window.end,
            "summary": {"income": income, "expense": expense, "net": income - expense},
            "category_breakdown": self.category_breakdown(window),
            "recent": self.recent(window),
            "trend": self.trend(window),
        }

    def income_total(self, window: Window) -> int:
        stmt = select(func.coalesce(func.sum(Transaction.amount_cents), 0)).where(
            Transaction.user_id == self.user_id,
            Transaction.type == TransactionType.income,
            Transaction.date.between(window.start, window.end),
        )
        return int(self.session.execute(stmt).scalar_one() or 0)

    def expense_total(self, window: Window) -> int:
        # Spending comes from Expense rows only.
        stmt = select(func.coalesce(func.sum(Expense.amount_cents), 0)).where(
            Expense.user_id == self.user_id,
            Expense.date.between(window.start, window.end),
        )
        return int(self.session.execute(stmt).scalar_one() or 0)

    def category_breakdown(self, window: Window) -> list[dict[str, Any]]:
        expense_rows = self.session.execute(
            select(Expense.category, func.sum(Expense.amount_cents).label("total"))
            .where(
                Expense.user_id == self.user_id,
                Expense.date.between(window.start, window.end),
            )
            .group_by(Expense.category)
        ).all()
        unmirrored_rows = self.session.execute(
            select(Category.name, func.sum(Transaction.amount_cents).label("total"))
            .select_from(Transaction)
            .outerjoin(Category, Category.id == Transaction.category_id)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.type == TransactionType.expense,
                Transaction.date.between(window.start, window.end),
                ~Transaction.mirror.has(),
            )
            .group_by(Category.name)
        ).all()

        merged: dict[str, int] = {}
        for name, total in [*expense_rows, *unmirrored_rows]:
            key = name or "Uncategorized"
            merged[key] = merged.get(key, 0) + int(total or 0)

        grand_total = sum(merged.values())
        breakdown = [
            {
                "name": name,
                "value": value,
                "percent": (value / grand_total * 100) if grand_total else 0,
            }
            for name, value in merged.items()
        ]
        breakdown.sort(key=lambda item: (-int(item["value"]), item["name"]))
        return breakdown

    def recent(self, window: Window, limit: int = RECENT_LIMIT) -> list[dict[str, Any]]:
        transactions = self.session.scalars(
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(
                Transaction.user_id == self.user_id,
                Transaction.date.between(window.start, window.end),
            )
            .order_by(Transaction.date.desc(), Transaction.id.desc())
            .limit(limit)
        ).all()
        standalone = self.session.scalars(
            select(Expense)
            .where(
                Expense.user_id == self.user_id,
                Expense.transaction_id.is_(None),
                Expense.date.between(window.start, window.end),
            )
            .order_by(Expense.date.desc(), Expense.id.desc())
            .limit(limit)
        ).all()

        events = [
            {
                "id": txn.id,
                "kind": "transaction",
                "type": txn.type.value,
                "amount_cents": txn.amount_cents,
                "description": txn.description,
                "merchant": txn.merchant,
                "date": txn.date,
                "category": txn.category.name if txn.category else "Uncategorized",
            }
            for txn in transactions
        ]
        events.extend(
            {
                "id": expense.id,
                "kind": "expense",
                "type": TransactionType.expense.value,
                "amount_cents": expense.amount_cents,
                "description": expense.notes or expense.merchant or "Expense",
                "merchant": expense.merchant,
                "date": expense.date,
                "category": expense.category or "Uncategorized",
            }
            for expense in standalone
        )
        events.sort(key=lambda event: event["date"], reverse=True)
        return events[:limit]

    def trend(self, window: Window, points: int = TREND_POINTS) -> list[dict[str, Any]]:
        """Cumulative net (income minus spending) at evenly spaced points."""
        incomes = self.session.execute(
            select(Transaction.date, Transaction.amount_cents).where(
                Transaction.user_id == self.user_id,
                Transaction.type == TransactionType.income,
                Transaction.date.between(window.start, window.end),
            )
        ).all()
        spends = self.session.execute(
            select(Expense.date, Expense.amount_cents).where(
                Expense.user_id == self.user_id,
                Expense.date.between(window.start, window.end),
            )
        ).all()
        movements = sorted(
            [(row.date, int(row.amount_cents)) for row in incomes]
            + [(row.date, -int(row.amount_cents)) for row in spends],
            key=lambda item: item[0],
        )

        label_format = "%H:%M" if window.period == "Daily" else "%b %d"
        series: list[dict[str, Any]] = []
        running = 0
        index = 0
        for i in range(points):
            point = window.start + window.span * (i / (points - 1))
            while index < len(movements) and movements[index][0] <= point:
                running += movements[index][1]
                index += 1
            series.append(
                {"label": point.strftime(label_format), "date": point, "net": running}
            )
        return series
