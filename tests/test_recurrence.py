from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from database import Base, build_engine
from models import (
    BankAccount,
    RecurrenceType,
    RecurrenceUnit,
    Transaction,
    TransactionSource,
)
from recurrence import RecurringEngine, add_months, next_run_date
from schemas import TransactionCreate
from services import TransactionService


USER = "user-1"


def _engine():
    engine = build_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return engine


def test_monthly_keeps_day_and_clamps_to_month_end():
    assert next_run_date(datetime(2024, 1, 15, 8, 30), RecurrenceType.monthly) == datetime(
        2024, 2, 15, 8, 30
    )
    assert next_run_date(datetime(2024, 1, 31), RecurrenceType.monthly) == datetime(
        2024, 2, 29
    )
    assert next_run_date(datetime(2024, 12, 31), "MONTHLY") == datetime(2025, 1, 31)


def test_daily_and_weekly_ignore_interval():
    anchor = datetime(2024, 3, 1)
    assert next_run_date(anchor, RecurrenceType.daily, 5) == datetime(2024, 3, 2)
    assert next_run_date(anchor, RecurrenceType.weekly, 3) == datetime(2024, 3, 8)


def test_custom_units_use_interval():
    anchor = datetime(2024, 2, 29)
    assert next_run_date(anchor, RecurrenceType.custom, 3, RecurrenceUnit.days) == (
        datetime(2024, 3, 3)
    )
    assert next_run_date(anchor, RecurrenceType.custom, 2, RecurrenceUnit.weeks) == (
        datetime(2024, 3, 14)
    )
    assert next_run_date(anchor, RecurrenceType.custom, 1, RecurrenceUnit.months) == (
        datetime(2024, 3, 29)
    )
    assert next_run_date(anchor, RecurrenceType.custom, 1, RecurrenceUnit.years) == (
        datetime(2025, 2, 28)
    )


def test_missing_type_or_unit_returns_anchor():
    anchor = datetime(2024, 3, 1)
    assert next_run_date(anchor, None) == anchor
    assert next_run_date(anchor, RecurrenceType.custom, 2, None) == anchor


def test_add_months_backwards():
    assert add_months(datetime(2024, 3, 31), -1) == datetime(2024, 2, 29)
    assert add_months(datetime(2024, 1, 15), -12) == datetime(2023, 1, 15)


def _monthly_parent(session: Session, account_id=None, day=1) -> Transaction:
    return TransactionService(session, USER).create(
        TransactionCreate(
            amount_cents=100,
            date=datetime(2023, 12, day),
            account_id=account_id,
            is_recurring=True,
            recurrence_type=RecurrenceType.monthly,
        )
    )


def test_due_parent_posts_child_and_advances_from_due_date():
    with Session(_engine()) as session:
        parent = _monthly_parent(session)
        assert parent.next_run_date == datetime(2024, 1, 1)

        run = RecurringEngine(session).post_due(now=datetime(2024, 1, 5))
        assert run.posted == [parent.id]

        children = session.scalars(
            select(Transaction).where(Transaction.parent_id == parent.id)
        ).all()
        assert len(children) == 1
        child = children[0]
        assert child.date == datetime(2024, 1, 5)
        assert child.source == TransactionSource.auto_recurring
        assert child.is_recurring is False
        assert child.next_run_date is None
        assert child.amount_cents == 100
        assert child.description == "Recurring Transaction"

        session.refresh(parent)
        assert parent.next_run_date == datetime(2024, 2, 1)
        assert parent.last_run_date == datetime(2024, 1, 5)


def test_second_run_same_day_posts_nothing():
    with Session(_engine()) as session:
        parent = _monthly_parent(session)
        engine = RecurringEngine(session)
        engine.post_due(now=datetime(2024, 1, 5))
        run = engine.post_due(now=datetime(2024, 1, 5))

        assert run.due == 0
        assert run.posted == []
        count = session.scalars(
            select(Transaction).where(Transaction.parent_id == parent.id)
        ).all()
        assert len(count) == 1


def test_child_applies_balance_effect():
    with Session(_engine()) as session:
        account = BankAccount(user_id=USER, name="Checking", balance_cents=1000)
        session.add(account)
        session.commit()
        _monthly_parent(session, account_id=account.id)
        assert session.get(BankAccount, account.id).balance_cents == 900

        RecurringEngine(session).post_due(now=datetime(2024, 1, 2))
        assert session.get(BankAccount, account.id).balance_cents == 800


def test_failed_parent_does_not_block_others():
    with Session(_engine()) as session:
        doomed = BankAccount(user_id=USER, name="Closed", balance_cents=1000)
        session.add(doomed)
        session.commit()
        failing = _monthly_parent(session, account_id=doomed.id)
        healthy = _monthly_parent(session, day=2)
        doomed.user_id = "someone-else"
        session.commit()

        run = RecurringEngine(session).post_due(now=datetime(2024, 1, 5))

        assert run.posted == [healthy.id]
        assert [error.parent_id for error in run.failed] == [failing.id]
        session.refresh(failing)
        session.refresh(healthy)
        assert failing.next_run_date == datetime(2024, 1, 1)
        assert healthy.next_run_date == datetime(2024, 2, 2)
        orphans = session.scalars(
            select(Transaction).where(Transaction.parent_id == failing.id)
        ).all()
        assert orphans == []


def test_not_yet_due_is_ignored():
    with Session(_engine()) as session:
        _monthly_parent(session)
        run = RecurringEngine(session).post_due(now=datetime(2023, 12, 31, 23, 59))
        assert run.due == 0
