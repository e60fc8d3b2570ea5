import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Optional, Union
from zoneinfo import ZoneInfo

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from config import get_settings
from database import atomic
from errors import RecurrenceItemError
from models import Expense, RecurrenceType, RecurrenceUnit, Transaction


logger = logging.getLogger(__name__)


def local_now() -> datetime:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).replace(tzinfo=None)


def as_local_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    tz = ZoneInfo(get_settings().timezone)
    return value.astimezone(tz).replace(tzinfo=None)


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def add_months(base: datetime, months: int) -> datetime:
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    day = min(base.day, days_in_month(year, month))
    return base.replace(year=year, month=month, day=day)


def next_run_date(
    anchor: datetime,
    recurrence_type: Optional[Union[RecurrenceType, str]],
    interval: Optional[int] = 1,
    unit: Optional[Union[RecurrenceUnit, str]] = None,
) -> datetime:
    """Next due date after ``anchor``. Month steps keep the day of month and
    clamp to the last day when the target month is shorter."""
    if not recurrence_type:
        return anchor
    recurrence_type = RecurrenceType(recurrence_type)
    count = interval or 1

    if recurrence_type == RecurrenceType.daily:
        return anchor + timedelta(days=1)
    if recurrence_type == RecurrenceType.weekly:
        return anchor + timedelta(days=7)
    if recurrence_type == RecurrenceType.monthly:
        return add_months(anchor, 1)

    if not unit:
        return anchor
    unit = RecurrenceUnit(unit)
    if unit == RecurrenceUnit.days:
        return anchor + timedelta(days=count)
    if unit == RecurrenceUnit.weeks:
        return anchor + timedelta(weeks=count)
    if unit == RecurrenceUnit.months:
        return add_months(anchor, count)
    return add_months(anchor, 12 * count)


@dataclass
class RecurrenceRun:
    due: int = 0
    posted: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[RecurrenceItemError] = field(default_factory=list)


class RecurringEngine:
    """Posts one occurrence of every due recurring transaction and
    stand-alone recurring expense."""

    kinds = (Transaction, Expense)

    def __init__(self, session: Session) -> None:
        self.session = session

    def due_parents(self, now: datetime, model=Transaction) -> list:
        stmt = (
            select(model)
            .where(model.is_recurring.is_(True), model.next_run_date <= now)
            .order_by(model.next_run_date, model.id)
        )
        return list(self.session.scalars(stmt).all())

    def post_due(self, now: Optional[datetime] = None) -> RecurrenceRun:
        now = as_local_naive(now) if now else local_now()
        due = [
            (model, parent.id)
            for model in self.kinds
            for parent in self.due_parents(now, model)
        ]
        run = RecurrenceRun(due=len(due))
        logger.info(f"recurring_run: due={run.due} now={now.isoformat()}")

        for model, parent_id in due:
            try:
                child = self._post_one(model, parent_id, now)
            except Exception as exc:
                error = RecurrenceItemError(model.__tablename__, parent_id, exc)
                logger.exception(str(error))
                run.failed.append(error)
                continue
            if child is None:
                run.skipped.append(parent_id)
            else:
                run.posted.append(parent_id)

        logger.info(
            f"recurring_run: posted={len(run.posted)} skipped={len(run.skipped)} "
            f"failed={len(run.failed)}"
        )
        return run

    def _post_one(self, model, parent_id: str, now: datetime):
        from services import ExpenseService, TransactionService

        with atomic(self.session):
            parent = self.session.get(model, parent_id)
            if (
                parent is None
                or not parent.is_recurring
                or parent.next_run_date is None
                or parent.next_run_date > now
            ):
                return None

            due_at = parent.next_run_date
            following = next_run_date(
                due_at,
                parent.recurrence_type,
                parent.recurrence_interval,
                parent.recurrence_unit,
            )
            # Claim fails if another runner already advanced the due date.
            claimed = self.session.execute(
                update(model)
                .where(model.id == parent_id, model.next_run_date == due_at)
                .values(next_run_date=following, last_run_date=now)
            )
            if claimed.rowcount == 0:
                logger.info(f"recurring_skip: id={parent_id} already advanced")
                return None

            service = TransactionService if model is Transaction else ExpenseService
            child = service(self.session, parent.user_id).materialize(parent, now)
            logger.info(
                f"recurring_posted: {model.__tablename__} id={parent_id} "
                f"child={child.id} next_run={following.isoformat()}"
            )
        return child
