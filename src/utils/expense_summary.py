from __future__ import annotations

import calendar
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime

from domain.expense_record import ExpenseRecord

from .formatting import format_currency


@dataclass
class CategoryExpenseTotal:
    category: str
    total_amount: int


@dataclass
class MonthlyExpenseTotal:
    year: int
    month: int
    total_amount: int


@dataclass
class DailyExpenseTotal:
    day: date
    total_amount: int


@dataclass
class ExpenseReport:
    """Spending of a whole group, or of one member across groups.

    For a group every expense counts in full. For a member only their own
    share of each expense counts, see :meth:`ExpenseRecord.share_of`.
    """

    total_amount: int = 0
    count: int = 0
    categories: list[CategoryExpenseTotal] = field(default_factory=list)
    monthly: list[MonthlyExpenseTotal] = field(default_factory=list)
    daily: list[DailyExpenseTotal] = field(default_factory=list)


def month_before(moment: datetime) -> datetime:
    """Same time one calendar month earlier, clamped to the end of a shorter month."""
    year, month = (moment.year, moment.month - 1) if moment.month > 1 else (moment.year - 1, 12)
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def compute_expense_report(
    records: Iterable[ExpenseRecord],
    *,
    now: datetime,
    member: str | None = None,
) -> ExpenseReport:
    """Totals per category (by name), per calendar month and per day (both oldest first).

    Category and monthly totals cover every expense. Daily totals only cover
    expenses dated within the month before ``now``.
    """
    since = month_before(now)
    by_category: dict[str, int] = {}
    by_month: dict[tuple[int, int], int] = {}
    by_day: dict[date, int] = {}
    total_amount = 0
    count = 0

    for record in records:
        amount = record.total_amount if member is None else record.share_of(member)
        if amount == 0:
            continue
        total_amount += amount
        count += 1
        by_category[record.category] = by_category.get(record.category, 0) + amount
        month_key = (record.expense_date.year, record.expense_date.month)
        by_month[month_key] = by_month.get(month_key, 0) + amount
        if since <= record.expense_date <= now:
            day = record.expense_date.date()
            by_day[day] = by_day.get(day, 0) + amount

    return ExpenseReport(
        total_amount=total_amount,
        count=count,
        categories=[
            CategoryExpenseTotal(category=name, total_amount=amount) for name, amount in sorted(by_category.items())
        ],
        monthly=[
            MonthlyExpenseTotal(year=year, month=month, total_amount=amount)
            for (year, month), amount in sorted(by_month.items())
        ],
        daily=[DailyExpenseTotal(day=day, total_amount=amount) for day, amount in sorted(by_day.items())],
    )


def render_expense_report(report: ExpenseReport, *, currency: str) -> None:
    print(f"Expenses: {report.count}, total {format_currency(report.total_amount, currency)}")
    if not report.categories:
        return

    width = max(len(total.category) for total in report.categories)
    for total in report.categories:
        print(f"  {total.category:<{width}} {format_currency(total.total_amount, currency)}")
