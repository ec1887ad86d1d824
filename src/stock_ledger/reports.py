"""Period-bucketed sales reports.

The aggregator only ever reads the sale log. Each report request is a
``(start, end, granularity)`` triple; the window helpers derive the usual
triples (today, this week, this month, a custom date range) from an injected
"now" so the boundaries are testable.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, tzinfo
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple, Union

from . import log
from .constants import Granularity
from .errors import InvalidInputError
from .models import Sale
from .money import ZERO, round2


Window = Tuple[datetime, datetime]
DISPLAY_DATE_FORMAT = "%d/%m/%Y"


@dataclass(frozen=True)
class PeriodSummary:
    """Aggregated figures for one period bucket."""

    period: str
    orders: int
    units: int
    revenue: Decimal
    avg_order_value: Decimal


@dataclass(frozen=True)
class ReportTotals:
    """Aggregated figures across every bucket of a report."""

    orders: int = 0
    units: int = 0
    revenue: Decimal = ZERO
    avg_order_value: Decimal = ZERO


@dataclass(frozen=True)
class Report:
    periods: List[PeriodSummary] = field(default_factory=list)
    totals: ReportTotals = field(default_factory=ReportTotals)
    title: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.periods


def _average(revenue: Decimal, orders: int) -> Decimal:
    if orders == 0:
        return ZERO
    return round2(revenue / orders)


def _week_start(day: date) -> date:
    # date.weekday() is 0 for Monday; weeks here start on Sunday.
    return day - timedelta(days=(day.weekday() + 1) % 7)


def period_key(
    moment: datetime,
    granularity: Union[Granularity, str],
    tz: Optional[tzinfo] = None,
) -> str:
    """Return the zero-padded bucket key for ``moment``.

    ``day`` keys are ISO dates, ``week`` keys are the ISO date of the Sunday
    starting that week, and ``month`` keys are ``YYYY-MM``. When ``tz`` is
    given the moment is converted to that zone first, so a sale stored in UTC
    lands on the calendar day of the report rather than its own.
    """

    granularity = Granularity(granularity)
    if tz is not None and moment.tzinfo is not None:
        moment = moment.astimezone(tz)
    if granularity is Granularity.WEEK:
        return _week_start(moment.date()).isoformat()
    if granularity is Granularity.MONTH:
        return f"{moment.year:04d}-{moment.month:02d}"
    return moment.date().isoformat()


def in_window(sale: Sale, start: Optional[datetime], end: Optional[datetime]) -> bool:
    """Check ``start <= sale.date < end``; a ``None`` bound is open."""

    if start is not None and sale.date < start:
        return False
    if end is not None and sale.date >= end:
        return False
    return True


def bucket(
    sales: Iterable[Sale],
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    granularity: Union[Granularity, str] = Granularity.DAY,
    tz: Optional[tzinfo] = None,
) -> Report:
    """Group sales in ``[start, end)`` into period summaries with totals.

    Periods come back sorted by key. Keys are computed in ``tz`` when given,
    otherwise in each sale's own zone. Totals are accumulated over the same
    filtered sales, so they always equal the sum of the per-period figures.
    """

    granularity = Granularity(granularity)
    orders: Dict[str, int] = defaultdict(int)
    units: Dict[str, int] = defaultdict(int)
    revenue: Dict[str, Decimal] = defaultdict(Decimal)

    for sale in sales:
        if not in_window(sale, start, end):
            continue
        key = period_key(sale.date, granularity, tz)
        orders[key] += 1
        units[key] += sale.quantity
        revenue[key] += sale.total

    periods = [
        PeriodSummary(
            period=key,
            orders=orders[key],
            units=units[key],
            revenue=round2(revenue[key]),
            avg_order_value=_average(revenue[key], orders[key]),
        )
        for key in sorted(orders)
    ]
    total_orders = sum(orders.values())
    total_revenue = sum(revenue.values(), Decimal("0"))
    totals = ReportTotals(
        orders=total_orders,
        units=sum(units.values()),
        revenue=round2(total_revenue),
        avg_order_value=_average(total_revenue, total_orders),
    )
    log.debug(
        "Bucketed %d orders into %d %s periods",
        total_orders,
        len(periods),
        granularity.value,
    )
    return Report(periods=periods, totals=totals)


def _start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def day_window(now: datetime) -> Window:
    start = _start_of_day(now)
    return start, start + timedelta(days=1)


def week_window(now: datetime) -> Window:
    """Sunday-to-Sunday window containing ``now``."""

    start = _start_of_day(now) - timedelta(days=(now.weekday() + 1) % 7)
    return start, start + timedelta(days=7)


def month_window(now: datetime) -> Window:
    start = _start_of_day(now).replace(day=1)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


def range_window(from_date: date, to_date: date, tz: Optional[tzinfo] = None) -> Window:
    """Window covering ``from_date`` through ``to_date`` inclusive.

    Raises:
        InvalidInputError: If the end date falls before the start date.
    """

    start = datetime.combine(from_date, time.min, tzinfo=tz)
    end = datetime.combine(to_date, time.min, tzinfo=tz) + timedelta(days=1)
    if start >= end:
        log.warning("Rejected report range %s to %s", from_date, to_date)
        raise InvalidInputError("End date must be after start date")
    return start, end


def todays_sales(sales: Iterable[Sale], now: datetime) -> List[Sale]:
    start, end = day_window(now)
    return [sale for sale in sales if in_window(sale, start, end)]


def _titled(report: Report, title: str) -> Report:
    return Report(periods=report.periods, totals=report.totals, title=title)


def daily_report(sales: Iterable[Sale], now: datetime, granularity: Union[Granularity, str] = Granularity.DAY) -> Report:
    start, end = day_window(now)
    title = f"Daily Report - {now.strftime(DISPLAY_DATE_FORMAT)}"
    return _titled(bucket(sales, start, end, granularity, now.tzinfo), title)


def weekly_report(sales: Iterable[Sale], now: datetime, granularity: Union[Granularity, str] = Granularity.DAY) -> Report:
    start, end = week_window(now)
    last_day = end - timedelta(days=1)
    title = (
        f"Weekly Report - {start.strftime(DISPLAY_DATE_FORMAT)} "
        f"to {last_day.strftime(DISPLAY_DATE_FORMAT)}"
    )
    return _titled(bucket(sales, start, end, granularity, now.tzinfo), title)


def monthly_report(sales: Iterable[Sale], now: datetime, granularity: Union[Granularity, str] = Granularity.DAY) -> Report:
    start, end = month_window(now)
    title = f"Monthly Report - {now.strftime('%B %Y')}"
    return _titled(bucket(sales, start, end, granularity, now.tzinfo), title)


def range_report(
    sales: Iterable[Sale],
    from_date: date,
    to_date: date,
    *,
    tz: Optional[tzinfo] = None,
    granularity: Union[Granularity, str] = Granularity.DAY,
) -> Report:
    """Report over a custom inclusive date range.

    Raises:
        InvalidInputError: If the end date falls before the start date.
    """

    start, end = range_window(from_date, to_date, tz)
    title = (
        f"Custom Report - {from_date.strftime(DISPLAY_DATE_FORMAT)} "
        f"to {to_date.strftime(DISPLAY_DATE_FORMAT)}"
    )
    return _titled(bucket(sales, start, end, granularity, tz), title)
