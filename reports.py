"""
reports.py
Dashboard KPIs, trailing-12-month collection series and date-windowed report
statistics, plus the DataFrames behind the CSV exports.

Aggregation is best-effort: records with a missing amount count as zero and
records with a missing/unreadable date are left out of any date bucket.
"""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP

import pandas as pd

import config
from models import (
    INVOICE_OVERDUE,
    MEMBER_ACTIVE,
    SETTLED_PAYMENT_STATUSES,
    DateRange,
    Donation,
    Invoice,
    Member,
    Money,
    Payment,
    annual_rate,
)
from reconciliation import effective_invoice_status, find_invoice_member, member_outstanding_balance
import utils

NO_PAYMENTS_LABEL = "No payments"
_YEAR = timedelta(days=365)


@dataclass(frozen=True)
class DashboardMetrics:
    total_collected: Money
    collected_this_month: Money
    collected_this_year: Money
    total_outstanding: Money
    overdue_members: int
    expected_annual: int
    member_count: int


@dataclass(frozen=True)
class MonthlyCollection:
    label: str
    year: int
    month: int
    value: Money
    count: int
    percentage: float


@dataclass(frozen=True)
class ReportStats:
    date_range: DateRange
    collected: Money
    payments_total: Money
    donations_total: Money
    expected: Money
    outstanding: Money
    average_per_member: int
    active_members: int
    payments_count: int
    donations_count: int
    method_mix: list[dict] = field(default_factory=list)

    @property
    def collection_rate(self) -> float:
        if self.expected.cents <= 0:
            return 0.0
        return round(self.collected.cents / self.expected.cents * 100, 1)


def _is_settled(payment: Payment) -> bool:
    return payment.status in SETTLED_PAYMENT_STATUSES


def dashboard_metrics(
    members: Sequence[Member],
    invoices: Sequence[Invoice],
    payments: Sequence[Payment],
    now: datetime | date,
) -> DashboardMetrics:
    """
    Headline numbers for the dashboard. Outstanding uses the cached member
    balances; keeping those current is billing.sync_member_balance's job.
    """
    today = now.date() if isinstance(now, datetime) else now

    total = month = year = Money()
    for p in payments:
        if not _is_settled(p):
            continue
        total += p.amount
        if p.date is None:
            continue
        if p.date.year == today.year:
            year += p.amount
            if p.date.month == today.month:
                month += p.amount

    outstanding = sum((m.balance for m in members if m.balance.cents > 0), Money())

    overdue_ids = set()
    for inv in invoices:
        if effective_invoice_status(inv, payments) != INVOICE_OVERDUE:
            continue
        owner = find_invoice_member(inv, members)
        if owner is not None:
            overdue_ids.add(owner.id)

    return DashboardMetrics(
        total_collected=total,
        collected_this_month=month,
        collected_this_year=year,
        total_outstanding=outstanding,
        overdue_members=len(overdue_ids),
        expected_annual=len(members) * config.EXPECTED_ANNUAL_PER_MEMBER,
        member_count=len(members),
    )


def monthly_collections_series(payments: Iterable[Payment], now: datetime | date) -> list[MonthlyCollection]:
    """Twelve calendar months ending with now's month, oldest first."""
    today = now.date() if isinstance(now, datetime) else now
    anchor = today.replace(day=1)
    months = [utils.add_months(anchor, -offset) for offset in range(11, -1, -1)]

    totals = {(m.year, m.month): Money() for m in months}
    counts = Counter()
    for p in payments:
        if not _is_settled(p) or p.date is None:
            continue
        key = (p.date.year, p.date.month)
        if key in totals:
            totals[key] += p.amount
            counts[key] += 1

    peak = max(max(v.amount for v in totals.values()), 1)
    series = []
    for m in months:
        value = totals[(m.year, m.month)]
        series.append(
            MonthlyCollection(
                label=m.strftime("%b %Y"),
                year=m.year,
                month=m.month,
                value=value,
                count=counts[(m.year, m.month)],
                percentage=round(value.amount / peak * 100, 2),
            )
        )
    return series


def in_range(d: date | None, date_range: DateRange) -> bool:
    """Inclusive window; the end day counts up to 23:59:59.999."""
    if d is None:
        return False
    moment = datetime.combine(d, datetime.min.time())
    return datetime.combine(date_range.start, datetime.min.time()) <= moment <= utils.end_of_day(date_range.end)


def _years_between(start: date, end: date) -> int:
    span = utils.end_of_day(end) - datetime.combine(start, datetime.min.time())
    if span.total_seconds() <= 0:
        return 0
    return math.ceil(span / _YEAR)


def expected_contributions(members: Iterable[Member], date_range: DateRange) -> tuple[Money, int]:
    """(expected total, active member count) for the window."""
    active = [m for m in members if m.status == MEMBER_ACTIVE]
    expected = 0
    for m in active:
        start = max(date_range.start, m.created_at or config.REPORT_BASE_DATE)
        expected += _years_between(start, date_range.end) * annual_rate(m.subscription_type)
    if expected == 0 and active:
        expected = len(active) * config.JANAZA_FUND_RATE * _years_between(date_range.start, date_range.end)
    return Money.from_amount(expected), len(active)


def method_mix(payments: Iterable[Payment]) -> list[dict]:
    counts = Counter(utils.display_method(p) for p in payments)
    if not counts:
        return [{"label": NO_PAYMENTS_LABEL, "value": 0}]
    return [{"label": label, "value": value} for label, value in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))]


def report_stats(
    members: Sequence[Member],
    invoices: Sequence[Invoice],
    donations: Sequence[Donation],
    payments: Sequence[Payment],
    date_range: DateRange,
) -> ReportStats:
    window_payments = [p for p in payments if in_range(p.date, date_range)]
    window_donations = [d for d in donations if in_range(d.date, date_range)]

    payments_total = sum((p.amount for p in window_payments if _is_settled(p)), Money())
    donations_total = sum((d.amount for d in window_donations), Money())
    collected = payments_total + donations_total

    expected, active_count = expected_contributions(members, date_range)
    average = 0
    if active_count:
        average = int((Decimal(collected.cents) / 100 / active_count).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    outstanding = sum((member_outstanding_balance(m, invoices, payments) for m in members), Money())

    return ReportStats(
        date_range=date_range,
        collected=collected,
        payments_total=payments_total,
        donations_total=donations_total,
        expected=expected,
        outstanding=outstanding,
        average_per_member=average,
        active_members=active_count,
        payments_count=len(window_payments),
        donations_count=len(window_donations),
        method_mix=method_mix(window_payments),
    )


def report_summary_frame(stats: ReportStats) -> pd.DataFrame:
    rows = [
        ("From", stats.date_range.start.isoformat()),
        ("To", stats.date_range.end.isoformat()),
        ("Collected", stats.collected.format()),
        ("Payments", stats.payments_total.format()),
        ("Donations", stats.donations_total.format()),
        ("Expected", stats.expected.format()),
        ("Collection rate %", stats.collection_rate),
        ("Outstanding", stats.outstanding.format()),
        ("Active members", stats.active_members),
        ("Average per member", stats.average_per_member),
        ("Payments count", stats.payments_count),
        ("Donations count", stats.donations_count),
    ]
    rows.extend((f"Method: {m['label']}", m["value"]) for m in stats.method_mix)
    return pd.DataFrame(rows, columns=["metric", "value"])


def monthly_series_frame(series: Sequence[MonthlyCollection]) -> pd.DataFrame:
    return pd.DataFrame(
        [{"month": s.label, "collected": s.value.amount, "payments": s.count, "percentage": s.percentage} for s in series],
        columns=["month", "collected", "payments", "percentage"],
    )


def recent_payments(payments: Iterable[Payment], limit: int = 5) -> list[Payment]:
    dated = sorted(payments, key=lambda p: p.date or date.min, reverse=True)
    return dated[:limit]
