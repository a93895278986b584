from datetime import date, datetime

import pytest

from models import DateRange, Donation, Invoice, Member, Money, Payment
import reports


def pay(pid, amount, on, status="Completed", method="FPS", **kw):
    return Payment(id=pid, member_id="m1", amount=Money.parse(amount), date=on, status=status, method=method, **kw)


def test_monthly_series_is_twelve_months_oldest_first():
    payments = [
        pay("p1", "$100.00", date(2025, 6, 1)),
        pay("p2", "$50.00", date(2025, 3, 10)),
        pay("p3", "$999.00", date(2025, 6, 2), status="Pending"),
        pay("p4", "$30.00", date(2024, 6, 30)),
        pay("p5", "$20.00", None),
    ]
    series = reports.monthly_collections_series(payments, datetime(2025, 6, 15, 9, 30))

    assert len(series) == 12
    assert series[0].label == "Jul 2024"
    assert series[-1].label == "Jun 2025"
    assert series[-1].value == Money.parse("100")
    assert series[-1].count == 1
    assert series[-1].percentage == 100
    march = next(s for s in series if s.month == 3)
    assert march.percentage == 50
    assert all(0 <= s.percentage <= 100 for s in series)
    assert max(s.percentage for s in series) == 100


def test_monthly_series_without_payments_is_all_zero():
    series = reports.monthly_collections_series([], date(2025, 1, 31))
    assert series[0].label == "Feb 2024"
    assert all(s.percentage == 0 and s.value == Money(0) for s in series)


def test_monthly_series_is_deterministic():
    payments = [pay("p1", "$10", date(2025, 5, 5))]
    now = date(2025, 6, 15)
    assert reports.monthly_collections_series(payments, now) == reports.monthly_collections_series(payments, now)


def test_report_stats_with_empty_collections():
    stats = reports.report_stats([], [], [], [], DateRange(date(2025, 1, 1), date(2025, 12, 31)))

    assert stats.collected == Money(0)
    assert stats.average_per_member == 0
    assert stats.expected == Money(0)
    assert stats.collection_rate == 0.0
    assert stats.method_mix == [{"label": "No payments", "value": 0}]


def test_report_stats_january_window():
    member = Member(id="m1", name="Ahmed", status="Active", created_at=date(2025, 1, 1))
    payments = [
        pay("p1", "$100.00", date(2025, 1, 15), status="Paid"),
        pay("p2", "$40.00", date(2025, 2, 1)),
    ]
    stats = reports.report_stats([member], [], [], payments, DateRange(date(2025, 1, 1), date(2025, 1, 31)))

    assert stats.collected == Money.parse("100")
    assert stats.payments_count == 1
    assert stats.active_members == 1
    assert stats.average_per_member == 100
    assert stats.expected == Money.parse("500")
    assert stats.collection_rate == 20.0
    assert stats.method_mix == [{"label": "Online Payment", "value": 1}]


def test_report_window_includes_end_day_and_donations():
    payments = [pay("p1", "$10", date(2025, 1, 31)), pay("p2", "$5", date(2025, 1, 1), status="Pending")]
    donations = [Donation(id=1, donor_name="Anon", amount=Money.parse("25"), date=date(2025, 1, 20))]
    stats = reports.report_stats([], [], donations, payments, DateRange(date(2025, 1, 1), date(2025, 1, 31)))

    assert stats.payments_total == Money.parse("10")
    assert stats.donations_total == Money.parse("25")
    assert stats.collected == Money.parse("35")
    # pending payments still show up in the count and method mix
    assert stats.payments_count == 2


def test_report_outstanding_uses_effective_status():
    member = Member(id="m1", name="Ahmed", status="Active")
    invoices = [
        Invoice(id="inv1", member_id="m1", amount=Money.parse("250"), status="Unpaid"),
        Invoice(id="inv2", member_id="m1", amount=Money.parse("100"), status="Overdue"),
    ]
    payments = [pay("p1", "250", date(2025, 3, 1), invoice_id="inv1")]
    stats = reports.report_stats([member], invoices, [], payments, DateRange(date(2025, 1, 1), date(2025, 12, 31)))
    assert stats.outstanding == Money.parse("100")


@pytest.mark.parametrize(
    "start, end, years",
    [
        (date(2025, 1, 1), date(2025, 1, 31), 1),
        (date(2025, 1, 1), date(2025, 12, 31), 1),
        (date(2025, 1, 1), date(2026, 6, 30), 2),
    ],
)
def test_expected_contributions_rounds_years_up(start, end, years):
    lifetime = Member(id="m2", name="Fatima", status="Active", subscription_type="Lifetime Janaza Fund", created_at=date(2024, 5, 1))
    inactive = Member(id="m3", name="Omar", status="Inactive")
    expected, active = reports.expected_contributions([lifetime, inactive], DateRange(start, end))
    assert active == 1
    assert expected == Money.from_amount(250 * years)


def test_expected_falls_back_to_flat_rate_for_members_joining_later():
    late = Member(id="m4", name="Yusuf", status="Active", created_at=date(2025, 3, 1))
    expected, active = reports.expected_contributions([late], DateRange(date(2025, 1, 1), date(2025, 1, 31)))
    assert active == 1
    assert expected == Money.parse("$250.00")


def test_method_mix_groups_display_methods():
    payments = [
        pay("p1", "1", date(2025, 1, 1), method="FPS"),
        pay("p2", "1", date(2025, 1, 1), method="PayMe"),
        pay("p3", "1", date(2025, 1, 1), method="Cash to Admin"),
        pay("p4", "1", date(2025, 1, 1), method="Cheque"),
    ]
    assert reports.method_mix(payments) == [
        {"label": "Online Payment", "value": 2},
        {"label": "Cash", "value": 1},
        {"label": "Cheque", "value": 1},
    ]


def test_dashboard_metrics():
    members = [
        Member(id="m1", name="A", balance=Money.parse("$250.00 Outstanding")),
        Member(id="m2", name="B", balance=Money.parse("$0")),
    ]
    invoices = [
        Invoice(id="inv1", member_id="m1", amount=Money.parse("250"), status="Overdue"),
        Invoice(id="inv2", member_id="m2", amount=Money.parse("250"), status="Overdue"),
    ]
    payments = [
        pay("p1", "250", date(2025, 6, 3), invoice_id="inv2"),
        pay("p2", "100", date(2025, 2, 1)),
        pay("p3", "80", date(2024, 12, 1)),
        pay("p4", "999", date(2025, 6, 4), status="Pending"),
    ]
    metrics = reports.dashboard_metrics(members, invoices, payments, datetime(2025, 6, 20))

    assert metrics.total_collected == Money.parse("430")
    assert metrics.collected_this_year == Money.parse("350")
    assert metrics.collected_this_month == Money.parse("250")
    assert metrics.total_outstanding == Money.parse("250")
    assert metrics.overdue_members == 1
    assert metrics.expected_annual == 1600
    assert metrics.member_count == 2


def test_recent_payments_newest_first():
    payments = [pay(f"p{i}", "1", date(2025, 1, i)) for i in range(1, 8)]
    assert [p.id for p in reports.recent_payments(payments)] == ["p7", "p6", "p5", "p4", "p3"]
