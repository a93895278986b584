from datetime import date

import pytest

from models import Money, Payment, normalize_subscription_type, subscription_fees
import utils


@pytest.mark.parametrize(
    "method, paid_to_admin, paid_to_admin_name, expected",
    [
        ("FPS", None, None, "Online Payment"),
        ("Screenshot", None, None, "Online Payment"),
        ("Bank Transfer", "3", None, "Cash"),
        ("FPS", None, "Owner", "Cash"),
        ("Cash to Admin", None, None, "Cash"),
        ("Cheque", None, None, "Cheque"),
        (None, None, None, "N/A"),
        ("", None, None, "N/A"),
    ],
)
def test_normalize_payment_method(method, paid_to_admin, paid_to_admin_name, expected):
    assert utils.normalize_payment_method(method, paid_to_admin, paid_to_admin_name) == expected


@pytest.mark.parametrize(
    "raw, cents",
    [
        ("$250.00", 25000),
        ("HK$1,250", 125000),
        ("$250.00 Outstanding", 25000),
        ("$0", 0),
        (99.995, 10000),
        (None, 0),
        ("", 0),
        ("N/A", 0),
        ("1.2.3", 0),
        (True, 0),
    ],
)
def test_money_parse_is_best_effort(raw, cents):
    assert Money.parse(raw).cents == cents


def test_money_arithmetic_and_format():
    total = sum([Money.parse("1.10"), Money.parse("2.20")], Money())
    assert total == Money(330)
    assert total.format() == "$3.30"
    assert not Money()


def test_parse_date_variants():
    assert utils.parse_date("2025-01-15") == date(2025, 1, 15)
    assert utils.parse_date("2025-01-15T08:30:00") == date(2025, 1, 15)
    assert utils.parse_date("15 Jan 2025") == date(2025, 1, 15)
    assert utils.parse_date("not a date") is None
    assert utils.parse_date(None) is None


def test_add_months_clamps_day():
    assert utils.add_months(date(2025, 1, 31), 1) == date(2025, 2, 28)
    assert utils.add_months(date(2025, 1, 1), -11) == date(2024, 2, 1)


@pytest.mark.parametrize(
    "phone, expected",
    [
        ("9123 4567", "85291234567"),
        ("+852 9123 4567", "85291234567"),
        ("091234567", "85291234567"),
        ("+44 7700 900123", "447700900123"),
        ("", ""),
    ],
)
def test_normalize_phone(phone, expected):
    assert utils.normalize_phone(phone, "852") == expected


def test_validate_member_inputs():
    assert utils.validate_member_inputs("A", "a@example.org", "", "Active", "Annual Member") == []
    errors = utils.validate_member_inputs("", "bad", "abc", "Gone", "Gold")
    assert len(errors) == 5


def test_validate_amount():
    assert utils.validate_amount("HK$250") == []
    assert utils.validate_amount("0") == ["Amount must be > 0."]
    assert utils.validate_amount("abc") == ["Amount must be numeric."]


def test_validate_date_range():
    assert utils.validate_date_range("2025-01-01", "2025-01-31") == []
    assert utils.validate_date_range("2025-02-01", "2025-01-31") == ["End date must not be before start date."]


def test_legacy_subscription_labels():
    assert normalize_subscription_type("Yearly + Janaza Fund") == "Annual Member"
    assert normalize_subscription_type("Lifetime") == "Lifetime Member + Janaza Fund"
    assert normalize_subscription_type(None) == "Annual Member"
    assert subscription_fees("Lifetime Member + Janaza Fund", lifetime_paid=True) == (0, 250)


def test_records_to_frame_formats_values():
    payment = Payment(id="PAY-2025-001", member_id="m1", amount=Money.parse("250"), method="PayMe", date=date(2025, 1, 15))
    frame = utils.records_to_frame([payment], ["id", "amount", "method", "date"])

    assert list(frame.columns) == ["id", "amount", "method", "date"]
    assert frame.iloc[0].to_dict() == {"id": "PAY-2025-001", "amount": "$250.00", "method": "Online Payment", "date": "2025-01-15"}
    assert list(utils.records_to_frame([], ["id", "amount"]).columns) == ["id", "amount"]
    assert utils.to_csv_bytes(frame).decode().splitlines()[0] == "id,amount,method,date"
