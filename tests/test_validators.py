from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.services.validators import (
    is_valid_email,
    is_valid_phone,
    is_valid_uuid,
    parse_price,
    parse_timestamp,
    validate_login,
    validate_password_change,
    validate_profile_update,
    validate_registration,
    validate_trip,
)

NOW = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)


def trip_data(**overrides):
    data = {
        "origin_text": "Oakland, CA",
        "destination_text": "Sacramento, CA",
        "departure_timestamp": (NOW + timedelta(days=1)).isoformat(),
        "available_seats": "3",
        "price": "12.50",
    }
    data.update(overrides)
    return data


@pytest.mark.parametrize("email,ok", [
    ("a@b.co", True),
    ("first.last@example.org", True),
    ("no-at-sign.com", False),
    ("two@@example.com", False),
    ("space in@example.com", False),
    ("a@b", False),
])
def test_email(email, ok):
    assert is_valid_email(email) is ok


@pytest.mark.parametrize("phone,ok", [
    ("(555) 123-4567", True),
    ("+1 555 123 4567", True),
    ("555-1234", False),
    ("555 123 456a", False),
])
def test_phone(phone, ok):
    assert is_valid_phone(phone) is ok


def test_uuid():
    assert is_valid_uuid("3f1c2d4e-5a6b-4c7d-8e9f-0a1b2c3d4e5f")
    assert not is_valid_uuid("3f1c2d4e-5a6b-6c7d-8e9f-0a1b2c3d4e5f")  # version 6
    assert not is_valid_uuid("not-a-uuid")
    assert not is_valid_uuid(None)


def test_login_errors():
    assert validate_login("a@b.co", "x") == []
    assert validate_login("", "") == ["Valid email is required", "Password is required"]


def test_registration_collects_every_error():
    errors = validate_registration("bad", "123", "456", " a ", "12")
    assert errors == [
        "Valid email is required",
        "Password must be at least 6 characters",
        "Passwords do not match",
        "Full name is required (minimum 2 characters)",
        "Valid phone number is required",
    ]
    assert validate_registration("a@b.co", "secret1", "secret1", "Al", "555 123 4567") == []


def test_profile_update():
    assert validate_profile_update("Al", "555 123 4567") == []
    assert len(validate_profile_update("A", "")) == 2


def test_password_change_short_circuits_on_missing_fields():
    assert validate_password_change("", "newpass", "other") == ["All password fields are required"]
    assert validate_password_change("old", "abc", "abd") == [
        "New passwords do not match",
        "New password must be at least 6 characters",
    ]


def test_parse_timestamp_is_utc():
    dt = parse_timestamp("2030-01-01T14:00:00+02:00")
    assert dt == datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)
    assert parse_timestamp("2030-01-01T12:00:00Z").tzinfo is not None
    assert parse_timestamp("yesterday") is None


def test_parse_price():
    assert parse_price("12.50") == Decimal("12.50")
    assert parse_price("") is None
    assert parse_price("abc") is None
    assert parse_price("nan") is None


def test_valid_trip():
    assert validate_trip(trip_data(), NOW) == []
    assert validate_trip(trip_data(price=None), NOW) == []
    assert validate_trip(trip_data(price=0), NOW) == []


def test_trip_missing_everything():
    errors = validate_trip({}, NOW)
    assert "Origin address is required" in errors
    assert "Destination address is required" in errors
    assert "Departure time is required" in errors
    assert "Number of seats is required" in errors


@pytest.mark.parametrize("seats", ["0", "8", "two", -1])
def test_trip_seat_bounds(seats):
    assert validate_trip(trip_data(available_seats=seats), NOW) == ["Number of seats must be between 1 and 7"]


def test_trip_departure_in_past():
    past = (NOW - timedelta(minutes=1)).isoformat()
    assert validate_trip(trip_data(departure_timestamp=past), NOW) == ["Departure time must be in the future"]


def test_trip_negative_price():
    assert validate_trip(trip_data(price="-1"), NOW) == ["Price must be a positive number"]
