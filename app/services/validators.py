"""Input validators. Each returns a list of user-facing error strings; empty means valid."""
import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

MIN_PASSWORD_LENGTH = 6
MIN_SEATS = 1
MAX_SEATS = 7

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_RE = re.compile(r"^[0-9\s()+-]+$")
_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$", re.IGNORECASE)


def is_valid_email(email) -> bool:
    return isinstance(email, str) and bool(_EMAIL_RE.match(email))


def is_valid_phone(phone) -> bool:
    if not isinstance(phone, str) or not _PHONE_RE.match(phone):
        return False
    return len(re.sub(r"\D", "", phone)) >= 10


def is_valid_uuid(value) -> bool:
    return isinstance(value, str) and bool(_UUID_RE.match(value))


def _name_ok(name) -> bool:
    return isinstance(name, str) and len(name.strip()) >= 2


def validate_login(email, password) -> list[str]:
    errors = []
    if not email or not is_valid_email(email):
        errors.append("Valid email is required")
    if not password:
        errors.append("Password is required")
    return errors


def validate_registration(email, password, password_confirm, full_name, phone) -> list[str]:
    errors = []
    if not email or not is_valid_email(email):
        errors.append("Valid email is required")
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if password != password_confirm:
        errors.append("Passwords do not match")
    if not _name_ok(full_name):
        errors.append("Full name is required (minimum 2 characters)")
    if not phone or not is_valid_phone(phone):
        errors.append("Valid phone number is required")
    return errors


def validate_profile_update(full_name, phone) -> list[str]:
    errors = []
    if not _name_ok(full_name):
        errors.append("Name is required and must be at least 2 characters")
    if not phone or not is_valid_phone(phone):
        errors.append("Valid phone number is required")
    return errors


def validate_password_change(current_password, new_password, password_confirm,
                             min_length: int = MIN_PASSWORD_LENGTH) -> list[str]:
    if not current_password or not new_password:
        return ["All password fields are required"]
    errors = []
    if new_password != password_confirm:
        errors.append("New passwords do not match")
    if len(new_password) < min_length:
        errors.append(f"New password must be at least {min_length} characters")
    return errors


def parse_timestamp(value) -> datetime | None:
    """Parse an ISO-8601 string (or datetime) into an aware UTC datetime; None if unparseable."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        try:
            dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_price(value) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        price = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return price if price.is_finite() else None


def validate_trip(data: dict, now: datetime | None = None) -> list[str]:
    now = now or datetime.now(timezone.utc)
    errors = []

    if not str(data.get("origin_text") or "").strip():
        errors.append("Origin address is required")
    if not str(data.get("destination_text") or "").strip():
        errors.append("Destination address is required")

    raw_departure = data.get("departure_timestamp")
    if not raw_departure:
        errors.append("Departure time is required")
    else:
        departure = parse_timestamp(raw_departure)
        if departure is None:
            errors.append("Departure time must be a valid date and time")
        elif departure <= now:
            errors.append("Departure time must be in the future")

    seats = data.get("available_seats")
    if seats is None or seats == "":
        errors.append("Number of seats is required")
    else:
        try:
            n = int(str(seats).strip())
        except ValueError:
            n = None
        if n is None or n < MIN_SEATS or n > MAX_SEATS:
            errors.append(f"Number of seats must be between {MIN_SEATS} and {MAX_SEATS}")

    price = data.get("price")
    if price not in (None, ""):
        parsed = parse_price(price)
        if parsed is None or parsed < 0:
            errors.append("Price must be a positive number")

    return errors
