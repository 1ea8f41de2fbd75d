"""Shared utilities for validation and normalization."""

from __future__ import annotations

import math
import re
from collections.abc import Iterable
from datetime import UTC, date, datetime
from typing import Any

from .exceptions import ValidationError
from .models import ROLES, LotSpec, ParkingLot

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PINCODE_RE = re.compile(r"[^0-9A-Z]")

MIN_PASSWORD_LENGTH = 6


def normalize_username(username: str) -> str:
    if not isinstance(username, str):
        raise ValidationError("Username must be a string.")
    normalized = username.strip()
    if not normalized:
        raise ValidationError("Username is required.")
    return normalized


def normalize_email(email: str) -> str:
    if not isinstance(email, str) or not email.strip():
        raise ValidationError("Email is required.")
    normalized = email.strip().lower()
    if not _EMAIL_RE.match(normalized):
        raise ValidationError("Email is not a valid address.")
    return normalized


def validate_password(password: str, confirm_password: str | None = None) -> str:
    if not isinstance(password, str) or not password:
        raise ValidationError("Password is required.")
    if confirm_password is not None and password != confirm_password:
        raise ValidationError("Passwords do not match.")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    return password


def normalize_role(role: Any) -> str:
    if not isinstance(role, str) or role.strip().lower() not in ROLES:
        raise ValidationError("Role must be 'admin' or 'user'.")
    return role.strip().lower()


def normalize_pincode(pincode: str | None) -> str:
    if pincode is None:
        return ""
    if not isinstance(pincode, str | int) or isinstance(pincode, bool):
        raise ValidationError("Pincode must be a string.")
    return _PINCODE_RE.sub("", str(pincode).upper())


def parse_price(value: Any) -> float:
    if value is None or isinstance(value, bool) or value == "":
        raise ValidationError("Price per hour is required.")
    try:
        price = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError("Price per hour must be a number.") from exc
    if not math.isfinite(price) or price <= 0:
        raise ValidationError("Price per hour must be positive.")
    return round_money(price)


def parse_spot_count(value: Any) -> int:
    if value is None or isinstance(value, bool) or value == "":
        raise ValidationError("Total spots is required.")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError("Total spots must be a whole number.")
        value = int(value)
    try:
        count = int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError("Total spots must be a whole number.") from exc
    if count <= 0:
        raise ValidationError("Total spots must be positive.")
    return count


def validate_lot_spec(spec: LotSpec) -> LotSpec:
    if not isinstance(spec, LotSpec):
        raise ValidationError("Lot details are required.")
    name = spec.name.strip() if isinstance(spec.name, str) else ""
    if not name:
        raise ValidationError("Lot name is required.")
    address = spec.address.strip() if isinstance(spec.address, str) else ""
    return LotSpec(
        name=name,
        address=address,
        pincode=normalize_pincode(spec.pincode),
        price_per_hour=parse_price(spec.price_per_hour),
        total_spots=parse_spot_count(spec.total_spots),
    )


def require_id(value: Any, field: str) -> str:
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required.")
    text = str(value).strip()
    if not text:
        raise ValidationError(f"{field} is required.")
    return text


def round_money(value: float) -> float:
    return round(float(value), 2)


def parse_timestamp(value: str) -> datetime:
    if not isinstance(value, str) or not value:
        raise ValidationError("Timestamp must be a non-empty string.")
    raw = value.strip()
    if raw.endswith("Z"):
        raw = f"{raw[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError as exc:
        raise ValidationError("Timestamp is not a valid ISO 8601 value.") from exc
    if parsed.tzinfo is None:
        raise ValidationError("Timestamp must include timezone information.")
    return parsed.astimezone(UTC)


def format_utc_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        raise ValidationError("Timestamp must include timezone information.")
    normalized = value.astimezone(UTC).replace(microsecond=0)
    return normalized.isoformat().replace("+00:00", "Z")


def ensure_utc_timestamp(value: str) -> str:
    return format_utc_timestamp(parse_timestamp(value))


def billable_hours(start_time: str, end_time: str) -> int:
    """Whole hours between two timestamps, rounded up, at least one."""
    start = parse_timestamp(start_time)
    end = parse_timestamp(end_time)
    if end < start:
        raise ValidationError("end_time must not be before start_time.")
    seconds = (end - start).total_seconds()
    return max(1, math.ceil(seconds / 3600))


def format_duration(start_time: str | None, end_time: str | None) -> str:
    if not start_time or not end_time:
        return "N/A"
    hours = abs((parse_timestamp(end_time) - parse_timestamp(start_time)).total_seconds()) / 3600
    return f"{hours:.1f} hrs"


def format_elapsed(start_time: str | None, now: datetime) -> str:
    if not start_time:
        return "N/A"
    minutes = int((now - parse_timestamp(start_time)).total_seconds() // 60)
    if minutes < 60:
        return f"{minutes} min"
    return f"{minutes // 60}h {minutes % 60}m"


def filter_lots(lots: Iterable[ParkingLot], query: str | None) -> list[ParkingLot]:
    if not query:
        return list(lots)
    needle = query.lower()
    return [
        lot
        for lot in lots
        if needle in lot.name.lower() or needle in lot.address.lower() or query in lot.pincode
    ]


def export_filename(day: date) -> str:
    return f"parking_history_{day.isoformat()}.csv"
