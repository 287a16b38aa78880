"""Shared parsing helpers for services and blueprints.

parse_date:        tolerant date parsing (returns None on empty input)
parse_decimal:     money amounts as Decimal
parse_pagination:  ?page= / ?limit= query args with sane bounds
"""
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from agencyflow.core.exceptions import ValidationError


def parse_date(value, field="date"):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY

    Raises ValidationError on non-empty input that matches none of them.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError) as exc:
        raise ValidationError(
            f"Invalid {field}. Use YYYY-MM-DD or DD.MM.YYYY.",
            details={field: str(value)},
        ) from exc


def parse_decimal(value, field="amount"):
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid {field}", details={field: str(value)}) from exc


def parse_int(value, field):
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field} must be an integer", details={field: str(value)}) from exc


def parse_pagination(args, default_limit=10, max_limit=100):
    """Read ``page`` / ``limit`` from request args. Bad values fall back to defaults."""
    try:
        page = max(int(args.get("page", 1)), 1)
    except (TypeError, ValueError):
        page = 1
    try:
        limit = int(args.get("limit", default_limit))
    except (TypeError, ValueError):
        limit = default_limit
    limit = min(max(limit, 1), max_limit)
    return page, limit
