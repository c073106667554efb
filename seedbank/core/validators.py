#!/usr/bin/env python3
"""
validators.py
--------------------
Data validation and normalization utilities for all Seedbank operations.

Provides type-safe conversion, validation, and normalization functions
used by the schema validator, the reference resolver and the managers.
Scraped source data is loose: numbers arrive as strings, dates in half a
dozen shapes, names with stray whitespace. Everything is funnelled through
here so every component agrees on the same normal form.
"""
from __future__ import annotations

import math
import re
from datetime import date, datetime, timezone
from typing import Any, Optional

from .exceptions import ValidationError

# Values treated as "no name given" by scrapers
PLACEHOLDER_NAMES = frozenset({"", "_", "-", "null", "none", "n/a", "unknown"})

_MONTHS = {
    "january": 1, "february": 2, "march": 3, "april": 4, "may": 5, "june": 6,
    "july": 7, "august": 8, "september": 9, "october": 10, "november": 11,
    "december": 12,
}

_WHITESPACE_RE = re.compile(r"\s+")
_NUMERIC_RE = re.compile(r"^[+-]?\d+(?:\.\d+)?$")

# "August 14th 2025", "Aug 14, 2025"
_MONTH_FIRST_RE = re.compile(
    r"^([A-Za-z]+)\.?\s+(\d{1,2})(?:st|nd|rd|th)?,?\s+(\d{4})$", re.IGNORECASE
)
# "14 August 2025", "14th Aug, 2025"
_DAY_FIRST_RE = re.compile(
    r"^(\d{1,2})(?:st|nd|rd|th)?\s+([A-Za-z]+)\.?,?\s+(\d{4})$", re.IGNORECASE
)


class DataValidator:
    """Centralized data validation and normalization."""

    @staticmethod
    def normalize_string(value: Any) -> Optional[str]:
        """
        Normalize string value.

        Trims, collapses internal whitespace runs to a single space and
        returns None for empty results.

        Args:
            value: Value to normalize

        Returns:
            Normalized string or None

        Examples:
            >>> DataValidator.normalize_string("  Jane   Doe ")
            'Jane Doe'
            >>> DataValidator.normalize_string("   ") is None
            True
        """
        if value is None:
            return None
        if not isinstance(value, str):
            value = str(value)
        value = _WHITESPACE_RE.sub(" ", value).strip()
        return value or None

    @staticmethod
    def normalize_key(value: Any) -> str:
        """
        Case-insensitive comparison key for a name.

        Examples:
            >>> DataValidator.normalize_key(" JANE  doe")
            'jane doe'
        """
        return (DataValidator.normalize_string(value) or "").lower()

    @staticmethod
    def is_placeholder(value: Any) -> bool:
        """Whether a name is empty or one of the scraper placeholders."""
        return DataValidator.normalize_key(value) in PLACEHOLDER_NAMES

    @staticmethod
    def normalize_bool(value: Any) -> Optional[bool]:
        """
        Convert various inputs to boolean.

        Args:
            value: Value to convert

        Returns:
            Boolean value or None

        Raises:
            ValidationError: If conversion fails
        """
        if isinstance(value, bool):
            return value
        elif isinstance(value, (int, float)):
            if value == 0:
                return False
            elif value == 1:
                return True
            else:
                raise ValidationError(f"Cannot convert numeric '{value}' to boolean")
        elif isinstance(value, str):
            if value.lower() in ("true", "1", "yes", "on", "active"):
                return True
            elif value.lower() in ("false", "0", "no", "off", "inactive"):
                return False
            else:
                raise ValidationError(f"Cannot convert '{value}' to boolean")
        elif value is not None:
            return bool(value)
        return None

    @staticmethod
    def normalize_float(value: Any) -> Optional[float]:
        """
        Convert a JSON number or numeric string to float.

        Args:
            value: Value to convert

        Returns:
            Float value, or None when value is None/empty

        Raises:
            ValidationError: If the value is not numeric or not finite
                (NaN, Infinity and overflowing literals such as 1e400)
        """
        if value is None:
            return None
        if isinstance(value, bool):
            raise ValidationError(f"Expected a number, got boolean {value}")

        number: Optional[float] = None
        try:
            if isinstance(value, (int, float)):
                number = float(value)
            elif isinstance(value, str):
                stripped = value.strip().replace(",", "")
                if not stripped:
                    return None
                if _NUMERIC_RE.match(stripped):
                    number = float(stripped)
        except OverflowError as e:
            raise ValidationError(f"Number out of range: {value!r}") from e

        if number is None:
            raise ValidationError(f"Expected a number, got {value!r}")
        if not math.isfinite(number):
            raise ValidationError(f"Expected a finite number, got {value!r}")
        return number

    @staticmethod
    def normalize_int(value: Any) -> Optional[int]:
        """
        Convert a JSON number or numeric string to int.

        Fractional values are truncated ("1,204" and "1204.0" both give 1204).

        Raises:
            ValidationError: If the value is not numeric
        """
        number = DataValidator.normalize_float(value)
        return int(number) if number is not None else None

    @staticmethod
    def parse_datetime(value: Any) -> Optional[datetime]:
        """
        Parse the date shapes found in scraped sources.

        Accepted:
            - datetime / date objects
            - ISO-8601 strings ("2025-08-14", "2025-08-14T10:00:00Z")
            - Month-first with optional ordinal ("August 14th 2025", "Aug 14, 2025")
            - Day-first ("14 August 2025")
            - Unix timestamps, seconds or milliseconds (number or numeric string)

        Args:
            value: Raw value

        Returns:
            Timezone-aware UTC datetime, or None when the value is unparseable
        """
        if value is None or isinstance(value, bool):
            return None

        if isinstance(value, datetime):
            return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        if isinstance(value, date):
            return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

        if isinstance(value, (int, float)):
            return _from_timestamp(value)

        if not isinstance(value, str):
            return None

        text = _WHITESPACE_RE.sub(" ", value).strip()
        if not text:
            return None

        if _NUMERIC_RE.match(text):
            return _from_timestamp(float(text))

        iso = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
        try:
            parsed = datetime.fromisoformat(iso)
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
        except ValueError:
            pass

        match = _MONTH_FIRST_RE.match(text)
        if match:
            month_name, day, year = match.groups()
            return _build_date(year, month_name, day)

        match = _DAY_FIRST_RE.match(text)
        if match:
            day, month_name, year = match.groups()
            return _build_date(year, month_name, day)

        return None

    @staticmethod
    def normalize_datetime(value: Any) -> datetime:
        """
        Parse a date, falling back to the current time.

        Missing or unparseable dates never fail a record.
        """
        return DataValidator.parse_datetime(value) or datetime.now(timezone.utc)


def _lookup_month(name: str) -> Optional[int]:
    name = name.lower()
    if name in _MONTHS:
        return _MONTHS[name]
    if len(name) >= 3:
        for full, number in _MONTHS.items():
            if full.startswith(name):
                return number
    return None


def _build_date(year: str, month_name: str, day: str) -> Optional[datetime]:
    month = _lookup_month(month_name)
    if month is None:
        return None
    try:
        return datetime(int(year), month, int(day), tzinfo=timezone.utc)
    except ValueError:
        return None


def _from_timestamp(value: float) -> Optional[datetime]:
    # Millisecond timestamps are common in JS-produced dumps
    if abs(value) > 1e11:
        value = value / 1000.0
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None
