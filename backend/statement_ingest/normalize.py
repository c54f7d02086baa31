"""Locale-aware date and amount parsing for single cells.

Both entry points are pure and never raise: they return a ``FieldResult``
whose ``error`` is set (``InvalidDate`` / ``InvalidAmount``) on failure so the
movement builder can aggregate problems per row.
"""

from __future__ import annotations

import math
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, NamedTuple, Tuple

from .constants import (
    CREDIT_DEBIT_SUFFIX_RX,
    CURRENCY_CODE_RX,
    CURRENCY_SYMBOL_RX,
    DATE_TIME_SUFFIX_RX,
    EXCEL_SERIAL_HINT,
    LOCALE_MIN_SCORE,
    MAX_YEAR,
    MIN_YEAR,
    NUMBER_LIKE_RX,
    NUMERIC_RX,
    TWO_DIGIT_YEAR_PIVOT,
)
from .errors import ErrorKind
from .profiles import BankProfile, NumberFormat
from .utils import cell_text, is_blank

_EXCEL_EPOCH = date(1899, 12, 30)
_EXCEL_MAX_SERIAL = 2958465  # 9999-12-31

# hint -> (separator, component order, digits expected in the year part)
_DATE_LAYOUTS: Dict[str, Tuple[str, str, int]] = {
    "dd/mm/yyyy": ("/", "dmy", 4),
    "dd-mm-yyyy": ("-", "dmy", 4),
    "dd.mm.yyyy": (".", "dmy", 4),
    "yyyy-mm-dd": ("-", "ymd", 4),
    "yyyy/mm/dd": ("/", "ymd", 4),
    "mm/dd/yyyy": ("/", "mdy", 4),
    "dd/mm/yy": ("/", "dmy", 2),
    "dd-mm-yy": ("-", "dmy", 2),
    "dd.mm.yy": (".", "dmy", 2),
    "yyyymmdd": ("", "ymd", 4),
    "ddmmyyyy": ("", "dmy", 4),
}

SUPPORTED_DATE_HINTS = tuple(_DATE_LAYOUTS) + (EXCEL_SERIAL_HINT,)


class FieldResult(NamedTuple):
    value: Any = None
    error: ErrorKind | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None


def _invalid_date(raw: Any, why: str) -> FieldResult:
    return FieldResult(None, ErrorKind.INVALID_DATE, f"invalid date {raw!r}: {why}")


def _invalid_amount(raw: Any, why: str) -> FieldResult:
    return FieldResult(None, ErrorKind.INVALID_AMOUNT, f"invalid amount {raw!r}: {why}")


def _expand_year(year: int, digits: int) -> int:
    if digits == 2:
        return 1900 + year if year > TWO_DIGIT_YEAR_PIVOT else 2000 + year
    return year


def _split_compact(text: str, order: str) -> list[str] | None:
    if len(text) != 8:
        return None
    if order == "ymd":
        return [text[:4], text[4:6], text[6:]]
    return [text[:2], text[2:4], text[4:]]


def parse_date_with_hint(text: str, hint: str) -> date | None:
    """Parse ``text`` strictly according to one format hint, or return None."""
    layout = _DATE_LAYOUTS.get(hint.lower())
    if layout is None:
        return None
    separator, order, year_digits = layout
    text = DATE_TIME_SUFFIX_RX.sub("", text.strip())
    parts = text.split(separator) if separator else _split_compact(text, order)
    if not parts or len(parts) != 3:
        return None
    if not all(p.isdigit() for p in parts):
        return None
    comp = dict(zip(order, parts))
    if year_digits == 2 and len(comp["y"]) != 2:
        return None
    day, month = int(comp["d"]), int(comp["m"])
    year = _expand_year(int(comp["y"]), year_digits)
    if not (1 <= day <= 31 and 1 <= month <= 12 and MIN_YEAR <= year <= MAX_YEAR):
        return None
    try:
        return date(year, month, day)
    except ValueError:  # e.g. 31/02
        return None


def excel_serial_to_date(serial: float) -> date | None:
    """Spreadsheet serial day number (1900 date system) -> date."""
    if isinstance(serial, bool) or not isinstance(serial, (int, float)):
        return None
    if math.isnan(serial) or serial < 1 or serial > _EXCEL_MAX_SERIAL:
        return None
    d = _EXCEL_EPOCH + timedelta(days=int(serial))
    if not (MIN_YEAR <= d.year <= MAX_YEAR):
        return None
    return d


def parse_date_value(value: Any, profile: BankProfile) -> FieldResult:
    """Parse a raw cell into a calendar date using the profile's hints in order."""
    if isinstance(value, datetime):
        return FieldResult(value.date())
    if isinstance(value, date):
        return FieldResult(value)
    hints = profile.date_hints
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if isinstance(value, float) and math.isnan(value):
            return _invalid_date(value, "empty")
        if EXCEL_SERIAL_HINT in hints:
            d = excel_serial_to_date(value)
            if d is not None:
                return FieldResult(d)
    text = cell_text(value)
    if not text:
        return _invalid_date(value, "empty")
    for hint in hints:
        if hint == EXCEL_SERIAL_HINT:
            continue
        d = parse_date_with_hint(text, hint)
        if d is not None:
            return FieldResult(d)
    return _invalid_date(value, f"does not match {', '.join(hints)}")


def _apply_number_format(core: str, fmt: NumberFormat) -> str:
    decimal, thousand = fmt.decimal, fmt.thousand
    if decimal in core and thousand in core and core.rfind(thousand) > core.rfind(decimal):
        # Separators in the opposite order to the profile: the rightmost one
        # is the decimal mark.
        decimal, thousand = thousand, decimal
    core = core.replace(thousand, "")
    if decimal != ".":
        core = core.replace(decimal, ".")
    return core


def parse_amount_text(text: str, fmt: NumberFormat) -> float | None:
    """Parse a locale formatted amount string; None if it is not a number.

    Handles currency symbols / codes, ``(1.234,56)``, ``1.234,56-``,
    leading sign and ``CR`` / ``DR`` suffixes.
    """
    if not text:
        return None
    s = CURRENCY_CODE_RX.sub("", text.strip())
    s = CURRENCY_SYMBOL_RX.sub("", s)
    neg = False
    suffix = CREDIT_DEBIT_SUFFIX_RX.search(s)
    if suffix:
        neg = suffix.group(1).upper() == "DR"
        s = s[: suffix.start()]
    if s.startswith("(") and s.endswith(")"):
        neg = True
        s = s[1:-1]
    if s.startswith("+"):
        s = s[1:]
    elif s.startswith("-"):
        neg = True
        s = s[1:]
    elif s.endswith("-"):
        neg = True
        s = s[:-1]
    if not s:
        return None
    core = _apply_number_format(s, fmt)
    if not NUMERIC_RX.fullmatch(core):
        return None
    value = float(core)
    return -value if neg else value


def parse_amount_value(value: Any, profile: BankProfile) -> FieldResult:
    """Parse a raw cell into a signed float amount."""
    if isinstance(value, bool):
        return _invalid_amount(value, "not a number")
    if isinstance(value, (int, float)):
        if math.isnan(value) or math.isinf(value):
            return _invalid_amount(value, "not a number")
        return FieldResult(float(value))
    text = cell_text(value)
    if not text:
        return _invalid_amount(value, "empty")
    amount = parse_amount_text(text, profile.number_format)
    if amount is None:
        return _invalid_amount(value, "not a number")
    return FieldResult(amount)


def derive_signed_amount(debit: Any, credit: Any, profile: BankProfile) -> FieldResult:
    """Combine separate debit / credit cells into one signed amount.

    Debits come out negative and credits positive, whatever sign the bank
    printed. If both cells are non-zero the larger one wins (a tie counts as
    a debit); two zero or blank cells give 0.0.
    """
    magnitudes = []
    for cell in (debit, credit):
        if is_blank(cell):
            magnitudes.append(0.0)
            continue
        parsed = parse_amount_value(cell, profile)
        if not parsed.ok:
            return parsed
        magnitudes.append(abs(parsed.value))
    out, inn = magnitudes
    if out and out >= inn:
        return FieldResult(-out)
    return FieldResult(inn)


def _number_like(text: str) -> str | None:
    s = CURRENCY_CODE_RX.sub("", text.strip())
    s = CURRENCY_SYMBOL_RX.sub("", s)
    s = s.strip("()").lstrip("+-").rstrip("-")
    if not s or not NUMBER_LIKE_RX.match(s) or not any(ch.isdigit() for ch in s):
        return None
    return s


def detect_number_format(samples: Iterable[Any]) -> NumberFormat | None:
    """Guess the decimal / thousands separators from amount samples.

    Only text cells count (spreadsheet numbers carry no locale). Returns
    None when there is nothing to go on; a sample set that does not clearly
    look dot-decimal falls back to comma-decimal.
    """
    numbers = []
    for value in samples:
        if not isinstance(value, str):
            continue
        s = _number_like(value)
        if s is not None:
            numbers.append(s)
    if not numbers:
        return None

    comma_decimal = dot_decimal = dot_thousands = comma_thousands = 0
    for s in numbers:
        last_comma, last_dot = s.rfind(","), s.rfind(".")
        if last_comma >= 0 and 1 <= len(s) - last_comma - 1 <= 2:
            comma_decimal += 1
        if last_dot >= 0 and 1 <= len(s) - last_dot - 1 <= 2:
            dot_decimal += 1
        if s.count(".") > 1 or (0 <= s.find(".") < last_comma):
            dot_thousands += 1
        if s.count(",") > 1:
            comma_thousands += 1

    n = len(numbers)
    comma_score = 0.5 * comma_decimal / n + 0.3 * dot_thousands / n
    dot_score = 0.5 * dot_decimal / n + 0.3 * comma_thousands / n
    if dot_score > comma_score and dot_score > LOCALE_MIN_SCORE:
        return NumberFormat(".", ",")
    return NumberFormat(",", ".")


__all__ = [
    "FieldResult",
    "SUPPORTED_DATE_HINTS",
    "parse_date_with_hint",
    "excel_serial_to_date",
    "parse_date_value",
    "parse_amount_text",
    "parse_amount_value",
    "derive_signed_amount",
    "detect_number_format",
]
