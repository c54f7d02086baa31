"""Shared limits, keyword sets and compiled patterns."""

import re

MAX_FILE_BYTES = 8 * 1024 * 1024  # 8MB
MAX_ROWS = 50_000
HEADER_SEARCH_ROWS = 40

# Early-stop heuristic for trailing footers / legal text.
NOISE_MIN_VALID_ROWS = 5
NOISE_STOP_AFTER = 3

PREVIEW_ROWS = 20

CANONICAL_FIELDS = (
    "date",
    "value_date",
    "amount",
    "description",
    "counterparty",
    "debit",
    "credit",
)
REQUIRED_FIELDS = ("date", "amount")
# Any one of these satisfies the "amount" requirement.
AMOUNT_FIELDS = ("amount", "debit", "credit")

# Substrings (on normalized header text) that make a row a header candidate.
HEADER_DATE_KEYWORDS = ("fecha", "date", "data")
HEADER_AMOUNT_KEYWORDS = (
    "importe",
    "amount",
    "cantidad",
    "monto",
    "euros",
    "import",
    "cargo",
    "abono",
    "debe",
    "haber",
    "debit",
    "credit",
)

DEFAULT_NOISE_PATTERNS = (
    "saldo inicial",
    "saldo final",
    "saldo anterior",
    "saldo actual",
    "subtotal",
    "total",
    "totales",
    "página",
    "page",
    "extracto",
    "periodo",
    "desde",
    "hasta",
    "nº de cuenta",
    "iban",
    "titular",
    "oficina",
)
# "desde" / "hasta" occur in ordinary transfer descriptions.
GENERIC_NOISE_PATTERNS = tuple(
    p for p in DEFAULT_NOISE_PATTERNS if p not in ("desde", "hasta")
)

EXCEL_SERIAL_HINT = "excel-serial"
DEFAULT_DATE_HINTS = ("dd/mm/yyyy", "dd-mm-yyyy")
GENERIC_DATE_HINTS = (
    "dd/mm/yyyy",
    "dd-mm-yyyy",
    "yyyy-mm-dd",
    "dd.mm.yyyy",
    "dd/mm/yy",
    EXCEL_SERIAL_HINT,
)

MIN_YEAR = 1900
MAX_YEAR = 2100
TWO_DIGIT_YEAR_PIVOT = 50  # yy > 50 -> 19yy, else 20yy

SPREADSHEET_EXTENSIONS = (".xlsx", ".xlsm", ".xls")
TEXT_EXTENSIONS = (".csv", ".txt", ".tsv")
SPREADSHEET_MIME_TYPES = (
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-excel",
    "application/vnd.ms-excel.sheet.macroenabled.12",
)
TEXT_ENCODINGS = ("utf-8-sig", "cp1252", "latin-1")

# Checked against "," (the default); one wins only with a strictly higher count.
ALT_SEPARATORS = (";", "\t")

# Number locale inference from amount samples (generic profile only).
LOCALE_SAMPLE_ROWS = 200
LOCALE_MIN_SCORE = 0.2
NUMBER_LIKE_RX = re.compile(r"^[\d.,]+$")

SEPARATOR_ROW_RX = re.compile(r"^[\s\-*_=]+$")
_CURRENCY_CODES = r"(?:EUR|USD|GBP|CHF|JPY|CAD|AUD|SEK|NOK|DKK|PLN|CZK|HUF|MXN)"
CURRENCY_CODE_RX = re.compile(
    rf"^\s*{_CURRENCY_CODES}\s*|\s*{_CURRENCY_CODES}\s*$",
    re.IGNORECASE,
)
CURRENCY_SYMBOL_RX = re.compile(r"[€$£¥₣\s ]")
CREDIT_DEBIT_SUFFIX_RX = re.compile(r"(CR|DR)$", re.IGNORECASE)
NUMERIC_RX = re.compile(r"^\d+(?:\.\d+)?$")
DATE_TIME_SUFFIX_RX = re.compile(r"[T ]\d{1,2}:\d{2}(?::\d{2}(?:\.\d+)?)?$")
