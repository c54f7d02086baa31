"""Turn one classified data row into a ParsedMovement."""

from __future__ import annotations

from datetime import date
from types import MappingProxyType
from typing import List, Mapping, NamedTuple, Sequence, Tuple

from .loader import Cell
from .normalize import derive_signed_amount, parse_amount_value, parse_date_value
from .profiles import BankProfile, HeaderMapping
from .utils import cell_text, is_blank


class ParsedMovement(NamedTuple):
    date: date
    value_date: date | None
    amount: float
    description: str
    counterparty: str | None
    original_row_index: int  # 0-based index in the raw grid
    raw_data: Mapping[str, Cell]


def column_labels(header_labels: Sequence[str], width: int) -> List[str]:
    """Unique audit labels: header text, or ``col_<i>`` for blank/duplicate."""
    labels: List[str] = []
    seen: set[str] = set()
    for idx in range(max(width, len(header_labels))):
        label = header_labels[idx].strip() if idx < len(header_labels) else ""
        if not label or label in seen:
            label = f"col_{idx}"
        seen.add(label)
        labels.append(label)
    return labels


def _cell(row: Sequence[Cell], idx: int | None) -> Cell:
    if idx is None or idx >= len(row):
        return ""
    return row[idx]


def build_movement(
    grid_index: int,
    row: Sequence[Cell],
    mapping: HeaderMapping,
    profile: BankProfile,
    labels: Sequence[str],
) -> Tuple[ParsedMovement | None, str | None]:
    """Return ``(movement, None)`` or ``(None, error message)`` for one row.

    Only date and amount are required; an unparseable value date is dropped.
    Filled debit / credit cells take priority over a signed amount column.
    """
    row_no = grid_index + 1
    date_cell = _cell(row, mapping.date)
    amount_cell = _cell(row, mapping.amount)
    debit_cell = _cell(row, mapping.debit)
    credit_cell = _cell(row, mapping.credit)
    split = not (is_blank(debit_cell) and is_blank(credit_cell))
    missing = []
    if is_blank(date_cell):
        missing.append("date")
    if not split and is_blank(amount_cell):
        missing.append("amount")
    if missing:
        return None, f"Row {row_no}: missing {' and '.join(missing)}"

    parsed_date = parse_date_value(date_cell, profile)
    if not parsed_date.ok:
        return None, f"Row {row_no} (date): {parsed_date.message}"
    if split:
        parsed_amount = derive_signed_amount(debit_cell, credit_cell, profile)
    else:
        parsed_amount = parse_amount_value(amount_cell, profile)
    if not parsed_amount.ok:
        return None, f"Row {row_no} (amount): {parsed_amount.message}"

    value_date = None
    if mapping.value_date is not None:
        vd_cell = _cell(row, mapping.value_date)
        if cell_text(vd_cell):
            vd = parse_date_value(vd_cell, profile)
            value_date = vd.value if vd.ok else None

    counterparty = cell_text(_cell(row, mapping.counterparty)) or None
    cols = column_labels(labels, len(row))
    raw = MappingProxyType({cols[i]: cell for i, cell in enumerate(row)})

    movement = ParsedMovement(
        date=parsed_date.value,
        value_date=value_date,
        amount=parsed_amount.value,
        description=cell_text(_cell(row, mapping.description)),
        counterparty=counterparty,
        original_row_index=grid_index,
        raw_data=raw,
    )
    return movement, None


__all__ = ["ParsedMovement", "column_labels", "build_movement"]
