"""Small shared helpers used by the ingestion modules."""

from __future__ import annotations

import math
import re
import unicodedata
from datetime import date
from typing import Any, Iterable, List, Sequence

import pandas as pd

_PUNCT_RX = re.compile(r"[^\w\s]")
_SPACE_RX = re.compile(r"\s+")


def normalize_text(text: Any) -> str:
    """Lowercase, strip accents and punctuation, collapse whitespace.

    ``"  Fecha Valor:"`` -> ``"fecha valor"``; ``"Comisión"`` -> ``"comision"``.
    """
    if text is None:
        return ""
    s = unicodedata.normalize("NFD", str(text).lower())
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    s = _PUNCT_RX.sub("", s)
    return _SPACE_RX.sub(" ", s).strip()


def cell_text(cell: Any) -> str:
    """Trimmed string form of a raw grid cell ('' for None / NaN)."""
    if cell is None:
        return ""
    if isinstance(cell, float) and math.isnan(cell):
        return ""
    if isinstance(cell, date):
        return cell.isoformat()
    if isinstance(cell, float) and cell.is_integer():
        return str(int(cell))
    return str(cell).strip()


def is_blank(cell: Any) -> bool:
    return cell_text(cell) == ""


def row_text(row: Sequence[Any]) -> str:
    """Space-joined text of a row, used for substring noise matching."""
    return " ".join(cell_text(c) for c in row)


def movements_to_frame(movements: Iterable[Any]) -> pd.DataFrame:
    """Flatten parsed movements into a DataFrame (``raw_data`` dropped).

    Accepts any iterable of NamedTuple-like records exposing ``_asdict``.
    """
    records: List[dict] = []
    for mv in movements:
        rec = dict(mv._asdict())
        rec.pop("raw_data", None)
        records.append(rec)
    return pd.DataFrame(records)


def df_to_records(df: pd.DataFrame | None) -> List[dict]:
    """Convert a DataFrame to JSON-serializable records.

    - Converts pandas NA to None
    - Converts date/datetime objects to ISO strings when possible
    """
    if df is None or df.empty:
        return []
    out = df.to_dict(orient="records")
    for rec in out:
        for k, v in list(rec.items()):
            if v is None or (not isinstance(v, (list, dict)) and pd.isna(v)):
                rec[k] = None
            elif hasattr(v, "isoformat"):
                rec[k] = v.isoformat()
    return out


__all__ = [
    "normalize_text",
    "cell_text",
    "is_blank",
    "row_text",
    "movements_to_frame",
    "df_to_records",
]
