"""Header row detection (skips logo / letterhead rows above the table)."""

from __future__ import annotations

from typing import List, NamedTuple, Sequence

from .constants import HEADER_AMOUNT_KEYWORDS, HEADER_DATE_KEYWORDS, HEADER_SEARCH_ROWS
from .errors import NoHeaderFoundError
from .utils import cell_text, normalize_text


class HeaderLocation(NamedTuple):
    index: int
    labels: List[str]  # positional; blank cells kept as ""

    @property
    def non_empty_labels(self) -> List[str]:
        return [lbl for lbl in self.labels if lbl]


def looks_like_header(row: Sequence) -> bool:
    """At least two non-empty cells, one date-like and one amount-like."""
    texts = [cell_text(c) for c in row]
    non_empty = [t for t in texts if t]
    if len(non_empty) < 2:
        return False
    normalized = [normalize_text(t) for t in non_empty]
    has_date = any(k in h for h in normalized for k in HEADER_DATE_KEYWORDS)
    has_amount = any(k in h for h in normalized for k in HEADER_AMOUNT_KEYWORDS)
    return has_date and has_amount


def find_header_row(
    rows: Sequence[Sequence], max_rows: int = HEADER_SEARCH_ROWS
) -> HeaderLocation:
    """Return the first row within ``max_rows`` that looks like a header.

    Raises NoHeaderFoundError when none qualifies.
    """
    limit = min(max_rows, len(rows))
    for idx in range(limit):
        row = rows[idx]
        if not row:
            continue
        if looks_like_header(row):
            return HeaderLocation(idx, [cell_text(c) for c in row])
    raise NoHeaderFoundError(
        f"No header row with date and amount columns found in the first {limit} rows"
    )


__all__ = ["HeaderLocation", "looks_like_header", "find_header_row"]
