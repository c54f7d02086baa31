"""Noise-row filtering for the data region below the header."""

from __future__ import annotations

from typing import List, NamedTuple, Sequence, Tuple

from .constants import NOISE_MIN_VALID_ROWS, NOISE_STOP_AFTER, SEPARATOR_ROW_RX
from .profiles import BankProfile
from .utils import is_blank, row_text


class FilteredRows(NamedTuple):
    rows: List[Tuple[int, list]]  # (original grid index, cells)
    noise_count: int
    stopped_at: int | None  # grid index where the early stop fired
    discarded_after_stop: int


def is_noise_row(row: Sequence, profile: BankProfile) -> bool:
    """Empty rows, separator rows and rows containing a noise pattern."""
    if not row or all(is_blank(c) for c in row):
        return True
    text = row_text(row).lower()
    if any(p in text for p in profile.noise_patterns):
        return True
    return bool(SEPARATOR_ROW_RX.match(text))


def filter_rows(
    rows: Sequence[Sequence],
    profile: BankProfile,
    start_index: int = 0,
    min_valid: int = NOISE_MIN_VALID_ROWS,
    stop_after: int = NOISE_STOP_AFTER,
) -> FilteredRows:
    """Drop noise rows; stop early on a trailing footer block.

    Once ``min_valid`` rows have been kept, ``stop_after`` consecutive noise
    rows end the scan and everything after them is discarded. ``start_index``
    is the grid index of ``rows[0]`` so kept rows retain their position.
    """
    kept: List[Tuple[int, list]] = []
    noise = 0
    consecutive = 0
    for offset, row in enumerate(rows):
        if is_noise_row(row, profile):
            noise += 1
            consecutive += 1
            if stop_after > 0 and len(kept) >= min_valid and consecutive >= stop_after:
                stopped_at = start_index + offset
                return FilteredRows(kept, noise, stopped_at, len(rows) - offset - 1)
            continue
        kept.append((start_index + offset, list(row)))
        consecutive = 0
    return FilteredRows(kept, noise, None, 0)


__all__ = ["FilteredRows", "is_noise_row", "filter_rows"]
