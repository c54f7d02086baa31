"""Bank statement ingestion pipeline.

loader -> header locator -> profile registry -> noise filter -> field
normalizer -> movement builder. The batch hash is computed independently of
parsing; ``ingest_file`` returns both so the caller can reject re-imports.

Every file either yields ``Success(ParseResult)`` with at least one movement
or ``Failure(kind, message)``; there is no partial result.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Union

from .builder import ParsedMovement, build_movement
from .classify import filter_rows
from .config import ParserOptions
from .constants import LOCALE_SAMPLE_ROWS, PREVIEW_ROWS
from .errors import EmptyFileError, ErrorKind, IngestError, NoValidMovementsError
from .hashing import BatchHash, compute_batch_hash, is_known_batch
from .headers import find_header_row
from .loader import Cell, LoadedGrid, RawGrid, SourceFile, load_grid
from .normalize import detect_number_format
from .profiles import (
    DetectedBank,
    HeaderMapping,
    ProfileRegistry,
    default_registry,
    resolve_mapping,
)

logger = logging.getLogger(__name__)


class ParseResult(NamedTuple):
    movements: List[ParsedMovement]
    total_rows: int
    errors: List[str]
    detected_bank: DetectedBank | None
    metadata: Dict[str, Any]
    warnings: List[str]

    @property
    def preview(self) -> List[ParsedMovement]:
        return self.movements[:PREVIEW_ROWS]


class Success(NamedTuple):
    result: ParseResult

    @property
    def ok(self) -> bool:
        return True


class Failure(NamedTuple):
    kind: ErrorKind
    message: str

    @property
    def ok(self) -> bool:
        return False


ParseOutcome = Union[Success, Failure]


def _amount_samples(
    rows: Iterable[tuple], mapping: HeaderMapping, limit: int = LOCALE_SAMPLE_ROWS
) -> List[Cell]:
    columns = [
        c for c in (mapping.amount, mapping.debit, mapping.credit) if c is not None
    ]
    samples: List[Cell] = []
    for _, row in rows:
        if len(samples) >= limit:
            break
        samples.extend(
            row[c] for c in columns if c < len(row) and isinstance(row[c], str)
        )
    return samples[:limit]


class IngestReport(NamedTuple):
    outcome: ParseOutcome
    batch_hash: BatchHash
    duplicate_batch: bool


def parse_grid(
    grid: LoadedGrid | RawGrid,
    registry: ProfileRegistry | None = None,
    options: ParserOptions | None = None,
    file_info: Mapping[str, Any] | None = None,
) -> ParseResult:
    """Parse an already-loaded grid. Raises IngestError on fatal problems."""
    options = options or ParserOptions()
    registry = registry if registry is not None else default_registry()
    if not isinstance(grid, LoadedGrid):
        rows = list(grid)
        grid = LoadedGrid(rows=rows, source_format="grid", original_row_count=len(rows))
    rows = grid.rows
    if not rows:
        raise EmptyFileError("File contains no rows")

    warnings: List[str] = []
    if grid.truncated:
        warnings.append(
            f"File has {grid.original_row_count} rows; only the first "
            f"{len(rows)} were processed"
        )

    header = find_header_row(rows, options.header_search_rows)
    profile, detected = registry.select_profile(header.labels)
    mapping = resolve_mapping(header.labels, profile)
    logger.debug(
        "Header at row %d, profile=%s, mapping=%s",
        header.index,
        profile.bank_key,
        mapping,
    )

    first_data = header.index + 1
    filtered = filter_rows(
        rows[first_data:],
        profile,
        start_index=first_data,
        min_valid=options.noise_min_valid_rows,
        stop_after=options.noise_stop_after,
    )
    if filtered.stopped_at is not None:
        logger.info(
            "Stopped reading at row %d after consecutive noise rows (%d discarded)",
            filtered.stopped_at + 1,
            filtered.discarded_after_stop,
        )

    # Bank profiles declare their locale; the generic one guesses from the data.
    number_format_detected = False
    if detected is None:
        guessed = detect_number_format(_amount_samples(filtered.rows, mapping))
        if guessed is not None:
            number_format_detected = True
            if guessed != profile.number_format:
                logger.info(
                    "Amounts look like decimal=%r thousand=%r; overriding %s defaults",
                    guessed.decimal,
                    guessed.thousand,
                    profile.bank_key,
                )
                profile = profile._replace(number_format=guessed)

    movements: List[ParsedMovement] = []
    errors: List[str] = []
    for grid_index, row in filtered.rows:
        movement, error = build_movement(
            grid_index, row, mapping, profile, header.labels
        )
        if movement is not None:
            movements.append(movement)
        elif error:
            errors.append(error)

    invalid = len(filtered.rows) - len(movements)
    if not movements:
        raise NoValidMovementsError(
            f"No valid movements found ({invalid} invalid rows"
            + (f"; first error: {errors[0]}" if errors else "")
            + ")"
        )

    info = dict(file_info or {})
    metadata: Dict[str, Any] = {
        "header_row": header.index,
        "headers_original": header.non_empty_labels,
        "rows_imported": len(movements),
        "rows_omitted": filtered.noise_count + filtered.discarded_after_stop,
        "rows_invalid": invalid,
        "rows_noise": filtered.noise_count,
        "stopped_at_row": filtered.stopped_at,
        "truncated": grid.truncated,
        "original_row_count": grid.original_row_count,
        "bank_key": detected.bank_key if detected else None,
        "bank_version": detected.bank_version if detected else None,
        "profile": profile.bank_key,
        "number_format": {
            "decimal": profile.number_format.decimal,
            "thousand": profile.number_format.thousand,
        },
        "number_format_detected": number_format_detected,
        "sheet_name": grid.sheet_name,
        "delimiter": grid.delimiter,
        "source_format": grid.source_format,
        "file_name": info.get("file_name"),
        "mime": info.get("mime"),
        "size": info.get("size"),
        "imported_at": datetime.now(timezone.utc).isoformat(),
    }
    return ParseResult(
        movements=movements,
        total_rows=len(rows),
        errors=errors,
        detected_bank=detected,
        metadata=metadata,
        warnings=warnings,
    )


def parse_file(
    source: SourceFile,
    registry: ProfileRegistry | None = None,
    options: ParserOptions | None = None,
) -> ParseOutcome:
    """Load and parse one uploaded file into a Success or Failure outcome."""
    options = options or ParserOptions()
    file_info = {
        "file_name": source.filename,
        "mime": source.mime,
        "size": source.byte_size,
    }
    try:
        grid = load_grid(source, options)
        result = parse_grid(grid, registry, options, file_info)
    except IngestError as e:
        logger.info("Parse of %s failed: %s (%s)", source.filename, e.kind.value, e)
        return Failure(e.kind, e.message)
    logger.info(
        "Parsed %s: %d movements, %d invalid rows",
        source.filename,
        len(result.movements),
        result.metadata["rows_invalid"],
    )
    return Success(result)


def ingest_file(
    source: SourceFile,
    registry: ProfileRegistry | None = None,
    options: ParserOptions | None = None,
    known_hashes: Iterable[str] = (),
) -> IngestReport:
    """Parse a file and compute its batch hash; the two never affect each other."""
    batch_hash = compute_batch_hash(source.content, source.filename)
    outcome = parse_file(source, registry, options)
    return IngestReport(outcome, batch_hash, is_known_batch(batch_hash, known_hashes))


__all__ = [
    "ParseResult",
    "Success",
    "Failure",
    "ParseOutcome",
    "IngestReport",
    "parse_grid",
    "parse_file",
    "ingest_file",
]
