"""Error taxonomy for the ingestion pipeline.

File-level problems are raised internally as ``IngestError`` subclasses and
converted into a ``Failure`` outcome at the pipeline boundary. Row-level
kinds (``InvalidDate`` / ``InvalidAmount``) never escape the movement
builder; they are reported as ``FieldResult`` errors and accumulated.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    EMPTY_FILE = "EmptyFile"
    OVERSIZED_FILE = "OversizedFile"
    UNSUPPORTED_FORMAT = "UnsupportedFormat"
    NO_HEADER_FOUND = "NoHeaderFound"
    MISSING_REQUIRED_COLUMNS = "MissingRequiredColumns"
    INVALID_DATE = "InvalidDate"
    INVALID_AMOUNT = "InvalidAmount"
    NO_VALID_MOVEMENTS = "NoValidMovements"

    @property
    def fatal(self) -> bool:
        return self not in (ErrorKind.INVALID_DATE, ErrorKind.INVALID_AMOUNT)


class IngestError(Exception):
    """Base class for fatal, file-level ingestion errors."""

    kind: ErrorKind = ErrorKind.NO_VALID_MOVEMENTS

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class EmptyFileError(IngestError):
    kind = ErrorKind.EMPTY_FILE


class OversizedFileError(IngestError):
    kind = ErrorKind.OVERSIZED_FILE


class UnsupportedFormatError(IngestError):
    kind = ErrorKind.UNSUPPORTED_FORMAT


class NoHeaderFoundError(IngestError):
    kind = ErrorKind.NO_HEADER_FOUND


class MissingRequiredColumnsError(IngestError):
    kind = ErrorKind.MISSING_REQUIRED_COLUMNS


class NoValidMovementsError(IngestError):
    kind = ErrorKind.NO_VALID_MOVEMENTS


__all__ = [
    "ErrorKind",
    "IngestError",
    "EmptyFileError",
    "OversizedFileError",
    "UnsupportedFormatError",
    "NoHeaderFoundError",
    "MissingRequiredColumnsError",
    "NoValidMovementsError",
]
