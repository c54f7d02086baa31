"""Bank statement ingestion: CSV / spreadsheet exports -> validated movements."""

from .builder import ParsedMovement
from .config import ParserOptions
from .errors import ErrorKind, IngestError
from .hashing import (
    BatchHash,
    BatchLedger,
    compute_batch_hash,
    deduplicate_movements,
    is_known_batch,
    movement_hash,
)
from .ingest import (
    Failure,
    IngestReport,
    ParseOutcome,
    ParseResult,
    Success,
    ingest_file,
    parse_file,
    parse_grid,
)
from .loader import SourceFile
from .profiles import (
    GENERIC_PROFILE,
    BankProfile,
    NumberFormat,
    ProfileRegistry,
    default_registry,
    load_profiles,
    make_profile,
)

__all__ = [
    "ParsedMovement",
    "ParserOptions",
    "ErrorKind",
    "IngestError",
    "BatchHash",
    "BatchLedger",
    "compute_batch_hash",
    "deduplicate_movements",
    "is_known_batch",
    "movement_hash",
    "Failure",
    "IngestReport",
    "ParseOutcome",
    "ParseResult",
    "Success",
    "ingest_file",
    "parse_file",
    "parse_grid",
    "SourceFile",
    "GENERIC_PROFILE",
    "BankProfile",
    "NumberFormat",
    "ProfileRegistry",
    "default_registry",
    "load_profiles",
    "make_profile",
]
