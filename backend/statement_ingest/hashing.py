"""Idempotency keys for imported files and movements.

``compute_batch_hash`` digests the raw upload bytes so a byte-identical
re-upload can be recognised before any parsing happens. When the digest
primitive is unavailable the result falls back to a CRC32/Adler-32 checksum
and is flagged ``degraded``.

``movement_hash`` / ``deduplicate_movements`` give a stable per-movement key
(account | ISO date | amount | normalized description | reference) for
in-file and cross-import duplicate detection.
"""

from __future__ import annotations

import hashlib
import logging
import zlib
from threading import RLock
from typing import Iterable, List, NamedTuple, Sequence

from .utils import normalize_text

logger = logging.getLogger(__name__)

BATCH_HASH_ALGORITHM = "sha256"
FALLBACK_ALGORITHM = "crc32+adler32"
MOVEMENT_HASH_ALGORITHM = "sha1"
_HASH_SEPARATOR = "|"


class BatchHash(NamedTuple):
    value: str
    algorithm: str
    degraded: bool = False

    def __str__(self) -> str:
        return self.value


def _fallback_checksum(content: bytes, filename: str) -> str:
    prefix = f"{filename}{_HASH_SEPARATOR}{len(content)}{_HASH_SEPARATOR}".encode(
        "utf-8"
    )
    crc = zlib.crc32(content, zlib.crc32(prefix))
    adler = zlib.adler32(content, zlib.adler32(prefix))
    return f"{crc & 0xFFFFFFFF:08x}{adler & 0xFFFFFFFF:08x}"


def compute_batch_hash(
    content: bytes, filename: str = "", algorithm: str = BATCH_HASH_ALGORITHM
) -> BatchHash:
    """Hex digest of the entire file content.

    Falls back to a weaker deterministic checksum (``degraded=True``) when
    ``hashlib`` cannot provide ``algorithm``.
    """
    try:
        digest = hashlib.new(algorithm)
    except (ValueError, AttributeError, TypeError) as e:
        logger.warning(
            "Digest %s unavailable (%s); using %s with reduced collision resistance",
            algorithm,
            e,
            FALLBACK_ALGORITHM,
        )
        return BatchHash(_fallback_checksum(content, filename), FALLBACK_ALGORITHM, True)
    digest.update(content)
    return BatchHash(digest.hexdigest(), algorithm, False)


def is_known_batch(batch_hash: BatchHash | str, known: Iterable[str]) -> bool:
    value = str(batch_hash)
    return any(value == k for k in known)


class BatchLedger:
    """Thread-safe in-memory set of accepted batch hashes."""

    def __init__(self, initial: Iterable[str] = ()):
        self._lock = RLock()
        self._hashes: set[str] = set(initial)

    def __contains__(self, batch_hash: object) -> bool:
        with self._lock:
            return str(batch_hash) in self._hashes

    def __len__(self) -> int:
        with self._lock:
            return len(self._hashes)

    def accept(self, batch_hash: BatchHash | str) -> bool:
        """Record a hash; returns False if it was already present."""
        value = str(batch_hash)
        with self._lock:
            if value in self._hashes:
                return False
            self._hashes.add(value)
            return True

    def snapshot(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._hashes)


def _movement_key(movement, account_id: str = "", reference: str = "") -> str:
    amount = f"{round(float(movement.amount), 2):.2f}"
    ref = "".join((reference or "").upper().split())
    return _HASH_SEPARATOR.join(
        [
            str(account_id),
            movement.date.isoformat(),
            amount,
            normalize_text(movement.description),
            ref,
        ]
    )


def movement_hash(movement, account_id: str = "", reference: str = "") -> str:
    """Stable SHA-1 over account, date, amount, description and reference."""
    key = _movement_key(movement, account_id, reference)
    return hashlib.new(MOVEMENT_HASH_ALGORITHM, key.encode("utf-8")).hexdigest()


class DeduplicationResult(NamedTuple):
    unique: List  # ParsedMovement
    duplicate_hashes: List[str]

    @property
    def duplicate_count(self) -> int:
        return len(self.duplicate_hashes)


def deduplicate_movements(
    movements: Sequence, account_id: str = "", existing: Iterable[str] = ()
) -> DeduplicationResult:
    """Drop movements whose hash was already seen (in-file or in ``existing``)."""
    seen = set(existing)
    unique: List = []
    dupes: List[str] = []
    for mv in movements:
        h = movement_hash(mv, account_id)
        if h in seen:
            dupes.append(h)
            continue
        seen.add(h)
        unique.append(mv)
    return DeduplicationResult(unique, dupes)


__all__ = [
    "BATCH_HASH_ALGORITHM",
    "FALLBACK_ALGORITHM",
    "BatchHash",
    "compute_batch_hash",
    "is_known_batch",
    "BatchLedger",
    "movement_hash",
    "DeduplicationResult",
    "deduplicate_movements",
]
