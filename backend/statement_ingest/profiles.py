"""Bank profile registry: header aliases, noise patterns and format hints.

A profile is a declarative description of one bank's export layout. The
registry is built once (from code or from a JSON document) and is read-only
afterwards, so it can be shared between concurrent parses.

JSON document format (``BANK_PROFILES_FILE`` or the bundled default):

    { "profiles": [
        { "bankKey": "bbva", "bankVersion": "2024.01.15",
          "headerAliases": {"date": ["fecha"], "amount": ["importe"], ...},
          "noisePatterns": ["saldo final", ...],
          "numberFormat": {"decimal": ",", "thousand": "."},
          "dateHints": ["dd/mm/yyyy"],
          "minScore": 3 } ] }

Canonical fields: date, valueDate, amount, description, counterparty.
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from importlib import resources
from pathlib import Path
from threading import RLock
from types import MappingProxyType
from typing import (
    Any,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    NamedTuple,
    Sequence,
    Tuple,
)

from .config import ParserOptions
from .constants import (
    AMOUNT_FIELDS,
    CANONICAL_FIELDS,
    DEFAULT_DATE_HINTS,
    DEFAULT_NOISE_PATTERNS,
    GENERIC_DATE_HINTS,
    GENERIC_NOISE_PATTERNS,
    REQUIRED_FIELDS,
)
from .errors import MissingRequiredColumnsError
from .utils import normalize_text

logger = logging.getLogger(__name__)

# camelCase keys used by the JSON document -> canonical field names
_FIELD_KEYS = {
    "date": "date",
    "valueDate": "value_date",
    "value_date": "value_date",
    "amount": "amount",
    "description": "description",
    "counterparty": "counterparty",
    "debit": "debit",
    "credit": "credit",
}

# "contains" matching is only attempted for aliases at least this long.
_MIN_CONTAINS_ALIAS = 3
# value_date first so "fecha valor" is not claimed by the plain date field;
# debit/credit before amount so "Cargo (euros)" is not claimed by "euros".
_CONTAINS_ORDER = (
    "value_date",
    "date",
    "debit",
    "credit",
    "amount",
    "description",
    "counterparty",
)


class NumberFormat(NamedTuple):
    decimal: str = ","
    thousand: str = "."


class BankProfile(NamedTuple):
    bank_key: str
    header_aliases: Mapping[str, Tuple[str, ...]]
    noise_patterns: Tuple[str, ...] = DEFAULT_NOISE_PATTERNS
    number_format: NumberFormat = NumberFormat()
    date_hints: Tuple[str, ...] = DEFAULT_DATE_HINTS
    bank_version: str = ""
    min_score: int = 2

    def aliases(self, field: str) -> Tuple[str, ...]:
        return self.header_aliases.get(field, ())


class HeaderMapping(NamedTuple):
    """Canonical field -> column index. Built fresh for every parse."""

    date: int | None = None
    amount: int | None = None
    value_date: int | None = None
    description: int | None = None
    counterparty: int | None = None
    debit: int | None = None
    credit: int | None = None

    @property
    def has_amount(self) -> bool:
        return any(getattr(self, f) is not None for f in AMOUNT_FIELDS)

    @property
    def has_debit_credit(self) -> bool:
        return self.debit is not None or self.credit is not None

    @property
    def is_complete(self) -> bool:
        return self.date is not None and self.has_amount

    @property
    def resolved_count(self) -> int:
        return sum(1 for v in self if v is not None)

    def missing_required(self) -> List[str]:
        missing = [] if self.date is not None else ["date"]
        if not self.has_amount:
            missing.append("amount")
        return missing


class DetectedBank(NamedTuple):
    bank_key: str
    bank_version: str
    profile: BankProfile
    score: int


def _freeze_aliases(raw: Mapping[str, Iterable[str]]) -> Mapping[str, Tuple[str, ...]]:
    out: Dict[str, Tuple[str, ...]] = {}
    for key, values in raw.items():
        field = _FIELD_KEYS.get(key)
        if field is None:
            logger.warning("Ignoring unknown header alias field %r", key)
            continue
        if isinstance(values, str):
            values = [values]
        seen: List[str] = []
        for v in values:
            norm = normalize_text(v)
            if norm and norm not in seen:
                seen.append(norm)
        out[field] = tuple(seen)
    return MappingProxyType(out)


def make_profile(
    bank_key: str,
    header_aliases: Mapping[str, Iterable[str]],
    noise_patterns: Iterable[str] = DEFAULT_NOISE_PATTERNS,
    number_format: NumberFormat | Tuple[str, str] = NumberFormat(),
    date_hints: Iterable[str] = DEFAULT_DATE_HINTS,
    bank_version: str = "",
    min_score: int = 2,
) -> BankProfile:
    """Build a validated, immutable profile.

    Raises ValueError if the aliases cannot possibly resolve the date and an
    amount (a signed amount column or debit / credit columns).
    """
    if not bank_key or not str(bank_key).strip():
        raise ValueError("bank_key is required")
    if not isinstance(header_aliases, Mapping):
        raise ValueError(f"Profile '{bank_key}': header aliases must be an object")
    aliases = _freeze_aliases(header_aliases)
    missing = [] if aliases.get("date") else ["date"]
    if not any(aliases.get(f) for f in AMOUNT_FIELDS):
        missing.append("amount")
    if missing:
        raise ValueError(
            f"Profile '{bank_key}' has no header aliases for: {', '.join(missing)}"
        )
    fmt = NumberFormat(*number_format)
    if fmt.decimal == fmt.thousand:
        raise ValueError(f"Profile '{bank_key}': decimal and thousand separators match")
    return BankProfile(
        bank_key=str(bank_key).strip(),
        header_aliases=aliases,
        noise_patterns=tuple(p.lower() for p in noise_patterns if p),
        number_format=fmt,
        date_hints=tuple(h.lower() for h in date_hints) or DEFAULT_DATE_HINTS,
        bank_version=str(bank_version or ""),
        min_score=max(len(REQUIRED_FIELDS), int(min_score)),
    )


def profile_from_dict(data: Mapping[str, Any]) -> BankProfile:
    """Build a profile from one entry of the JSON registry document."""
    if not isinstance(data, Mapping):
        raise ValueError("Profile entry must be an object")
    nf = data.get("numberFormat") or {}
    if not isinstance(nf, Mapping):
        raise ValueError(
            f"Profile '{data.get('bankKey', '')}': numberFormat must be an object"
        )
    decimal = nf.get("decimal", nf.get("decimalSeparator", ","))
    thousand = nf.get("thousand", nf.get("thousandSeparator", "."))
    return make_profile(
        bank_key=data.get("bankKey", ""),
        header_aliases=data.get("headerAliases") or {},
        noise_patterns=data.get("noisePatterns") or DEFAULT_NOISE_PATTERNS,
        number_format=NumberFormat(decimal, thousand),
        date_hints=data.get("dateHints") or DEFAULT_DATE_HINTS,
        bank_version=data.get("bankVersion", ""),
        min_score=data.get("minScore", 2),
    )


def load_profiles(source: str | Path | Mapping[str, Any]) -> Tuple[BankProfile, ...]:
    """Load profiles from a JSON file path or an already-decoded document.

    Invalid entries are logged and skipped; an unreadable document raises.
    """
    if isinstance(source, Mapping):
        document = source
    else:
        with open(source, "r", encoding="utf-8") as f:
            document = json.load(f)
    entries = document.get("profiles") if isinstance(document, Mapping) else None
    if not isinstance(entries, list):
        raise ValueError("Bank profile document must contain a 'profiles' list")
    profiles: List[BankProfile] = []
    for idx, entry in enumerate(entries):
        try:
            profiles.append(profile_from_dict(entry))
        except (ValueError, TypeError) as e:
            logger.warning("Skipping bank profile #%d: %s", idx, e)
    return tuple(profiles)


GENERIC_PROFILE = make_profile(
    bank_key="generic",
    bank_version="1",
    header_aliases={
        "date": [
            "fecha",
            "fecha operacion",
            "fecha de operacion",
            "f operacion",
            "fecha contable",
            "date",
            "transaction date",
            "booking date",
            "data",
            "datum",
            "buchungstag",
        ],
        "valueDate": [
            "fecha valor",
            "f valor",
            "value date",
            "valuta",
            "data valuta",
            "wertstellung",
            "date valeur",
        ],
        "amount": [
            "importe",
            "importe eur",
            "importe euros",
            "euros",
            "amount",
            "cantidad",
            "monto",
            "import",
            "betrag",
            "montant",
            "importo",
        ],
        "debit": [
            "cargo",
            "cargos",
            "debe",
            "debito",
            "debit",
            "debits",
            "withdrawal",
            "withdrawals",
            "salidas",
        ],
        "credit": [
            "abono",
            "abonos",
            "haber",
            "credito",
            "credit",
            "credits",
            "deposit",
            "deposits",
            "entradas",
        ],
        "description": [
            "concepto",
            "descripcion",
            "description",
            "detalle",
            "movimiento",
            "observaciones",
            "texto",
            "concept",
            "libelle",
            "memo",
            "verwendungszweck",
        ],
        "counterparty": [
            "contraparte",
            "beneficiario",
            "ordenante",
            "remitente",
            "destinatario",
            "counterparty",
            "payee",
            "beneficiary",
            "proveedor",
        ],
    },
    noise_patterns=GENERIC_NOISE_PATTERNS,
    number_format=NumberFormat(",", "."),
    date_hints=GENERIC_DATE_HINTS,
)


def map_headers(labels: Sequence[str], profile: BankProfile) -> HeaderMapping:
    """Resolve canonical fields to column indices for one header row.

    Exact alias matches are taken first (fields in canonical order); remaining
    fields fall back to "label contains alias". A column is used at most once.
    """
    normalized = [normalize_text(lbl) for lbl in labels]
    taken: set[int] = set()
    resolved: Dict[str, int] = {}

    for field in CANONICAL_FIELDS:
        aliases = profile.aliases(field)
        for idx, head in enumerate(normalized):
            if idx in taken or not head:
                continue
            if head in aliases:
                resolved[field] = idx
                taken.add(idx)
                break

    for field in _CONTAINS_ORDER:
        if field in resolved:
            continue
        aliases = [a for a in profile.aliases(field) if len(a) >= _MIN_CONTAINS_ALIAS]
        for idx, head in enumerate(normalized):
            if idx in taken or not head:
                continue
            if any(a in head for a in aliases):
                resolved[field] = idx
                taken.add(idx)
                break

    return HeaderMapping(**resolved)


def resolve_mapping(labels: Sequence[str], profile: BankProfile) -> HeaderMapping:
    """Like ``map_headers`` but raise if date or amount stay unresolved."""
    mapping = map_headers(labels, profile)
    if not mapping.is_complete:
        missing = mapping.missing_required()
        raise MissingRequiredColumnsError(
            f"Required columns not found ({', '.join(missing)}) "
            f"using profile '{profile.bank_key}'"
        )
    return mapping


class ProfileRegistry:
    """Immutable, ordered collection of bank profiles plus a generic fallback."""

    def __init__(
        self,
        profiles: Iterable[BankProfile] = (),
        generic: BankProfile | None = None,
    ):
        items = tuple(profiles)
        keys = [p.bank_key for p in items]
        dupes = sorted({k for k in keys if keys.count(k) > 1})
        if dupes:
            raise ValueError(f"Duplicate bank keys in registry: {dupes}")
        self._profiles = items
        self._generic = generic or GENERIC_PROFILE

    @classmethod
    def from_json(cls, source: str | Path | Mapping[str, Any]) -> "ProfileRegistry":
        return cls(load_profiles(source))

    @property
    def profiles(self) -> Tuple[BankProfile, ...]:
        return self._profiles

    @property
    def generic_profile(self) -> BankProfile:
        return self._generic

    def __len__(self) -> int:
        return len(self._profiles)

    def __iter__(self) -> Iterator[BankProfile]:
        return iter(self._profiles)

    def get(self, bank_key: str) -> BankProfile | None:
        for p in self._profiles:
            if p.bank_key == bank_key:
                return p
        return None

    def detect_bank(self, labels: Sequence[str]) -> DetectedBank | None:
        """Best matching profile for the header labels, or None.

        Highest number of resolved canonical fields wins; ties keep the
        earlier-declared profile.
        """
        best: DetectedBank | None = None
        for profile in self._profiles:
            mapping = map_headers(labels, profile)
            if not mapping.is_complete:
                continue
            score = mapping.resolved_count
            if score < profile.min_score:
                continue
            if best is None or score > best.score:
                best = DetectedBank(
                    profile.bank_key, profile.bank_version, profile, score
                )
        return best

    def select_profile(
        self, labels: Sequence[str]
    ) -> Tuple[BankProfile, DetectedBank | None]:
        detected = self.detect_bank(labels)
        if detected is None:
            logger.info("No bank profile matched; using generic profile")
            return self._generic, None
        return detected.profile, detected


_registry_lock = RLock()


def _bundled_document() -> Mapping[str, Any]:
    text = (
        resources.files(__package__)
        .joinpath("data", "bank-profiles.json")
        .read_text(encoding="utf-8")
    )
    return json.loads(text)


@lru_cache(maxsize=1)
def default_registry() -> ProfileRegistry:
    """Registry loaded from ``BANK_PROFILES_FILE`` or the bundled document."""
    with _registry_lock:
        path = ParserOptions.from_env().bank_profiles_file
        if path:
            logger.info("Loading bank profiles from %s", path)
            return ProfileRegistry.from_json(path)
        return ProfileRegistry.from_json(_bundled_document())


def reload_default_registry() -> int:
    """Drop the cached default registry and load it again.

    Returns the number of registered (non-generic) profiles.
    """
    with _registry_lock:
        default_registry.cache_clear()
    return len(default_registry())


__all__ = [
    "NumberFormat",
    "BankProfile",
    "HeaderMapping",
    "DetectedBank",
    "GENERIC_PROFILE",
    "ProfileRegistry",
    "make_profile",
    "profile_from_dict",
    "load_profiles",
    "map_headers",
    "resolve_mapping",
    "default_registry",
    "reload_default_registry",
]
