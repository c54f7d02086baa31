from __future__ import annotations

import json

import pytest

from statement_ingest.errors import MissingRequiredColumnsError
from statement_ingest.profiles import (
    GENERIC_PROFILE,
    NumberFormat,
    ProfileRegistry,
    default_registry,
    load_profiles,
    make_profile,
    map_headers,
    profile_from_dict,
    reload_default_registry,
    resolve_mapping,
)


def test_generic_mapping_prefers_value_date_for_fecha_valor():
    labels = ["Fecha Operación", "Fecha Valor", "Concepto", "Importe (€)", "Saldo"]
    mapping = map_headers(labels, GENERIC_PROFILE)
    assert mapping.date == 0
    assert mapping.value_date == 1
    assert mapping.description == 2
    assert mapping.amount == 3
    assert mapping.counterparty is None
    assert mapping.is_complete
    assert mapping.resolved_count == 4


def test_mapping_uses_each_column_once():
    profile = make_profile(
        "x", {"date": ["fecha"], "valueDate": ["fecha"], "amount": ["importe"]}
    )
    mapping = map_headers(["Fecha", "Importe"], profile)
    assert mapping.date == 0
    assert mapping.value_date is None


def test_resolve_mapping_raises_when_required_missing():
    profile = make_profile("narrow", {"date": ["fecha"], "amount": ["cargo"]})
    with pytest.raises(MissingRequiredColumnsError) as exc:
        resolve_mapping(["Fecha", "Importe"], profile)
    assert "amount" in str(exc.value)


def test_make_profile_validation():
    with pytest.raises(ValueError):
        make_profile("x", {"date": ["fecha"]})
    with pytest.raises(ValueError):
        make_profile("x", {"date": ["a"], "amount": ["b"]}, number_format=(",", ","))
    with pytest.raises(ValueError):
        make_profile("", {"date": ["a"], "amount": ["b"]})
    p = make_profile("x", {"date": ["Fecha"], "amount": ["Importe"]}, min_score=0)
    assert p.min_score == 2
    assert p.aliases("date") == ("fecha",)


def test_profile_from_dict_accepts_both_separator_spellings():
    p = profile_from_dict(
        {
            "bankKey": "demo",
            "bankVersion": "2024.01.01",
            "headerAliases": {"date": ["Date"], "amount": ["Amount"]},
            "numberFormat": {"decimalSeparator": ".", "thousandSeparator": ","},
            "dateHints": ["YYYY-MM-DD"],
        }
    )
    assert p.number_format == NumberFormat(".", ",")
    assert p.date_hints == ("yyyy-mm-dd",)
    assert p.bank_version == "2024.01.01"


def test_profile_from_dict_rejects_non_object_number_format():
    entry = {
        "bankKey": "odd",
        "headerAliases": {"date": ["fecha"], "amount": ["importe"]},
        "numberFormat": "es-ES",
    }
    with pytest.raises(ValueError, match="numberFormat"):
        profile_from_dict(entry)
    with pytest.raises(ValueError, match="header aliases"):
        profile_from_dict({"bankKey": "odd", "headerAliases": ["fecha", "importe"]})
    ok = dict(entry, bankKey="fine", numberFormat={"decimal": ","})
    assert [p.bank_key for p in load_profiles({"profiles": [entry, ok]})] == ["fine"]


def test_generic_mapping_finds_debit_and_credit_columns():
    labels = ["Fecha", "Concepto", "Cargo (euros)", "Abono (euros)", "Saldo"]
    mapping = map_headers(labels, GENERIC_PROFILE)
    assert mapping.debit == 2
    assert mapping.credit == 3
    assert mapping.amount is None
    assert mapping.has_debit_credit
    assert mapping.is_complete
    plain = map_headers(["Fecha", "Debe", "Haber"], GENERIC_PROFILE)
    assert plain.missing_required() == []


def test_debit_column_alone_satisfies_amount_requirement():
    p = make_profile("split", {"date": ["fecha"], "debit": ["cargos"]})
    mapping = resolve_mapping(["Fecha", "Cargos"], p)
    assert (mapping.date, mapping.debit, mapping.amount) == (0, 1, None)
    with pytest.raises(MissingRequiredColumnsError, match="amount"):
        resolve_mapping(["Fecha", "Concepto"], p)


def _profile(key, aliases, min_score=2):
    return make_profile(key, aliases, min_score=min_score)


def test_detect_bank_picks_highest_score():
    a = _profile("a", {"date": ["fecha"], "amount": ["importe"]})
    b = _profile(
        "b", {"date": ["fecha"], "amount": ["importe"], "description": ["concepto"]}
    )
    registry = ProfileRegistry([a, b])
    detected = registry.detect_bank(["Fecha", "Concepto", "Importe"])
    assert detected.bank_key == "b"
    assert detected.score == 3


def test_detect_bank_tie_keeps_declaration_order():
    a = _profile("first", {"date": ["fecha"], "amount": ["importe"]})
    b = _profile("second", {"date": ["fecha"], "amount": ["importe"]})
    assert ProfileRegistry([a, b]).detect_bank(["Fecha", "Importe"]).bank_key == "first"
    assert ProfileRegistry([b, a]).detect_bank(["Fecha", "Importe"]).bank_key == "second"


def test_detect_bank_respects_min_score():
    p = _profile(
        "strict",
        {"date": ["fecha"], "amount": ["importe"], "description": ["concepto"]},
        min_score=3,
    )
    registry = ProfileRegistry([p])
    assert registry.detect_bank(["Fecha", "Importe"]) is None
    profile, detected = registry.select_profile(["Fecha", "Importe"])
    assert profile is GENERIC_PROFILE
    assert detected is None


def test_duplicate_bank_keys_rejected():
    p = _profile("dup", {"date": ["fecha"], "amount": ["importe"]})
    with pytest.raises(ValueError):
        ProfileRegistry([p, p])


def test_load_profiles_skips_invalid_entries(tmp_path):
    doc = {
        "profiles": [
            {"bankKey": "ok", "headerAliases": {"date": ["fecha"], "amount": ["importe"]}},
            {"bankKey": "broken", "headerAliases": {"date": ["fecha"]}},
        ]
    }
    path = tmp_path / "profiles.json"
    path.write_text(json.dumps(doc), encoding="utf-8")
    profiles = load_profiles(path)
    assert [p.bank_key for p in profiles] == ["ok"]
    with pytest.raises(ValueError):
        load_profiles({"banks": []})


def test_bundled_registry_detects_bbva(fresh_default_registry):
    registry = default_registry()
    assert len(registry) >= 5
    labels = ["F.Valor", "Fecha", "Concepto", "Movimiento", "Importe", "Divisa"]
    detected = registry.detect_bank(labels)
    assert detected is not None
    assert detected.bank_key == "bbva"
    assert detected.bank_version == "2024.03.01"
    # plain three-column export falls back to generic
    assert registry.detect_bank(["Fecha", "Concepto", "Importe"]) is None


def test_registry_from_env_file(tmp_path, monkeypatch, fresh_default_registry):
    path = tmp_path / "custom.json"
    path.write_text(
        json.dumps(
            {
                "profiles": [
                    {
                        "bankKey": "mybank",
                        "headerAliases": {"date": ["dia"], "amount": ["valor"]},
                    }
                ]
            }
        ),
        encoding="utf-8",
    )
    monkeypatch.setenv("BANK_PROFILES_FILE", str(path))
    assert reload_default_registry() == 1
    assert default_registry().get("mybank") is not None
