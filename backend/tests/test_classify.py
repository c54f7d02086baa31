from __future__ import annotations

from statement_ingest.classify import filter_rows, is_noise_row
from statement_ingest.profiles import GENERIC_PROFILE


def _valid(i):
    return [f"0{i}/01/2024", f"Compra {i}", "-1,00"]


def test_noise_rows():
    assert is_noise_row([], GENERIC_PROFILE)
    assert is_noise_row(["", " ", None], GENERIC_PROFILE)
    assert is_noise_row(["Saldo final", "", "1.000,00"], GENERIC_PROFILE)
    assert is_noise_row(["Página 2 de 3"], GENERIC_PROFILE)
    assert is_noise_row(["-----", "====="], GENERIC_PROFILE)
    assert not is_noise_row(_valid(1), GENERIC_PROFILE)


def test_transfer_descriptions_are_not_noise_for_generic_profile():
    row = ["01/01/2024", "Transferencia desde cuenta ahorro", "50,00"]
    assert not is_noise_row(row, GENERIC_PROFILE)


def test_noise_rows_dropped_without_early_stop():
    rows = [_valid(1), ["Subtotal", "", "5,00"], _valid(2), [], _valid(3)]
    out = filter_rows(rows, GENERIC_PROFILE, start_index=4)
    assert [idx for idx, _ in out.rows] == [4, 6, 8]
    assert out.noise_count == 2
    assert out.stopped_at is None


def test_early_stop_after_consecutive_noise():
    rows = [_valid(i) for i in range(1, 6)]
    rows += [[], ["Saldo final", "", "100,00"], ["IBAN ES00 0000"]]
    rows += [_valid(7), _valid(8)]
    out = filter_rows(rows, GENERIC_PROFILE, start_index=1, min_valid=5, stop_after=3)
    assert len(out.rows) == 5
    assert out.stopped_at == 8
    assert out.discarded_after_stop == 2
    assert out.noise_count == 3


def test_no_early_stop_before_min_valid():
    rows = [_valid(1), [], [], [], _valid(2)]
    out = filter_rows(rows, GENERIC_PROFILE, min_valid=5, stop_after=3)
    assert len(out.rows) == 2
    assert out.stopped_at is None


def test_early_stop_disabled():
    rows = [_valid(i) for i in range(1, 6)] + [[], [], [], _valid(9)]
    out = filter_rows(rows, GENERIC_PROFILE, stop_after=0)
    assert len(out.rows) == 6
