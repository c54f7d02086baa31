from __future__ import annotations

import io
import struct
from datetime import date, datetime

import pandas as pd
import pytest

from statement_ingest.profiles import ProfileRegistry, default_registry


@pytest.fixture
def generic_registry() -> ProfileRegistry:
    """Registry with no bank profiles, so every file uses the generic one."""
    return ProfileRegistry()


@pytest.fixture
def fresh_default_registry(monkeypatch):
    monkeypatch.delenv("BANK_PROFILES_FILE", raising=False)
    default_registry.cache_clear()
    yield
    default_registry.cache_clear()


def csv_bytes(*lines: str, encoding: str = "utf-8") -> bytes:
    return ("\n".join(lines) + "\n").encode(encoding)


def xlsx_bytes(rows, sheet_name: str = "Movimientos") -> bytes:
    buf = io.BytesIO()
    pd.DataFrame(rows).to_excel(buf, index=False, header=False, sheet_name=sheet_name)
    return buf.getvalue()


_SECTOR = 512
_WORKBOOK_SECTORS = 9  # keeps the stream above the 4096-byte mini-stream cutoff
_EXCEL_EPOCH = date(1899, 12, 30)


def _record(rtype: int, payload: bytes = b"") -> bytes:
    return struct.pack("<HH", rtype, len(payload)) + payload


def _bof(stream_type: int) -> bytes:
    payload = struct.pack("<HHHHII", 0x0600, stream_type, 0x0DBB, 0x07CC, 0, 6)
    return _record(0x0809, payload)


def _xf(format_key: int) -> bytes:
    payload = struct.pack("<HHHBBBBIiH", 0, format_key, 0, 0x20, 0, 0, 0, 0, 0, 0)
    return _record(0x00E0, payload)


def _text(value: str, lenlen: str) -> bytes:
    return struct.pack(lenlen, len(value)) + b"\x01" + value.encode("utf-16-le")


def _cell(r: int, c: int, value) -> bytes:
    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, date):
        serial = float((value - _EXCEL_EPOCH).days)
        return _record(0x0203, struct.pack("<HHHd", r, c, 1, serial))
    if isinstance(value, (int, float)):
        return _record(0x0203, struct.pack("<HHHd", r, c, 0, float(value)))
    return _record(0x0204, struct.pack("<HHH", r, c, 0) + _text(str(value), "<H"))


def _dir_entry(name: str, etype: int, child: int, start: int, size: int) -> bytes:
    raw = (name + "\0").encode("utf-16-le") if name else b""
    return (
        raw.ljust(64, b"\0")
        + struct.pack("<HBBiii", len(raw), etype, 1, -1, -1, child)
        + b"\0" * 36
        + struct.pack("<iI", start, size)
        + b"\0" * 4
    )


def xls_bytes(rows, sheet_name: str = "Hoja1") -> bytes:
    """Minimal BIFF8 workbook (one sheet) readable by xlrd.

    Strings become LABEL cells, numbers NUMBER cells and dates NUMBER cells
    with the built-in date format. None / "" cells are left out.
    """
    sheet = _bof(0x0010) + _record(
        0x0200,
        struct.pack("<IIHHH", 0, len(rows), 0, max((len(r) for r in rows), default=0), 0),
    )
    for r, row in enumerate(rows):
        for c, value in enumerate(row):
            if value is None or value == "":
                continue
            sheet += _cell(r, c, value)
    sheet += _record(0x000A)

    def globals_part(sheet_offset: int) -> bytes:
        boundsheet = struct.pack("<iBB", sheet_offset, 0, 0) + _text(sheet_name, "<B")
        return (
            _bof(0x0005)
            + _record(0x0042, struct.pack("<H", 1200))  # CODEPAGE: UTF-16
            + _record(0x0022, struct.pack("<H", 0))  # DATEMODE: 1900
            + _xf(0)
            + _xf(14)  # built-in d/m/yyyy
            + _record(0x0085, boundsheet)
            + _record(0x000A)
        )

    head = globals_part(0)
    stream = globals_part(len(head)) + sheet
    stream_size = _WORKBOOK_SECTORS * _SECTOR
    assert len(stream) <= stream_size, "fixture too large for the fixed layout"
    stream = stream.ljust(stream_size, b"\0")

    # Compound file: sector 0 = FAT, sector 1 = directory, 2.. = Workbook stream.
    header = (
        bytes.fromhex("D0CF11E0A1B11AE1")
        + b"\0" * 16
        + struct.pack("<HHHHH", 0x3E, 3, 0xFFFE, 9, 6)
        + b"\0" * 6
        + struct.pack("<iiiiiiiii", 0, 1, 1, 0, 4096, -2, 0, -2, 0)
        + struct.pack("<109i", 0, *[-1] * 108)
    )
    chain = list(range(3, 2 + _WORKBOOK_SECTORS)) + [-2]
    fat = struct.pack("<128i", -3, -2, *chain, *[-1] * (126 - len(chain)))
    directory = (
        _dir_entry("Root Entry", 5, 1, -2, 0)
        + _dir_entry("Workbook", 2, -1, 2, stream_size)
        + _dir_entry("", 0, -1, -1, 0) * 2
    )
    return header + fat + directory + stream
