"""FastAPI service exposing bank statement ingestion.

Endpoints:
  POST /parse          (multipart/form-data: file=<csv|tsv|xlsx|xls>) -> movements + metadata
  POST /batch-hash     (multipart/form-data: file=...) -> batch hash only
  POST /batches/accept (json: {"batchHash": "..."}) -> remember an imported batch
  GET  /bank-profiles  -> registered bank profiles
  POST /reload-profiles -> reload profiles from BANK_PROFILES_FILE
  GET  /health -> simple health check

Run (dev): uvicorn statement_ingest.api:app --reload --port 8000
"""

from __future__ import annotations

import asyncio
import logging
import os
from tempfile import SpooledTemporaryFile
from typing import Any, Dict, List

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from pydantic import BaseModel

from .builder import ParsedMovement
from .config import ParserOptions
from .constants import SPREADSHEET_EXTENSIONS, TEXT_EXTENSIONS
from .errors import ErrorKind
from .hashing import BatchLedger, compute_batch_hash, movement_hash
from .ingest import Failure, parse_file
from .loader import SourceFile, is_spreadsheet
from .normalize import SUPPORTED_DATE_HINTS
from .profiles import default_registry, reload_default_registry
from .utils import cell_text, df_to_records, movements_to_frame

logging.basicConfig(level=os.getenv("API_LOG_LEVEL", "INFO"))
logger = logging.getLogger("statement_api")

OPTIONS = ParserOptions.from_env()
MAX_FILE_BYTES = OPTIONS.max_file_bytes
ALLOWED_EXTENSIONS = TEXT_EXTENSIONS + SPREADSHEET_EXTENSIONS

_DEFAULT_ORIGINS = "http://localhost:5173,http://127.0.0.1:5173"
CORS_ORIGINS = [
    o.strip() for o in os.getenv("CORS_ORIGINS", _DEFAULT_ORIGINS).split(",") if o.strip()
]

# Hashes of batches the client has confirmed as imported (process lifetime).
_ledger = BatchLedger()

_STATUS_BY_KIND = {
    ErrorKind.OVERSIZED_FILE: 413,
    ErrorKind.EMPTY_FILE: 400,
    ErrorKind.UNSUPPORTED_FORMAT: 400,
}


class AcceptBatchRequest(BaseModel):
    batchHash: str


app = FastAPI(title="Statement Ingest API", version="0.1.0")
app.add_middleware(GZipMiddleware, minimum_size=1024)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
def root():  # simple root for quick manual test
    return {"service": "statement-ingest", "status": "ok"}


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


def _check_upload_name(file: UploadFile) -> str:
    name = file.filename or ""
    if not name.lower().endswith(ALLOWED_EXTENSIONS) and not is_spreadsheet(
        name, file.content_type or ""
    ):
        raise HTTPException(
            status_code=400,
            detail={
                "error": ErrorKind.UNSUPPORTED_FORMAT.value,
                "message": "Only CSV, TXT, TSV, XLSX and XLS files are supported",
            },
        )
    return name


async def _read_upload(file: UploadFile) -> bytes:
    """Read the upload into memory, refusing anything above MAX_FILE_BYTES."""
    spooled: SpooledTemporaryFile[bytes] = SpooledTemporaryFile(
        max_size=MAX_FILE_BYTES + 1024
    )
    total = 0
    chunk_size = 1024 * 64
    try:
        while True:
            chunk = await file.read(chunk_size)
            if not chunk:
                break
            total += len(chunk)
            if total > MAX_FILE_BYTES:
                raise HTTPException(
                    status_code=413,
                    detail={
                        "error": ErrorKind.OVERSIZED_FILE.value,
                        "message": f"File too large (> {MAX_FILE_BYTES / (1024 * 1024):g}MB)",
                    },
                )
            spooled.write(chunk)
        if total == 0:
            raise HTTPException(
                status_code=400,
                detail={"error": ErrorKind.EMPTY_FILE.value, "message": "Empty file"},
            )
        spooled.seek(0)
        return spooled.read()
    finally:
        spooled.close()


def _raw_record(movement: ParsedMovement) -> Dict[str, Any]:
    return {k: cell_text(v) for k, v in movement.raw_data.items()}


def _movement_records(movements: List[ParsedMovement], raw: bool) -> List[dict]:
    records = df_to_records(movements_to_frame(movements))
    for rec, mv in zip(records, movements):
        rec["hash"] = movement_hash(mv)
        if raw:
            rec["raw_data"] = _raw_record(mv)
    return records


@app.post("/parse")
async def parse_statement(request: Request, file: UploadFile = File(...)):
    name = _check_upload_name(file)
    content = await _read_upload(file)
    source = SourceFile(name, content, file.content_type or "", len(content))
    debug = request.query_params.get("debug") == "1" or os.getenv("API_DEBUG") == "1"
    raw = request.query_params.get("raw") == "1"
    registry = default_registry()

    # Parsing and hashing are independent; neither outcome affects the other.
    outcome, batch_hash = await asyncio.gather(
        run_in_threadpool(parse_file, source, registry, OPTIONS),
        run_in_threadpool(compute_batch_hash, content, name),
    )
    duplicate = batch_hash.value in _ledger

    if isinstance(outcome, Failure):
        logger.info("Rejected %s: %s", name, outcome.kind.value)
        detail: Dict[str, Any] = {
            "error": outcome.kind.value,
            "message": outcome.message,
        }
        if debug:
            detail["batchHash"] = batch_hash.value
            detail["duplicateBatch"] = duplicate
        raise HTTPException(
            status_code=_STATUS_BY_KIND.get(outcome.kind, 422), detail=detail
        )

    result = outcome.result
    movements = result.movements
    amounts = [m.amount for m in movements]
    metrics = {
        "movement_count": len(movements),
        "total_rows": result.total_rows,
        "invalid_rows": len(result.errors),
        "net_amount": round(sum(amounts), 2),
        "income": round(sum(a for a in amounts if a > 0), 2),
        "expenses": round(sum(a for a in amounts if a < 0), 2),
        "first_date": min(m.date for m in movements).isoformat(),
        "last_date": max(m.date for m in movements).isoformat(),
    }
    detected = result.detected_bank
    return {
        "fileName": name,
        "batchHash": batch_hash.value,
        "hashAlgorithm": batch_hash.algorithm,
        "hashDegraded": batch_hash.degraded,
        "duplicateBatch": duplicate,
        "metrics": metrics,
        "movements": _movement_records(movements, raw),
        "errors": result.errors[:100],
        "warnings": result.warnings,
        "metadata": result.metadata,
        "detectedBank": (
            {
                "bankKey": detected.bank_key,
                "bankVersion": detected.bank_version,
                "score": detected.score,
            }
            if detected
            else None
        ),
    }


@app.post("/batch-hash")
async def hash_batch(file: UploadFile = File(...)):
    name = file.filename or ""
    content = await _read_upload(file)
    digest = await run_in_threadpool(compute_batch_hash, content, name)
    return {
        "fileName": name,
        "batchHash": digest.value,
        "hashAlgorithm": digest.algorithm,
        "hashDegraded": digest.degraded,
        "duplicateBatch": digest.value in _ledger,
    }


@app.post("/batches/accept")
def accept_batch(req: AcceptBatchRequest):
    value = req.batchHash.strip().lower()
    if not value:
        raise HTTPException(status_code=400, detail={"message": "batchHash is required"})
    added = _ledger.accept(value)
    return {"batchHash": value, "accepted": added, "duplicateBatch": not added}


@app.get("/bank-profiles")
def bank_profiles():
    registry = default_registry()
    return {
        "count": len(registry),
        "profiles": [
            {
                "bankKey": p.bank_key,
                "bankVersion": p.bank_version,
                "minScore": p.min_score,
                "dateHints": list(p.date_hints),
                "numberFormat": {
                    "decimal": p.number_format.decimal,
                    "thousand": p.number_format.thousand,
                },
            }
            for p in registry
        ],
        "generic": registry.generic_profile.bank_key,
        "supportedDateHints": list(SUPPORTED_DATE_HINTS),
    }


@app.post("/reload-profiles")
def reload_profiles():
    try:
        count = reload_default_registry()
    except (OSError, ValueError) as e:
        logger.error("Profile reload failed: %s", e)
        raise HTTPException(
            status_code=500, detail={"message": f"Failed to reload profiles: {e}"}
        ) from e
    return {"reloaded": True, "count": count}


if __name__ == "__main__":  # pragma: no cover
    import uvicorn

    uvicorn.run("statement_ingest.api:app", host="0.0.0.0", port=8000, reload=True)
