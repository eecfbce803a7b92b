"""Bulk-load perception events from a CSV or Excel export."""

from __future__ import annotations

import argparse
import logging
import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd
from pydantic import ValidationError

from .. import schemas

LOGGER = logging.getLogger(__name__)

REQUIRED_COLUMNS = {"timestamp", "worker_id", "workstation_id", "event_type"}
OPTIONAL_COLUMNS = ("confidence", "count", "model_version")
DEFAULT_BATCH_SIZE = 500


@dataclass
class InvalidRow:
    row_number: int
    errors: str


@dataclass
class ImportSummary:
    valid: int = 0
    invalid: int = 0
    inserted: int = 0
    skipped: int = 0
    invalid_rows: List[InvalidRow] = field(default_factory=list)


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Validate events from a CSV/Excel file and ingest them idempotently."
    )
    parser.add_argument("source", type=Path, help="Path to a .csv, .xlsx or .xls file")
    parser.add_argument("--sheet", default=0, help="Excel sheet name or index (default: first)")
    parser.add_argument(
        "--batch-size",
        dest="batch_size",
        type=int,
        default=DEFAULT_BATCH_SIZE,
        help="Number of events submitted per ingestion batch",
    )
    parser.add_argument(
        "--database-url",
        dest="database_url",
        help="Database URL (defaults to DATABASE_URL or the local SQLite file)",
    )
    parser.add_argument(
        "--invalid-report",
        dest="invalid_report",
        type=Path,
        help="Optional CSV path listing rows rejected by validation",
    )
    parser.add_argument("--verbose", action="store_true", help="Log every rejected row")
    return parser.parse_args(argv)


def load_frame(source: Path, sheet: Any = 0) -> pd.DataFrame:
    suffix = source.suffix.lower()
    if suffix == ".csv":
        return pd.read_csv(source)
    if suffix in {".xlsx", ".xls"}:
        return pd.read_excel(source, sheet_name=sheet)
    raise ValueError(f"Unsupported file type '{source.suffix}'; expected .csv, .xlsx or .xls")


def prepare_frame(df: pd.DataFrame) -> pd.DataFrame:
    """Normalise column names and coerce timestamps to UTC.

    Naive timestamps in the export are read as UTC.
    """

    df = df.copy()
    df.columns = [str(column).strip().lower() for column in df.columns]
    missing = REQUIRED_COLUMNS - set(df.columns)
    if missing:
        raise ValueError(f"Missing required columns: {', '.join(sorted(missing))}")
    for column in ("worker_id", "workstation_id", "event_type", "model_version"):
        if column in df.columns:
            df[column] = df[column].astype("string").str.strip()
    df["event_type"] = df["event_type"].str.lower()
    df["timestamp"] = pd.to_datetime(df["timestamp"], errors="coerce", utc=True, format="ISO8601")
    for column in ("confidence", "count"):
        if column in df.columns:
            df[column] = pd.to_numeric(df[column], errors="coerce")
    return df


def _is_missing(value: Any) -> bool:
    if value is None or value is pd.NA or value is pd.NaT:
        return True
    return isinstance(value, float) and math.isnan(value)


def _row_payload(row: Dict[str, Any]) -> Dict[str, Any]:
    payload: Dict[str, Any] = {}
    timestamp = row.get("timestamp")
    payload["timestamp"] = None if _is_missing(timestamp) else timestamp.to_pydatetime()
    for column in ("worker_id", "workstation_id", "event_type"):
        value = row.get(column)
        payload[column] = None if _is_missing(value) else str(value)
    for column in OPTIONAL_COLUMNS:
        value = row.get(column)
        if _is_missing(value):
            continue
        if column == "count" and float(value).is_integer():
            value = int(value)
        payload[column] = value
    return payload


def parse_rows(df: pd.DataFrame) -> Tuple[List[schemas.EventCreate], List[InvalidRow]]:
    """Validate every row with the ingestion schema; row numbers are 1-based."""

    valid: List[schemas.EventCreate] = []
    invalid: List[InvalidRow] = []
    for index, row in enumerate(df.to_dict(orient="records"), start=1):
        try:
            valid.append(schemas.EventCreate.model_validate(_row_payload(row)))
        except ValidationError as exc:
            messages = "; ".join(
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
                for error in exc.errors()
            )
            invalid.append(InvalidRow(row_number=index, errors=messages))
    return valid, invalid


def ingest_in_batches(
    session, events: Sequence[schemas.EventCreate], batch_size: int = DEFAULT_BATCH_SIZE
) -> Tuple[int, int]:
    from ..services.ingestion import IngestionService

    inserted = 0
    skipped = 0
    size = max(batch_size, 1)
    for offset in range(0, len(events), size):
        result = IngestionService.ingest(session, events[offset : offset + size])
        inserted += result.inserted
        skipped += result.skipped
        LOGGER.debug("Batch at offset %s: %s inserted, %s skipped", offset, result.inserted, result.skipped)
    return inserted, skipped


def _write_invalid_report(rows: List[InvalidRow], destination: Path) -> None:
    if not rows:
        return
    report = pd.DataFrame([{"row": row.row_number, "errors": row.errors} for row in rows])
    destination.parent.mkdir(parents=True, exist_ok=True)
    report.to_csv(destination, index=False)
    LOGGER.warning("Rejected rows written to %s", destination.as_posix())


def import_file(session, source: Path, *, sheet: Any = 0, batch_size: int = DEFAULT_BATCH_SIZE) -> ImportSummary:
    frame = prepare_frame(load_frame(source, sheet))
    events, invalid_rows = parse_rows(frame)
    summary = ImportSummary(valid=len(events), invalid=len(invalid_rows), invalid_rows=invalid_rows)
    if events:
        summary.inserted, summary.skipped = ingest_in_batches(session, events, batch_size)
    return summary


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)
    _configure_logging(args.verbose)

    if args.database_url:
        os.environ.setdefault("DATABASE_URL", args.database_url)

    from ..database import session_scope

    with session_scope() as session:
        summary = import_file(session, args.source, sheet=args.sheet, batch_size=args.batch_size)

    for row in summary.invalid_rows:
        LOGGER.debug("Row %s rejected: %s", row.row_number, row.errors)
    if args.invalid_report:
        _write_invalid_report(summary.invalid_rows, args.invalid_report)

    LOGGER.info(
        "Import finished: %s valid rows (%s inserted, %s duplicates), %s invalid rows",
        summary.valid,
        summary.inserted,
        summary.skipped,
        summary.invalid,
    )
    return 1 if summary.invalid and not summary.valid else 0


if __name__ == "__main__":
    raise SystemExit(main())
