"""Data ingestion module for the rollup engine.

Turns exported transaction tables into ``TransactionRecord`` objects:
- CSV (UTF-8 comma-delimited, or UTF-16 LE tab-delimited exports)
- Excel workbooks (.xlsx, first sheet unless one is named)
- JSON (list of records, as served by the dashboard API)

Column names are matched case-insensitively and may use either snake_case
(``gross_amount``) or camelCase (``grossAmount``).  Rows are assumed to be
already filtered by date range, product and platform.
"""

import json
import logging
import math
import re
from datetime import datetime
from pathlib import Path

import pandas as pd

from src.schema.models import OfferType, TransactionRecord, TransactionType


logger = logging.getLogger(__name__)


REQUIRED_COLUMNS = ("id", "type", "product_name")

NUMERIC_COLUMNS = (
    "gross_amount", "net_amount", "tax_amount", "platform_fee_percent",
    "platform_fee_fixed", "affiliate_commission", "merchant_commission",
    "refund_amount", "product_cogs_per_unit",
)

ID_COLUMNS = ("product_id", "affiliate_id", "customer_id")

SUPPORTED_SUFFIXES = (".csv", ".tsv", ".xlsx", ".xlsm", ".json")


# ---------------------------------------------------------------------------
# Value parsers
# ---------------------------------------------------------------------------

def parse_numeric(value):
    """Parse a numeric value that may contain commas or a currency sign.

    Examples:
        "63,571" -> 63571.0
        "$1,138.50" -> 1138.5
        "-42.50" -> -42.5
        42 -> 42.0
        NaN -> NaN
    """
    if value is None:
        return float("nan")
    if isinstance(value, (int, float)):
        return float(value)
    if pd.isna(value):
        return float("nan")
    s = str(value).strip().replace(",", "").replace("$", "")
    if not s:
        return float("nan")
    try:
        return float(s)
    except ValueError:
        return float("nan")


def parse_optional(value) -> float | None:
    """Like :func:`parse_numeric` but maps missing/unparseable values to None."""
    parsed = parse_numeric(value)
    if math.isnan(parsed):
        return None
    return parsed


def parse_text(value) -> str | None:
    """Strip a cell to text; blank and NaN cells become None."""
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass  # non-scalar, fall through to str()
    if isinstance(value, float) and math.isfinite(value) and value == int(value):
        value = int(value)  # ids read as floats by pandas
    s = str(value).strip()
    return s or None


def parse_quantity(value, tx_id=None) -> int | float | None:
    """Parse a unit count; whole numbers become int, fractional counts are kept.

    Examples:
        "2" -> 2
        2.0 -> 2
        "1.5" -> 1.5 (logged)
        "" -> None
    """
    parsed = parse_optional(value)
    if parsed is None or math.isinf(parsed):
        return None
    if parsed.is_integer():
        return int(parsed)
    logger.warning("Transaction %r has a fractional quantity %r", tx_id, parsed)
    return parsed


def parse_timestamp(value) -> datetime | None:
    """Parse an ISO-ish timestamp cell; unparseable values become None."""
    if value is None:
        return None
    try:
        ts = pd.to_datetime(value)
    except (TypeError, ValueError):
        return None
    if pd.isna(ts):
        return None
    return ts.to_pydatetime()


# ---------------------------------------------------------------------------
# Column cleaning
# ---------------------------------------------------------------------------

def _snake_case(name: str) -> str:
    s = re.sub(r"(?<=[a-z0-9])([A-Z])", r"_\1", name.strip())
    return re.sub(r"[\s\-]+", "_", s).lower()


def clean_columns(df):
    """Normalize column names to stripped snake_case."""
    df.columns = [_snake_case(c) if isinstance(c, str) else c for c in df.columns]
    return df


# ---------------------------------------------------------------------------
# Encoding detection and file reading
# ---------------------------------------------------------------------------

def detect_encoding(path):
    """Detect whether a file is UTF-16 LE (with BOM) or UTF-8.

    Returns (encoding, delimiter) tuple.
    """
    with open(path, "rb") as f:
        raw = f.read(4)
    if raw[:2] == b"\xff\xfe":
        return "utf-16-le", "\t"
    if str(path).lower().endswith(".tsv"):
        return "utf-8", "\t"
    return "utf-8", ","


def read_csv_auto(path):
    """Read a CSV file with automatic encoding and delimiter detection."""
    encoding, sep = detect_encoding(path)
    df = pd.read_csv(path, encoding=encoding, sep=sep)
    return clean_columns(df)


def read_table(path, sheet_name=None) -> pd.DataFrame:
    """Read any supported transaction export into a DataFrame."""
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix in (".csv", ".tsv"):
        return read_csv_auto(path)
    if suffix in (".xlsx", ".xlsm"):
        df = pd.read_excel(path, sheet_name=sheet_name or 0, engine="openpyxl")
        return clean_columns(df)
    if suffix == ".json":
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        if isinstance(data, dict):
            data = data.get("transactions", [])
        return clean_columns(pd.DataFrame(data))
    raise ValueError(
        f"Unsupported file type: {suffix!r}. "
        f"Expected one of: {', '.join(SUPPORTED_SUFFIXES)}"
    )


# ---------------------------------------------------------------------------
# Row conversion
# ---------------------------------------------------------------------------

def _row_to_record(row: dict) -> TransactionRecord | None:
    """Convert one cleaned row; returns None for rows with an unknown type."""
    raw_type = parse_text(row.get("type"))
    try:
        tx_type = TransactionType(raw_type.upper()) if raw_type else None
    except ValueError:
        tx_type = None
    if tx_type is None:
        logger.warning("Skipping transaction %r with unknown type %r",
                       row.get("id"), raw_type)
        return None

    offer_raw = parse_text(row.get("offer_type"))
    try:
        offer_type = OfferType(offer_raw.upper()) if offer_raw else None
    except ValueError:
        offer_type = None

    numbers = {col: parse_optional(row.get(col)) for col in NUMERIC_COLUMNS}
    quantity = parse_quantity(row.get("quantity"), row.get("id"))

    return TransactionRecord(
        id=parse_text(row.get("id")) or "",
        type=tx_type,
        product_name=parse_text(row.get("product_name")) or "",
        platform=parse_text(row.get("platform")) or "",
        status=(parse_text(row.get("status")) or "COMPLETED").upper(),
        occurred_at=parse_timestamp(row.get("occurred_at")),
        quantity=quantity,
        offer_type=offer_type,
        currency=parse_text(row.get("currency")) or "USD",
        gross_amount=numbers.pop("gross_amount") or 0.0,
        **numbers,
        **{col: parse_text(row.get(col)) for col in ID_COLUMNS},
    )


def records_from_frame(df: pd.DataFrame) -> list[TransactionRecord]:
    """Convert a transaction DataFrame into records, in row order."""
    df = clean_columns(df.copy())
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required column(s): {', '.join(missing)}")

    records = []
    for row in df.to_dict(orient="records"):
        record = _row_to_record(row)
        if record is not None:
            records.append(record)
    logger.debug("Ingested %d of %d transaction rows", len(records), len(df))
    return records


def records_from_dicts(rows) -> list[TransactionRecord]:
    """Convert JSON-shaped row dicts (snake_case or camelCase) into records."""
    rows = list(rows)
    if not rows:
        return []
    return records_from_frame(pd.DataFrame(rows))


def ingest_transactions(path, sheet_name=None) -> list[TransactionRecord]:
    """Read a transaction export file and return its records."""
    return records_from_frame(read_table(path, sheet_name=sheet_name))
