import csv
import math
from decimal import Decimal, InvalidOperation
from io import StringIO
from typing import Optional

from pydantic import ValidationError

from models import TransactionType
from schemas import ImportRow

REQUIRED_COLUMNS = ("title", "type", "value", "category")


def parse_value(value: str) -> float:
    clean = value.strip().replace("€", "").replace("$", "").replace(" ", "")
    clean = clean.replace(",", ".")
    if not clean:
        raise ValueError("Missing value")
    if clean.count(".") > 1:
        parts = clean.split(".")
        clean = "".join(parts[:-1]) + "." + parts[-1]
    try:
        amount = Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError("Invalid value") from exc
    # NaN cannot be ordered and large exponents overflow to inf as floats
    if not amount.is_finite() or not math.isfinite(float(amount)):
        raise ValueError("Invalid value")
    if amount < 0:
        raise ValueError("Value must be positive")
    return float(amount)


def _normalize_header(raw: dict[Optional[str], Optional[str]]) -> dict[str, str]:
    # DictReader files surplus cells under a None key
    return {
        key.strip().lower(): (value or "").strip()
        for key, value in raw.items()
        if key is not None
    }


def parse_csv(content: str) -> tuple[list[ImportRow], list[str]]:
    """
    Parse an uploaded CSV with `title,type,value,category` columns.

    Returns the valid rows alongside one message per rejected row; callers decide
    whether a partial result is acceptable.
    """
    reader = csv.DictReader(StringIO(content.lstrip("\ufeff")))
    columns = {(name or "").strip().lower() for name in reader.fieldnames or []}
    missing = [name for name in REQUIRED_COLUMNS if name not in columns]
    if missing:
        return [], [f"Missing column(s): {', '.join(missing)}"]

    rows: list[ImportRow] = []
    errors: list[str] = []
    for idx, raw in enumerate(reader, start=1):
        record = _normalize_header(raw)
        if not any(record.values()):
            continue
        try:
            type_raw = record.get("type", "").lower()
            try:
                type_value = TransactionType(type_raw)
            except ValueError as exc:
                raise ValueError(f"Unknown type '{type_raw}'") from exc
            rows.append(
                ImportRow(
                    title=record.get("title", ""),
                    type=type_value,
                    value=parse_value(record.get("value", "")),
                    category=record.get("category", ""),
                )
            )
        except (ValueError, ValidationError) as exc:
            errors.append(f"Row {idx}: {exc}")
    return rows, errors
