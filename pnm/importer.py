"""Import pipeline: format detection, CSV/JSON parsing, row validation, coercion.

Rows go through three separate phases:

1. **parse** — text to loosely-typed row dicts (``parse_file_content``),
2. **validate** — per-row, per-field checks that collect ``RowError``s
   without aborting (``validate_import_data``),
3. **coerce** — permissive conversion of a row to a ``Node``
   (``row_to_node``).

Only rows that pass validation are coerced for the actual import.
"""

import json
import logging
import re
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any, Literal

from pnm.csvtext import CSVParseError, ImportParseError, is_blank_record, parse_csv_records
from pnm.models import (
    DEFAULT_RPC_PORT,
    NODE_STATUSES,
    TRUTHY_VALUES,
    ImportPreview,
    ImportResult,
    ImportValidationResult,
    Node,
    RowError,
    to_number,
)

__all__ = [
    "CSVParseError",
    "ImportParseError",
    "detect_file_type",
    "generate_import_preview",
    "get_valid_nodes_from_import",
    "parse_csv",
    "parse_file_content",
    "parse_json",
    "process_import",
    "row_to_node",
    "validate_import_data",
    "validate_row",
]

logger = logging.getLogger(__name__)

FileType = Literal["csv", "json", "unknown"]
Row = dict[str, Any]

REQUIRED_FIELDS = ("pubkey", "status")

MIN_PUBKEY_LENGTH = 32
DEFAULT_PREVIEW_LIMIT = 10
DEFAULT_MAX_PREVIEW_ERRORS = 50

_IPV4_SHAPE = re.compile(r"^(\d{1,3}\.){3}\d{1,3}$")
_BOOLEAN_VALUES = ("true", "false", "yes", "no", "1", "0")

# A validator returns None when the value is acceptable, else a message.
Validator = Callable[[Any], str | None]


# ---------------------------------------------------------------------------
# Format detection and parsing
# ---------------------------------------------------------------------------


def detect_file_type(content: str) -> FileType:
    """Guess whether *content* is JSON or CSV.

    JSON wins when the trimmed text starts with ``{`` or ``[`` and parses.
    Otherwise text containing both a comma and a line break is CSV.
    """
    trimmed = content.strip()

    if trimmed.startswith(("{", "[")):
        try:
            json.loads(trimmed)
        except json.JSONDecodeError:
            pass
        else:
            return "json"

    if "," in trimmed and "\n" in trimmed:
        return "csv"

    return "unknown"


def parse_csv(content: str) -> list[Row]:
    """Parse CSV text with a header row into row dicts.

    Header names and values are trimmed.  Blank and whitespace-only lines
    are skipped; a line of bare separators is kept as a row of empty values.
    Missing trailing values become ``""``; surplus values are dropped.

    Raises:
        CSVParseError: On an unterminated quoted field.
    """
    records = [r for r in parse_csv_records(content) if not is_blank_record(r)]
    if not records:
        return []

    headers = [h.strip() for h in records[0]]
    rows: list[Row] = []
    for record in records[1:]:
        rows.append(
            {
                header: record[idx].strip() if idx < len(record) else ""
                for idx, header in enumerate(headers)
            }
        )
    return rows


def parse_json(content: str) -> list[Row]:
    """Parse JSON import text.

    Accepts a bare array of row objects or an object with a ``nodes`` array.

    Raises:
        ImportParseError: On malformed JSON or an unexpected structure.
    """
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ImportParseError(f"Invalid JSON: {exc}") from exc

    if isinstance(data, dict) and isinstance(data.get("nodes"), list):
        data = data["nodes"]

    if not isinstance(data, list):
        raise ImportParseError(
            "Invalid JSON format: expected array or object with nodes array"
        )

    for idx, item in enumerate(data, start=1):
        if not isinstance(item, dict):
            raise ImportParseError(
                f"Invalid JSON format: row {idx} is {type(item).__name__}, expected object"
            )
    return data


def parse_file_content(content: str, file_type: FileType | None = None) -> list[Row]:
    """Parse import text, detecting the format unless *file_type* is given.

    Raises:
        ImportParseError: If the format is unknown or the text is malformed.
            The whole file is rejected; there is no partial result.
    """
    resolved = file_type or detect_file_type(content)
    logger.debug("Parsing import content as %s", resolved)

    if resolved == "json":
        return parse_json(content)
    if resolved == "csv":
        return parse_csv(content)

    raise ImportParseError("Unable to detect file format. Please use CSV or JSON.")


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _is_missing(value: Any) -> bool:
    return value is None or value == ""


def _validate_pubkey(value: Any) -> str | None:
    if not isinstance(value, str) or not value.strip():
        return "Pubkey is required and must be a non-empty string"
    if len(value) < MIN_PUBKEY_LENGTH:
        return f"Pubkey must be at least {MIN_PUBKEY_LENGTH} characters"
    return None


def _validate_status(value: Any) -> str | None:
    if str(value).lower() not in NODE_STATUSES:
        return f"Status must be one of: {', '.join(NODE_STATUSES)}"
    return None


def _validate_health_score(value: Any) -> str | None:
    number = to_number(value)
    if number is None or not 0 <= number <= 100:
        return "Health score must be a number between 0 and 100"
    return None


def _non_negative(message: str) -> Validator:
    def validate(value: Any) -> str | None:
        number = to_number(value)
        if number is None or number < 0:
            return message
        return None

    return validate


def _validate_is_public(value: Any) -> str | None:
    if str(value).lower() not in _BOOLEAN_VALUES:
        return "Public access must be true/false, yes/no, or 1/0"
    return None


def _validate_ip(value: Any) -> str | None:
    # Shape only; octet ranges are not checked.
    if not _IPV4_SHAPE.fullmatch(str(value)):
        return "Invalid IP address format"
    return None


def _validate_rpc_port(value: Any) -> str | None:
    number = to_number(value)
    if number is None or not number.is_integer() or not 1 <= number <= 65535:
        return "RPC port must be an integer between 1 and 65535"
    return None


FIELD_VALIDATORS: dict[str, Validator] = {
    "pubkey": _validate_pubkey,
    "status": _validate_status,
    "healthScore": _validate_health_score,
    "uptime": _non_negative("Uptime must be a non-negative number"),
    "storageUsed": _non_negative("Storage used must be a non-negative number"),
    "storageTotal": _non_negative("Storage total must be a non-negative number"),
    "isPublic": _validate_is_public,
    "ip": _validate_ip,
    "rpcPort": _validate_rpc_port,
}


def validate_row(row: Row, row_number: int) -> list[RowError]:
    """Validate one row.

    Required fields are checked for presence first; then every present,
    non-empty field with a validator is checked.

    Args:
        row: Parsed row dict.
        row_number: 1-based row number used in error messages.

    Returns:
        Errors found in the row (empty when the row is valid).
    """
    errors: list[RowError] = []

    for name in REQUIRED_FIELDS:
        if _is_missing(row.get(name)):
            errors.append(
                RowError(
                    row=row_number,
                    field=name,
                    message=f"Missing required field: {name}",
                    value=row.get(name),
                )
            )

    for name, validator in FIELD_VALIDATORS.items():
        value = row.get(name)
        if _is_missing(value):
            continue
        message = validator(value)
        if message is not None:
            errors.append(RowError(row=row_number, field=name, message=message, value=value))

    return errors


def validate_import_data(rows: list[Row]) -> ImportValidationResult:
    """Validate every row, collecting errors instead of stopping at the first."""
    all_errors: list[RowError] = []
    valid_rows = 0
    invalid_rows = 0

    for number, row in enumerate(rows, start=1):
        row_errors = validate_row(row, number)
        if row_errors:
            all_errors.extend(row_errors)
            invalid_rows += 1
        else:
            valid_rows += 1

    return ImportValidationResult(
        is_valid=invalid_rows == 0,
        errors=all_errors,
        valid_rows=valid_rows,
        invalid_rows=invalid_rows,
    )


def generate_import_preview(
    rows: list[Row],
    limit: int = DEFAULT_PREVIEW_LIMIT,
    max_errors: int = DEFAULT_MAX_PREVIEW_ERRORS,
) -> ImportPreview:
    """Summarise an import for display.

    Args:
        rows: Parsed rows.
        limit: How many leading rows to include.
        max_errors: Cap on the number of errors returned.

    Returns:
        An ``ImportPreview`` with the first *limit* rows, full valid/invalid
        counts and at most *max_errors* errors.
    """
    validation = validate_import_data(rows)
    headers = list(rows[0].keys()) if rows else []

    return ImportPreview(
        headers=headers,
        rows=rows[:limit],
        total_rows=len(rows),
        valid_rows=validation.valid_rows,
        invalid_rows=validation.invalid_rows,
        errors=validation.errors[:max_errors],
    )


# ---------------------------------------------------------------------------
# Coercion
# ---------------------------------------------------------------------------


def _coerce_number(value: Any, default: float = 0) -> float:
    number = to_number(value)
    # A zero coerces to the default as well, like the dashboard always did.
    return number if number else default


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).lower() in TRUTHY_VALUES


def _coerce_optional_int(value: Any) -> int | None:
    if _is_missing(value):
        return None
    number = to_number(value)
    return int(number) if number is not None else None


def row_to_node(row: Row, now: datetime | None = None) -> Node:
    """Convert a row to a ``Node`` without failing.

    Missing or non-numeric numbers become ``0``; ``rpcPort`` falls back to
    8899 and the last-seen fields to *now*.  This does not validate — run
    ``validate_row`` first if the row must be trusted.

    Args:
        row: Parsed row dict.
        now: Reference time for missing last-seen fields (default: UTC now).
    """
    moment = now or datetime.now(UTC)

    status = str(row.get("status") or "offline").lower()
    health = _coerce_optional_int(row.get("healthScore"))
    rank = _coerce_optional_int(row.get("rank"))
    percentile = row.get("percentile")

    return Node(
        pubkey=str(row.get("pubkey") or ""),
        status=status,  # type: ignore[arg-type]
        version=str(row.get("version") or "0.0.0"),
        storage_used=_coerce_number(row.get("storageUsed")),
        storage_total=_coerce_number(row.get("storageTotal")),
        storage_committed=_coerce_number(row.get("storageCommitted")),
        storage_usage_percent=_coerce_number(row.get("storageUsagePercent")),
        uptime=_coerce_number(row.get("uptime")),
        ip=str(row.get("ip") or ""),
        address=str(row.get("address") or ""),
        is_public=_coerce_bool(row.get("isPublic")),
        rpc_port=int(_coerce_number(row.get("rpcPort"), DEFAULT_RPC_PORT)),
        last_seen=str(row.get("lastSeen") or moment.isoformat()),
        last_seen_timestamp=int(
            _coerce_number(row.get("lastSeenTimestamp"), moment.timestamp() * 1000)
        ),
        health_score=health,
        rank=rank,
        percentile=str(percentile) if not _is_missing(percentile) else None,
    )


def _valid_row_indices(rows: list[Row], errors: Iterable[RowError]) -> list[int]:
    bad = {e.row for e in errors}
    return [i for i in range(len(rows)) if i + 1 not in bad]


def get_valid_nodes_from_import(
    rows: list[Row], now: datetime | None = None
) -> list[Node]:
    """Coerce only the rows that passed validation."""
    validation = validate_import_data(rows)
    return [row_to_node(rows[i], now) for i in _valid_row_indices(rows, validation.errors)]


def process_import(rows: list[Row], existing_nodes: Iterable[Node] = ()) -> ImportResult:
    """Work out what an import would do against an existing node set.

    Valid rows whose pubkey is already known count as updates, the rest as
    new imports.  Invalid rows are skipped.
    """
    validation = validate_import_data(rows)
    known = {n.pubkey for n in existing_nodes}

    imported = 0
    updated = 0
    for idx in _valid_row_indices(rows, validation.errors):
        if str(rows[idx].get("pubkey")) in known:
            updated += 1
        else:
            imported += 1

    logger.debug(
        "Import processed: %d new, %d updated, %d skipped",
        imported,
        updated,
        validation.invalid_rows,
    )

    return ImportResult(
        success=validation.is_valid or validation.valid_rows > 0,
        imported=imported,
        updated=updated,
        skipped=validation.invalid_rows,
        errors=validation.errors,
    )
