"""CSV scanning and escaping shared by the importer and exporter."""

from typing import Any

_SPECIAL_CHARS = (",", '"', "\n", "\r")


class ImportParseError(Exception):
    """Raised when an import or export file cannot be parsed at all."""


class CSVParseError(ImportParseError):
    """Raised on structurally broken CSV (e.g. an unterminated quote)."""


def parse_csv_records(text: str) -> list[list[str]]:
    """Split CSV text into records of raw field strings.

    Quoting follows RFC 4180: a field wrapped in double quotes may contain
    commas, line breaks and doubled quotes (``""`` for a literal ``"``).
    Outside quotes, ``\\n``, ``\\r\\n`` and a bare ``\\r`` all end a record.
    Fields are returned untrimmed; blank lines come back as ``[""]``.

    Raises:
        CSVParseError: If the text ends inside a quoted field.
    """
    records: list[list[str]] = []
    record: list[str] = []
    current: list[str] = []
    in_quotes = False
    record_open = False
    i = 0
    n = len(text)

    while i < n:
        char = text[i]
        if in_quotes or char not in ("\n", "\r"):
            record_open = True

        if in_quotes:
            if char == '"':
                if i + 1 < n and text[i + 1] == '"':
                    current.append('"')
                    i += 1
                else:
                    in_quotes = False
            else:
                current.append(char)
        elif char == '"':
            in_quotes = True
        elif char == ",":
            record.append("".join(current))
            current = []
        elif char in ("\n", "\r"):
            if char == "\r" and i + 1 < n and text[i + 1] == "\n":
                i += 1
            record.append("".join(current))
            records.append(record)
            record = []
            current = []
            record_open = False
        else:
            current.append(char)

        i += 1

    if in_quotes:
        raise CSVParseError("Unterminated quoted field at end of CSV input")

    # Flush the last record unless the text ended with a line break.
    if record_open:
        record.append("".join(current))
        records.append(record)

    return records


def is_blank_record(record: list[str]) -> bool:
    """True for blank or whitespace-only lines.

    A line holding only separators (``","``) is a record of empty fields,
    not a blank line.
    """
    return len(record) == 1 and not record[0].strip()


def escape_csv_value(value: Any) -> str:
    """Render a value as a CSV field.

    ``None`` becomes an empty field.  Text containing a comma, quote or line
    break is wrapped in quotes with internal quotes doubled.
    """
    if value is None:
        return ""
    text = value if isinstance(value, str) else _to_text(value)
    if any(ch in text for ch in _SPECIAL_CHARS):
        return '"' + text.replace('"', '""') + '"'
    return text


def _to_text(value: Any) -> str:
    """Stringify numbers without a trailing ``.0`` on whole floats."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
