"""
Line parsing for the input format.

ZERO I/O.  One line per record, no header:

    <id>,"<payload with "" escaped quotes>",<createdAt ISO-8601 local>

The key rule (text before the first comma must be an integer) is shared by
the partitioner and the reader, so a line the partitioner skipped is never
processed.  Every other field is parsed leniently: a failure yields an
absent field plus a ``FieldParseError`` for the caller to log.
"""

from __future__ import annotations

import csv
import re
from datetime import datetime

from recordflow_kernel.exceptions import FieldParseError, MalformedInputLineError

from recordflow_batch.domain.types import Record

_KEY_PATTERN = re.compile(r"[+-]?\d+")

FIELD_NAMES = ("id", "payload", "createdAt")


def parse_leading_key(line: str, line_number: int | None = None) -> int:
    """Parse the integer before the first comma.

    Raises:
        MalformedInputLineError: If the leading field is not an integer.
    """
    head = line.rstrip("\r\n").split(",", 1)[0]
    if not _KEY_PATTERN.fullmatch(head):
        raise MalformedInputLineError(line.rstrip("\r\n"), line_number)
    return int(head)


def parse_created_at(raw: str | None) -> datetime:
    """Parse an ISO-8601 local timestamp.

    Raises:
        FieldParseError: If ``raw`` is absent or not ISO-8601.
    """
    if raw is None or not raw.strip():
        raise FieldParseError("createdAt", raw, "missing value")
    try:
        return datetime.fromisoformat(raw.strip())
    except ValueError as exc:
        raise FieldParseError("createdAt", raw, str(exc)) from None


def split_fields(line: str) -> list[str]:
    """Split one CSV line, honouring quoted fields with doubled quotes."""
    rows = list(csv.reader([line.rstrip("\r\n")]))
    return rows[0] if rows else []


def parse_record(
    line: str, key: int,
) -> tuple[Record, tuple[FieldParseError, ...]]:
    """Map a line with an already-validated key onto a Record.

    Structurally malformed rows are clipped into a best-effort record:
    surplus fields are ignored, missing ones become absent.

    Returns:
        The record and the field-level errors encountered while parsing it.
    """
    errors: list[FieldParseError] = []

    try:
        fields = split_fields(line)
    except csv.Error as exc:
        errors.append(FieldParseError("payload", line, str(exc)))
        return Record(id=key), tuple(errors)

    payload: str | None = fields[1] if len(fields) > 1 else None
    if payload is None:
        errors.append(FieldParseError("payload", None, "missing value"))

    created_at: datetime | None = None
    try:
        created_at = parse_created_at(fields[2] if len(fields) > 2 else None)
    except FieldParseError as exc:
        errors.append(exc)

    return Record(id=key, payload=payload, created_at=created_at), tuple(errors)
