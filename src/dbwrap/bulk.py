"""
Staging-file format for bulk loads.

Records are written as text lines: fields joined with FIELD_DELIMITER and
each record closed by LINE_TERMINATOR. Both are multi-character markers
chosen to avoid collisions with ordinary data.

Field encoding:
- None -> `\\N`
- backslashes are doubled, so `\\N` is never ambiguous
- bool -> 1/0, dates and times ISO-8601, Decimal in plain notation
- bytes are rejected

The file lives in a fast temporary area (/dev/shm when present) under a
random name and is always removed when the `staging_file` context exits.
"""
import datetime
import decimal
import logging
import os
import pathlib
import tempfile
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import Any

from dbwrap.exceptions import ArgumentError, StagingError

logger = logging.getLogger(__name__)

FIELD_DELIMITER = ':::,'
LINE_TERMINATOR = '^^^\n'
NULL_MARKER = r'\N'
RAMDISK = '/dev/shm'


def default_staging_dir() -> str:
    """Return /dev/shm when usable, the system temp dir otherwise."""
    if os.path.isdir(RAMDISK) and os.access(RAMDISK, os.W_OK):
        return RAMDISK
    return tempfile.gettempdir()


def encode_field(value: Any) -> str:
    """Encode a single value for the staging file."""
    if value is None:
        return NULL_MARKER
    if isinstance(value, bytes | bytearray | memoryview):
        raise ArgumentError('Binary values cannot be bulk loaded')
    if isinstance(value, bool):
        return '1' if value else '0'
    if isinstance(value, datetime.datetime):
        text = value.isoformat(sep=' ')
    elif isinstance(value, datetime.date | datetime.time):
        text = value.isoformat()
    elif isinstance(value, decimal.Decimal):
        text = format(value, 'f')
    else:
        text = str(value)
    return text.replace('\\', '\\\\')


def decode_field(text: str) -> str | None:
    """Inverse of `encode_field`; values come back as text or None."""
    if text == NULL_MARKER:
        return None
    return text.replace('\\\\', '\\')


def encode_record(values: Sequence[Any]) -> str:
    """Encode one record as a terminated staging line."""
    return FIELD_DELIMITER.join(encode_field(v) for v in values) + LINE_TERMINATOR


def decode_records(text: str) -> list[list[str | None]]:
    """Split staging file content back into records."""
    lines = text.split(LINE_TERMINATOR)
    if lines[-1] == '':
        lines.pop()
    return [[decode_field(f) for f in line.split(FIELD_DELIMITER)] for line in lines]


def read_staging_file(path: str | os.PathLike) -> list[list[str | None]]:
    """Read and decode a staging file."""
    return decode_records(pathlib.Path(path).read_text(encoding='utf-8'))


def validate_bulk_args(table: str, records: Any) -> None:
    """Check bulk-load preconditions.

    Raises
        ArgumentError: If records is not an ordered sequence or table is empty
    """
    if (not isinstance(records, Sequence)
            or isinstance(records, str | bytes | bytearray)):
        raise ArgumentError(f'Records must be an ordered sequence, got {type(records).__name__}')
    if not table:
        raise ArgumentError('No target table specified')


def record_columns(records: Sequence[Mapping[str, Any]]) -> list[str]:
    """Column list derived from the keys of the first record.

    All records are expected to share this column set; it is not checked.
    """
    first = records[0]
    if not isinstance(first, Mapping):
        raise ArgumentError(f'Records must be mappings, got {type(first).__name__}')
    return list(first.keys())


@contextmanager
def staging_file(records: Sequence[Mapping[str, Any]], columns: list[str],
                 directory: str | None = None) -> Iterator[pathlib.Path]:
    """Write records to a staging file and yield its path.

    The file is removed when the context exits, whether or not the body
    raised.

    Raises
        StagingError: If the staging file cannot be written
    """
    directory = directory or default_staging_dir()
    path = None
    try:
        try:
            with tempfile.NamedTemporaryFile('w', encoding='utf-8', newline='',
                                             dir=directory, prefix='dbwrap_bulk_',
                                             suffix='.txt', delete=False) as fh:
                path = pathlib.Path(fh.name)
                for record in records:
                    fh.write(encode_record([record[col] for col in columns]))
        except OSError as exc:
            logger.error(f'Cannot write to staging file in {directory}: {exc}')
            raise StagingError(f'Cannot write to staging file in "{directory}": {exc}') from exc
        logger.debug(f'Staged {len(records)} records in {path}')
        yield path
    finally:
        if path is not None:
            path.unlink(missing_ok=True)
            logger.debug(f'Removed staging file {path}')
