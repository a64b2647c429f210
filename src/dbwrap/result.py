"""
Result cursors and row-shaping helpers.

A `ResultSet` wraps the DBAPI cursor of one executed statement. Rows can be
fetched one at a time or all at once in one of three shapes (`FetchMode`),
serialized to JSON, mapped through a callback, or loaded into a DataFrame.

The module-level `fetch`, `fetch_all`, `to_json` and `on_fetch` functions
accept any value and forward to the `ResultSet`.
"""
import base64
import datetime
import decimal
import json
import logging
from collections.abc import Callable, Iterator
from enum import Enum
from typing import Any, Self

import pandas as pd

from libb import attrdict

logger = logging.getLogger(__name__)

__all__ = [
    'FetchMode',
    'ResultSet',
    'fetch',
    'fetch_all',
    'to_json',
    'on_fetch',
]


class FetchMode(Enum):
    """Row shape returned by the fetch helpers.

    ASSOCIATIVE: mapping keyed by column name
    POSITIONAL: list indexed by column ordinal
    BOTH: mapping carrying both ordinal and name keys
    """
    ASSOCIATIVE = 'assoc'
    POSITIONAL = 'num'
    BOTH = 'both'

    @classmethod
    def coerce(cls, value: 'FetchMode | str') -> Self:
        """Accept a FetchMode, its value ('assoc') or its name ('associative')."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.lower())
            except ValueError:
                pass
            try:
                return cls[value.upper()]
            except KeyError:
                pass
        raise ValueError(f'Unknown fetch mode: {value!r}')


def _json_default(value: Any) -> Any:
    """Serialize values json does not handle natively."""
    if isinstance(value, datetime.datetime):
        return value.isoformat(sep=' ')
    if isinstance(value, datetime.date | datetime.time):
        return value.isoformat()
    if isinstance(value, decimal.Decimal):
        return str(value)
    if isinstance(value, bytes | bytearray | memoryview):
        return base64.b64encode(bytes(value)).decode('ascii')
    raise TypeError(f'Object of type {type(value).__name__} is not JSON serializable')


class ResultSet:
    """Rows and counters produced by one statement.

    Buffered results read every row at construction and release the cursor.
    Unbuffered results pull rows from the cursor as they are fetched; `num_rows`
    then counts the rows read so far.
    """

    def __init__(self, cursor: Any, sql: str | None = None, buffered: bool = True,
                 default_mode: FetchMode = FetchMode.ASSOCIATIVE) -> None:
        self.sql = sql
        self.buffered = buffered
        self.default_mode = default_mode
        self.columns: list[str] = [d[0] for d in cursor.description] if cursor.description else []
        self.affected_rows: int = cursor.rowcount
        self.lastrowid: int | None = getattr(cursor, 'lastrowid', None)
        self._cursor = cursor
        self._rows: list[tuple] = []
        self._position = 0
        self._fetched = 0

        if buffered or not self.columns:
            if self.columns:
                self._rows = [tuple(row) for row in cursor.fetchall()]
            self.close()

    def __repr__(self) -> str:
        return f'<ResultSet columns={self.columns} num_rows={self.num_rows} affected_rows={self.affected_rows}>'

    def __iter__(self) -> Iterator[Any]:
        while (row := self._next_raw()) is not None:
            yield self._shape(row, self.default_mode)

    @property
    def num_rows(self) -> int:
        """Rows in a buffered result, rows read so far otherwise."""
        if self.buffered:
            return len(self._rows)
        return self._fetched

    @property
    def has_rows(self) -> bool:
        return bool(self.columns)

    def close(self) -> None:
        """Release the underlying cursor."""
        if self._cursor is not None:
            self._cursor.close()
            self._cursor = None

    def _next_raw(self) -> tuple | None:
        if self._position < len(self._rows):
            row = self._rows[self._position]
            self._position += 1
            return row
        if self._cursor is None:
            return None
        row = self._cursor.fetchone()
        if row is None:
            self.close()
            return None
        self._fetched += 1
        return tuple(row)

    def _shape(self, row: tuple, mode: FetchMode) -> Any:
        if mode is FetchMode.ASSOCIATIVE:
            return attrdict(zip(self.columns, row))
        if mode is FetchMode.POSITIONAL:
            return list(row)
        shaped: dict[int | str, Any] = {}
        for i, (name, value) in enumerate(zip(self.columns, row)):
            shaped[i] = value
            shaped[name] = value
        return shaped

    @staticmethod
    def _empty(mode: FetchMode) -> dict | list:
        return [] if mode is FetchMode.POSITIONAL else {}

    def fetch(self, mode: FetchMode | str | None = None) -> Any:
        """Return the next row, or an empty container when there are no more rows.
        """
        mode = FetchMode.coerce(mode or self.default_mode)
        row = self._next_raw()
        if row is None:
            return self._empty(mode)
        return self._shape(row, mode)

    def fetch_all(self, mode: FetchMode | str | None = None) -> list[Any]:
        """Return all remaining rows; an empty list when there are none.
        """
        mode = FetchMode.coerce(mode or self.default_mode)
        rows = []
        while (row := self._next_raw()) is not None:
            rows.append(self._shape(row, mode))
        return rows

    def to_json(self, mode: FetchMode | str | None = None) -> str:
        """Serialize the remaining rows as a JSON array.
        """
        return json.dumps(self.fetch_all(mode), default=_json_default)

    def on_fetch(self, callback: Callable[[dict, list], Any]) -> list[Any]:
        """Call `callback(row, accumulated)` for every remaining row.

        Rows are passed in BOTH shape together with the list of values returned
        so far. The first exception raised by the callback stops iteration and
        propagates to the caller.
        """
        response: list[Any] = []
        for row in self.fetch_all(FetchMode.BOTH):
            try:
                response.append(callback(row, response))
            except Exception as exc:
                logger.error(f'Row callback failed after {len(response)} rows: {exc}')
                raise
        return response

    def to_dataframe(self) -> pd.DataFrame:
        """Load the remaining rows into a DataFrame.

        Always returns a DataFrame, with columns preserved for empty results.
        """
        rows = self.fetch_all(FetchMode.POSITIONAL)
        if not rows:
            return pd.DataFrame(columns=self.columns)
        return pd.DataFrame.from_records(rows, columns=self.columns)


def fetch(result: Any, mode: FetchMode | str = FetchMode.ASSOCIATIVE) -> Any:
    """Fetch the next row of a result in the requested shape.
    """
    return result.fetch(mode)


def fetch_all(result: Any, mode: FetchMode | str = FetchMode.ASSOCIATIVE) -> list[Any]:
    """Fetch every remaining row of a result in the requested shape.
    """
    return result.fetch_all(mode)


def to_json(result: Any, mode: FetchMode | str = FetchMode.ASSOCIATIVE) -> str:
    """Serialize a result as a JSON array.

    Anything that is not a ResultSet serializes as an empty array.

    >>> to_json(None)
    '[]'
    """
    if not isinstance(result, ResultSet):
        return json.dumps([])
    return result.to_json(mode)


def on_fetch(result: Any, callback: Callable[[dict, list], Any]) -> list[Any]:
    """Map every remaining row of a result through `callback`.
    """
    return result.on_fetch(callback)
