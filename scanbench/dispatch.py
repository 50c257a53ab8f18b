"""Declared column type -> decode strategy.

Scan connections hand cells over as raw driver values (text for numbers and
dates when result decoders are disabled, ``bytes`` for binary columns), so
each strategy below does the actual materialization work the benchmark is
meant to exercise. Decoded values are returned to the caller and dropped.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Callable, Dict, Optional

from scanbench.errors import RecoverableDecodeError, UnhandledTypeWarning
from scanbench.models import TypeTag

logger = logging.getLogger(__name__)

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

TYPE_NAMES: Dict[str, TypeTag] = {
    "char": TypeTag.STRING,
    "varchar": TypeTag.STRING,
    "tinytext": TypeTag.STRING,
    "text": TypeTag.STRING,
    "mediumtext": TypeTag.STRING,
    "longtext": TypeTag.STRING,
    "enum": TypeTag.STRING,
    "set": TypeTag.STRING,
    # projected through CAST / ST_AsText, so they arrive as text
    "json": TypeTag.STRING,
    "geometry": TypeTag.STRING,
    "point": TypeTag.STRING,
    "linestring": TypeTag.STRING,
    "polygon": TypeTag.STRING,
    "multipoint": TypeTag.STRING,
    "multilinestring": TypeTag.STRING,
    "multipolygon": TypeTag.STRING,
    "geometrycollection": TypeTag.STRING,
    "geomcollection": TypeTag.STRING,
    "binary": TypeTag.BINARY,
    "varbinary": TypeTag.BINARY,
    "tinyblob": TypeTag.BINARY,
    "blob": TypeTag.BINARY,
    "mediumblob": TypeTag.BINARY,
    "longblob": TypeTag.BINARY,
    "bit": TypeTag.BINARY,
    "decimal": TypeTag.NUMERIC,
    "numeric": TypeTag.NUMERIC,
    "float": TypeTag.NUMERIC,
    "double": TypeTag.NUMERIC,
    "real": TypeTag.NUMERIC,
    "tinyint": TypeTag.INTEGER,
    "smallint": TypeTag.INTEGER,
    "mediumint": TypeTag.INTEGER,
    "int": TypeTag.INTEGER,
    "integer": TypeTag.INTEGER,
    "bigint": TypeTag.INTEGER,
    "year": TypeTag.INTEGER,
    "date": TypeTag.TEMPORAL,
    "datetime": TypeTag.TEMPORAL,
    "timestamp": TypeTag.TEMPORAL,
}

# Columns whose raw value must be pulled out through an expression in the
# projection instead of selecting the column reference directly.
EXTRACTED_TYPES: Dict[str, str] = {
    "json": "CAST({ref} AS CHAR)",
    "geometry": "ST_AsText({ref})",
    "point": "ST_AsText({ref})",
    "linestring": "ST_AsText({ref})",
    "polygon": "ST_AsText({ref})",
    "multipoint": "ST_AsText({ref})",
    "multilinestring": "ST_AsText({ref})",
    "multipolygon": "ST_AsText({ref})",
    "geometrycollection": "ST_AsText({ref})",
    "geomcollection": "ST_AsText({ref})",
}


def type_tag_for(type_name: str, is_key: bool = False) -> TypeTag:
    """Resolve an information_schema ``DATA_TYPE`` into a TypeTag.

    A single-column primary key resolves to ``ROW_ID`` regardless of its
    storage type; it labels rows in diagnostics.
    """
    if is_key:
        return TypeTag.ROW_ID
    return TYPE_NAMES.get(type_name.strip().lower(), TypeTag.UNSUPPORTED)


def decode_string(raw: Any) -> str:
    if isinstance(raw, (bytes, bytearray, memoryview)):
        return bytes(raw).decode("utf-8")
    if not isinstance(raw, str):
        raise TypeError(f"expected text, got {type(raw).__name__}")
    return raw


def decode_binary(raw: Any) -> bytes:
    if isinstance(raw, (bytes, bytearray, memoryview)):
        return bytes(raw)
    if isinstance(raw, str):
        return raw.encode("utf-8")
    raise TypeError(f"expected bytes, got {type(raw).__name__}")


def decode_numeric(raw: Any) -> float:
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("ascii")
    return float(raw)


def decode_integer(raw: Any) -> int:
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("ascii")
    if isinstance(raw, float):
        raise TypeError("refusing to truncate a float into an integer")
    value = int(raw)
    if not INT64_MIN <= value <= INT64_MAX:
        raise OverflowError(f"{value} does not fit in a signed 64-bit integer")
    return value


def decode_temporal(raw: Any) -> dt.datetime:
    if isinstance(raw, dt.datetime):
        return raw
    if isinstance(raw, dt.date):
        return dt.datetime.combine(raw, dt.time())
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("ascii")
    if not isinstance(raw, str):
        raise TypeError(f"expected a timestamp, got {type(raw).__name__}")
    # MySQL zero dates ('0000-00-00 ...') raise ValueError here.
    try:
        return dt.datetime.fromisoformat(raw)
    except ValueError:
        # fromisoformat before 3.11 only takes 3 or 6 fractional digits;
        # DATETIME(1..6) sends 1 to 6
        if "." not in raw:
            raise
        return dt.datetime.strptime(raw.replace("T", " "), "%Y-%m-%d %H:%M:%S.%f")


def decode_row_id(raw: Any) -> str:
    if isinstance(raw, (bytes, bytearray, memoryview)):
        return bytes(raw).hex()
    return str(raw)


DEFAULT_STRATEGIES: Dict[TypeTag, Callable[[Any], Any]] = {
    TypeTag.STRING: decode_string,
    TypeTag.BINARY: decode_binary,
    TypeTag.NUMERIC: decode_numeric,
    TypeTag.INTEGER: decode_integer,
    TypeTag.TEMPORAL: decode_temporal,
    TypeTag.ROW_ID: decode_row_id,
}

DECODE_ERRORS = (ValueError, TypeError, OverflowError, UnicodeDecodeError)


class ColumnTypeDispatcher:
    """Maps a TypeTag onto its decode strategy.

    Every tag except ``UNSUPPORTED`` must have a strategy; a dispatcher built
    from an incomplete table refuses to start. ``UNSUPPORTED`` (or any value
    that is not a known tag) yields an :class:`UnhandledTypeWarning` instead
    of raising.
    """

    def __init__(self, strategies: Optional[Dict[TypeTag, Callable[[Any], Any]]] = None) -> None:
        table = dict(DEFAULT_STRATEGIES if strategies is None else strategies)
        missing = [tag.name for tag in TypeTag if tag is not TypeTag.UNSUPPORTED and tag not in table]
        if missing:
            raise ValueError(f"No decode strategy for: {', '.join(missing)}")
        self._strategies = table

    def decode(
        self,
        type_tag: TypeTag,
        raw: Any,
        *,
        type_name: Optional[str] = None,
        position: Optional[int] = None,
    ) -> Any:
        strategy = self._strategies.get(type_tag) if isinstance(type_tag, TypeTag) else None
        if strategy is None:
            name = type_name or getattr(type_tag, "value", str(type_tag))
            warning = UnhandledTypeWarning(type_name=name, position=position)
            logger.debug("%s", warning)
            return warning
        try:
            return strategy(raw)
        except DECODE_ERRORS as exc:
            raise RecoverableDecodeError(type_tag, exc) from exc
