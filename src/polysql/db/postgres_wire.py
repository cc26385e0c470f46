"""Binary encoding of PostgreSQL parameters and result values.

Every parameter and result column travels in the binary format. The type
OID selects the encoding: big-endian two's complement for integers,
big-endian IEEE-754 for floats, UTF-8 for text. The set of supported OIDs
is deliberately small; anything else is rejected.
"""

from __future__ import annotations

import struct
from typing import Any

from psycopg.postgres import types as pg_types

from polysql.db.values import INT32_MAX, INT32_MIN, to_double, to_int64
from polysql.errors import ParameterTypeError, PostgresError, UnsupportedTypeError
from polysql.models import ColumnType

INVALID_OID = 0

BOOL_OID = pg_types["bool"].oid
INT2_OID = pg_types["int2"].oid
INT4_OID = pg_types["int4"].oid
INT8_OID = pg_types["int8"].oid
FLOAT4_OID = pg_types["float4"].oid
FLOAT8_OID = pg_types["float8"].oid
TEXT_OID = pg_types["text"].oid
VARCHAR_OID = pg_types["varchar"].oid
BPCHAR_OID = pg_types["bpchar"].oid
NAME_OID = pg_types["name"].oid
BYTEA_OID = pg_types["bytea"].oid

# oid -> (struct format, min, max)
_INT_FORMATS: dict[int, tuple[str, int, int]] = {
    INT2_OID: (">h", -(2**15), 2**15 - 1),
    INT4_OID: (">i", -(2**31), 2**31 - 1),
    INT8_OID: (">q", -(2**63), 2**63 - 1),
}
_FLOAT_FORMATS: dict[int, str] = {
    FLOAT4_OID: ">f",
    FLOAT8_OID: ">d",
}
_TEXT_OIDS = frozenset({TEXT_OID, VARCHAR_OID, BPCHAR_OID, NAME_OID})

_COLUMN_TYPES: dict[int, ColumnType] = {
    BOOL_OID: ColumnType.INTEGER,
    INT2_OID: ColumnType.INTEGER,
    INT4_OID: ColumnType.INTEGER,
    INT8_OID: ColumnType.INTEGER,
    FLOAT4_OID: ColumnType.FLOAT,
    FLOAT8_OID: ColumnType.FLOAT,
    TEXT_OID: ColumnType.TEXT,
    VARCHAR_OID: ColumnType.TEXT,
    BPCHAR_OID: ColumnType.TEXT,
    NAME_OID: ColumnType.TEXT,
    BYTEA_OID: ColumnType.BLOB,
}

# information_schema.columns.data_type -> coarse type
_DATA_TYPE_NAMES: dict[str, ColumnType] = {
    "smallint": ColumnType.INTEGER,
    "integer": ColumnType.INTEGER,
    "bigint": ColumnType.INTEGER,
    "boolean": ColumnType.INTEGER,
    "real": ColumnType.FLOAT,
    "double precision": ColumnType.FLOAT,
    "numeric": ColumnType.FLOAT,
    "float": ColumnType.FLOAT,
    "text": ColumnType.TEXT,
    "character varying": ColumnType.TEXT,
    "character": ColumnType.TEXT,
    "name": ColumnType.TEXT,
    "bytea": ColumnType.BLOB,
}


def parse_postgres_column_type(data_type: str) -> ColumnType:
    """Map an information_schema ``data_type`` to a coarse type, NULL if unknown."""
    return _DATA_TYPE_NAMES.get(data_type.lower(), ColumnType.NULL)


def oid_for_value(value: Any) -> int:
    """Pick a parameter type for a slot the server left unspecified."""
    if isinstance(value, bool):
        return BOOL_OID
    if isinstance(value, int):
        return INT8_OID
    if isinstance(value, float):
        return FLOAT8_OID
    if isinstance(value, str):
        return TEXT_OID
    if isinstance(value, (bytes, bytearray, memoryview)):
        return BYTEA_OID
    raise ParameterTypeError(f"Cannot bind value of type {type(value).__name__}")


def encode_param(value: Any, oid: int) -> bytes | None:
    """Encode ``value`` for a parameter of type ``oid``. ``None`` is SQL NULL.

    Raises ``ParameterTypeError`` when the value's type disagrees with the
    slot or does not fit its width, and ``UnsupportedTypeError`` for OIDs
    outside the supported set.
    """
    if value is None:
        return None

    if oid == BOOL_OID:
        if not isinstance(value, int):
            raise ParameterTypeError(f"bool parameter cannot take {type(value).__name__}")
        return b"\x01" if value else b"\x00"

    if oid in _INT_FORMATS:
        if not isinstance(value, int):
            raise ParameterTypeError(f"integer parameter cannot take {type(value).__name__}")
        fmt, low, high = _INT_FORMATS[oid]
        if not low <= value <= high:
            bits = struct.calcsize(fmt) * 8
            raise ParameterTypeError(f"{value} does not fit a {bits}-bit integer")
        return struct.pack(fmt, int(value))

    if oid in _FLOAT_FORMATS:
        # int is accepted where float is expected; bool is not.
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ParameterTypeError(f"float parameter cannot take {type(value).__name__}")
        try:
            return struct.pack(_FLOAT_FORMATS[oid], float(value))
        except OverflowError as exc:
            raise ParameterTypeError(f"{value} does not fit a float4") from exc

    if oid in _TEXT_OIDS:
        if not isinstance(value, str):
            raise ParameterTypeError(f"text parameter cannot take {type(value).__name__}")
        return value.encode("utf-8")

    if oid == BYTEA_OID:
        if not isinstance(value, (bytes, bytearray, memoryview)):
            raise ParameterTypeError(f"bytea parameter cannot take {type(value).__name__}")
        return bytes(value)

    raise UnsupportedTypeError(f"Unsupported parameter type OID {oid}")


def column_type(oid: int) -> ColumnType:
    """Coarse type of a non-NULL result column."""
    try:
        return _COLUMN_TYPES[oid]
    except KeyError:
        raise UnsupportedTypeError(f"Unsupported column type OID {oid}") from None


def _unpack(fmt: str, data: bytes) -> Any:
    if len(data) != struct.calcsize(fmt):
        raise PostgresError(f"Unexpected value size {len(data)} for format {fmt}")
    return struct.unpack(fmt, data)[0]


def decode_int(oid: int, data: bytes) -> int:
    """Decode a result value as an integer, converting across types when needed."""
    if oid == BOOL_OID:
        return int(_unpack(">?", data))
    if oid in _INT_FORMATS:
        return _unpack(_INT_FORMATS[oid][0], data)
    if oid in _FLOAT_FORMATS:
        return to_int64(_unpack(_FLOAT_FORMATS[oid], data))
    if oid in _TEXT_OIDS:
        return to_int64(data.decode("utf-8"))
    raise UnsupportedTypeError(f"Cannot read OID {oid} as an integer")


def decode_int32(oid: int, data: bytes) -> int:
    """Like ``decode_int`` but 0 when the value does not fit in 32 bits."""
    value = decode_int(oid, data)
    return value if INT32_MIN <= value <= INT32_MAX else 0


def decode_double(oid: int, data: bytes) -> float:
    if oid in _FLOAT_FORMATS:
        return _unpack(_FLOAT_FORMATS[oid], data)
    if oid == BOOL_OID or oid in _INT_FORMATS:
        return float(decode_int(oid, data))
    if oid in _TEXT_OIDS:
        return to_double(data.decode("utf-8"))
    raise UnsupportedTypeError(f"Cannot read OID {oid} as a float")


def decode_text(oid: int, data: bytes) -> str:
    """Decode a result value as text.

    Numbers are rendered in their usual text form; any other OID is
    returned as its raw bytes decoded as UTF-8.
    """
    if oid == BOOL_OID or oid in _INT_FORMATS:
        return str(decode_int(oid, data))
    if oid in _FLOAT_FORMATS:
        return str(decode_double(oid, data))
    return data.decode("utf-8", errors="replace")
