"""Value kinds for driver-decoded column values and the typed coercions
used by the scalar accessors and the row mapper.

Rows keep the driver's native Python values; classification and coercion
happen only at the typed boundary.
"""
import datetime
import decimal
import enum
import numbers


class ValueKind(enum.Enum):
    NULL = 0
    INTEGER = 1
    BOOLEAN = 2
    FLOAT = 3
    TEXT = 4
    BYTES = 5
    DATETIME = 6
    DATE = 7
    TIME = 8
    DECIMAL = 12
    OTHER = 99


def kind_of(value):
    if value is None:
        return ValueKind.NULL
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, int):
        return ValueKind.INTEGER
    if isinstance(value, float):
        return ValueKind.FLOAT
    if isinstance(value, decimal.Decimal):
        return ValueKind.DECIMAL
    if isinstance(value, str):
        return ValueKind.TEXT
    if isinstance(value, (bytes, bytearray, memoryview)):
        return ValueKind.BYTES
    # datetime before date: datetime is a date subclass
    if isinstance(value, datetime.datetime):
        return ValueKind.DATETIME
    if isinstance(value, datetime.date):
        return ValueKind.DATE
    if isinstance(value, datetime.time):
        return ValueKind.TIME
    if isinstance(value, numbers.Number):
        return ValueKind.FLOAT
    return ValueKind.OTHER


def to_long(value):
    kind = kind_of(value)
    if kind is ValueKind.NULL:
        return None
    if kind in (ValueKind.INTEGER, ValueKind.BOOLEAN, ValueKind.FLOAT, ValueKind.DECIMAL):
        # Truncates toward zero like a narrowing numeric conversion.
        return int(value)
    if kind is ValueKind.TEXT:
        return int(value.strip())
    raise TypeError(f"Cannot convert {type(value).__name__} to int")


def to_string(value):
    kind = kind_of(value)
    if kind is ValueKind.NULL:
        return None
    if kind is ValueKind.TEXT:
        return value
    if kind is ValueKind.BYTES:
        return bytes(value).decode("utf-8", errors="replace")
    if kind is ValueKind.BOOLEAN:
        return "true" if value else "false"
    return str(value)


def to_boolean(value):
    kind = kind_of(value)
    if kind is ValueKind.NULL:
        return None
    if kind is ValueKind.BOOLEAN:
        return value
    if kind in (ValueKind.INTEGER, ValueKind.FLOAT, ValueKind.DECIMAL):
        return value != 0
    return to_string(value).lower() == "true"


def to_datetime(value):
    kind = kind_of(value)
    if kind is ValueKind.NULL:
        return None
    if kind is ValueKind.DATETIME:
        return value
    if kind is ValueKind.DATE:
        return datetime.datetime.combine(value, datetime.time())
    if kind in (ValueKind.TEXT, ValueKind.BYTES):
        return datetime.datetime.fromisoformat(to_string(value).strip())
    raise TypeError(f"Cannot convert {type(value).__name__} to datetime")


def to_date(value):
    kind = kind_of(value)
    if kind is ValueKind.NULL:
        return None
    if kind is ValueKind.DATETIME:
        return value.date()
    if kind is ValueKind.DATE:
        return value
    if kind in (ValueKind.TEXT, ValueKind.BYTES):
        return to_datetime(value).date()
    raise TypeError(f"Cannot convert {type(value).__name__} to date")


def to_float(value):
    if value is None:
        return None
    if isinstance(value, str):
        return float(value.strip())
    return float(value)


def to_decimal(value):
    kind = kind_of(value)
    if kind is ValueKind.NULL:
        return None
    if kind is ValueKind.DECIMAL:
        return value
    if kind is ValueKind.FLOAT:
        # Via str so 0.1 stays 0.1 rather than its binary expansion.
        return decimal.Decimal(str(value))
    if kind in (ValueKind.INTEGER, ValueKind.BOOLEAN):
        return decimal.Decimal(int(value))
    if kind is ValueKind.TEXT:
        return decimal.Decimal(value.strip())
    raise TypeError(f"Cannot convert {type(value).__name__} to Decimal")


_COERCERS = {
    bool: to_boolean,
    int: to_long,
    float: to_float,
    str: to_string,
    decimal.Decimal: to_decimal,
    datetime.datetime: to_datetime,
    datetime.date: to_date,
}


def coerce(value, target):
    """Convert ``value`` to ``target`` when ``target`` is one of the simple
    column types; anything else is returned untouched.
    """
    if value is None:
        return None
    fn = _COERCERS.get(target)
    if fn is None:
        return value
    if type(value) is target:
        return value
    return fn(value)
