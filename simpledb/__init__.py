from .errors import (
    Error, DbConnectionError, TransactionError, ExecutionError,
    MappingError, StateError, CloseError,
)
from .values import ValueKind, kind_of
from .mapping import RowMapper, map_row, row_mapper
from .sql import Sql
from .db import SimpleDb, DEFAULT_DRIVER, DEFAULT_TIMEZONE

__version__ = "0.1.0"

__all__ = [
    "SimpleDb", "Sql",
    "RowMapper", "map_row", "row_mapper",
    "ValueKind", "kind_of",
    "Error", "DbConnectionError", "TransactionError", "ExecutionError",
    "MappingError", "StateError", "CloseError",
    "DEFAULT_DRIVER", "DEFAULT_TIMEZONE",
]
