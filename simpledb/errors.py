import json


class Error(Exception):
    pass


class DbConnectionError(Error):
    pass


class TransactionError(Error):
    def __init__(self, message, close_error=None):
        super().__init__(message)
        # Set when closing after a failed commit/rollback also failed.
        self.close_error = close_error


class ExecutionError(Error):
    def __init__(self, message, sql=None, params=None):
        self.sql = sql
        self.params = params
        # Set when the auto-commit rollback after the failure also failed.
        self.rollback_error = None
        if sql is not None:
            ctx = {
                "sql": sql,
                "params": _format_params_for_error(params),
            }
            message = message + "\nContext: " + json.dumps(ctx, ensure_ascii=False)
        super().__init__(message)


class MappingError(Error):
    pass


class StateError(Error):
    pass


class CloseError(Error):
    pass


def _format_value_for_error(v, *, max_str=200, max_bytes=64):
    if v is None:
        return None
    if isinstance(v, (bool, int, float)):
        return v
    if isinstance(v, (bytes, bytearray, memoryview)):
        b = bytes(v)
        if len(b) <= max_bytes:
            return {"_type": "bytes", "hex": b.hex(), "len": len(b)}
        return {"_type": "bytes", "hex_prefix": b[:max_bytes].hex(), "len": len(b)}
    if isinstance(v, str):
        if len(v) <= max_str:
            return v
        return v[:max_str] + "…"
    s = repr(v)
    if len(s) <= max_str:
        return s
    return s[:max_str] + "…"


def _format_params_for_error(params, *, max_items=50):
    if params is None:
        return None
    seq = list(params)
    if len(seq) > max_items:
        return [_format_value_for_error(v) for v in seq[:max_items]] + ["<truncated>"]
    return [_format_value_for_error(v) for v in seq]
