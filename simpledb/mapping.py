"""Row-to-dataclass mapping.

A row is matched against a dataclass field by exact, case-sensitive name.
Fields with no matching column keep their default; columns with no matching
field are ignored. The field list and resolved annotations of a shape are
computed once per shape, so an unusable shape is rejected before any query
runs.
"""
from __future__ import annotations

import dataclasses
import functools
import types
import typing
from typing import Any, Mapping

from . import values
from .errors import MappingError

_MISSING = dataclasses.MISSING


def _unwrap_optional(tp):
    origin = typing.get_origin(tp)
    if origin is typing.Union or origin is types.UnionType:
        args = [a for a in typing.get_args(tp) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return tp


def _zero_value(tp):
    if tp is bool:
        return False
    if tp is int:
        return 0
    if tp is float:
        return 0.0
    return None


@dataclasses.dataclass(frozen=True)
class _FieldSpec:
    name: str
    target: Any
    init: bool
    has_default: bool


class RowMapper:
    def __init__(self, shape: type):
        if not (isinstance(shape, type) and dataclasses.is_dataclass(shape)):
            raise MappingError(f"{shape!r} is not a dataclass type")
        try:
            hints = typing.get_type_hints(shape)
        except (NameError, TypeError) as exc:
            raise MappingError(f"Cannot resolve annotations of {shape.__name__}") from exc

        self.shape = shape
        specs = []
        for f in dataclasses.fields(shape):
            specs.append(
                _FieldSpec(
                    name=f.name,
                    target=_unwrap_optional(hints.get(f.name, Any)),
                    init=f.init,
                    has_default=f.default is not _MISSING or f.default_factory is not _MISSING,
                )
            )
        self.fields: tuple[_FieldSpec, ...] = tuple(specs)

    def map(self, row: Mapping[str, Any]):
        kwargs = {}
        late = {}
        for spec in self.fields:
            if spec.name in row:
                try:
                    value = values.coerce(row[spec.name], spec.target)
                except (TypeError, ValueError, ArithmeticError) as exc:
                    raise MappingError(
                        f"Cannot assign column '{spec.name}' to {self.shape.__name__}.{spec.name}"
                    ) from exc
            elif spec.has_default:
                continue
            else:
                value = _zero_value(spec.target)

            if spec.init:
                kwargs[spec.name] = value
            else:
                late[spec.name] = value

        try:
            obj = self.shape(**kwargs)
            for name, value in late.items():
                setattr(obj, name, value)
        except (TypeError, ValueError, AttributeError) as exc:
            raise MappingError(f"Cannot build {self.shape.__name__} from row") from exc
        return obj

    def __repr__(self):
        return f"RowMapper({self.shape.__name__})"


@functools.lru_cache(maxsize=None)
def _cached_mapper(shape: type) -> RowMapper:
    return RowMapper(shape)


def row_mapper(shape: type) -> RowMapper:
    if not isinstance(shape, type):
        raise MappingError(f"{shape!r} is not a dataclass type")
    return _cached_mapper(shape)


def map_row(row: Mapping[str, Any], shape: type):
    return row_mapper(shape).map(row)
