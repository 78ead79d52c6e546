"""Typed, append-only column buffers."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Iterator, List, Optional, Tuple

import numpy as np

from querybridge.common.logger import get_logger
from querybridge.normalization.coercion import coerce
from querybridge.normalization.kinds import (
    FLOAT_KINDS,
    INTEGER_KINDS,
    INTEGER_RANGES,
    DeclaredKind,
    ScalarKind,
    TypedValue,
    column_kind,
    normalize_declared,
)

logger = get_logger(__name__)


def conform(value: TypedValue, kind: ScalarKind) -> Any:
    """Converts a TypedValue into the native element type of a column kind.

    Returns None for nulls and for values that cannot be represented in the
    column kind without losing meaning.
    """
    if value.is_null:
        return None
    if value.kind is kind:
        return value.value
    if kind is ScalarKind.STRING:
        return as_text(value)
    if kind in INTEGER_KINDS:
        return _conform_integer(value, kind)
    if kind in FLOAT_KINDS and (value.kind in FLOAT_KINDS or value.kind in INTEGER_KINDS):
        number = float(value.value)
        return float(np.float32(number)) if kind is ScalarKind.FLOAT32 else number
    logger.debug(f"Dropping {value.kind.value} value from {kind.value} column")
    return None


def _conform_integer(value: TypedValue, kind: ScalarKind) -> Optional[int]:
    if value.kind in INTEGER_KINDS:
        number = value.value
    elif value.kind in FLOAT_KINDS and float(value.value).is_integer():
        number = int(value.value)
    else:
        logger.debug(f"Dropping {value.kind.value} value from {kind.value} column")
        return None
    low, high = INTEGER_RANGES[kind]
    if not low <= number <= high:
        logger.debug(f"Value {number} does not fit a {kind.value} column")
        return None
    return number


def as_text(value: TypedValue) -> str:
    if isinstance(value.value, datetime):
        return value.value.isoformat()
    if value.kind is ScalarKind.BOOL:
        return "true" if value.value else "false"
    return str(value.value)


class ColumnBuffer:
    """Append-only buffer whose elements all share one scalar kind.

    Appending never fails: values are conformed to the buffer kind and
    unrepresentable ones are stored as nulls.
    """

    def __init__(self, kind: ScalarKind, declared: DeclaredKind = None):
        self._kind = kind
        self._declared = normalize_declared(declared)
        self._values: List[Any] = []

    @property
    def kind(self) -> ScalarKind:
        return self._kind

    @property
    def declared(self) -> Optional[str]:
        return self._declared

    def append(self, value: TypedValue) -> None:
        self._values.append(conform(value, self._kind))

    def append_raw(self, raw: Any) -> None:
        self.append(coerce(raw, self._declared))

    def extend_raw(self, raws: Iterable[Any]) -> None:
        for raw in raws:
            self.append_raw(raw)

    def values(self) -> Tuple[Any, ...]:
        return tuple(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[Any]:
        return iter(tuple(self._values))


def new_column_buffer(declared: DeclaredKind) -> ColumnBuffer:
    """Creates an empty buffer typed from a backend-declared column type."""
    return ColumnBuffer(column_kind(declared), declared)
