"""Portable scalar kinds and the mapping from backend-declared column types."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union


class ScalarKind(str, Enum):
    """Portable element kinds a column may hold."""
    NULL = "null"
    STRING = "string"
    INT64 = "int64"
    INT32 = "int32"
    INT16 = "int16"
    INT8 = "int8"
    FLOAT64 = "float64"
    FLOAT32 = "float32"
    BOOL = "bool"
    TIMESTAMP = "timestamp"


BLOB_PLACEHOLDER = "Blob"
BLOB_KIND = "blob"

DECLARED_KINDS: Dict[str, ScalarKind] = {
    "timestamp": ScalarKind.TIMESTAMP,
    "bigint": ScalarKind.INT64,
    "int": ScalarKind.INT64,
    "smallint": ScalarKind.INT16,
    "boolean": ScalarKind.BOOL,
    "double": ScalarKind.FLOAT64,
    "varint": ScalarKind.FLOAT64,
    "decimal": ScalarKind.FLOAT64,
    "float": ScalarKind.FLOAT32,
    "tinyint": ScalarKind.INT8,
}

# Declared kinds whose integer values are arbitrary precision.
ARBITRARY_PRECISION_KINDS = frozenset({"varint", "decimal"})

INTEGER_KINDS = frozenset({ScalarKind.INT64, ScalarKind.INT32, ScalarKind.INT16, ScalarKind.INT8})
FLOAT_KINDS = frozenset({ScalarKind.FLOAT64, ScalarKind.FLOAT32})

INTEGER_RANGES: Dict[ScalarKind, Tuple[int, int]] = {
    ScalarKind.INT64: (-(2 ** 63), 2 ** 63 - 1),
    ScalarKind.INT32: (-(2 ** 31), 2 ** 31 - 1),
    ScalarKind.INT16: (-(2 ** 15), 2 ** 15 - 1),
    ScalarKind.INT8: (-(2 ** 7), 2 ** 7 - 1),
}

DeclaredKind = Union[str, ScalarKind, None]


def normalize_declared(declared: DeclaredKind) -> Optional[str]:
    """Lower-cased declared type name, or None when nothing was declared."""
    if declared is None:
        return None
    if isinstance(declared, ScalarKind):
        return declared.value
    return declared.strip().lower() or None


def column_kind(declared: DeclaredKind) -> ScalarKind:
    """Resolves the column kind for a declared type; unknown types map to STRING."""
    if isinstance(declared, ScalarKind):
        return ScalarKind.STRING if declared is ScalarKind.NULL else declared
    name = normalize_declared(declared)
    if name is None:
        return ScalarKind.STRING
    return DECLARED_KINDS.get(name, ScalarKind.STRING)


def is_blob(declared: DeclaredKind) -> bool:
    return normalize_declared(declared) == BLOB_KIND


def is_arbitrary_precision(declared: DeclaredKind) -> bool:
    return normalize_declared(declared) in ARBITRARY_PRECISION_KINDS


@dataclass(frozen=True)
class TypedValue:
    """A raw backend value tagged with its portable kind.

    ``value`` always holds the Python native representation of the kind:
    ``None``, ``str``, ``int``, ``float``, ``bool`` or ``datetime``.
    """
    kind: ScalarKind
    value: Any = None

    @property
    def is_null(self) -> bool:
        return self.kind is ScalarKind.NULL

    @classmethod
    def null(cls) -> "TypedValue":
        return cls(ScalarKind.NULL, None)
