"""Total coercion of raw backend values into portable typed values.

``coerce`` never raises. Values that fit no known runtime category are
serialized to JSON text; failures along the way are logged at DEBUG and
degrade to an empty string or numeric zero.
"""
from __future__ import annotations

import decimal
import json
import math
import uuid
from datetime import datetime
from typing import Any

import numpy as np

from querybridge.common.logger import get_logger
from querybridge.normalization.kinds import (
    BLOB_PLACEHOLDER,
    INTEGER_RANGES,
    DeclaredKind,
    ScalarKind,
    TypedValue,
    is_arbitrary_precision,
    is_blob,
)

logger = get_logger(__name__)

_INT64_MIN, _INT64_MAX = INTEGER_RANGES[ScalarKind.INT64]

# Fixed-width scalars that keep their width when passed through.
_FIXED_WIDTH = (
    (np.float32, ScalarKind.FLOAT32),
    (np.int64, ScalarKind.INT64),
    (np.int16, ScalarKind.INT16),
    (np.int8, ScalarKind.INT8),
)


def coerce(raw: Any, declared: DeclaredKind = None) -> TypedValue:
    """Maps one raw value to a TypedValue.

    Args:
        raw: The value as produced by the backend client library.
        declared: The backend-declared column type, if any.

    Returns:
        TypedValue: Never raises; unknown shapes become their JSON text.
    """
    if raw is None:
        return TypedValue.null()
    if is_blob(declared):
        return TypedValue(ScalarKind.STRING, BLOB_PLACEHOLDER)
    try:
        return _coerce_runtime(raw, declared)
    except Exception as exc:
        logger.debug(f"Coercion of {type(raw).__name__} failed ({exc}); serializing instead")
        return _serialize(raw)


def _coerce_runtime(raw: Any, declared: DeclaredKind) -> TypedValue:
    # bool is a subclass of int, so it is checked first
    if isinstance(raw, (bool, np.bool_)):
        return TypedValue(ScalarKind.BOOL, bool(raw))
    for scalar_type, kind in _FIXED_WIDTH:
        if isinstance(raw, scalar_type):
            native = raw.item()
            return TypedValue(kind, float(native) if kind is ScalarKind.FLOAT32 else int(native))
    if isinstance(raw, float):
        return TypedValue(ScalarKind.FLOAT64, float(raw))
    if isinstance(raw, datetime):
        return TypedValue(ScalarKind.TIMESTAMP, raw)
    if isinstance(raw, str):
        return TypedValue(ScalarKind.STRING, raw)
    if isinstance(raw, uuid.UUID):
        return TypedValue(ScalarKind.STRING, str(raw))
    if isinstance(raw, np.integer):
        return _coerce_int(int(raw), declared)
    if isinstance(raw, int):
        return _coerce_int(raw, declared)
    if isinstance(raw, decimal.Decimal):
        return TypedValue(ScalarKind.FLOAT64, parse_decimal(str(raw)))
    return _serialize(raw)


def _coerce_int(value: int, declared: DeclaredKind) -> TypedValue:
    if is_arbitrary_precision(declared) or not _INT64_MIN <= value <= _INT64_MAX:
        return TypedValue(ScalarKind.FLOAT64, parse_decimal(str(value)))
    return TypedValue(ScalarKind.INT64, value)


def parse_decimal(text: str) -> float:
    """Parses an arbitrary-precision decimal string; 0.0 when it cannot be represented."""
    try:
        value = float(text)
    except (TypeError, ValueError) as exc:
        logger.debug(f"Could not parse decimal '{text}': {exc}")
        return 0.0
    if math.isinf(value) and "inf" not in text.lower():
        logger.debug(f"Decimal '{text}' is out of float64 range")
        return 0.0
    return value


def _serialize(raw: Any) -> TypedValue:
    try:
        return TypedValue(ScalarKind.STRING, json.dumps(raw, default=str))
    except Exception as exc:
        logger.debug(f"JSON serialization of {type(raw).__name__} failed: {exc}")
    try:
        return TypedValue(ScalarKind.STRING, str(raw))
    except Exception as exc:
        logger.debug(f"String conversion of {type(raw).__name__} failed: {exc}")
        return TypedValue(ScalarKind.STRING, "")
