"""Arrow and Polars conversion of result tables."""
from __future__ import annotations

import polars as pl
import pyarrow as pa

from querybridge.normalization.kinds import ScalarKind

ARROW_TYPES = {
    ScalarKind.NULL: pa.null(),
    ScalarKind.STRING: pa.string(),
    ScalarKind.INT64: pa.int64(),
    ScalarKind.INT32: pa.int32(),
    ScalarKind.INT16: pa.int16(),
    ScalarKind.INT8: pa.int8(),
    ScalarKind.FLOAT64: pa.float64(),
    ScalarKind.FLOAT32: pa.float32(),
    ScalarKind.BOOL: pa.bool_(),
    ScalarKind.TIMESTAMP: pa.timestamp("us", tz="UTC"),
}


def table_to_arrow(table) -> pa.Table:
    arrays = [pa.array(list(column.values), type=ARROW_TYPES[column.kind]) for column in table.columns]
    fields = [
        pa.field(column.name, ARROW_TYPES[column.kind], nullable=True, metadata=_field_metadata(column))
        for column in table.columns
    ]
    return pa.Table.from_arrays(arrays, schema=pa.schema(fields))


def table_to_polars(table) -> pl.DataFrame:
    return pl.from_arrow(table_to_arrow(table))


def _field_metadata(column):
    if column.config is None:
        return None
    hints = column.config.model_dump(exclude_none=True)
    return {key: str(value) for key, value in hints.items()} or None
