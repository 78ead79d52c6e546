from .kinds import ScalarKind, TypedValue, BLOB_PLACEHOLDER, column_kind
from .coercion import coerce
from .buffers import ColumnBuffer, new_column_buffer
from .table import Column, ColumnConfig, Table, TableBuilder

__all__ = [
    "ScalarKind",
    "TypedValue",
    "BLOB_PLACEHOLDER",
    "column_kind",
    "coerce",
    "ColumnBuffer",
    "new_column_buffer",
    "Column",
    "ColumnConfig",
    "Table",
    "TableBuilder",
]
