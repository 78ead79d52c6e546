from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Tuple, TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, model_validator

from querybridge.normalization.buffers import ColumnBuffer, new_column_buffer
from querybridge.normalization.kinds import DeclaredKind, ScalarKind

if TYPE_CHECKING:
    import polars as pl
    import pyarrow as pa


class ColumnConfig(BaseModel):
    """Display hints attached to a column."""
    model_config = ConfigDict(frozen=True)

    width: Optional[int] = None
    align: Optional[str] = None
    unit: Optional[str] = None


class Column(BaseModel):
    """A named, typed column of positionally aligned values."""
    model_config = ConfigDict(frozen=True)

    name: str
    kind: ScalarKind
    values: Tuple[Any, ...] = ()
    config: Optional[ColumnConfig] = None

    @classmethod
    def from_buffer(cls, name: str, buffer: ColumnBuffer, config: Optional[ColumnConfig] = None) -> "Column":
        return cls(name=name, kind=buffer.kind, values=buffer.values(), config=config)

    def __len__(self) -> int:
        return len(self.values)


class Table(BaseModel):
    """Immutable columnar result of one query.

    All columns hold the same number of values; a table with zero rows is valid.
    """
    model_config = ConfigDict(frozen=True)

    name: str = "response"
    columns: Tuple[Column, ...] = ()
    meta: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_lengths(self) -> "Table":
        lengths = {len(column) for column in self.columns}
        if len(lengths) > 1:
            detail = ", ".join(f"{c.name}={len(c)}" for c in self.columns)
            raise ValueError(f"Columns of table '{self.name}' differ in length: {detail}")
        return self

    @property
    def row_count(self) -> int:
        return len(self.columns[0]) if self.columns else 0

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    def column(self, name: str) -> Column:
        for column in self.columns:
            if column.name == name:
                return column
        raise KeyError(name)

    def to_row_dicts(self) -> List[Dict[str, Any]]:
        """Returns rows as dictionaries keyed by column name."""
        return [
            {column.name: column.values[i] for column in self.columns}
            for i in range(self.row_count)
        ]

    def to_arrow(self) -> "pa.Table":
        from querybridge.normalization.arrow import table_to_arrow
        return table_to_arrow(self)

    def to_polars(self) -> "pl.DataFrame":
        from querybridge.normalization.arrow import table_to_polars
        return table_to_polars(self)


class TableBuilder:
    """Declares columns, appends raw rows and builds a Table."""

    def __init__(self, name: str = "response"):
        self._name = name
        self._columns: List[Tuple[str, ColumnBuffer, Optional[ColumnConfig]]] = []

    def add_column(
        self,
        name: str,
        declared: DeclaredKind,
        config: Optional[ColumnConfig] = None,
    ) -> ColumnBuffer:
        buffer = new_column_buffer(declared)
        self._columns.append((name, buffer, config))
        return buffer

    def append_row(self, row: Sequence[Any]) -> None:
        """Appends one row of raw values, coerced against each column's declared type."""
        if len(row) != len(self._columns):
            raise ValueError(
                f"Row has {len(row)} values but table '{self._name}' declares {len(self._columns)} columns"
            )
        for (_, buffer, _), raw in zip(self._columns, row):
            buffer.append_raw(raw)

    def build(self, meta: Optional[Dict[str, Any]] = None) -> Table:
        return Table(
            name=self._name,
            columns=tuple(Column.from_buffer(name, buffer, config) for name, buffer, config in self._columns),
            meta=meta or {},
        )
