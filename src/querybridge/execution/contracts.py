from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class QueryKind(str, Enum):
    """Selects the backend operation a query runs."""
    CQL = "cql"
    LIST_METRICS = "list_metrics"
    DATAPOINTS = "datapoints"
    LIST_OBJECTS = "list_objects"


class TimeRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: Optional[datetime] = None
    stop: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_order(self) -> "TimeRange":
        if self.start is not None and self.stop is not None and self.start > self.stop:
            raise ValueError("time range start must not be after stop")
        return self


class Query(BaseModel):
    """One declarative query of a batch.

    Attributes:
        ref_id: Caller-chosen identifier, unique within a batch.
        datasource_id: Configured datasource the query targets.
        kind: Discriminator selecting the backend operation.
        program: Query text (CQL statement, metric program or filter).
        time_range: Optional start/stop bounds.
        max_delay: Expected ingestion delay in milliseconds.
        min_resolution: Minimum data resolution in milliseconds.
        host: Overrides the datasource's default connection target; must be one
            of its configured hosts.
        alias: Display name of returned series; ``{{series}}`` expands to the
            series id.
        options: Operation specific options (bucket, path, formatted, limit).
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    ref_id: str = Field(alias="refId", min_length=1)
    datasource_id: str = Field(alias="datasourceId")
    kind: QueryKind
    program: str = ""
    time_range: TimeRange = Field(default_factory=TimeRange, alias="timeRange")
    max_delay: int = Field(default=0, ge=0, alias="maxDelay")
    min_resolution: int = Field(default=0, ge=0, alias="minResolution")
    host: Optional[str] = None
    alias: Optional[str] = None
    options: Dict[str, Any] = Field(default_factory=dict)


class BatchRequest(BaseModel):
    """An ordered batch of queries executed concurrently."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    queries: List[Query] = Field(default_factory=list)
    timeout_sec: Optional[float] = Field(default=None, gt=0, alias="timeoutSec")

    @model_validator(mode="after")
    def _check_unique_ids(self) -> "BatchRequest":
        seen = set()
        for query in self.queries:
            if query.ref_id in seen:
                raise ValueError(f"duplicate query ref_id '{query.ref_id}'")
            seen.add(query.ref_id)
        return self

    @property
    def ref_ids(self) -> List[str]:
        return [q.ref_id for q in self.queries]
