from __future__ import annotations

import threading
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from querybridge.common.errors import ErrorCode, QueryError
from querybridge.common.logger import get_logger
from querybridge.normalization.table import Table

logger = get_logger(__name__)


class QueryResult(BaseModel):
    """Outcome of one query: a table or an error."""
    model_config = ConfigDict(frozen=True)

    ref_id: str
    table: Optional[Table] = None
    error: Optional[QueryError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BatchResponse(BaseModel):
    """Results of a batch keyed by query ref_id."""
    results: Dict[str, QueryResult] = Field(default_factory=dict)

    def __getitem__(self, ref_id: str) -> QueryResult:
        return self.results[ref_id]

    def __contains__(self, ref_id: str) -> bool:
        return ref_id in self.results

    def __len__(self) -> int:
        return len(self.results)

    @property
    def errors(self) -> Dict[str, QueryError]:
        return {ref_id: r.error for ref_id, r in self.results.items() if r.error is not None}

    def redacted(self) -> "BatchResponse":
        """Copy whose errors carry only safe messages, for responses leaving the process."""
        return BatchResponse(results={
            ref_id: result if result.error is None else result.model_copy(update={"error": result.error.redacted()})
            for ref_id, result in self.results.items()
        })


class ResponseAssembler:
    """Collects per-query outcomes from concurrent workers into one response.

    Safe to call from any thread in any order. The first outcome recorded for
    a ref_id wins; later ones are ignored.
    """

    def __init__(self, expected_ref_ids: Iterable[str]):
        self._expected: List[str] = list(expected_ref_ids)
        self._results: Dict[str, QueryResult] = {}
        self._lock = threading.Lock()

    def assemble(self, ref_id: str, table: Optional[Table] = None, error: Optional[QueryError] = None) -> bool:
        """Records the outcome of a query. Returns False if one was already recorded."""
        result = QueryResult(ref_id=ref_id, table=table, error=error)
        with self._lock:
            if ref_id in self._results:
                logger.debug(f"Ignoring duplicate result for query '{ref_id}'")
                return False
            self._results[ref_id] = result
            return True

    def pending(self) -> List[str]:
        with self._lock:
            return [ref_id for ref_id in self._expected if ref_id not in self._results]

    def build(self) -> BatchResponse:
        """Snapshot of the response; every expected ref_id is present."""
        with self._lock:
            results = dict(self._results)
        for ref_id in self._expected:
            if ref_id not in results:
                logger.error(f"Query '{ref_id}' finished without a recorded result")
                results[ref_id] = QueryResult(
                    ref_id=ref_id,
                    error=QueryError(
                        message="Query finished without a result",
                        error_code=ErrorCode.INTERNAL_ERROR,
                    ),
                )
        return BatchResponse(results=results)
