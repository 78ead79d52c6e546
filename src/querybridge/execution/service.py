"""
Batch execution: runs the queries of a batch concurrently and assembles the
per-query outcomes. A failing query never affects its siblings.
"""
from __future__ import annotations

import time
import traceback
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Dict, Optional

from querybridge.common.cancellation import CancellationToken
from querybridge.common.errors import (
    ErrorCode,
    QueryBridgeError,
    QueryCancelledError,
    QueryError,
    QueryTimeoutError,
)
from querybridge.common.logger import get_logger, query_context
from querybridge.common.metrics import query_duration_histogram, query_failure_counter
from querybridge.common.settings import settings
from querybridge.common.tracing import span
from querybridge.execution.contracts import BatchRequest, Query
from querybridge.execution.dispatcher import QueryDispatcher
from querybridge.execution.response import BatchResponse, ResponseAssembler

logger = get_logger(__name__)

_POLL_INTERVAL_SEC = 0.05


class QueryService:
    """Executes batches of queries against the registry's datasources."""

    def __init__(
        self,
        dispatcher: QueryDispatcher,
        max_workers: Optional[int] = None,
        default_timeout_sec: Optional[float] = None,
    ):
        self._dispatcher = dispatcher
        self._max_workers = max_workers or settings.max_concurrent_queries
        self._default_timeout_sec = default_timeout_sec or settings.default_query_timeout_sec

    def query_data(self, request: BatchRequest, token: Optional[CancellationToken] = None) -> BatchResponse:
        """Runs every query of the batch and returns one result per ref_id.

        The call returns once all queries finished, the batch deadline passed
        or the token was cancelled; unfinished queries then resolve with a
        TIMEOUT or CANCELLED error.
        """
        token = token or CancellationToken()
        assembler = ResponseAssembler(request.ref_ids)
        if not request.queries:
            return assembler.build()

        timeout_sec = request.timeout_sec or self._default_timeout_sec
        deadline = time.monotonic() + timeout_sec

        executor = ThreadPoolExecutor(
            max_workers=min(self._max_workers, len(request.queries)),
            thread_name_prefix="querybridge",
        )
        futures: Dict[Future, Query] = {}
        try:
            for query in request.queries:
                futures[executor.submit(self._run_query, query, token, deadline, assembler)] = query
            pending = set(futures)
            while pending:
                remaining = deadline - time.monotonic()
                if remaining <= 0 or token.is_cancelled():
                    break
                _, pending = wait(pending, timeout=min(remaining, _POLL_INTERVAL_SEC), return_when=FIRST_COMPLETED)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        unfinished = assembler.pending()
        if unfinished:
            if token.is_cancelled():
                error = QueryCancelledError(token.reason or "Batch was cancelled").to_query_error()
            else:
                error = QueryTimeoutError(f"Query did not complete within {timeout_sec}s").to_query_error()
            logger.warning(f"{len(unfinished)} query(ies) unfinished: {error.error_code.value}")
            for ref_id in unfinished:
                assembler.assemble(ref_id, error=error)
                query_failure_counter.add(1, {"error_code": error.error_code.value})

        return assembler.build()

    def _run_query(
        self,
        query: Query,
        token: CancellationToken,
        deadline: float,
        assembler: ResponseAssembler,
    ) -> None:
        with query_context(query.ref_id), span(
            "querybridge.query",
            {"query.ref_id": query.ref_id, "query.kind": query.kind.value, "datasource.id": query.datasource_id},
        ):
            start = time.perf_counter()
            error: Optional[QueryError] = None
            try:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise QueryTimeoutError("Batch deadline passed before the query started")
                table = self._dispatcher.execute(query, token, timeout=remaining)
                assembler.assemble(query.ref_id, table=table)
            except QueryBridgeError as e:
                logger.warning(f"Query failed: {e.error_code.value}: {e}")
                error = e.to_query_error()
            except Exception as e:
                logger.exception(f"Unexpected error while executing query: {e}")
                error = QueryError(
                    message=f"Unexpected error: {type(e).__name__}: {e}",
                    error_code=ErrorCode.INTERNAL_ERROR,
                    stack_trace=traceback.format_exc(),
                )
            finally:
                duration = time.perf_counter() - start
                query_duration_histogram.record(
                    duration, {"kind": query.kind.value, "datasource": query.datasource_id}
                )

            if error is not None:
                query_failure_counter.add(1, {"error_code": error.error_code.value})
                assembler.assemble(query.ref_id, error=error)
