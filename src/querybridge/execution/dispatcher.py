from __future__ import annotations

from typing import Optional

import pybreaker

from querybridge.common.cancellation import CancellationToken
from querybridge.common.errors import InvalidQueryError, ServiceUnavailableError
from querybridge.common.logger import get_logger
from querybridge.common.resilience import BreakerRegistry
from querybridge.common.settings import settings
from querybridge.datasources.registry import DatasourceRegistry
from querybridge.execution.contracts import Query
from querybridge.normalization.table import Table

logger = get_logger(__name__)


class QueryDispatcher:
    """Routes one query to exactly one backend operation.

    The operation is selected by ``query.kind`` from the backend's operation
    table. Each query results in a single backend call guarded by the
    datasource's circuit breaker; failures are raised, never retried.
    """

    def __init__(self, registry: DatasourceRegistry, breakers: Optional[BreakerRegistry] = None):
        self._registry = registry
        self._breakers = breakers or BreakerRegistry(
            fail_max=settings.breaker_fail_max,
            reset_timeout=settings.breaker_reset_timeout_sec,
        )

    @property
    def breakers(self) -> BreakerRegistry:
        return self._breakers

    def execute(self, query: Query, token: CancellationToken, timeout: float) -> Table:
        """Runs the query and returns its normalized table.

        Raises:
            ConfigurationError: Unknown datasource or missing connection target.
            InvalidQueryError: The backend does not support the query kind.
            ServiceUnavailableError: The datasource breaker is open.
            QueryCancelledError: The batch was cancelled before or, for backends
                that support it, during the call.
            QueryBridgeError: Any other backend failure.
        """
        manager = self._registry.get_manager(query.datasource_id)
        backend = manager.backend
        operation = backend.operations().get(query.kind)
        if operation is None:
            raise InvalidQueryError(
                f"Datasource '{query.datasource_id}' ({backend.backend_type}) "
                f"does not support '{query.kind.value}' queries",
                details={"datasource_id": query.datasource_id, "kind": query.kind.value},
            )

        token.raise_if_cancelled()

        def run() -> Table:
            handle = manager.get_handle(query.host)
            token.raise_if_cancelled()
            return operation(handle, query, timeout, token=token)

        breaker = self._breakers.get(query.datasource_id)
        logger.debug(f"Dispatching {query.kind.value} query to datasource '{query.datasource_id}'")
        try:
            return breaker.call(run)
        except pybreaker.CircuitBreakerError as e:
            raise ServiceUnavailableError(
                f"Circuit Breaker Open for datasource '{query.datasource_id}'",
                details={"datasource_id": query.datasource_id},
            ) from e
