"""Wide-column store backend (Cassandra / ScyllaDB) on top of cassandra-driver."""
from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Any, Mapping, Optional

from querybridge.backends.base import Backend, BackendHandle, Operation
from querybridge.common.errors import (
    AuthError,
    BackendConnectionError,
    BackendError,
    ConfigurationError,
    InvalidQueryError,
    QueryBridgeError,
    QueryCancelledError,
)
from querybridge.common.logger import get_logger
from querybridge.execution.contracts import Query, QueryKind
from querybridge.normalization.table import Table, TableBuilder

if TYPE_CHECKING:
    from querybridge.common.cancellation import CancellationToken
    from querybridge.datasources.models import DatasourceSettings

logger = get_logger(__name__)

DEFAULT_PORT = 9042
# Seconds between cancellation checks while a statement is in flight.
CANCEL_POLL_INTERVAL_SEC = 0.05


class CassandraHandle(BackendHandle):
    """A connected cluster and session pinned to one contact point."""

    def __init__(self, cluster, session):
        self.cluster = cluster
        self.session = session

    def execute(self, statement: str, timeout: float, token: Optional[CancellationToken] = None):
        """Sends a statement and waits for its result.

        With a token, the wait ends as soon as the token is cancelled. The
        driver cannot abort a request already sent, so the abandoned request
        still runs until its own timeout.
        """
        future = self.session.execute_async(statement, timeout=timeout)
        if token is not None:
            done = threading.Event()
            future.add_callbacks(lambda _: done.set(), lambda _: done.set())
            while not done.wait(CANCEL_POLL_INTERVAL_SEC):
                if token.is_cancelled():
                    logger.info("Abandoning in-flight CQL statement after cancellation")
                    raise QueryCancelledError(token.reason or "Query was cancelled.")
        return future.result()

    def close(self) -> None:
        self.cluster.shutdown()


class CassandraBackend(Backend):
    backend_type = "cassandra"

    def create_handle(self, settings: DatasourceSettings, host: Optional[str]) -> BackendHandle:
        try:
            from cassandra import AuthenticationFailed
            from cassandra.auth import PlainTextAuthProvider
            from cassandra.cluster import Cluster, NoHostAvailable
            from cassandra.policies import WhiteListRoundRobinPolicy
            from cassandra.query import tuple_factory
        except ImportError as exc:
            raise ConfigurationError(
                "Missing dependency 'cassandra-driver'. Install 'querybridge[cassandra]'."
            ) from exc

        credentials = settings.credentials
        auth_provider = None
        if credentials.has_password:
            auth_provider = PlainTextAuthProvider(
                username=credentials.username,
                password=credentials.password.get_secret_value(),
            )

        cluster = Cluster(
            contact_points=[host],
            port=int(settings.options.get("port", DEFAULT_PORT)),
            auth_provider=auth_provider,
            load_balancing_policy=WhiteListRoundRobinPolicy([host]),
            connect_timeout=settings.request_timeout_sec,
        )
        try:
            session = cluster.connect(settings.options.get("keyspace"))
        except NoHostAvailable as exc:
            cluster.shutdown()
            if any(isinstance(err, AuthenticationFailed) for err in exc.errors.values()):
                raise AuthError(f"Authentication to '{host}' failed") from exc
            raise BackendConnectionError(f"No reachable Cassandra host at '{host}': {exc}") from exc
        except AuthenticationFailed as exc:
            cluster.shutdown()
            raise AuthError(f"Authentication to '{host}' failed") from exc

        session.row_factory = tuple_factory
        session.default_timeout = settings.request_timeout_sec
        return CassandraHandle(cluster, session)

    def operations(self) -> Mapping[QueryKind, Operation]:
        return {QueryKind.CQL: run_cql}


def run_cql(
    handle: CassandraHandle,
    query: Query,
    timeout: float,
    token: Optional[CancellationToken] = None,
) -> Table:
    """Runs one CQL statement; columns are typed from the result metadata."""
    if not query.program.strip():
        raise InvalidQueryError("CQL query text is empty")
    try:
        result = handle.execute(query.program, timeout, token)
        builder = TableBuilder()
        for name, cql_type in zip(result.column_names or [], result.column_types or []):
            builder.add_column(name, declared_type_name(cql_type))
        for row in result:
            builder.append_row(tuple(row))
    except QueryBridgeError:
        raise
    except Exception as exc:
        raise translate_error(exc) from exc
    return builder.build()


def declared_type_name(cql_type: Any) -> str:
    """CQL type name of a driver type class, e.g. 'bigint' or 'list'."""
    name = getattr(cql_type, "typename", None)
    return name if isinstance(name, str) else str(cql_type)


def translate_error(exc: Exception) -> QueryBridgeError:
    from cassandra import (
        AuthenticationFailed,
        OperationTimedOut,
        RequestExecutionException,
        RequestValidationException,
        Unauthorized,
    )
    from cassandra.cluster import NoHostAvailable

    message = f"{type(exc).__name__}: {exc}"
    if isinstance(exc, (Unauthorized, AuthenticationFailed)):
        return AuthError(message)
    if isinstance(exc, RequestValidationException):
        return InvalidQueryError(message)
    if isinstance(exc, (NoHostAvailable, OperationTimedOut, RequestExecutionException, ConnectionError)):
        return BackendConnectionError(message)
    return BackendError(message)
