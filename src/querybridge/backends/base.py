from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Callable, Mapping, Optional

if TYPE_CHECKING:
    from querybridge.datasources.models import DatasourceSettings
    from querybridge.execution.contracts import Query, QueryKind
    from querybridge.normalization.table import Table


class BackendHandle(ABC):
    """A live session with one backend target, shared across queries."""

    @abstractmethod
    def close(self) -> None:
        """Releases the session. May block on network I/O."""


# (handle, query, timeout in seconds) -> Table. The dispatcher also passes the
# batch CancellationToken as keyword `token`; operations that can stop waiting
# on an in-flight call check it, the others accept and ignore it.
Operation = Callable[[BackendHandle, "Query", float], "Table"]


class Backend(ABC):
    """Creates handles for one backend type and exposes its operations."""

    backend_type: str = ""
    requires_host: bool = True

    @abstractmethod
    def create_handle(self, settings: DatasourceSettings, host: Optional[str]) -> BackendHandle:
        """Opens a session.

        Raises:
            AuthError: If the backend rejects the credentials.
            BackendConnectionError: If the backend cannot be reached.
            ConfigurationError: If the settings are unusable for this backend.
        """

    @abstractmethod
    def operations(self) -> Mapping[QueryKind, Operation]:
        """Operations this backend supports, keyed by query kind."""
