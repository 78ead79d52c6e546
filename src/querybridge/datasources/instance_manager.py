"""
Lifecycle management of backend handles for one datasource.

An InstanceManager lazily creates at most one handle per configuration key
(connection target plus credential identity) and reuses it across queries
and batches. Targets are limited to the datasource's allowed hosts, so the
handle map stays bounded and credentials only go to configured targets.
Managers are never mutated in place when settings change: the
DatasourceRegistry builds a new manager and disposes the old one.

States: UNINITIALIZED -> ACTIVE (first handle created) -> DISPOSED.
"""
from __future__ import annotations

import threading
from enum import Enum
from typing import Dict, List, Optional

from querybridge.backends.base import Backend, BackendHandle
from querybridge.common.errors import (
    BackendConnectionError,
    ConfigurationError,
    InstanceDisposedError,
    QueryBridgeError,
)
from querybridge.common.logger import get_logger
from querybridge.common.metrics import handle_created_counter
from querybridge.common.settings import settings as app_settings
from querybridge.datasources.models import DatasourceSettings

logger = get_logger(__name__)

DEFAULT_TARGET = "default"


class ManagerState(str, Enum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    DISPOSED = "disposed"


class InstanceManager:
    """Owns the backend handles of one datasource configuration."""

    def __init__(
        self,
        settings: DatasourceSettings,
        backend: Backend,
        dispose_timeout_sec: Optional[float] = None,
    ):
        self._settings = settings
        self._backend = backend
        self._dispose_timeout_sec = (
            dispose_timeout_sec if dispose_timeout_sec is not None else app_settings.dispose_timeout_sec
        )
        self._handles: Dict[str, BackendHandle] = {}
        self._creation_locks: Dict[str, threading.Lock] = {}
        self._lock = threading.Lock()
        self._state = ManagerState.UNINITIALIZED

    @property
    def settings(self) -> DatasourceSettings:
        return self._settings

    @property
    def backend(self) -> Backend:
        return self._backend

    @property
    def state(self) -> ManagerState:
        return self._state

    def config_key(self, host: Optional[str] = None) -> str:
        """Derives the handle cache key for a connection target.

        Raises:
            ConfigurationError: If the target is not one of the datasource's
                allowed hosts, or if no target is given, none is configured
                and the backend needs one.
        """
        if host and host not in self._settings.allowed_hosts:
            raise ConfigurationError(
                f"Datasource '{self._settings.id}': host override is not in the configured hosts",
                details={"datasource_id": self._settings.id},
            )
        target = host or self._settings.host
        if not target:
            if self._backend.requires_host:
                raise ConfigurationError(
                    f"Datasource '{self._settings.id}': no host supplied for connection"
                )
            target = DEFAULT_TARGET
        return f"{target}|{self._settings.credentials.identity()}"

    def get_handle(self, host: Optional[str] = None) -> BackendHandle:
        """Returns the handle for a target, creating it on first use.

        Concurrent callers asking for the same unseen key block on a per-key
        lock so exactly one handle is created and all of them receive it.
        """
        key = self.config_key(host)
        handle = self._handles.get(key)
        if handle is not None:
            return handle

        with self._lock:
            self._ensure_not_disposed()
            creation_lock = self._creation_locks.setdefault(key, threading.Lock())

        with creation_lock:
            handle = self._handles.get(key)
            if handle is not None:
                return handle
            self._ensure_not_disposed()

            handle = self._create_handle(host or self._settings.host)

            with self._lock:
                if self._state is ManagerState.DISPOSED:
                    disposed = True
                else:
                    disposed = False
                    self._handles[key] = handle
                    self._state = ManagerState.ACTIVE
            if disposed:
                self._close_with_timeout([handle])
                self._ensure_not_disposed()
            return handle

    def invalidate(self, host: Optional[str] = None) -> bool:
        """Drops and closes the handle of a target. Returns whether one existed."""
        key = self.config_key(host)
        with self._lock:
            handle = self._handles.pop(key, None)
        if handle is None:
            return False
        logger.info(f"Invalidating handle for datasource '{self._settings.id}'")
        self._close_with_timeout([handle])
        return True

    def dispose_all(self) -> None:
        """Closes every handle and moves to DISPOSED. Safe to call repeatedly.

        Closing is bounded by the dispose timeout; handles that do not close in
        time are abandoned with a warning.
        """
        with self._lock:
            if self._state is ManagerState.DISPOSED:
                return
            self._state = ManagerState.DISPOSED
            handles = list(self._handles.values())
            self._handles.clear()
            self._creation_locks.clear()
        logger.info(f"Disposing {len(handles)} handle(s) of datasource '{self._settings.id}'")
        self._close_with_timeout(handles)

    def _ensure_not_disposed(self) -> None:
        if self._state is ManagerState.DISPOSED:
            raise InstanceDisposedError(
                f"Datasource '{self._settings.id}' instance was disposed",
                details={"datasource_id": self._settings.id},
            )

    def _create_handle(self, host: Optional[str]) -> BackendHandle:
        try:
            handle = self._backend.create_handle(self._settings, host)
        except QueryBridgeError:
            raise
        except Exception as e:
            raise BackendConnectionError(
                f"Failed to connect datasource '{self._settings.id}': {type(e).__name__}: {e}",
                details={"datasource_id": self._settings.id},
            ) from e
        handle_created_counter.add(1, {"datasource": self._settings.id, "backend": self._backend.backend_type})
        logger.info(f"Created {self._backend.backend_type} handle for datasource '{self._settings.id}'")
        return handle

    def _close_with_timeout(self, handles: List[BackendHandle]) -> None:
        if not handles:
            return
        closer = threading.Thread(
            target=self._close_all,
            args=(handles,),
            name=f"dispose-{self._settings.id}",
            daemon=True,
        )
        closer.start()
        closer.join(self._dispose_timeout_sec)
        if closer.is_alive():
            logger.warning(
                f"Closing handles of datasource '{self._settings.id}' exceeded "
                f"{self._dispose_timeout_sec}s; continuing without waiting"
            )

    def _close_all(self, handles: List[BackendHandle]) -> None:
        for handle in handles:
            try:
                handle.close()
            except Exception as e:
                logger.warning(f"Error closing handle of datasource '{self._settings.id}': {e}")
