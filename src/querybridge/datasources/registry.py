from __future__ import annotations

import threading
from typing import Dict, List, Optional, Type

from querybridge.backends.base import Backend
from querybridge.backends.discovery import discover_backends
from querybridge.common.errors import ConfigurationError
from querybridge.common.logger import get_logger
from querybridge.datasources.instance_manager import InstanceManager
from querybridge.datasources.models import DatasourceSettings

logger = get_logger(__name__)


class DatasourceRegistry:
    """
    Owns one InstanceManager per configured datasource.

    Settings changes replace the manager wholesale: the new manager is
    swapped in under the registry lock, so new lookups never see the old
    one, and the old manager is disposed afterwards.
    """

    def __init__(
        self,
        datasources: Optional[List[DatasourceSettings]] = None,
        backends: Optional[Dict[str, Type[Backend]]] = None,
        dispose_timeout_sec: Optional[float] = None,
    ):
        self._backend_types = backends if backends is not None else discover_backends()
        self._dispose_timeout_sec = dispose_timeout_sec
        self._managers: Dict[str, InstanceManager] = {}
        self._lock = threading.Lock()

        for ds in datasources or []:
            self.register_datasource(ds)

    def register_datasource(self, settings: DatasourceSettings) -> InstanceManager:
        """Registers or updates a datasource.

        Identical settings keep the current manager. Changed settings build a
        new manager and dispose the previous one.

        Raises:
            ConfigurationError: If no backend exists for the datasource type.
        """
        backend = self._create_backend(settings)
        with self._lock:
            current = self._managers.get(settings.id)
            if current is not None and current.settings.fingerprint() == settings.fingerprint():
                return current
            manager = InstanceManager(settings, backend, dispose_timeout_sec=self._dispose_timeout_sec)
            self._managers[settings.id] = manager

        if current is not None:
            logger.info(f"Settings of datasource '{settings.id}' changed; replacing its instance")
            current.dispose_all()
        else:
            logger.info(f"Registered datasource '{settings.id}' ({settings.type})")
        return manager

    update_datasource = register_datasource

    def remove_datasource(self, datasource_id: str) -> None:
        with self._lock:
            manager = self._managers.pop(datasource_id, None)
        if manager is None:
            raise ConfigurationError(f"Unknown datasource ID: {datasource_id}")
        manager.dispose_all()

    def get_manager(self, datasource_id: str) -> InstanceManager:
        manager = self._managers.get(datasource_id)
        if manager is None:
            raise ConfigurationError(
                f"Unknown datasource ID: {datasource_id}",
                details={"datasource_id": datasource_id},
            )
        return manager

    def list_datasources(self) -> List[DatasourceSettings]:
        with self._lock:
            return [manager.settings for manager in self._managers.values()]

    def list_backend_types(self) -> List[str]:
        return sorted(self._backend_types)

    def dispose(self) -> None:
        """Disposes every manager. The registry stays usable for new registrations."""
        with self._lock:
            managers = list(self._managers.values())
            self._managers.clear()
        for manager in managers:
            manager.dispose_all()

    def _create_backend(self, settings: DatasourceSettings) -> Backend:
        backend_type = settings.type.lower()
        backend_cls = self._backend_types.get(backend_type)
        if backend_cls is None:
            raise ConfigurationError(
                f"No backend found for datasource type: '{settings.type}'. "
                f"Available: {self.list_backend_types()}."
            )
        return backend_cls()
