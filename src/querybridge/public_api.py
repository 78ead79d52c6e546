from __future__ import annotations

import pathlib
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel

from querybridge.common.cancellation import CancellationToken
from querybridge.common.logger import get_logger
from querybridge.common.settings import settings
from querybridge.datasources.config import load_datasources
from querybridge.datasources.models import DatasourceSettings
from querybridge.datasources.registry import DatasourceRegistry
from querybridge.execution.contracts import BatchRequest, Query
from querybridge.execution.dispatcher import QueryDispatcher
from querybridge.execution.response import BatchResponse
from querybridge.execution.service import QueryService

logger = get_logger(__name__)

HEALTH_OK_MESSAGE = "Data source is working"


class HealthResult(BaseModel):
    status: str = "OK"
    message: str = HEALTH_OK_MESSAGE


class QueryBridge:
    """
    Entry point of the query bridge.

    Owns the datasource registry, the dispatcher and the batch service. One
    instance is meant to live for the whole process; call ``dispose`` (or use
    it as a context manager) to close every backend handle.
    """

    def __init__(
        self,
        ds_config_path: Optional[Union[str, pathlib.Path]] = None,
        datasources: Optional[Iterable[DatasourceSettings]] = None,
        registry: Optional[DatasourceRegistry] = None,
        max_workers: Optional[int] = None,
    ):
        self._registry = registry or DatasourceRegistry()
        if ds_config_path is not None:
            for ds in load_datasources(pathlib.Path(ds_config_path)):
                self._registry.register_datasource(ds)
        for ds in datasources or []:
            self._registry.register_datasource(ds)

        self._dispatcher = QueryDispatcher(self._registry)
        self._service = QueryService(self._dispatcher, max_workers=max_workers)

    @classmethod
    def from_settings(cls) -> "QueryBridge":
        """Builds an instance from the configured datasource file, if it exists."""
        path = pathlib.Path(settings.datasource_config_path)
        if not path.exists():
            logger.warning(f"Datasource config not found at {path}; starting without datasources")
            return cls()
        return cls(ds_config_path=path)

    @property
    def registry(self) -> DatasourceRegistry:
        return self._registry

    def query_data(
        self,
        request: Union[BatchRequest, List[Query], Dict[str, Any]],
        token: Optional[CancellationToken] = None,
    ) -> BatchResponse:
        """Executes a batch of queries concurrently.

        Args:
            request: A BatchRequest, a list of queries or the raw request payload.
            token: Optional token to cancel the batch from another thread.

        Returns:
            BatchResponse: One result (table or error) per submitted ref_id.
        """
        if isinstance(request, list):
            request = BatchRequest(queries=request)
        elif isinstance(request, dict):
            request = BatchRequest.model_validate(request)
        return self._service.query_data(request, token=token)

    def register_datasource(self, datasource: DatasourceSettings) -> None:
        self._registry.register_datasource(datasource)
        self._dispatcher.breakers.reset(datasource.id)

    def update_datasource(
        self,
        datasource_id: str,
        datasource_type: str,
        json_data: Dict[str, Any],
        secure_json_data: Optional[Dict[str, str]] = None,
    ) -> None:
        """Applies new instance settings; the old instance is disposed when they changed."""
        self.register_datasource(
            DatasourceSettings.from_instance_settings(datasource_id, datasource_type, json_data, secure_json_data)
        )

    def remove_datasource(self, datasource_id: str) -> None:
        self._registry.remove_datasource(datasource_id)
        self._dispatcher.breakers.reset(datasource_id)

    def list_datasources(self) -> List[DatasourceSettings]:
        return self._registry.list_datasources()

    def check_health(self) -> HealthResult:
        return HealthResult()

    def dispose(self) -> None:
        self._registry.dispose()

    def __enter__(self) -> "QueryBridge":
        return self

    def __exit__(self, *exc_info) -> None:
        self.dispose()
