from .public_api import QueryBridge, HealthResult
from .common.cancellation import CancellationToken
from .datasources.models import Credentials, DatasourceSettings
from .execution.contracts import BatchRequest, Query, QueryKind, TimeRange
from .execution.response import BatchResponse, QueryResult
from .normalization.table import Table

__all__ = [
    "QueryBridge",
    "HealthResult",
    "CancellationToken",
    "Credentials",
    "DatasourceSettings",
    "BatchRequest",
    "Query",
    "QueryKind",
    "TimeRange",
    "BatchResponse",
    "QueryResult",
    "Table",
]
