from importlib.metadata import entry_points
from typing import Dict, Type

from querybridge.backends.base import Backend
from querybridge.backends.cassandra import CassandraBackend
from querybridge.backends.s3 import S3Backend
from querybridge.backends.signalfx import SignalFxBackend
from querybridge.common.logger import get_logger

logger = get_logger(__name__)

BUILTIN_BACKENDS: Dict[str, Type[Backend]] = {
    CassandraBackend.backend_type: CassandraBackend,
    SignalFxBackend.backend_type: SignalFxBackend,
    S3Backend.backend_type: S3Backend,
}


def discover_backends() -> Dict[str, Type[Backend]]:
    """Returns the built-in backends plus those installed via 'querybridge.backends' entry points.

    Returns:
        Dict[str, Type[Backend]]: Dict mapping backend type (e.g., 'cassandra')
            to the Backend class.
    """
    backends = dict(BUILTIN_BACKENDS)
    for ep in entry_points(group="querybridge.backends"):
        try:
            backends[ep.name] = ep.load()
        except Exception as e:
            logger.error(f"Failed to load backend {ep.name}: {e}")

    return backends
