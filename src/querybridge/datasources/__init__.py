from .models import Credentials, DatasourceSettings
from .config import load_datasources
from .instance_manager import InstanceManager, ManagerState
from .registry import DatasourceRegistry

__all__ = [
    "Credentials",
    "DatasourceSettings",
    "load_datasources",
    "InstanceManager",
    "ManagerState",
    "DatasourceRegistry",
]
