import pytest

from querybridge.datasources.models import Credentials, DatasourceSettings
from querybridge.datasources.registry import DatasourceRegistry

from fakes import FakeBackend


@pytest.fixture
def fake_settings():
    """Returns settings of a datasource served by the in-memory backend."""
    return DatasourceSettings(
        id="ds1",
        type="fake",
        host="10.0.0.1",
        credentials=Credentials(username="svc", password="secret"),
        options={"hosts": ["10.0.0.2", "10.0.0.7"]},
    )


@pytest.fixture
def fake_registry(fake_settings):
    registry = DatasourceRegistry([fake_settings], backends={"fake": FakeBackend}, dispose_timeout_sec=0.5)
    yield registry
    registry.dispose()
