import threading
import time

import pytest

from querybridge.common.errors import (
    AuthError,
    BackendConnectionError,
    ConfigurationError,
    InstanceDisposedError,
)
from querybridge.datasources.instance_manager import InstanceManager, ManagerState
from querybridge.datasources.models import Credentials, DatasourceSettings

from fakes import FakeBackend


def _manager(settings, **backend_attrs):
    backend = FakeBackend()
    for name, value in backend_attrs.items():
        setattr(backend, name, value)
    return InstanceManager(settings, backend, dispose_timeout_sec=0.2), backend


def test_handle_is_created_lazily_and_reused(fake_settings):
    # Arrange
    manager, backend = _manager(fake_settings)
    assert manager.state is ManagerState.UNINITIALIZED

    # Act
    first = manager.get_handle()
    second = manager.get_handle()

    # Assert
    assert first is second
    assert backend.created == [first]
    assert first.host == "10.0.0.1"
    assert manager.state is ManagerState.ACTIVE


def test_concurrent_callers_share_exactly_one_new_handle(fake_settings):
    # Validates creation serialization because duplicate sessions leak connections.
    # Arrange
    manager, backend = _manager(fake_settings, create_delay=0.05)
    barrier = threading.Barrier(8)
    handles = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        handle = manager.get_handle()
        with lock:
            handles.append(handle)

    threads = [threading.Thread(target=worker) for _ in range(8)]

    # Act
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    # Assert
    assert len(backend.created) == 1
    assert len(handles) == 8
    assert all(h is handles[0] for h in handles)


def test_distinct_hosts_get_distinct_handles(fake_settings):
    # Arrange
    manager, backend = _manager(fake_settings)

    # Act
    default = manager.get_handle()
    other = manager.get_handle("10.0.0.2")

    # Assert
    assert default is not other
    assert other.host == "10.0.0.2"
    assert manager.config_key() != manager.config_key("10.0.0.2")


def test_config_key_never_contains_raw_secrets(fake_settings):
    # Act
    key = _manager(fake_settings)[0].config_key()

    # Assert
    assert "secret" not in key
    assert key.startswith("10.0.0.1|")


def test_missing_host_is_a_configuration_error():
    # Arrange
    settings = DatasourceSettings(id="nohost", type="fake")
    manager, backend = _manager(settings)

    # Act / Assert
    with pytest.raises(ConfigurationError, match="no host supplied"):
        manager.get_handle()
    assert backend.created == []


def test_invalidate_forces_a_new_handle(fake_settings):
    # Arrange
    manager, backend = _manager(fake_settings)
    first = manager.get_handle()

    # Act
    removed = manager.invalidate()
    second = manager.get_handle()

    # Assert
    assert removed is True
    assert first.closed is True
    assert second is not first
    assert manager.invalidate("10.0.0.2") is False


def test_dispose_is_idempotent_and_blocks_new_handles(fake_settings):
    # Arrange
    manager, backend = _manager(fake_settings)
    handle = manager.get_handle()

    # Act
    manager.dispose_all()
    manager.dispose_all()

    # Assert
    assert manager.state is ManagerState.DISPOSED
    assert handle.closed is True
    with pytest.raises(InstanceDisposedError):
        manager.get_handle()


def test_dispose_does_not_wait_for_slow_close(fake_settings):
    # Validates bounded disposal because a hung backend must not stall settings updates.
    # Arrange
    manager, backend = _manager(fake_settings, close_delay=2.0)
    manager.get_handle()

    # Act
    started = time.monotonic()
    manager.dispose_all()
    elapsed = time.monotonic() - started

    # Assert
    assert elapsed < 1.5
    assert manager.state is ManagerState.DISPOSED


def test_backend_errors_are_surfaced_and_not_cached(fake_settings):
    # Arrange
    manager, backend = _manager(fake_settings, create_error=AuthError("bad password"))

    # Act / Assert
    with pytest.raises(AuthError):
        manager.get_handle()

    backend.create_error = OSError("connection refused")
    with pytest.raises(BackendConnectionError, match="connection refused"):
        manager.get_handle()

    backend.create_error = None
    assert manager.get_handle() is backend.created[0]


def test_changed_credentials_change_the_config_key():
    # Arrange
    first = DatasourceSettings(id="a", type="fake", host="h", credentials=Credentials(username="u", password="p1"))
    second = DatasourceSettings(id="a", type="fake", host="h", credentials=Credentials(username="u", password="p2"))

    # Act
    first_key = _manager(first)[0].config_key()
    second_key = _manager(second)[0].config_key()

    # Assert
    assert first_key != second_key


def test_unlisted_host_override_is_rejected_without_creating_a_handle(fake_settings):
    # Validates the host allow-list because an override would otherwise ship credentials to any target.
    # Arrange
    manager, backend = _manager(fake_settings)

    # Act / Assert
    with pytest.raises(ConfigurationError, match="not in the configured hosts"):
        manager.get_handle("https://attacker.example")
    assert backend.created == []
    assert manager._creation_locks == {}
    assert manager.state is ManagerState.UNINITIALIZED


def test_allowed_hosts_accepts_a_comma_separated_option():
    # Arrange
    settings = DatasourceSettings(id="a", type="fake", host="h1", options={"hosts": "h2, h3,h1"})

    # Act
    hosts = settings.allowed_hosts

    # Assert
    assert hosts == ("h1", "h2", "h3")
