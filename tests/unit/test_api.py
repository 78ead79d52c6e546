import pytest
from fastapi.testclient import TestClient

from querybridge import QueryBridge
from querybridge.api.main import create_app


@pytest.fixture
def client(fake_registry):
    bridge = QueryBridge(registry=fake_registry, max_workers=2)
    with TestClient(create_app(bridge)) as test_client:
        yield test_client


def test_health_endpoint(client):
    # Act
    response = client.get("/api/v1/health")

    # Assert
    assert response.status_code == 200
    assert response.json() == {"status": "OK", "message": "Data source is working"}


def test_query_endpoint_returns_tables_and_errors(client):
    # Arrange
    payload = {
        "queries": [
            {"refId": "A", "datasourceId": "ds1", "kind": "cql", "program": "SELECT 1"},
            {"refId": "B", "datasourceId": "ds1", "kind": "list_metrics"},
        ]
    }

    # Act
    response = client.post("/api/v1/query", json=payload)

    # Assert
    assert response.status_code == 200
    results = response.json()["results"]
    assert results["A"]["error"] is None
    assert results["A"]["table"]["columns"][0]["values"] == ["A"]
    assert results["B"]["error"]["error_code"] == "INTERNAL_ERROR"


def test_query_endpoint_rejects_duplicate_ref_ids(client):
    # Arrange
    query = {"refId": "A", "datasourceId": "ds1", "kind": "cql"}

    # Act
    response = client.post("/api/v1/query", json={"queries": [query, query]})

    # Assert
    assert response.status_code == 422


def test_datasource_listing_and_removal(client):
    # Act
    listed = client.get("/api/v1/datasources").json()
    removed = client.delete("/api/v1/datasources/ds1")
    missing = client.delete("/api/v1/datasources/ds1")

    # Assert
    assert listed == ["ds1"]
    assert removed.status_code == 204
    assert missing.status_code == 404


def test_query_endpoint_redacts_unexpected_errors(client):
    # Validates redaction because stack traces and exception text expose server internals.
    # Arrange
    payload = {"queries": [{"refId": "B", "datasourceId": "ds1", "kind": "list_metrics"}]}

    # Act
    response = client.post("/api/v1/query", json=payload)

    # Assert
    error = response.json()["results"]["B"]["error"]
    assert error["stack_trace"] is None
    assert error["message"] == "The query service encountered an unexpected error."
    assert "boom" not in response.text
