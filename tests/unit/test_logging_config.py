import json
import logging

from querybridge.common.logger import JsonFormatter, QueryContextFilter, current_query_id, query_context


def _record(message="hello", **extra):
    record = logging.LogRecord("querybridge.test", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    QueryContextFilter().filter(record)
    return record


def test_json_formatter_includes_query_id_inside_context():
    # Arrange
    formatter = JsonFormatter()

    # Act
    with query_context("A"):
        inside = json.loads(formatter.format(_record()))
    outside = json.loads(formatter.format(_record()))

    # Assert
    assert inside["query_id"] == "A"
    assert inside["message"] == "hello"
    assert inside["level"] == "INFO"
    assert "query_id" not in outside


def test_json_formatter_keeps_extra_fields():
    # Act
    payload = json.loads(JsonFormatter().format(_record(datasource_id="ds1")))

    # Assert
    assert payload["datasource_id"] == "ds1"


def test_query_context_is_restored_on_exit():
    # Act
    with query_context("outer"):
        with query_context("inner"):
            inner = current_query_id()
        outer = current_query_id()

    # Assert
    assert (inner, outer) == ("inner", "outer")
    assert current_query_id() is None
