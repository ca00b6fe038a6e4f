import asyncio
import datetime
import decimal
import json

import pytest

from sqlgate.server import (
    NoArguments,
    NotFound,
    QueryExecutionError,
    Verb,
    decode_body,
    execute,
    render,
    scan_scalar,
    strip_error_source,
    values_from_body,
    values_from_query,
)


def test_verb_parse():
    assert Verb.parse("get") is Verb.GET
    assert Verb.parse(" Delete ") is Verb.DELETE
    assert Verb.parse("PATCH") is None
    assert Verb.parse(None) is None
    assert not Verb.GET.uses_body
    assert all(v.uses_body for v in (Verb.DELETE, Verb.POST, Verb.PUT))


def test_query_values_use_first_value():
    assert values_from_query({"id": ["1", "2"], "x": ["y"]}, ["x", "id"]) == ["y", "1"]


@pytest.mark.parametrize("values", [{}, {"id": []}, {"id": [""]}, {"id": ["", "2"]}])
def test_query_values_missing_or_empty(values):
    with pytest.raises(NoArguments):
        values_from_query(values, ["id"])


def test_body_values_in_param_order():
    body = json.dumps({"b": "2", "a": "1"}).encode()
    assert values_from_body(body, ["a", "b"]) == ["1", "2"]


@pytest.mark.parametrize("body", [b"", b"{not json", b"[]", b'"id"'])
def test_undecodable_body_yields_nothing(body, capsys):
    assert decode_body(body) == {}
    assert "body_decode_failed" in capsys.readouterr().err


def test_extra_body_fields_are_kept():
    assert decode_body(b'{"id": "1", "admin": "true"}') == {"id": "1", "admin": "true"}
    assert values_from_body(b'{"id": "1", "admin": "true"}', ["id"]) == ["1"]


def test_non_string_values_are_dropped_and_rest_kept(capsys):
    body = b'{"id": 5, "name": "ann", "tag": null, "meta": {"x": "y"}}'

    assert decode_body(body) == {"name": "ann"}
    err = capsys.readouterr().err
    assert "non-string values" in err
    assert "meta" in err
    assert values_from_body(body, ["name"]) == ["ann"]


def test_non_string_required_value_is_no_arguments():
    with pytest.raises(NoArguments):
        values_from_body(b'{"id": 5}', ["id"])


def test_empty_body_value_is_no_arguments():
    with pytest.raises(NoArguments):
        values_from_body(b'{"id": ""}', ["id"])


def test_scan_scalar_conversions():
    assert scan_scalar(("text",)) == "text"
    assert scan_scalar((5,)) == "5"
    assert scan_scalar((True,)) == "true"
    assert scan_scalar((b"raw",)) == "raw"
    assert scan_scalar((decimal.Decimal("1.50"),)) == "1.50"
    assert scan_scalar((datetime.date(2024, 1, 2),)) == "2024-01-02"
    assert json.loads(scan_scalar(({"a": 1},))) == {"a": 1}


def test_scan_scalar_errors():
    with pytest.raises(QueryExecutionError, match="no rows in result set"):
        scan_scalar(None)
    with pytest.raises(QueryExecutionError, match="converting NULL"):
        scan_scalar((None,))
    with pytest.raises(QueryExecutionError, match="expected 2 destination arguments"):
        scan_scalar(("a", "b"))


def test_execute_wraps_driver_errors(handle_factory):
    handle = handle_factory(default=ConnectionRefusedError("connection refused"))

    with pytest.raises(QueryExecutionError) as exc_info:
        asyncio.run(execute(handle, "SELECT 1", []))

    assert str(exc_info.value) == "connection refused"
    assert exc_info.value.status_code == 400
    assert isinstance(exc_info.value.__cause__, ConnectionRefusedError)


def test_execute_binds_positionally(handle_factory):
    handle = handle_factory(default=("done",))

    assert asyncio.run(execute(handle, "SELECT $1, $2", ["a", "b"])) == "done"
    assert handle.calls == [("SELECT $1, $2", ("a", "b"))]


def test_strip_error_source():
    assert strip_error_source("pq: duplicate key") == "duplicate key"
    assert strip_error_source("pq: ") == "pq: "
    assert strip_error_source("duplicate key") == "duplicate key"
    assert strip_error_source("xpq: oops") == "xpq: oops"


def test_render_success_is_verbatim():
    reply = render('100%s {"a": "%d"}', None)
    assert reply.body == '100%s {"a": "%d"}'
    assert reply.status_code == 200
    assert not reply.is_error


def test_render_empty_success_writes_nothing():
    assert render("", None) is None


def test_render_error_is_escaped_json():
    reply = render("", QueryExecutionError('pq: value "x" violates constraint'))
    assert reply.status_code == 400
    assert reply.is_error
    assert json.loads(reply.body) == {"error": 'value "x" violates constraint'}


def test_render_error_status_codes():
    assert render("", NotFound()).status_code == 404
    assert render("", NoArguments()).status_code == 400


def test_driver_message_without_source_marker_passes_through():
    message = 'duplicate key value violates unique constraint "users_pkey"'
    reply = render("", QueryExecutionError(message))
    assert json.loads(reply.body) == {"error": message}
