"""Tests for Supabase payload decoding and error mapping (no network)."""

import pytest
from postgrest.exceptions import APIError

from roomshare.core.errors import ConstraintViolation, TransientBackendError
from roomshare.services.supabase_store import parse_change_payload, translate_error


def test_parses_python_client_payload() -> None:
    payload = {
        "data": {
            "schema": "public",
            "table": "messages",
            "type": "INSERT",
            "record": {"id": "m1", "room_id": "r1", "text": "hi"},
            "old_record": None,
        },
        "ids": [1],
    }
    event = parse_change_payload("messages", payload)
    assert event.type == "INSERT"
    assert event.record["text"] == "hi"
    assert event.old_record == {}


def test_parses_js_style_delete_payload() -> None:
    payload = {"eventType": "DELETE", "new": {}, "old": {"id": "m1"}}
    event = parse_change_payload("messages", payload)
    assert event.type == "DELETE"
    assert event.table == "messages"
    assert event.row_id == "m1"


def test_ignores_non_row_payloads() -> None:
    assert parse_change_payload("messages", {"data": {"type": "system"}}) is None


def test_unique_violation_maps_to_constraint_violation() -> None:
    error = APIError({"code": "23505", "message": "duplicate key value", "details": "Key (code)"})
    assert isinstance(translate_error(error), ConstraintViolation)


@pytest.mark.parametrize("code", ["42501", "PGRST301"])
def test_other_api_errors_are_transient(code: str) -> None:
    error = APIError({"code": code, "message": "permission denied"})
    assert isinstance(translate_error(error), TransientBackendError)
