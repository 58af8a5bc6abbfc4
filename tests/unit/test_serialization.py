from __future__ import annotations

import json
from unittest.mock import patch

from pydantic import BaseModel

from alexandria.core import serialization
from alexandria.core.serialization import dumps, serialize_entry, serialize_exception


class Invoice(BaseModel):
    number: int
    note: str | None = None


class Opaque:
    def __str__(self) -> str:
        return "<opaque>"


def test_pydantic_models_use_model_dump() -> None:
    payload = json.loads(serialize_entry({"data": Invoice(number=7)}))

    assert payload == {"data": {"number": 7}}


def test_unknown_objects_fall_back_to_str() -> None:
    payload = json.loads(serialize_entry({"data": Opaque()}))

    assert payload == {"data": "<opaque>"}


def test_sets_become_lists() -> None:
    payload = json.loads(serialize_entry({"data": {"a"}}))

    assert payload == {"data": ["a"]}


def test_exception_without_traceback_has_no_stack() -> None:
    data = serialize_exception(KeyError("missing"))

    assert data == {"type": "KeyError", "message": "'missing'"}


def test_nested_exception_in_data_is_serialized() -> None:
    payload = json.loads(serialize_entry({"data": {"cause": OSError("disk")}}))

    assert payload["data"]["cause"]["type"] == "OSError"


def test_encode_failure_degrades_to_strings() -> None:
    # Integers beyond 64 bits are rejected by orjson
    with patch.object(serialization.diagnostics, "warn") as warn_mock:
        data = json.loads(dumps({"code": 2**70, "message": None}))

    assert data == {"code": str(2**70), "message": None}
    warn_mock.assert_called_once()
    assert warn_mock.call_args[0][0] == "serialization"


def test_lone_surrogates_are_escaped() -> None:
    with patch.object(serialization.diagnostics, "warn"):
        payload = json.loads(
            serialize_entry({"code": 2200, "message": "file \udcff.txt"})
        )

    assert payload == {"code": 2200, "message": "file \\udcff.txt"}


def test_nested_surrogates_keep_structure() -> None:
    with patch.object(serialization.diagnostics, "warn"):
        payload = json.loads(
            serialize_entry({"data": {"path": ["ok", "bad \udc80"]}, "code": 1})
        )

    assert payload == {"data": {"path": ["ok", "bad \\udc80"]}, "code": 1}


def test_unprintable_value_yields_minimal_payload() -> None:
    class Unprintable:
        def __str__(self) -> str:
            raise RuntimeError("no str")

    with patch.object(serialization.diagnostics, "warn"):
        payload = json.loads(
            serialize_entry(
                {"time": "t", "level": "info", "code": 2200, "data": Unprintable()}
            )
        )

    assert payload == {
        "time": "t",
        "level": "info",
        "code": "2200",
        "message": "entry could not be serialized",
    }
