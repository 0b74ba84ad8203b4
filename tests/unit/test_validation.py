import json
from typing import List

import pytest
from pydantic import BaseModel, Field

from callmaker.exceptions import ValidationError
from callmaker.http.validation import ROOT_FIELD, validate_body


class Address(BaseModel):
    city: str
    zip: str = Field(min_length=5, max_length=5)


class CreateContact(BaseModel):
    name: str
    age: int
    address: Address


async def test_valid_body_becomes_model(make_request):
    raw = {"name": "Ada", "age": "36", "address": {"city": "London", "zip": "12345"}}
    body = await validate_body(make_request(body=json.dumps(raw).encode()), CreateContact)

    assert isinstance(body, CreateContact)
    assert body.age == 36
    assert body.address.city == "London"


async def test_field_errors_use_dotted_paths(make_request):
    raw = {"age": "not-a-number", "address": {"city": "London", "zip": "1"}}
    with pytest.raises(ValidationError) as exc_info:
        await validate_body(make_request(body=json.dumps(raw).encode()), CreateContact)

    err = exc_info.value
    assert err.status_code == 422
    assert err.message == "Validation failed"
    assert set(err.meta["fieldErrors"]) == {"name", "age", "address.zip"}
    assert err.meta["fieldErrors"]["name"] == ["Field required"]


async def test_rejected_input_is_not_echoed(make_request):
    payload = "<script>alert('x')</script>"
    raw = {"name": "Ada", "age": payload, "address": {"city": "x", "zip": "12345"}}
    with pytest.raises(ValidationError) as exc_info:
        await validate_body(make_request(body=json.dumps(raw).encode()), CreateContact)

    assert payload not in json.dumps(exc_info.value.meta)


async def test_malformed_json(make_request):
    with pytest.raises(ValidationError) as exc_info:
        await validate_body(make_request(body=b'{"name": "Ada",'), CreateContact)

    err = exc_info.value
    assert err.status_code == 422
    assert err.message == "Invalid request body"
    assert err.meta == {"fieldErrors": {ROOT_FIELD: ["Malformed JSON"]}}


async def test_empty_body_fails_against_model(make_request):
    with pytest.raises(ValidationError) as exc_info:
        await validate_body(make_request(body=b""), CreateContact)
    assert ROOT_FIELD in exc_info.value.meta["fieldErrors"]


async def test_non_model_schema(make_request):
    assert await validate_body(make_request(body=b"[1, 2, 3]"), List[int]) == [1, 2, 3]

    with pytest.raises(ValidationError) as exc_info:
        await validate_body(make_request(body=b'[1, "x"]'), List[int])
    assert list(exc_info.value.meta["fieldErrors"]) == ["1"]
