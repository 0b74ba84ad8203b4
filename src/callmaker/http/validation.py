from __future__ import annotations

import json
from typing import Any, Dict, List

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from starlette.requests import Request

from callmaker.exceptions import ValidationError
from callmaker.logging import get_logger

logger = get_logger(__name__)

ROOT_FIELD = "_root"
_MAX_MESSAGE_LEN = 200


def field_errors(exc: PydanticValidationError) -> Dict[str, List[str]]:
    """
    {"address.zip": ["Field required"], ...}

    Built from loc/msg only; the offending input is never copied into the
    payload returned to the caller.
    """
    errors: Dict[str, List[str]] = {}
    for err in exc.errors(include_url=False, include_input=False, include_context=False):
        path = ".".join(str(part) for part in err.get("loc", ())) or ROOT_FIELD
        errors.setdefault(path, []).append(str(err.get("msg", "Invalid value"))[:_MAX_MESSAGE_LEN])
    return errors


def parse_with_schema(raw: Any, schema: Any) -> Any:
    """Validate already-decoded data with a BaseModel subclass or any pydantic-supported type."""
    if isinstance(schema, type) and issubclass(schema, BaseModel):
        return schema.model_validate(raw)
    return TypeAdapter(schema).validate_python(raw)


async def validate_body(request: Request, schema: Any) -> Any:
    """
    Body stage: decode JSON and validate. Returns the typed object that
    replaces the raw body for every downstream consumer.
    """
    raw_bytes = await request.body()
    try:
        raw = json.loads(raw_bytes) if raw_bytes else None
    except ValueError:
        logger.info("request_body_not_json", size=len(raw_bytes))
        raise ValidationError(
            "Invalid request body",
            meta={"fieldErrors": {ROOT_FIELD: ["Malformed JSON"]}},
        ) from None

    try:
        return parse_with_schema(raw, schema)
    except PydanticValidationError as exc:
        errors = field_errors(exc)
        logger.info("request_body_invalid", fields=sorted(errors))
        raise ValidationError("Validation failed", meta={"fieldErrors": errors}) from None
