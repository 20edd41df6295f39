"""
Request body helpers shared by the routers.

Browser forms post ``application/x-www-form-urlencoded`` while the
scanner and API clients send JSON; handlers accept either.
"""

import json
from typing import Any, Dict, Type, TypeVar

from fastapi import Request
from pydantic import BaseModel

from tracker.app.errors import InvalidInput

M = TypeVar("M", bound=BaseModel)


async def read_payload(request: Request) -> Dict[str, Any]:
    """Return the request body as a flat dict, whatever its encoding."""
    content_type = request.headers.get("content-type", "")
    if "application/json" in content_type:
        raw = await request.body()
        if not raw:
            return {}
        try:
            body = json.loads(raw)
        except ValueError:
            raise InvalidInput("Malformed JSON body")
        if not isinstance(body, dict):
            raise InvalidInput("Request body must be a JSON object")
        return body

    form = await request.form()
    return {key: value for key, value in form.items() if isinstance(value, str)}


def to_model(model_cls: Type[M], payload: Dict[str, Any]) -> M:
    """
    Build a text-field model from a payload, ignoring unknown keys.

    JSON clients may send numbers (age, phone) where forms send strings;
    every value is stored as text.
    """
    values = {
        key: (str(value) if value is not None else None)
        for key, value in payload.items()
        if key in model_cls.model_fields
    }
    return model_cls(**values)
