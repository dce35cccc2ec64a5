"""JSON request decoding and response encoding."""

from __future__ import annotations

import dataclasses
import json
from typing import Any

JSON_CONTENT_TYPE = "application/json"

_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


class EncodeError(Exception):
    """Raised when a value cannot be serialised."""


class DecodeError(Exception):
    """Raised when a request body cannot be decoded."""


def _default(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    raise TypeError(f"unsupported type: {type(value).__name__}")


def encode(value: Any) -> bytes:
    """Serialise ``value`` as compact JSON followed by a newline."""
    try:
        text = json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=_default)
    except (TypeError, ValueError) as exc:
        raise EncodeError(f"cannot encode response: {exc}") from exc
    for char, escaped in _ESCAPES.items():
        text = text.replace(char, escaped)
    return (text + "\n").encode("utf-8")


def decode(content_type: str | None, body: bytes | str) -> Any:
    """Decode the first JSON value of ``body``; the content type must be JSON."""
    content_type = content_type or ""
    if content_type != JSON_CONTENT_TYPE:
        raise DecodeError(f"cannot decode content type '{content_type}'")
    try:
        text = body.decode("utf-8") if isinstance(body, bytes) else body
        text = text.lstrip()
        if not text:
            raise ValueError("EOF")
        value, _ = json.JSONDecoder().raw_decode(text)
    except ValueError as exc:
        raise DecodeError(f"cannot decode request: {exc}") from exc
    return value