"""Validation of request fields."""

from __future__ import annotations

import re

_LANGUAGE_CODE = re.compile(r"[a-zA-Z]{2}(?:-[a-zA-Z]{2})?")


def is_valid_language_code(code: str) -> bool:
    """Return True for codes like ``en`` or ``en-US``."""
    return _LANGUAGE_CODE.fullmatch(code) is not None