# treeshop/errors.py
from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Dict, Optional


class TreeShopError(Exception):
    """
    Base for every rejected operation.
    - code: stable machine-readable identifier
    - message: human readable
    - meta: context for logs / API responses
    """

    code = "TREESHOP_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, meta: Optional[Dict[str, Any]] = None):
        self.code = str(code or self.code)
        self.message = str(message)
        self.meta = meta or {}
        super().__init__(f"{self.code}: {self.message}")


class InvalidInputError(TreeShopError, ValueError):
    code = "INVALID_INPUT"


class InvalidTransitionError(TreeShopError):
    code = "INVALID_TRANSITION"


class NotFoundError(TreeShopError, LookupError):
    code = "NOT_FOUND"


class ConcurrencyConflictError(TreeShopError):
    code = "CONCURRENCY_CONFLICT"


# ----------------------------------------------------
# Input guards (used by engines and entity mutators)
# ----------------------------------------------------


def require_number(name: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidInputError(f"{name} must be a number", meta={"field": name, "value": repr(value)})
    value = float(value)
    if not math.isfinite(value):
        raise InvalidInputError(f"{name} must be finite", meta={"field": name, "value": repr(value)})
    return value


def require_non_negative(name: str, value: Any) -> float:
    value = require_number(name, value)
    if value < 0:
        raise InvalidInputError(f"{name} must be >= 0", meta={"field": name, "value": value})
    return value


def require_positive(name: str, value: Any) -> float:
    value = require_number(name, value)
    if value <= 0:
        raise InvalidInputError(f"{name} must be > 0", meta={"field": name, "value": value})
    return value


def require_int_in_range(name: str, value: Any, low: int, high: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError(f"{name} must be an integer", meta={"field": name, "value": repr(value)})
    if not low <= value <= high:
        raise InvalidInputError(
            f"{name} must be between {low} and {high}",
            meta={"field": name, "value": value, "min": low, "max": high},
        )
    return value


def require_aware(name: str, value: Optional[datetime]) -> Optional[datetime]:
    """Timestamps are stored in UTC; a naive datetime has no defined instant."""
    if value is None:
        return None
    if not isinstance(value, datetime):
        raise InvalidInputError(f"{name} must be a datetime", meta={"field": name, "value": repr(value)})
    if value.tzinfo is None or value.utcoffset() is None:
        raise InvalidInputError(f"{name} must include a UTC offset", meta={"field": name, "value": value.isoformat()})
    return value
