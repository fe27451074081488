from __future__ import annotations

import math
from typing import Optional

from ..core.exceptions import ValidationError


def require_non_empty(value: str, field_name: str) -> str:
    if not value or not str(value).strip():
        raise ValidationError(f"{field_name} is required")
    return str(value).strip()


def require_min(value: float, field_name: str, minimum: float) -> float:
    # NaN fails every comparison.
    if value is None or not math.isfinite(value) or value < minimum:
        raise ValidationError(f"{field_name} must be a finite number of at least {minimum}")
    return value


def require_range(value: Optional[float], field_name: str, low: float, high: float) -> float:
    if value is None or not (low <= float(value) <= high):
        raise ValidationError(f"{field_name} must be between {low} and {high}")
    return float(value)
