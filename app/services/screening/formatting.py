"""Financial number display and parsing helpers (values in USD millions)."""

from __future__ import annotations

import math
import re

_ESTIMATE_PATTERN = re.compile(r"\$?\s*(\d[\d,]*(?:\.\d+)?)\s*(bn|mn|[mbk])?", re.IGNORECASE)
_SUFFIX_TO_MILLIONS = {"b": 1000.0, "bn": 1000.0, "m": 1.0, "mn": 1.0, "k": 0.001}


def format_usd_mn(value: float | None) -> str:
    if value is None:
        return "-"
    if value >= 1000:
        return f"${value / 1000:.2f}B"
    return f"${value:.2f}M"


def parse_estimated_value(value: str | None) -> float | None:
    """Return the first figure of an estimate such as ``"$50M-$100M"`` in USD millions.

    A figure without a suffix is read as whole dollars.
    """
    if not value:
        return None
    match = _ESTIMATE_PATTERN.search(value)
    if not match:
        return None
    number = float(match.group(1).replace(",", ""))
    if not math.isfinite(number):
        return None
    suffix = (match.group(2) or "").lower()
    if suffix:
        return number * _SUFFIX_TO_MILLIONS[suffix]
    return number / 1_000_000
