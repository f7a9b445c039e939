from __future__ import annotations

import math
import re
from typing import Mapping

from .errors import InvalidParameter, MissingParameter
from .models import ValidatedParams

# Longest numeric prefix, mirroring permissive float parsing ("5abc" -> 5).
_NUMBER_PREFIX_RE = re.compile(
    r"[+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)",
    re.ASCII,
)


def parse_number(raw: str) -> float:
    """Parse the leading numeric prefix of ``raw``; NaN when there is none."""
    match = _NUMBER_PREFIX_RE.match(raw.lstrip())
    if match is None:
        return math.nan
    token = match.group(0)
    if token.endswith("Infinity"):
        return -math.inf if token.startswith("-") else math.inf
    return float(token)


def _parse_operand(raw: str) -> float | None:
    value = parse_number(raw)
    if not math.isfinite(value):
        return None
    return value


def validate_params(query: Mapping[str, str], *, single: bool = False) -> ValidatedParams:
    """Extract ``num1`` (and ``num2`` unless ``single``) from query parameters.

    Raises MissingParameter or InvalidParameter; the caller owns the response.
    Zero is a valid operand.
    """
    num1 = query.get("num1")
    if single:
        if num1 is None:
            raise MissingParameter("Missing parameter: num1")
        n1 = _parse_operand(num1)
        if n1 is None:
            raise InvalidParameter("Invalid parameter: num1 must be a number.")
        return ValidatedParams(n1=n1)

    num2 = query.get("num2")
    if num1 is None or num2 is None:
        raise MissingParameter("Missing parameter: num1 or num2")
    n1 = _parse_operand(num1)
    n2 = _parse_operand(num2)
    if n1 is None or n2 is None:
        raise InvalidParameter("Invalid parameters: num1 and num2 must be numbers.")
    return ValidatedParams(n1=n1, n2=n2)
