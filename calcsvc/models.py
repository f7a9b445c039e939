from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import math
from typing import Mapping


def json_number(value: float) -> int | float | None:
    """Render a float for JSON: integral values as ints, inf/nan as null."""
    value = float(value)
    if not math.isfinite(value):
        return None
    if value.is_integer() and abs(value) < 2 ** 53:
        return int(value)
    return value


@dataclass(frozen=True)
class ValidatedParams:
    n1: float
    n2: float | None = None

    def as_parameters(self) -> dict[str, float]:
        if self.n2 is None:
            return {"num1": self.n1}
        return {"num1": self.n1, "num2": self.n2}


@dataclass(frozen=True)
class CalculationRecord:
    operation: str
    parameters: Mapping[str, float]
    result: float
    timestamp: datetime
    id: str | None = field(default=None, compare=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "operation": self.operation,
            "parameters": {k: json_number(v) for k, v in self.parameters.items()},
            "result": json_number(self.result),
            "timestamp": self.timestamp.isoformat(),
        }
