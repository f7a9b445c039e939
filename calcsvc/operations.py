from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Callable

from .errors import InvalidDivisor, NegativeOperand
from .models import ValidatedParams

_ZERO_DIVISOR_MESSAGE = "Invalid divisor: num2 cannot be zero."


def add(n1: float, n2: float) -> float:
    return n1 + n2


def subtract(n1: float, n2: float) -> float:
    return n1 - n2


def multiply(n1: float, n2: float) -> float:
    return n1 * n2


def divide(n1: float, n2: float) -> float:
    if n2 == 0:
        raise InvalidDivisor(_ZERO_DIVISOR_MESSAGE)
    return n1 / n2


def _odd_integer(value: float) -> bool:
    return value.is_integer() and int(value) % 2 == 1


def power(n1: float, n2: float) -> float:
    """n1 ** n2 with IEEE-style results instead of Python exceptions.

    Overflow and zero raised to a negative exponent give infinity (negative
    for a negative base and an odd integral exponent); other domain errors,
    such as a negative base with a fractional exponent, give NaN.
    """
    try:
        return math.pow(n1, n2)
    except OverflowError:
        if n1 < 0 and _odd_integer(n2):
            return -math.inf
        return math.inf
    except ValueError:
        if n1 == 0 and n2 < 0:
            if _odd_integer(n2):
                return math.copysign(math.inf, n1)
            return math.inf
        return math.nan


def sqrt(n1: float) -> float:
    if n1 < 0:
        raise NegativeOperand("Invalid parameter: num1 cannot be negative.")
    return math.sqrt(n1)


def mod(n1: float, n2: float) -> float:
    """Truncated remainder; the result takes the sign of ``n1``."""
    if n2 == 0:
        raise InvalidDivisor(_ZERO_DIVISOR_MESSAGE)
    return math.fmod(n1, n2)


@dataclass(frozen=True)
class Operation:
    name: str
    arity: int
    func: Callable[..., float]

    @property
    def single(self) -> bool:
        return self.arity == 1

    def apply(self, params: ValidatedParams) -> float:
        if self.single:
            return self.func(params.n1)
        return self.func(params.n1, params.n2)


OPERATIONS: dict[str, Operation] = {
    op.name: op
    for op in (
        Operation("add", 2, add),
        Operation("subtract", 2, subtract),
        Operation("multiply", 2, multiply),
        Operation("divide", 2, divide),
        Operation("power", 2, power),
        Operation("sqrt", 1, sqrt),
        Operation("mod", 2, mod),
    )
}


def calculate(name: str, params: ValidatedParams) -> float:
    try:
        operation = OPERATIONS[name]
    except KeyError as exc:
        raise ValueError(f"Unknown operation '{name}'") from exc
    return operation.apply(params)
