from __future__ import annotations


class CalculatorError(ValueError):
    """Base error rendered to clients as ``{"error": message}``."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class MissingParameter(CalculatorError):
    pass


class InvalidParameter(CalculatorError):
    pass


class InvalidDivisor(CalculatorError):
    pass


class NegativeOperand(CalculatorError):
    pass


class NotFound(CalculatorError):
    status_code = 404


class InternalFailure(CalculatorError):
    status_code = 500


class PersistenceFailure(RuntimeError):
    """Raised by history stores; the recorder logs it and never surfaces it."""
