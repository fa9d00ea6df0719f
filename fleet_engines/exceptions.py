"""
Engine Exceptions

Raised inside the expression primitive and the configuration load boundary.
Public calculators catch these and turn them into report entries.
"""


class EngineError(Exception):
    """Base class for all engine errors."""


class FormulaError(EngineError):
    """A custom formula could not produce a numeric value."""


class FormulaSyntaxError(FormulaError):
    """Formula text does not match the expression grammar."""

    def __init__(self, message: str, position: int | None = None):
        self.position = position
        if position is not None:
            message = f"{message} at position {position}"
        super().__init__(message)


class FormulaEvaluationError(FormulaError):
    """Formula parsed but evaluation failed (unknown variable, division by zero, ...)."""


class ConfigurationError(EngineError):
    """A configuration row is malformed and cannot be used."""
