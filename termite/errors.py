"""
Error types for TERMITE.

Parse failures, recoverable evaluation failures and defect-class
invariant violations are kept in separate branches so that callers
(and the #try builtin) can tell them apart.
"""

from typing import Any, Optional


class TermiteError(Exception):
    """Base class for all termite errors."""


# ============================================================
# Surface syntax
# ============================================================

class ParseError(TermiteError):
    """Raised when source text cannot be parsed into terms."""

    def __init__(self, message: str, offset: Optional[int] = None):
        self.message = message
        self.offset = offset
        if offset is not None:
            message = f"{message} (at offset {offset})"
        super().__init__(message)


class IncompleteInputError(ParseError):
    """
    The input ended before a term was complete.

    Interactive front ends should prompt for more input instead of
    reporting this as an error.
    """


# ============================================================
# Evaluation
# ============================================================

class EvaluationError(TermiteError):
    """Recoverable failure while evaluating a term."""


class NonTerminationError(EvaluationError):
    """The iteration budget ran out before a fixed point was reached."""

    def __init__(self, max_iterations: int, message: Optional[str] = None):
        self.max_iterations = max_iterations
        super().__init__(message or f"maximum number of iterations reached ({max_iterations})")


class ThrownError(EvaluationError):
    """A user-level exception raised by #throw, carrying an arbitrary term."""

    def __init__(self, value: Any):
        self.value = value
        super().__init__(f"uncaught throw: {value!r}")


class BuiltinError(EvaluationError):
    """A builtin or host function failed while computing a replacement."""

    def __init__(self, rule_name: str, message: str):
        self.rule_name = rule_name
        super().__init__(f"{rule_name}: {message}")


# ============================================================
# Defects
# ============================================================

class PatternError(TermiteError, ValueError):
    """A rule pattern is malformed (e.g. a splat register out of place)."""


class InvariantError(TermiteError, AssertionError):
    """An internal invariant was violated; never intercepted by #try."""
