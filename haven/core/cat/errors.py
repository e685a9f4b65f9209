"""
Exception hierarchy for the CAT engine.

Only malformed data (bad item parameters, unknown sessions or items, calls
that break the session state machine) propagates to the caller. Numeric
trouble during estimation is recovered locally and surfaced as flags on the
returned estimate instead.
"""
from typing import Any, Dict, Optional


class CATError(Exception):
    """Base exception for CAT engine errors."""

    def __init__(  # noqa: D107
        self,
        message: str,
        original_error: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.original_error = original_error
        self.context = context or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        msg = self.message
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            msg = f"{msg} (context: {ctx_str})"
        if self.original_error:
            msg = f"{msg} - caused by: {str(self.original_error)}"
        return msg


class InvalidItemParametersError(CATError, ValueError):
    """An item has a <= 0, c outside [0, 1), or non-finite parameters."""


class EstimationNonConvergenceError(CATError):
    """Newton-Raphson exceeded its iteration cap.

    Only raised when the caller asks for it; the default behavior is to
    return the last iterate with ``converged=False``. The last estimate is
    attached as ``estimate``.
    """

    def __init__(  # noqa: D107
        self,
        message: str,
        estimate: Any = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.estimate = estimate
        super().__init__(message, context=context)


class ItemNotFoundError(CATError, KeyError):
    """The item bank has no item with the requested ID."""

    def __str__(self) -> str:
        return self._format_message()


class SessionNotFoundError(CATError, KeyError):
    """The session store has no session with the requested ID."""

    def __str__(self) -> str:
        return self._format_message()


class SessionStateError(CATError):
    """The call is not valid in the session's current state."""
