"""Custom exceptions for Backforge."""

from typing import Any, Optional


class BackforgeError(Exception):
    """Base exception for Backforge."""

    def __init__(self, message: str, context: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


class LLMError(BackforgeError):
    """LLM-related errors."""

    pass


class PhaseError(BackforgeError):
    """Pipeline phase errors."""

    def __init__(
        self,
        message: str,
        phase: str,
        context: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, context)
        self.phase = phase


class StructuralError(BackforgeError):
    """Malformed task schema or session seed, detected before any round runs."""

    pass


class DanglingReferenceError(BackforgeError):
    """A disclosed item references a name missing from the available pool."""

    def __init__(
        self,
        kind: str,
        name: str,
        referrer: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ):
        where = f" (referenced by {referrer})" if referrer else ""
        super().__init__(f"Dangling {kind} reference: {name}{where}", context)
        self.kind = kind
        self.name = name
        self.referrer = referrer


class RetryLimitExceededError(BackforgeError):
    """
    Session exceeded its round (or in-round feedback) limit.

    Fatal: the session produces no partial output.
    """

    def __init__(
        self,
        source: str,
        limit: int,
        trial: int,
        reason: str = "rounds",
        context: Optional[dict[str, Any]] = None,
    ):
        message = (
            f"Preliminary process of {source} exceeded the maximum number of "
            f"{reason}: {trial}/{limit}"
        )
        super().__init__(message, context)
        self.source = source
        self.limit = limit
        self.trial = trial
        self.reason = reason


class InterventionRequired(BackforgeError):
    """
    Error requiring human intervention.

    In fail-fast mode, this halts execution and notifies human.
    """

    def __init__(
        self,
        component: str,
        error: str,
        context: Optional[dict[str, Any]] = None,
        severity: str = "HIGH",
    ):
        message = f"[{severity}] Intervention required in {component}: {error}"
        super().__init__(message, context)
        self.component = component
        self.error = error
        self.severity = severity
