"""
Validation result dataclasses.

Contains:
- IssueCategory: Why a request was rejected
- ValidationIssue: One agent-readable error
- PreliminaryValidation: Result of validating one agent request
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, List, Optional, TypeVar

T = TypeVar("T")


class IssueCategory(str, Enum):
    """Issue categories shared by the negotiation and prerequisite validators."""

    # negotiation
    NOT_FOUND = "not_found"
    EXHAUSTED = "exhausted"
    UNKNOWN_KIND = "unknown_kind"
    MALFORMED = "malformed"

    # prerequisite graph
    ENDPOINT_MISMATCH = "endpoint_mismatch"
    SELF_REFERENCE = "self_reference"
    INVALID_PREREQUISITE = "invalid_prerequisite"
    CIRCULAR_DEPENDENCY = "circular_dependency"


@dataclass
class ValidationIssue:
    """
    One validation error, consumed only by the conversation.

    ``path`` addresses the offending value inside the agent's function call
    arguments, e.g. ``$input.request.type_names[2]``.
    """
    path: str
    value: Any
    expected: str
    description: str
    category: IssueCategory

    def to_dict(self) -> dict[str, Any]:
        value = self.value
        if hasattr(value, "model_dump"):
            value = value.model_dump(mode="json")
        return {
            "path": self.path,
            "value": value,
            "expected": self.expected,
            "description": self.description,
        }


@dataclass
class PreliminaryValidation(Generic[T]):
    """Outcome of validating one agent request."""
    data: T
    errors: List[ValidationIssue] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def categories(self) -> List[IssueCategory]:
        return [e.category for e in self.errors]


def render_issues(issues: List[ValidationIssue], arguments: Optional[Any] = None) -> str:
    """Feedback message handed back to the agent for a rejected function call."""
    payload: dict[str, Any] = {
        "success": False,
        "errors": [issue.to_dict() for issue in issues],
    }
    if arguments is not None:
        payload["data"] = arguments
    return json.dumps(payload, indent=2, ensure_ascii=False, default=str)
