"""
Negotiation Validator - checks one disclosure request of the agent.

Checks, in order:
1. the request type belongs to a kind the session supports
2. every requested key exists in the available pool (one issue per bad key)
3. the request discloses at least one new item (forward progress)

Rejected requests are replayed to the agent with the issues attached; they
never reach the collection store.
"""

import json
import logging
from typing import TYPE_CHECKING, Hashable, List, Sequence

from libs.preliminary.collection import Collection
from libs.preliminary.kinds import PreliminaryKind, format_key
from libs.preliminary.requests import PreliminaryRequest
from libs.preliminary.validation_result import (
    IssueCategory,
    PreliminaryValidation,
    ValidationIssue,
)

if TYPE_CHECKING:
    from libs.preliminary.controller import PreliminaryController

logger = logging.getLogger(__name__)


def validate_preliminary(
    controller: "PreliminaryController",
    request: PreliminaryRequest,
) -> PreliminaryValidation[PreliminaryRequest]:
    """Validate a disclosure request against the controller's collections."""
    kind = request.kind
    collection = controller.get_collections().get(kind)
    if collection is None:
        return PreliminaryValidation(
            data=request,
            errors=[_unknown_kind(kind, controller.get_request_type_names())],
        )

    alternatives = [
        name for name in controller.get_request_type_names() if name != kind.request_type
    ]
    return validate_disclosure(collection, request, alternatives)


def validate_disclosure(
    collection: Collection,
    request: PreliminaryRequest,
    alternatives: Sequence[str] = ("complete",),
) -> PreliminaryValidation[PreliminaryRequest]:
    """
    Existence and forward-progress checks for one collection.

    Args:
        collection: Available/Disclosed pools of the requested kind
        request: Parsed disclosure request
        alternatives: Other request types the agent may switch to
    """
    kind = collection.kind
    keys = request.keys()
    remainder = collection.undisclosed()
    errors: List[ValidationIssue] = []

    for i, key in enumerate(keys):
        if key in collection.available:
            continue
        errors.append(
            ValidationIssue(
                path=f"$input.request.{kind.request_field}[{i}]",
                value=key,
                expected=" | ".join(json.dumps(format_key(k)) for k in remainder),
                description=_not_found_description(kind, key, remainder),
                category=IssueCategory.NOT_FOUND,
            )
        )

    if all(key in collection.disclosed for key in keys):
        errors.append(
            ValidationIssue(
                path="$input.request",
                value=request,
                expected=" | ".join(alternatives),
                description=_exhausted_description(kind, alternatives),
                category=IssueCategory.EXHAUSTED,
            )
        )

    if errors:
        logger.debug(
            f"Rejected {kind.request_type}: {[e.category.value for e in errors]}"
        )
    return PreliminaryValidation(data=request, errors=errors)


# =============================================================================
# Descriptions
# =============================================================================

def _not_found_description(
    kind: PreliminaryKind,
    key: Hashable,
    remainder: List[Hashable],
) -> str:
    lines = [
        f"You requested a NON-EXISTING {kind.label}: {json.dumps(format_key(key))}",
        "",
        f"It does not exist in the system. Do not request {json.dumps(format_key(key))} again,",
        f"and do not invent {kind.label} names that are not listed below.",
        "",
    ]
    if remainder:
        lines.append(f"Available {kind.label} entries you can still request:")
        lines.extend(f"- {format_key(k)}" for k in remainder)
    else:
        lines.append(_exhausted_notice(kind))
    return "\n".join(lines)


def _exhausted_notice(kind: PreliminaryKind) -> str:
    return (
        f"Every {kind.label} has already been loaded. The {kind.request_type} request "
        f"is exhausted: use what is in your context or call another request type."
    )


def _exhausted_description(kind: PreliminaryKind, alternatives: Sequence[str]) -> str:
    return "\n".join(
        [
            f"Every {kind.label} you requested is already loaded in your context.",
            "",
            f"Requesting them again makes no progress. Do not call {kind.request_type}",
            "with the same items. Use the material you already have, request a",
            "different type of data, or finish the task with one of:",
            "",
            *(f"- {name}" for name in alternatives),
        ]
    )


def _unknown_kind(kind: PreliminaryKind, offered: Sequence[str]) -> ValidationIssue:
    return ValidationIssue(
        path="$input.request.type",
        value=kind.request_type,
        expected=" | ".join(json.dumps(name) for name in offered),
        description="\n".join(
            [
                f"You requested a data type that is NOT available in this task: "
                f"{json.dumps(kind.request_type)}",
                "",
                "Choose only from the request types listed below:",
                "",
                *(f"- {name}" for name in offered),
            ]
        ),
        category=IssueCategory.UNKNOWN_KIND,
    )
