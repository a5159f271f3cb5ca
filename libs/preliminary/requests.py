"""
Preliminary request union.

Each round the agent calls one ``process`` function whose ``request`` argument
is a discriminated union keyed by ``type``: one disclosure request per active
kind plus the task's completion request. The union offered to the agent
narrows as kinds are exhausted.
"""

from functools import lru_cache
from typing import Annotated, Any, ClassVar, Hashable, Iterable, Literal, Union

from pydantic import BaseModel, Field, ValidationError, create_model

from libs.core.models import Endpoint
from libs.preliminary.kinds import PreliminaryKind
from libs.preliminary.validation_result import IssueCategory, ValidationIssue


class PreliminaryRequest(BaseModel):
    """Base of every disclosure request."""

    kind: ClassVar[PreliminaryKind]

    def keys(self) -> list[Hashable]:
        return list(getattr(self, self.kind.request_field))


class CompleteRequest(BaseModel):
    """Base of completion requests; tasks subclass it with their payload fields."""

    type: Literal["complete"] = "complete"


# =============================================================================
# Disclosure requests
# =============================================================================

class GetAnalysisFiles(PreliminaryRequest):
    """Load requirement documents by filename."""

    kind: ClassVar[PreliminaryKind] = PreliminaryKind.ANALYSIS_FILES
    type: Literal["getAnalysisFiles"] = "getAnalysisFiles"
    file_names: list[str] = Field(min_length=1)


class GetPreviousAnalysisFiles(PreliminaryRequest):
    """Load requirement documents of the previous iteration."""

    kind: ClassVar[PreliminaryKind] = PreliminaryKind.PREVIOUS_ANALYSIS_FILES
    type: Literal["getPreviousAnalysisFiles"] = "getPreviousAnalysisFiles"
    file_names: list[str] = Field(min_length=1)


class GetDatabaseSchemas(PreliminaryRequest):
    """Load storage-schema models by name."""

    kind: ClassVar[PreliminaryKind] = PreliminaryKind.DATABASE_SCHEMAS
    type: Literal["getDatabaseSchemas"] = "getDatabaseSchemas"
    schema_names: list[str] = Field(min_length=1)


class GetPreviousDatabaseSchemas(PreliminaryRequest):
    """Load storage-schema models of the previous iteration."""

    kind: ClassVar[PreliminaryKind] = PreliminaryKind.PREVIOUS_DATABASE_SCHEMAS
    type: Literal["getPreviousDatabaseSchemas"] = "getPreviousDatabaseSchemas"
    schema_names: list[str] = Field(min_length=1)


class GetInterfaceOperations(PreliminaryRequest):
    """Load API operations by endpoint."""

    kind: ClassVar[PreliminaryKind] = PreliminaryKind.INTERFACE_OPERATIONS
    type: Literal["getInterfaceOperations"] = "getInterfaceOperations"
    endpoints: list[Endpoint] = Field(min_length=1)


class GetPreviousInterfaceOperations(PreliminaryRequest):
    """Load API operations of the previous iteration."""

    kind: ClassVar[PreliminaryKind] = PreliminaryKind.PREVIOUS_INTERFACE_OPERATIONS
    type: Literal["getPreviousInterfaceOperations"] = "getPreviousInterfaceOperations"
    endpoints: list[Endpoint] = Field(min_length=1)


class GetInterfaceSchemas(PreliminaryRequest):
    """Load API schema types by name."""

    kind: ClassVar[PreliminaryKind] = PreliminaryKind.INTERFACE_SCHEMAS
    type: Literal["getInterfaceSchemas"] = "getInterfaceSchemas"
    type_names: list[str] = Field(min_length=1)


class GetPreviousInterfaceSchemas(PreliminaryRequest):
    """Load API schema types of the previous iteration."""

    kind: ClassVar[PreliminaryKind] = PreliminaryKind.PREVIOUS_INTERFACE_SCHEMAS
    type: Literal["getPreviousInterfaceSchemas"] = "getPreviousInterfaceSchemas"
    type_names: list[str] = Field(min_length=1)


REQUEST_MODELS: dict[PreliminaryKind, type[PreliminaryRequest]] = {
    model.kind: model
    for model in (
        GetAnalysisFiles,
        GetPreviousAnalysisFiles,
        GetDatabaseSchemas,
        GetPreviousDatabaseSchemas,
        GetInterfaceOperations,
        GetPreviousInterfaceOperations,
        GetInterfaceSchemas,
        GetPreviousInterfaceSchemas,
    )
}


# =============================================================================
# Narrowed union
# =============================================================================

@lru_cache(maxsize=256)
def _process_model(
    kinds: tuple[PreliminaryKind, ...],
    complete_model: type[CompleteRequest],
) -> type[BaseModel]:
    members = tuple(REQUEST_MODELS[kind] for kind in kinds) + (complete_model,)
    if len(members) == 1:
        request_type: Any = complete_model
    else:
        request_type = Annotated[Union[members], Field(discriminator="type")]
    return create_model(
        "IProcessProps",
        thinking=(str, Field(default="", description="Why this request is needed now.")),
        request=(request_type, ...),
    )


def _ordered(kinds: Iterable[PreliminaryKind]) -> tuple[PreliminaryKind, ...]:
    wanted = set(kinds)
    return tuple(kind for kind in PreliminaryKind if kind in wanted)


def build_request_schema(
    kinds: Iterable[PreliminaryKind],
    complete_model: type[CompleteRequest],
) -> dict[str, Any]:
    """JSON schema of the ``process`` arguments for the given active kinds."""
    return _process_model(_ordered(kinds), complete_model).model_json_schema()


def request_type_names(
    kinds: Iterable[PreliminaryKind],
    complete_model: type[CompleteRequest],
) -> list[str]:
    """Discriminator values currently offered to the agent."""
    return [kind.request_type for kind in _ordered(kinds)] + ["complete"]


def parse_request(
    kinds: Iterable[PreliminaryKind],
    complete_model: type[CompleteRequest],
    arguments: Any,
) -> Union[PreliminaryRequest, CompleteRequest]:
    """
    Parse ``process`` arguments into a request of the narrowed union.

    Raises:
        pydantic.ValidationError: on malformed arguments or a request type
            that is not offered
    """
    props = _process_model(_ordered(kinds), complete_model).model_validate(arguments)
    return props.request


def issues_from_validation_error(error: ValidationError) -> list[ValidationIssue]:
    """Convert a pydantic parse failure into agent-readable issues."""
    issues = []
    for detail in error.errors():
        location = "".join(
            f"[{part}]" if isinstance(part, int) else f".{part}" for part in detail["loc"]
        )
        issues.append(
            ValidationIssue(
                path=f"$input{location}",
                value=detail.get("input"),
                expected=str(detail.get("ctx", {}).get("expected", detail["type"])),
                description=detail["msg"],
                category=IssueCategory.MALFORMED,
            )
        )
    return issues
