"""Pydantic models for Backforge."""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# Endpoints
# =============================================================================

HttpMethod = Literal["get", "post", "put", "delete", "patch"]


class Endpoint(BaseModel):
    """Structural operation key (method + path).

    Frozen so that equality and hashing are by value: two endpoints built
    from different operations compare equal when method and path match.
    """

    model_config = ConfigDict(frozen=True)

    method: HttpMethod
    path: str

    @field_validator("method", mode="before")
    @classmethod
    def _lower_method(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value

    def __str__(self) -> str:
        return f"{self.method} {self.path}"


# =============================================================================
# Analysis phase
# =============================================================================

class AnalysisFile(BaseModel):
    """Requirements document produced by the analysis phase."""

    filename: str
    document_type: str = ""
    content: str = ""


# =============================================================================
# Database phase
# =============================================================================

class DatabaseModel(BaseModel):
    """Storage-schema model produced by the database phase."""

    name: str
    description: str = ""
    definition: str = ""  # DSL text of the model


# =============================================================================
# Interface phase
# =============================================================================

class OperationBody(BaseModel):
    """Request or response body of an operation."""

    type_name: str
    description: str = ""


class Prerequisite(BaseModel):
    """Operation that must run before another one."""

    endpoint: Endpoint
    description: str = ""


class Operation(BaseModel):
    """API operation."""

    method: HttpMethod
    path: str
    name: str = ""
    description: str = ""
    authorization_type: Optional[str] = None
    request_body: Optional[OperationBody] = None
    response_body: Optional[OperationBody] = None
    prerequisites: list[Prerequisite] = Field(default_factory=list)

    @field_validator("method", mode="before")
    @classmethod
    def _lower_method(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value

    @property
    def endpoint(self) -> Endpoint:
        return Endpoint(method=self.method, path=self.path)


class InterfaceDocument(BaseModel):
    """API surface: operations plus named schema types.

    Schema types are JSON-schema-like dicts. References use
    ``{"$ref": "#/components/schemas/<Name>"}`` and object nodes may carry
    ``x-database-schema`` naming their backing storage model.
    """

    operations: list[Operation] = Field(default_factory=list)
    schemas: dict[str, dict[str, Any]] = Field(default_factory=dict)


class InterfacePrerequisite(BaseModel):
    """Prerequisites declared by the agent for one target operation."""

    endpoint: Endpoint
    prerequisites: list[Prerequisite] = Field(default_factory=list)


# =============================================================================
# Pipeline state snapshot
# =============================================================================

class PipelineState(BaseModel):
    """Read-only snapshot of prior phases' outputs.

    ``None`` means the phase has not run (or, for ``previous_*``, that there
    is no earlier iteration to compare against).
    """

    model_config = ConfigDict(frozen=True)

    analysis_files: Optional[list[AnalysisFile]] = None
    database_models: Optional[list[DatabaseModel]] = None
    interface: Optional[InterfaceDocument] = None

    previous_analysis_files: Optional[list[AnalysisFile]] = None
    previous_database_models: Optional[list[DatabaseModel]] = None
    previous_interface: Optional[InterfaceDocument] = None
