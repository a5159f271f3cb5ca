"""Resource kinds the agent may request during a preliminary session."""

from enum import Enum
from typing import Any, Hashable

from libs.core.models import AnalysisFile, DatabaseModel, Endpoint, Operation


class PreliminaryKind(str, Enum):
    """Category of reference material."""

    ANALYSIS_FILES = "analysisFiles"
    DATABASE_SCHEMAS = "databaseSchemas"
    INTERFACE_OPERATIONS = "interfaceOperations"
    INTERFACE_SCHEMAS = "interfaceSchemas"
    PREVIOUS_ANALYSIS_FILES = "previousAnalysisFiles"
    PREVIOUS_DATABASE_SCHEMAS = "previousDatabaseSchemas"
    PREVIOUS_INTERFACE_OPERATIONS = "previousInterfaceOperations"
    PREVIOUS_INTERFACE_SCHEMAS = "previousInterfaceSchemas"

    @property
    def previous(self) -> bool:
        return self.value.startswith("previous")

    @property
    def base(self) -> "PreliminaryKind":
        """Current-iteration counterpart (identity for current kinds)."""
        if not self.previous:
            return self
        name = self.value[len("previous"):]
        return PreliminaryKind(name[0].lower() + name[1:])

    @property
    def request_type(self) -> str:
        """Discriminator of the disclosure request for this kind."""
        return "get" + self.value[0].upper() + self.value[1:]

    @property
    def request_field(self) -> str:
        """Name of the key list field in the disclosure request."""
        return REQUEST_FIELDS[self.base]

    @property
    def label(self) -> str:
        text = LABELS[self.base]
        return f"previous {text}" if self.previous else text


REQUEST_FIELDS = {
    PreliminaryKind.ANALYSIS_FILES: "file_names",
    PreliminaryKind.DATABASE_SCHEMAS: "schema_names",
    PreliminaryKind.INTERFACE_OPERATIONS: "endpoints",
    PreliminaryKind.INTERFACE_SCHEMAS: "type_names",
}

LABELS = {
    PreliminaryKind.ANALYSIS_FILES: "analysis file",
    PreliminaryKind.DATABASE_SCHEMAS: "database schema",
    PreliminaryKind.INTERFACE_OPERATIONS: "API operation",
    PreliminaryKind.INTERFACE_SCHEMAS: "API schema type",
}


def with_previous(kind: PreliminaryKind, previous: bool) -> PreliminaryKind:
    """Map a current kind to its previous-iteration variant, or back."""
    base = kind.base
    if not previous:
        return base
    return PreliminaryKind("previous" + base.value[0].upper() + base.value[1:])


def item_key(kind: PreliminaryKind, item: Any) -> Hashable:
    """Key of one item within its kind.

    Operations are keyed by structural endpoint, everything else by name.
    Schema types arrive already keyed (name -> definition), so they never
    pass through here.
    """
    if isinstance(item, AnalysisFile):
        return item.filename
    if isinstance(item, DatabaseModel):
        return item.name
    if isinstance(item, Operation):
        return item.endpoint
    raise TypeError(f"Cannot derive a {kind.value} key from {type(item).__name__}")


def format_key(key: Hashable) -> str:
    """Agent-readable rendering of an item key."""
    if isinstance(key, Endpoint):
        return f"{key.method} {key.path}"
    return str(key)
