"""
Preliminary module - incremental context disclosure for structured tasks.

Contains:
- PreliminaryKind: Resource kinds the agent may request
- Collection, create_collection, create_collections: Available/Disclosed pools
- complement_closure, DanglingPolicy: Dependency closure over disclosed items
- Request models and the narrowed request union
- validate_preliminary, validate_disclosure: Negotiation checks
- PreliminaryController: Bounded negotiation session
- EventDispatcher, PreliminaryEvent: Round observability
"""

from libs.preliminary.kinds import PreliminaryKind
from libs.preliminary.collection import Collection, create_collection, create_collections
from libs.preliminary.complement import DanglingPolicy, complement_closure
from libs.preliminary.requests import (
    CompleteRequest,
    PreliminaryRequest,
    GetAnalysisFiles,
    GetPreviousAnalysisFiles,
    GetDatabaseSchemas,
    GetPreviousDatabaseSchemas,
    GetInterfaceOperations,
    GetPreviousInterfaceOperations,
    GetInterfaceSchemas,
    GetPreviousInterfaceSchemas,
    build_request_schema,
    parse_request,
)
from libs.preliminary.validation_result import (
    IssueCategory,
    ValidationIssue,
    PreliminaryValidation,
)
from libs.preliminary.validator import validate_preliminary, validate_disclosure
from libs.preliminary.events import EventDispatcher, PreliminaryEvent
from libs.preliminary.controller import (
    ConversationContext,
    ConverseResult,
    PreliminaryController,
    SessionState,
)

__all__ = [
    "PreliminaryKind",
    "Collection",
    "create_collection",
    "create_collections",
    "DanglingPolicy",
    "complement_closure",
    "CompleteRequest",
    "PreliminaryRequest",
    "GetAnalysisFiles",
    "GetPreviousAnalysisFiles",
    "GetDatabaseSchemas",
    "GetPreviousDatabaseSchemas",
    "GetInterfaceOperations",
    "GetPreviousInterfaceOperations",
    "GetInterfaceSchemas",
    "GetPreviousInterfaceSchemas",
    "build_request_schema",
    "parse_request",
    "IssueCategory",
    "ValidationIssue",
    "PreliminaryValidation",
    "validate_preliminary",
    "validate_disclosure",
    "EventDispatcher",
    "PreliminaryEvent",
    "ConversationContext",
    "ConverseResult",
    "PreliminaryController",
    "SessionState",
]
