"""
Preliminary Controller - incremental context loading for one structured task.

The agent gets to ask for more reference material (requirement documents,
database models, API operations, API schema types, and their previous
iteration variants) before it finalizes its answer:

    round i:  converse(context) -> reply
              reply is "complete"    -> done, payload returned
              reply is "get<Kind>"   -> validate
                  rejected -> issues fed back, same round
                  accepted -> disclose, complement closure, emit event, i += 1
              i == rag_limit         -> RetryLimitExceededError

- `available`: everything the pipeline state knows for a kind (read-only)
- `disclosed`: what this session has already shown the agent (grows only)

A kind whose pool is fully disclosed is deactivated for good: its request type
disappears from the request schema offered to the agent.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any,
    Awaitable,
    Callable,
    Generic,
    Hashable,
    Iterable,
    List,
    Mapping,
    Optional,
    TypeVar,
    Union,
)

from libs.core.config import get_rag_limit, get_settings
from libs.core.exceptions import RetryLimitExceededError, StructuralError
from libs.core.logging_config import log_round, log_session_end
from libs.core.models import PipelineState
from libs.llm.client import TokenUsage
from libs.preliminary.collection import Collection, ItemSource, create_collections, snapshot_items
from libs.preliminary.complement import DanglingPolicy, complement_closure
from libs.preliminary.events import EventDispatcher, PreliminaryEvent
from libs.preliminary.histories import format_preliminary_histories
from libs.preliminary.kinds import PreliminaryKind
from libs.preliminary.requests import (
    CompleteRequest,
    PreliminaryRequest,
    build_request_schema,
    request_type_names,
)
from libs.preliminary.validation_result import (
    IssueCategory,
    PreliminaryValidation,
    ValidationIssue,
    render_issues,
)
from libs.preliminary.validator import validate_preliminary

logger = logging.getLogger(__name__)

C = TypeVar("C", bound=CompleteRequest)

Reply = Union[PreliminaryRequest, CompleteRequest]


class SessionState(str, Enum):
    NEGOTIATING = "negotiating"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Rejection:
    """A reply that was sent back to the agent within the current round."""
    arguments: Any
    issues: List[ValidationIssue]

    def to_messages(self) -> List[dict[str, str]]:
        return [
            {"role": "assistant", "content": f"process({render_arguments(self.arguments)})"},
            {"role": "user", "content": render_issues(self.issues, self.arguments)},
        ]


def render_arguments(arguments: Any) -> str:
    if hasattr(arguments, "model_dump_json"):
        return arguments.model_dump_json()
    if isinstance(arguments, (dict, list)):
        return json.dumps(arguments, ensure_ascii=False, default=str)
    return str(arguments)


@dataclass
class ConversationContext:
    """Everything one model call needs from the session."""
    source: str
    source_id: str
    trial: int
    kinds: List[PreliminaryKind]
    complete_model: type[CompleteRequest]
    request_schema: dict[str, Any]
    request_types: List[str]
    histories: List[dict[str, str]]
    rejections: List[Rejection] = field(default_factory=list)

    def feedback_messages(self) -> List[dict[str, str]]:
        messages: List[dict[str, str]] = []
        for rejection in self.rejections:
            messages.extend(rejection.to_messages())
        return messages


@dataclass
class ConverseResult:
    """One model reply.

    ``reply`` is None when the model did not produce a parseable function
    call; ``issues`` then says why.
    """
    reply: Optional[Reply]
    usage: TokenUsage = field(default_factory=TokenUsage)
    issues: List[ValidationIssue] = field(default_factory=list)
    arguments: Any = None


Converse = Callable[[ConversationContext], Awaitable[ConverseResult]]
CompleteValidator = Callable[[Any], List[ValidationIssue]]
ContextFormatter = Callable[
    [Mapping[PreliminaryKind, Collection], Iterable[PreliminaryKind]],
    List[dict[str, str]],
]


class PreliminaryController(Generic[C]):
    """
    Bounded negotiation session for one structured generation task.

    Owns the session's Disclosed pools and round counter; the available
    pools are read-only views over the pipeline state snapshot.
    """

    def __init__(
        self,
        source: str,
        kinds: Iterable[PreliminaryKind],
        state: PipelineState,
        complete_model: type[C],
        available: Optional[Mapping[PreliminaryKind, ItemSource]] = None,
        disclosed: Optional[Mapping[PreliminaryKind, ItemSource]] = None,
        rag_limit: Optional[int] = None,
        validation_retry: Optional[int] = None,
        dangling: Optional[DanglingPolicy] = None,
        dispatcher: Optional[EventDispatcher] = None,
        formatter: ContextFormatter = format_preliminary_histories,
    ):
        """
        Raises:
            StructuralError: malformed kinds, completion model, seeds or limits
        """
        settings = get_settings()
        self.source = source
        self.source_id = str(uuid.uuid4())
        self.state = SessionState.NEGOTIATING
        self.trial = 0
        self.usage = TokenUsage()

        self.rag_limit = rag_limit if rag_limit is not None else get_rag_limit(source)
        self.validation_retry = (
            validation_retry
            if validation_retry is not None
            else settings.preliminary.validation_retry
        )
        self.dangling = DanglingPolicy(dangling or settings.preliminary.dangling_policy)
        self.dispatcher = dispatcher or EventDispatcher()
        self.formatter = formatter
        self.complete_model = complete_model

        kinds = list(kinds)
        self._validate_structure(kinds, complete_model, available, disclosed)
        self._validate_limits(self.rag_limit, self.validation_retry)

        # previous-iteration kinds without a previous iteration are erased
        self._kinds: List[PreliminaryKind] = [
            kind
            for kind in kinds
            if not kind.previous or snapshot_items(state, kind) is not None
        ]
        self._collections = create_collections(state, self._kinds, available, disclosed)
        self._inactive: set[PreliminaryKind] = set()

        complement_closure(
            self._collections,
            self._kinds,
            prerequisite=False,
            dangling=self.dangling,
        )
        self._refresh_active()

    # =========================================================================
    # Accessors
    # =========================================================================

    def get_source(self) -> str:
        return self.source

    def get_supported_kinds(self) -> List[PreliminaryKind]:
        """Kinds this session was built with (after erasing absent iterations)."""
        return list(self._kinds)

    def get_kinds(self) -> List[PreliminaryKind]:
        """Active kinds: those with material left to disclose."""
        return [kind for kind in self._kinds if kind not in self._inactive]

    def get_collections(self) -> Mapping[PreliminaryKind, Collection]:
        return self._collections

    def get_available(self, kind: PreliminaryKind) -> Mapping[Hashable, Any]:
        return self._collections[kind].available

    def get_disclosed(self, kind: PreliminaryKind) -> Mapping[Hashable, Any]:
        return self._collections[kind].disclosed

    def get_request_type_names(self) -> List[str]:
        return request_type_names(self.get_kinds(), self.complete_model)

    def get_request_schema(self) -> dict[str, Any]:
        return build_request_schema(self.get_kinds(), self.complete_model)

    def get_histories(self) -> List[dict[str, str]]:
        return self.formatter(self._collections, self._kinds)

    # =========================================================================
    # Negotiation
    # =========================================================================

    def validate(self, request: PreliminaryRequest) -> PreliminaryValidation[PreliminaryRequest]:
        return validate_preliminary(self, request)

    def accept(self, request: PreliminaryRequest) -> List[Hashable]:
        """
        Merge a validated request into Disclosed and complement the closure.

        Returns:
            Keys of the request that were newly disclosed
        """
        kind = request.kind
        collection = self._collections[kind]
        existing = list(collection.disclosed)

        added = collection.disclose(request.keys())
        complement_closure(
            self._collections,
            self._kinds,
            prerequisite=True,
            dangling=self.dangling,
        )
        self._refresh_active()

        log_round(logger, self.source_id, self.trial + 1, kind.value, len(request.keys()))
        self.dispatcher.dispatch(
            PreliminaryEvent.create(
                source=self.source,
                source_id=self.source_id,
                kind=kind,
                existing=existing,
                requested=request.keys(),
                trial=self.trial + 1,
            )
        )
        self.trial += 1
        return added

    def context(self, rejections: Optional[List[Rejection]] = None) -> ConversationContext:
        kinds = self.get_kinds()
        return ConversationContext(
            source=self.source,
            source_id=self.source_id,
            trial=self.trial,
            kinds=kinds,
            complete_model=self.complete_model,
            request_schema=build_request_schema(kinds, self.complete_model),
            request_types=request_type_names(kinds, self.complete_model),
            histories=self.get_histories(),
            rejections=list(rejections or []),
        )

    async def orchestrate(
        self,
        converse: Converse,
        validate_complete: Optional[CompleteValidator] = None,
    ) -> C:
        """
        Run rounds until the agent completes or the round limit is hit.

        Args:
            converse: Model call for one round
            validate_complete: Extra checks on the completion payload; issues
                are fed back within the round like rejected disclosures

        Returns:
            The accepted completion request

        Raises:
            RetryLimitExceededError: rounds or in-round feedback exhausted
        """
        try:
            while self.trial < self.rag_limit:
                completed = await self._round(converse, validate_complete)
                if completed is not None:
                    self.state = SessionState.COMPLETED
                    log_session_end(logger, self.source_id, self.source, True, self.trial)
                    return completed
        except Exception:
            self.state = SessionState.FAILED
            log_session_end(logger, self.source_id, self.source, False, self.trial)
            raise

        self.state = SessionState.FAILED
        log_session_end(logger, self.source_id, self.source, False, self.trial)
        raise RetryLimitExceededError(
            source=self.source,
            limit=self.rag_limit,
            trial=self.trial,
            context={"source_id": self.source_id},
        )

    async def _round(
        self,
        converse: Converse,
        validate_complete: Optional[CompleteValidator],
    ) -> Optional[C]:
        rejections: List[Rejection] = []
        for _ in range(self.validation_retry):
            result = await converse(self.context(rejections))
            self.usage = self.usage + result.usage

            reply = result.reply
            issues = list(result.issues)
            if reply is None:
                if not issues:
                    issues.append(_missing_call_issue())
            elif isinstance(reply, CompleteRequest):
                issues = validate_complete(reply) if validate_complete else []
                if not issues:
                    return reply  # type: ignore[return-value]
            else:
                validation = self.validate(reply)
                if validation.success:
                    self.accept(reply)
                    return None
                issues = validation.errors

            log_round(
                logger,
                self.source_id,
                self.trial + 1,
                getattr(reply, "type", "none"),
                len(issues),
                status="rejected",
            )
            rejections.append(Rejection(arguments=result.arguments or reply, issues=issues))

        raise RetryLimitExceededError(
            source=self.source,
            limit=self.validation_retry,
            trial=len(rejections),
            reason="validation attempts",
            context={
                "source_id": self.source_id,
                "issues": [issue.to_dict() for issue in rejections[-1].issues],
            },
        )

    # =========================================================================
    # Internals
    # =========================================================================

    def _refresh_active(self) -> None:
        for kind in self._kinds:
            if self._collections[kind].exhausted:
                self._inactive.add(kind)

    @staticmethod
    def _validate_limits(rag_limit: int, validation_retry: int) -> None:
        for name, value in (("rag_limit", rag_limit), ("validation_retry", validation_retry)):
            if value < 1:
                raise StructuralError(
                    f"{name} must be at least 1, got {value}",
                    context={name: value},
                )

    @staticmethod
    def _validate_structure(
        kinds: List[PreliminaryKind],
        complete_model: type,
        available: Optional[Mapping[PreliminaryKind, Any]],
        disclosed: Optional[Mapping[PreliminaryKind, Any]],
    ) -> None:
        if not isinstance(complete_model, type) or not issubclass(complete_model, CompleteRequest):
            raise StructuralError(
                "Completion model must subclass CompleteRequest",
                context={"complete_model": repr(complete_model)},
            )
        if len(set(kinds)) != len(kinds):
            raise StructuralError(
                "Duplicated preliminary kinds",
                context={"kinds": [k.value for k in kinds]},
            )
        for label, overrides in (("available", available), ("disclosed", disclosed)):
            for kind in overrides or {}:
                if kind not in kinds:
                    raise StructuralError(
                        f"{label} data given for unsupported kind {kind.value}",
                        context={"kinds": [k.value for k in kinds]},
                    )


def _missing_call_issue() -> ValidationIssue:
    return ValidationIssue(
        path="$input",
        value=None,
        expected="process",
        description="You must call the `process` function with exactly one request.",
        category=IssueCategory.MALFORMED,
    )
