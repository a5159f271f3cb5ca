"""Interface Prerequisite phase - declare which operations must run first.

For every unauthenticated operation the agent lists the resource-creating
operations that must run before it (e.g. ``post /orders`` needs
``post /customers``). Operations are handled in groups of
``interface_capacity`` (one by default); one preliminary session per group.

Flow:
    targets = unauthenticated operations
    repeat up to validation_retry passes:
        split remaining targets into groups of interface_capacity
        run one session per group (cached batch, shared prompt cache key)
        drop targets that received an accepted declaration
    return every accepted declaration

A group whose session fails is not fatal: its operations stay in the
remaining set and are tried again in the next pass.
"""

import json
import logging
from typing import List, Optional

from pydantic import Field

from libs.core.exceptions import PhaseError
from libs.core.models import Endpoint, InterfaceDocument, InterfacePrerequisite, Operation, Prerequisite
from libs.interface.prerequisite_validator import (
    associate,
    is_candidate,
    validate_prerequisites,
)
from libs.preliminary.kinds import PreliminaryKind
from libs.preliminary.requests import CompleteRequest
from libs.preliminary.validation_result import ValidationIssue

from apps.phases.base_phase import BasePhase
from apps.pipeline.batch_executor import execute_cached_batch

logger = logging.getLogger(__name__)


class PrerequisiteComplete(CompleteRequest):
    """Finish the task with the prerequisites of every target operation."""

    operations: List[InterfacePrerequisite] = Field(
        description="One entry per target operation, endpoint copied verbatim."
    )


def divide(items: List[Operation], capacity: int) -> List[List[Operation]]:
    """Split into nearly equal groups of at most ``capacity`` items."""
    if not items:
        return []
    count = -(-len(items) // capacity)
    size = -(-len(items) // count)
    return [items[i:i + size] for i in range(0, len(items), size)]


def normalize(
    targets: List[Operation],
    declared: List[InterfacePrerequisite],
) -> List[InterfacePrerequisite]:
    """
    Keep declarations about the targets only (first one per endpoint), in
    target order, with duplicate prerequisites removed.
    """
    by_endpoint: dict[Endpoint, InterfacePrerequisite] = {}
    for item in declared:
        by_endpoint.setdefault(item.endpoint, item)

    result = []
    for operation in targets:
        item = by_endpoint.get(operation.endpoint)
        if item is None:
            continue
        unique: dict[Endpoint, Prerequisite] = {}
        for pre in item.prerequisites:
            unique.setdefault(pre.endpoint, pre)
        result.append(
            InterfacePrerequisite(endpoint=item.endpoint, prerequisites=list(unique.values()))
        )
    return result


class InterfacePrerequisitePhase(BasePhase[List[InterfacePrerequisite]]):
    """Declares operation prerequisites for the API document in the state."""

    SOURCE = "interfacePrerequisite"

    KINDS = (
        PreliminaryKind.ANALYSIS_FILES,
        PreliminaryKind.DATABASE_SCHEMAS,
        PreliminaryKind.INTERFACE_OPERATIONS,
        PreliminaryKind.INTERFACE_SCHEMAS,
        PreliminaryKind.PREVIOUS_ANALYSIS_FILES,
        PreliminaryKind.PREVIOUS_DATABASE_SCHEMAS,
        PreliminaryKind.PREVIOUS_INTERFACE_OPERATIONS,
        PreliminaryKind.PREVIOUS_INTERFACE_SCHEMAS,
    )

    SYSTEM_PROMPT = """You are an API dependency analyst. For each target operation you declare
which other operations must run first so that the resources it needs exist.

RULES:
- Only POST operations without authentication can be prerequisites
- Never list the target operation as its own prerequisite
- Only use endpoints you can see in your context; never invent endpoints
- Copy each target endpoint verbatim into your answer
- An operation that needs nothing created beforehand gets an empty list

Load requirement documents, database schemas, API operations or API schema
types with the get* requests when you need them, then call the process
function with the "complete" request listing every target operation."""

    def __init__(self, *args, check_cycles: bool = False, **kwargs):
        super().__init__(*args, **kwargs)
        self.check_cycles = check_cycles

    async def execute(
        self,
        capacity: Optional[int] = None,
        passes: Optional[int] = None,
    ) -> List[InterfacePrerequisite]:
        """
        Declare prerequisites for every unauthenticated operation.

        Args:
            capacity: Operations per session (defaults to settings)
            passes: Attempts for operations still missing (defaults to settings)

        Returns:
            Accepted declarations; operations that never got one are absent

        Raises:
            PhaseError: when the interface phase has not run
        """
        document = self.state.interface
        if document is None:
            raise PhaseError(
                "Interface document not found - interface phase must run first",
                phase=self.SOURCE,
            )

        capacity = capacity or self.settings.batch.interface_capacity
        passes = passes or self.settings.preliminary.validation_retry

        remaining = [op for op in document.operations if is_candidate(op)]
        total = len(remaining)
        accepted: List[InterfacePrerequisite] = []

        trial = 0
        while remaining and trial < passes:
            trial += 1
            groups = divide(remaining, capacity)
            logger.info(
                f"[{self.SOURCE}] pass {trial}/{passes}: "
                f"{len(remaining)} operation(s) in {len(groups)} group(s)"
            )
            results = await execute_cached_batch(
                [
                    lambda key, group=group: self.process_group(document, group, key)
                    for group in groups
                ],
                semaphore=self.settings.batch.semaphore,
            )
            for result in results:
                if result.ok:
                    accepted.extend(result.value or [])

            done = {item.endpoint for item in accepted}
            remaining = [op for op in remaining if op.endpoint not in done]
            logger.info(f"[{self.SOURCE}] progress {len(done)}/{total}")

        if remaining:
            logger.warning(
                f"[{self.SOURCE}] no prerequisites declared for "
                f"{[str(op.endpoint) for op in remaining]}"
            )
        return accepted

    async def process_group(
        self,
        document: InterfaceDocument,
        targets: List[Operation],
        prompt_cache_key: Optional[str] = None,
    ) -> List[InterfacePrerequisite]:
        """One session for a group of target operations."""
        controller = self.create_controller(
            PrerequisiteComplete,
            available={
                PreliminaryKind.INTERFACE_OPERATIONS: document.operations,
                PreliminaryKind.INTERFACE_SCHEMAS: document.schemas,
            },
            disclosed={PreliminaryKind.INTERFACE_OPERATIONS: targets},
        )
        converse = self.create_converser(
            instructions=[{"role": "user", "content": self.instruction(targets)}],
            prompt_cache_key=prompt_cache_key,
        )
        lookup = associate(document.operations)

        def validate_complete(reply: PrerequisiteComplete) -> List[ValidationIssue]:
            issues: List[ValidationIssue] = []
            normalized = normalize(targets, reply.operations)
            positions: dict[Endpoint, int] = {}
            for i, item in enumerate(reply.operations):
                positions.setdefault(item.endpoint, i)
            for item in normalized:
                issues.extend(
                    validate_prerequisites(
                        document.operations,
                        lookup[item.endpoint],
                        item,
                        accessor=f"$input.request.operations[{positions[item.endpoint]}]",
                        lookup=lookup,
                        check_cycles=self.check_cycles,
                    )
                )
            return issues

        reply = await self.run_session(controller, converse, validate_complete)
        return normalize(targets, reply.operations)

    @staticmethod
    def instruction(targets: List[Operation]) -> str:
        listing = json.dumps(
            [{"method": op.method, "path": op.path} for op in targets],
            indent=2,
        )
        return "\n".join(
            [
                "Declare the prerequisites of the target operations below.",
                "Their full definitions are already loaded in your context.",
                "",
                "```json",
                listing,
                "```",
            ]
        )
