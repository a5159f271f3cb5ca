"""
Closure Enricher - keeps disclosed material internally consistent.

After every accepted disclosure the session's Disclosed pools are complemented
so that nothing is shown to the agent without what it depends on:

- operations pull in their prerequisite operations (transitively)
- operations pull in their request/response body types
- schema types pull in every type they reference (transitively)
- schema types pull in the storage models their object nodes are backed by

The enrichment only ever adds items, and a single pass reaches a fixed point:
running it again right away changes nothing.
"""

import logging
from enum import Enum
from typing import Hashable, Iterable, Mapping, Optional

from libs.core.exceptions import DanglingReferenceError
from libs.core.models import Endpoint, Operation
from libs.preliminary.collection import Collection
from libs.preliminary.kinds import PreliminaryKind, format_key, with_previous
from libs.preliminary.schema_visitor import collect_references, database_markers

logger = logging.getLogger(__name__)


class DanglingPolicy(str, Enum):
    """What to do with a reference whose target is not in the available pool."""

    SKIP = "skip"
    ERROR = "error"


def complement_closure(
    collections: Mapping[PreliminaryKind, Collection],
    kinds: Iterable[PreliminaryKind],
    prerequisite: bool = True,
    dangling: DanglingPolicy = DanglingPolicy.SKIP,
) -> None:
    """
    Complement Disclosed pools in place.

    Args:
        collections: Collection per kind of the session
        kinds: Kinds currently taking part in the closure
        prerequisite: Follow operation prerequisite edges
        dangling: Policy for references missing from the available pool

    Raises:
        DanglingReferenceError: only under ``DanglingPolicy.ERROR``
    """
    active = {kind for kind in kinds if kind in collections}
    dangling = DanglingPolicy(dangling)

    for previous in (False, True):
        kind = with_previous(PreliminaryKind.INTERFACE_OPERATIONS, previous)
        if kind in active:
            _complement_operations(collections, active, kind, prerequisite, dangling)

    for previous in (False, True):
        kind = with_previous(PreliminaryKind.INTERFACE_SCHEMAS, previous)
        if kind in active:
            _complement_schemas(collections, active, kind, dangling)


def _on_dangling(
    policy: DanglingPolicy,
    kind: PreliminaryKind,
    key: Hashable,
    referrer: Optional[str],
) -> None:
    if policy is DanglingPolicy.ERROR:
        raise DanglingReferenceError(kind.value, format_key(key), referrer)
    logger.debug(f"Skipping dangling {kind.value} reference {format_key(key)} (from {referrer})")


def _complement_operations(
    collections: Mapping[PreliminaryKind, Collection],
    active: set[PreliminaryKind],
    kind: PreliminaryKind,
    prerequisite: bool,
    dangling: DanglingPolicy,
) -> None:
    collection = collections[kind]
    available: Mapping[Endpoint, Operation] = collection.available

    # depth-first over prerequisite edges, memoized by endpoint
    visited: dict[Endpoint, Operation] = {}
    stack: list[tuple[Endpoint, Optional[str]]] = [
        (endpoint, None) for endpoint in reversed(list(collection.disclosed))
    ]
    while stack:
        endpoint, referrer = stack.pop()
        if endpoint in visited:
            continue
        operation = available.get(endpoint)
        if operation is None:
            _on_dangling(dangling, kind, endpoint, referrer)
            continue
        visited[endpoint] = operation
        if prerequisite:
            for pre in reversed(operation.prerequisites):
                stack.append((pre.endpoint, str(endpoint)))

    added = collection.disclose(visited)
    if added:
        logger.debug(f"{kind.value}: prerequisites added {[format_key(k) for k in added]}")

    schema_kind = with_previous(PreliminaryKind.INTERFACE_SCHEMAS, kind.previous)
    if schema_kind not in active:
        return

    schemas = collections[schema_kind]
    type_names: dict[str, str] = {}
    for operation in collection.disclosed.values():
        for body in (operation.request_body, operation.response_body):
            if body is not None:
                type_names.setdefault(body.type_name, str(operation.endpoint))

    for name, referrer in type_names.items():
        if name in schemas.disclosed:
            continue
        if name in schemas.available:
            schemas.disclose([name])
        else:
            _on_dangling(dangling, schema_kind, name, referrer)


def _complement_schemas(
    collections: Mapping[PreliminaryKind, Collection],
    active: set[PreliminaryKind],
    kind: PreliminaryKind,
    dangling: DanglingPolicy,
) -> None:
    collection = collections[kind]

    found, missing = collect_references(list(collection.disclosed), collection.available)
    for name in sorted(missing):
        _on_dangling(dangling, kind, name, None)
    added = collection.disclose(sorted(found))
    if added:
        logger.debug(f"{kind.value}: references added {added}")

    database_kind = with_previous(PreliminaryKind.DATABASE_SCHEMAS, kind.previous)
    if database_kind not in active:
        return

    models = collections[database_kind]
    for type_name, definition in list(collection.disclosed.items()):
        for model_name in database_markers(definition):
            if model_name in models.disclosed:
                continue
            if model_name in models.available:
                models.disclose([model_name])
            else:
                _on_dangling(dangling, database_kind, model_name, type_name)
