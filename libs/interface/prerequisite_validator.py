"""
Endpoint Dependency Graph Validator.

Checks the prerequisites an agent declares for a target operation:

- the completion must be about the target endpoint
- every prerequisite must exist among the known operations
- an operation cannot be its own prerequisite
- only unauthenticated ``post`` operations (resource creators) qualify

Transitive cycles (A -> B -> A) are only reported when asked for with
``check_cycles=True``.
"""

import logging
from collections import deque
from typing import Iterable, List, Mapping, Optional

from libs.core.models import Endpoint, InterfacePrerequisite, Operation
from libs.preliminary.validation_result import IssueCategory, ValidationIssue

logger = logging.getLogger(__name__)


def associate(operations: Iterable[Operation]) -> dict[Endpoint, Operation]:
    """Endpoint -> Operation lookup."""
    return {operation.endpoint: operation for operation in operations}


def is_candidate(operation: Operation) -> bool:
    return operation.authorization_type is None


def is_prerequisite(operation: Operation) -> bool:
    return is_candidate(operation) and operation.method == "post"


def prerequisite_table(operations: Iterable[Operation], target: Endpoint) -> str:
    """Markdown table of operations that may serve as prerequisites of ``target``."""
    rows = [
        f"{op.path} | {op.method}"
        for op in operations
        if is_prerequisite(op) and op.endpoint != target
    ]
    return "\n".join(
        [
            "You have to select one of the endpoints below",
            "",
            "Path | Method",
            "-----|-------",
            *rows,
        ]
    )


def validate_prerequisites(
    operations: List[Operation],
    operation: Operation,
    complete: InterfacePrerequisite,
    accessor: str = "$input.request",
    lookup: Optional[Mapping[Endpoint, Operation]] = None,
    check_cycles: bool = False,
) -> List[ValidationIssue]:
    """
    Validate the prerequisites declared for one target operation.

    Args:
        operations: Every known operation
        operation: Target operation being analyzed
        complete: The agent's declaration for the target
        accessor: Path prefix of the declaration inside the function call
        lookup: Prebuilt endpoint lookup (built from ``operations`` if omitted)
        check_cycles: Also report multi-hop cycles back to the target

    Returns:
        Issues; at most one per declared prerequisite, plus one for an
        endpoint mismatch
    """
    lookup = lookup if lookup is not None else associate(operations)
    target = operation.endpoint
    table: Optional[str] = None

    def get_table() -> str:
        nonlocal table
        if table is None:
            table = prerequisite_table(operations, target)
        return table

    issues: List[ValidationIssue] = []
    if complete.endpoint != target:
        issues.append(
            ValidationIssue(
                path=f"{accessor}.endpoint",
                value=complete.endpoint,
                expected=f'{{"path": "{target.path}", "method": "{target.method}"}}',
                description="\n".join(
                    [
                        "## ERROR: Endpoint Mismatch",
                        "",
                        "The endpoint in your response must exactly match the target operation.",
                        "",
                        f"- Target operation: `{target.method} {target.path}`",
                        f"- Your response endpoint: `{complete.endpoint.method} {complete.endpoint.path}`",
                        "",
                        "Returning a different endpoint means you analyzed the wrong operation.",
                    ]
                ),
                category=IssueCategory.ENDPOINT_MISMATCH,
            )
        )

    graph: Optional[dict[Endpoint, List[Endpoint]]] = None
    for i, prerequisite in enumerate(complete.prerequisites):
        endpoint = prerequisite.endpoint
        path = f"{accessor}.prerequisites[{i}].endpoint"
        found = lookup.get(endpoint)

        if found is None:
            issues.append(
                ValidationIssue(
                    path=path,
                    value=endpoint,
                    expected="Endpoint",
                    description="\n".join(
                        [
                            "## ERROR: Prerequisite Operation Does Not Exist",
                            "",
                            f"`{endpoint.method} {endpoint.path}` is not one of the API operations.",
                            "Only use operations you can see in your context; never invent endpoints.",
                            "",
                            get_table(),
                        ]
                    ),
                    category=IssueCategory.NOT_FOUND,
                )
            )
        elif endpoint == target:
            issues.append(
                ValidationIssue(
                    path=path,
                    value=endpoint,
                    expected="Different Operation Endpoint from Target Operation",
                    description="\n".join(
                        [
                            "## CRITICAL ERROR: Self-Reference Detected",
                            "",
                            f"You listed the target operation `{target.method} {target.path}` "
                            "as its own prerequisite.",
                            "An operation cannot be its own prerequisite: that is a circular dependency.",
                            "Remove this entry, and only list operations creating DIFFERENT resources.",
                            "",
                            get_table(),
                        ]
                    ),
                    category=IssueCategory.SELF_REFERENCE,
                )
            )
        elif not is_prerequisite(found):
            issues.append(
                ValidationIssue(
                    path=path,
                    value=endpoint,
                    expected="Endpoint",
                    description="\n".join(
                        [
                            "## ERROR: Invalid Prerequisite Type",
                            "",
                            f"`{endpoint.method} {endpoint.path}` exists but cannot be a prerequisite.",
                            "Only post operations without authentication can serve as prerequisites.",
                            "",
                            f"- Method: {found.method}",
                            f"- Has Authentication: {'YES' if found.authorization_type is not None else 'NO'}",
                            "",
                            get_table(),
                        ]
                    ),
                    category=IssueCategory.INVALID_PREREQUISITE,
                )
            )
        elif check_cycles:
            if graph is None:
                graph = _declared_graph(lookup, target, complete)
            cycle = _path_back(graph, endpoint, target)
            if cycle is not None:
                chain = " -> ".join(str(e) for e in [target, *cycle])
                issues.append(
                    ValidationIssue(
                        path=path,
                        value=endpoint,
                        expected="Endpoint without a dependency path back to the target",
                        description="\n".join(
                            [
                                "## ERROR: Circular Dependency",
                                "",
                                f"Declaring `{endpoint}` closes a dependency cycle:",
                                "",
                                f"    {chain}",
                                "",
                                "Remove this prerequisite or break the cycle.",
                            ]
                        ),
                        category=IssueCategory.CIRCULAR_DEPENDENCY,
                    )
                )
    if issues:
        logger.debug(f"{target}: {len(issues)} prerequisite issue(s)")
    return issues


# =============================================================================
# Cycles
# =============================================================================

def _declared_graph(
    lookup: Mapping[Endpoint, Operation],
    target: Endpoint,
    complete: InterfacePrerequisite,
) -> dict[Endpoint, List[Endpoint]]:
    graph = {
        endpoint: [pre.endpoint for pre in operation.prerequisites]
        for endpoint, operation in lookup.items()
    }
    graph[target] = [pre.endpoint for pre in complete.prerequisites]
    return graph


def _path_back(
    graph: Mapping[Endpoint, List[Endpoint]],
    start: Endpoint,
    target: Endpoint,
) -> Optional[List[Endpoint]]:
    """Shortest prerequisite path from ``start`` to ``target`` (BFS), if any."""
    parents: dict[Endpoint, Optional[Endpoint]] = {start: None}
    queue = deque([start])
    while queue:
        current = queue.popleft()
        if current == target:
            path = []
            node: Optional[Endpoint] = current
            while node is not None:
                path.append(node)
                node = parents[node]
            return list(reversed(path))
        for nxt in graph.get(current, []):
            if nxt not in parents:
                parents[nxt] = current
                queue.append(nxt)
    return None


def find_cycles(operations: Iterable[Operation]) -> List[List[Endpoint]]:
    """
    Every elementary prerequisite cycle in the operation graph, each reported
    once, starting from its smallest endpoint.

    Johnson's algorithm: for each start node in (path, method) order, search
    only the strongly connected component containing it among nodes not
    smaller than it, blocking nodes that cannot currently reach the start.
    Cost is O((nodes + edges) * (cycles + 1)), not the number of paths.
    """
    lookup = associate(operations)
    graph = {
        ep: list(dict.fromkeys(pre.endpoint for pre in op.prerequisites if pre.endpoint in lookup))
        for ep, op in lookup.items()
    }
    order = sorted(graph, key=_rank)

    cycles: List[List[Endpoint]] = []
    for i, start in enumerate(order):
        allowed = set(order[i:])
        component = _component(graph, start, allowed)
        if start in graph[start] or len(component) > 1:
            cycles.extend(_circuits(graph, start, component))
    return cycles


def _rank(endpoint: Endpoint) -> tuple[str, str]:
    return (endpoint.path, endpoint.method)


def _reachable(graph: Mapping[Endpoint, List[Endpoint]], start: Endpoint, allowed: set) -> set:
    seen = {start}
    stack = [start]
    while stack:
        for nxt in graph.get(stack.pop(), []):
            if nxt in allowed and nxt not in seen:
                seen.add(nxt)
                stack.append(nxt)
    return seen


def _component(
    graph: Mapping[Endpoint, List[Endpoint]],
    start: Endpoint,
    allowed: set,
) -> set:
    """Strongly connected component of ``start`` within ``allowed``."""
    reverse: dict[Endpoint, List[Endpoint]] = {}
    for source, targets in graph.items():
        for target in targets:
            reverse.setdefault(target, []).append(source)
    return _reachable(graph, start, allowed) & _reachable(reverse, start, allowed)


def _circuits(
    graph: Mapping[Endpoint, List[Endpoint]],
    start: Endpoint,
    component: set,
) -> List[List[Endpoint]]:
    def successors(node: Endpoint) -> List[Endpoint]:
        return [nxt for nxt in graph[node] if nxt in component]

    def unblock(node: Endpoint) -> None:
        pending = {node}
        while pending:
            current = pending.pop()
            if current in blocked:
                blocked.discard(current)
                pending.update(blocked_by.pop(current, set()))

    found: List[List[Endpoint]] = []
    blocked = {start}
    blocked_by: dict[Endpoint, set] = {}
    closed: set = set()
    path = [start]
    stack = [(start, iter(successors(start)))]
    while stack:
        node, pending_successors = stack[-1]
        nxt = next(pending_successors, None)
        if nxt is not None:
            if nxt == start:
                found.append(list(path))
                closed.update(path)
            elif nxt not in blocked:
                path.append(nxt)
                blocked.add(nxt)
                closed.discard(nxt)
                stack.append((nxt, iter(successors(nxt))))
            continue

        # every successor explored
        if node in closed:
            unblock(node)
        else:
            for succ in successors(node):
                blocked_by.setdefault(succ, set()).add(node)
        stack.pop()
        path.pop()
    return found
