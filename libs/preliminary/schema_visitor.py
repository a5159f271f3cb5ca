"""
Schema type graph traversal.

Schema types are JSON-schema-like dicts. The walker descends into object
properties, array items, unions and additionalProperties, reporting every
``$ref`` and every object node it meets. Named references may form cycles
(``Category.children -> Category``), so following them is always guarded by a
visited set.
"""

from collections import deque
from typing import Any, Callable, Iterable, Iterator, Mapping, Optional

REF_PREFIX = "#/components/schemas/"
DATABASE_SCHEMA_MARKER = "x-database-schema"

_UNION_KEYS = ("oneOf", "anyOf", "allOf", "prefixItems")


def ref_name(ref: str) -> str:
    """Type name referenced by a ``$ref`` string."""
    return ref.split("/")[-1]


def _children(node: Mapping[str, Any]) -> Iterator[Any]:
    properties = node.get("properties")
    if isinstance(properties, Mapping):
        yield from properties.values()

    items = node.get("items")
    if isinstance(items, list):
        yield from items
    elif items is not None:
        yield items

    additional = node.get("additionalProperties")
    if isinstance(additional, Mapping):
        yield additional

    for key in _UNION_KEYS:
        members = node.get(key)
        if isinstance(members, list):
            yield from members


def walk(schema: Any, closure: Callable[[Mapping[str, Any]], None]) -> None:
    """Call ``closure`` on every node of one inline schema (refs not followed)."""
    stack = [schema]
    while stack:
        node = stack.pop()
        if not isinstance(node, Mapping):
            continue
        closure(node)
        stack.extend(_children(node))


def direct_references(schema: Any) -> list[str]:
    """Type names referenced anywhere inside one schema definition."""
    names: list[str] = []

    def closure(node: Mapping[str, Any]) -> None:
        ref = node.get("$ref")
        if isinstance(ref, str):
            names.append(ref_name(ref))

    walk(schema, closure)
    return names


def collect_references(
    seeds: Iterable[str],
    schemas: Mapping[str, Any],
) -> tuple[set[str], set[str]]:
    """
    Every type name reachable from ``seeds`` through ``$ref`` edges.

    Returns:
        (reachable names present in ``schemas``, dangling names missing from it)
        The seeds themselves are included in the first set when present.
    """
    found: set[str] = set()
    dangling: set[str] = set()
    queue = deque(seeds)
    while queue:
        name = queue.popleft()
        if name in found or name in dangling:
            continue
        definition = schemas.get(name)
        if definition is None:
            dangling.add(name)
            continue
        found.add(name)
        queue.extend(direct_references(definition))
    return found, dangling


def database_markers(schema: Any) -> list[str]:
    """Storage model names attached to object nodes of one schema definition."""
    names: list[str] = []

    def closure(node: Mapping[str, Any]) -> None:
        if node.get("type") != "object" and "properties" not in node:
            return
        marker: Optional[str] = node.get(DATABASE_SCHEMA_MARKER)
        if marker:
            names.append(marker)

    walk(schema, closure)
    return names
