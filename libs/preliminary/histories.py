"""
Default context formatter for preliminary sessions.

For each supported kind the agent sees:
- an assistant message with every LOADED item in full
- a system message listing the AVAILABLE keys it may still request,
  or noting that the kind is fully loaded

Task-specific prompts are layered on top of these messages by the phase.
"""

import json
from typing import Any, Hashable, Iterable, Mapping

from libs.core.models import AnalysisFile, DatabaseModel, Operation
from libs.preliminary.collection import Collection
from libs.preliminary.kinds import PreliminaryKind, format_key


def render_item(kind: PreliminaryKind, key: Hashable, item: Any) -> str:
    """Full text of one disclosed item."""
    if isinstance(item, AnalysisFile):
        header = f"## {item.filename}"
        if item.document_type:
            header += f" ({item.document_type})"
        return f"{header}\n\n{item.content}"
    if isinstance(item, DatabaseModel):
        body = item.definition or item.description
        return f"## {item.name}\n\n```\n{body}\n```"
    if isinstance(item, Operation):
        dumped = item.model_dump(mode="json", exclude_none=True)
        return f"## {format_key(key)}\n\n```json\n{json.dumps(dumped, indent=2)}\n```"
    return f"## {format_key(key)}\n\n```json\n{json.dumps(item, indent=2, default=str)}\n```"


def format_kind(
    kind: PreliminaryKind,
    available: Mapping[Hashable, Any],
    disclosed: Mapping[Hashable, Any],
) -> list[dict[str, str]]:
    """Context messages for one kind."""
    messages: list[dict[str, str]] = []
    if disclosed:
        loaded = "\n\n".join(render_item(kind, key, item) for key, item in disclosed.items())
        messages.append(
            {
                "role": "assistant",
                "content": f"# Loaded {kind.label} entries\n\n{loaded}",
            }
        )

    remainder = [key for key in available if key not in disclosed]
    if remainder:
        listing = "\n".join(f"- {format_key(key)}" for key in remainder)
        content = (
            f"# Available {kind.label} entries\n\n"
            f"Request any of them with `{kind.request_type}` if you need them.\n\n"
            f"{listing}"
        )
    else:
        content = (
            f"# Available {kind.label} entries\n\n"
            f"Every {kind.label} is already loaded. Do not call `{kind.request_type}`."
        )
    messages.append({"role": "system", "content": content})
    return messages


def format_preliminary_histories(
    collections: Mapping[PreliminaryKind, Collection],
    kinds: Iterable[PreliminaryKind],
) -> list[dict[str, str]]:
    """Context messages for every supported kind, in kind order."""
    messages: list[dict[str, str]] = []
    for kind in kinds:
        collection = collections[kind]
        messages.extend(format_kind(kind, collection.available, collection.disclosed))
    return messages
