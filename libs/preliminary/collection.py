"""
Collection Store - Available/Disclosed pools per resource kind.

Available is a read-only snapshot captured at session start. Disclosed is
owned by one session and only ever grows; every disclosed key is also an
available key.
"""

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Hashable, Iterable, Mapping, Optional, Union

from libs.core.exceptions import StructuralError
from libs.core.models import PipelineState
from libs.preliminary.kinds import PreliminaryKind, format_key, item_key

logger = logging.getLogger(__name__)

ItemSource = Union[Mapping[Hashable, Any], Iterable[Any]]


@dataclass
class Collection:
    """Available/Disclosed pair for one kind."""

    kind: PreliminaryKind
    available: Mapping[Hashable, Any]
    disclosed: dict[Hashable, Any] = field(default_factory=dict)

    def undisclosed(self) -> list[Hashable]:
        """Available keys not yet shown to the agent, in snapshot order."""
        return [key for key in self.available if key not in self.disclosed]

    @property
    def exhausted(self) -> bool:
        return all(key in self.disclosed for key in self.available)

    def disclose(self, keys: Iterable[Hashable]) -> list[Hashable]:
        """Add available keys to Disclosed; returns the ones that were new.

        Keys missing from Available are ignored here; the validator rejects
        such requests before they reach the store.
        """
        added = []
        for key in keys:
            if key in self.disclosed or key not in self.available:
                continue
            self.disclosed[key] = self.available[key]
            added.append(key)
        return added


def _keyed(kind: PreliminaryKind, source: ItemSource) -> dict[Hashable, Any]:
    if isinstance(source, Mapping):
        return dict(source)
    return {item_key(kind, item): item for item in source}


def create_collection(
    kind: PreliminaryKind,
    available: ItemSource,
    disclosed: Optional[ItemSource] = None,
) -> Collection:
    """
    Build a collection from an available snapshot and an optional seed.

    Raises:
        StructuralError: when a seed item is not part of the available pool
    """
    pool = MappingProxyType(_keyed(kind, available))
    collection = Collection(kind=kind, available=pool)
    if disclosed is None:
        return collection

    for key in _keyed(kind, disclosed):
        if key not in pool:
            raise StructuralError(
                f"Seeded {kind.label} {format_key(key)!r} is not available",
                context={"kind": kind.value, "key": format_key(key)},
            )
        collection.disclosed[key] = pool[key]
    return collection


def snapshot_items(state: PipelineState, kind: PreliminaryKind) -> Optional[ItemSource]:
    """Items of a kind from the pipeline state, or None when that phase is absent."""
    if kind is PreliminaryKind.ANALYSIS_FILES:
        return state.analysis_files
    if kind is PreliminaryKind.DATABASE_SCHEMAS:
        return state.database_models
    if kind is PreliminaryKind.PREVIOUS_ANALYSIS_FILES:
        return state.previous_analysis_files
    if kind is PreliminaryKind.PREVIOUS_DATABASE_SCHEMAS:
        return state.previous_database_models

    document = state.previous_interface if kind.previous else state.interface
    if document is None:
        return None
    if kind.base is PreliminaryKind.INTERFACE_OPERATIONS:
        return document.operations
    return document.schemas


def create_collections(
    state: PipelineState,
    kinds: Iterable[PreliminaryKind],
    available: Optional[Mapping[PreliminaryKind, ItemSource]] = None,
    disclosed: Optional[Mapping[PreliminaryKind, ItemSource]] = None,
) -> dict[PreliminaryKind, Collection]:
    """
    One collection per kind, seeded from the pipeline state.

    ``available`` overrides the state per kind (current kinds only; previous
    iterations always come from the state). Kinds with no source at all get
    an empty pool.
    """
    available = available or {}
    disclosed = disclosed or {}

    collections: dict[PreliminaryKind, Collection] = {}
    for kind in kinds:
        source = None
        if not kind.previous:
            source = available.get(kind)
        if source is None:
            source = snapshot_items(state, kind)
        collections[kind] = create_collection(kind, source or [], disclosed.get(kind))
        logger.debug(
            f"Collection {kind.value}: available={len(collections[kind].available)} "
            f"disclosed={len(collections[kind].disclosed)}"
        )
    return collections
