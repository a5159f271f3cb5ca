"""
Unit tests for the collection store.

Tests libs/preliminary/collection.py and libs/preliminary/kinds.py
"""

import pytest

from conftest import endpoint, operation

from libs.core.exceptions import StructuralError
from libs.core.models import AnalysisFile, PipelineState
from libs.preliminary.collection import create_collection, create_collections, snapshot_items
from libs.preliminary.kinds import PreliminaryKind, item_key, with_previous


class TestKinds:
    """Test kind naming helpers."""

    def test_request_type(self):
        assert PreliminaryKind.INTERFACE_SCHEMAS.request_type == "getInterfaceSchemas"
        assert (
            PreliminaryKind.PREVIOUS_ANALYSIS_FILES.request_type
            == "getPreviousAnalysisFiles"
        )

    def test_previous_round_trip(self):
        for kind in PreliminaryKind:
            assert with_previous(kind, kind.previous) is kind
            assert with_previous(kind, True).previous
            assert with_previous(kind, False).base is kind.base

    def test_request_field_shared_by_previous(self):
        assert (
            PreliminaryKind.PREVIOUS_INTERFACE_OPERATIONS.request_field
            == PreliminaryKind.INTERFACE_OPERATIONS.request_field
            == "endpoints"
        )

    def test_operation_key_is_endpoint(self):
        op = operation("POST", "/a")
        assert item_key(PreliminaryKind.INTERFACE_OPERATIONS, op) == endpoint("post", "/a")

    def test_unknown_item_type(self):
        with pytest.raises(TypeError):
            item_key(PreliminaryKind.ANALYSIS_FILES, object())


class TestEndpoint:
    """Endpoints are value types."""

    def test_equal_and_hashable(self):
        a = endpoint("post", "/orders")
        b = operation("POST", "/orders").endpoint
        assert a == b
        assert len({a, b}) == 1
        assert {a: 1}[b] == 1

    def test_method_distinguishes(self):
        assert endpoint("get", "/orders") != endpoint("post", "/orders")


class TestCollection:
    """Test Available/Disclosed bookkeeping."""

    def test_disclose_returns_new_keys(self):
        collection = create_collection(
            PreliminaryKind.ANALYSIS_FILES,
            [AnalysisFile(filename="a.md"), AnalysisFile(filename="b.md")],
        )
        assert collection.disclose(["a.md"]) == ["a.md"]
        assert collection.disclose(["a.md", "b.md"]) == ["b.md"]
        assert collection.exhausted

    def test_disclose_ignores_unavailable(self):
        collection = create_collection(
            PreliminaryKind.ANALYSIS_FILES, [AnalysisFile(filename="a.md")]
        )
        assert collection.disclose(["missing.md"]) == []
        assert "missing.md" not in collection.disclosed

    def test_available_is_read_only(self):
        collection = create_collection(
            PreliminaryKind.ANALYSIS_FILES, [AnalysisFile(filename="a.md")]
        )
        with pytest.raises(TypeError):
            collection.available["b.md"] = AnalysisFile(filename="b.md")

    def test_undisclosed_keeps_snapshot_order(self):
        collection = create_collection(
            PreliminaryKind.INTERFACE_SCHEMAS, {"C": {}, "A": {}, "B": {}}
        )
        collection.disclose(["A"])
        assert collection.undisclosed() == ["C", "B"]

    def test_empty_pool_is_exhausted(self):
        assert create_collection(PreliminaryKind.ANALYSIS_FILES, []).exhausted

    def test_seed_must_be_available(self):
        with pytest.raises(StructuralError):
            create_collection(
                PreliminaryKind.INTERFACE_OPERATIONS,
                [operation("post", "/a")],
                disclosed=[operation("post", "/b")],
            )


class TestCreateCollections:
    """Test collections built from the pipeline state."""

    def test_from_state(self, shop_state):
        collections = create_collections(
            shop_state,
            [PreliminaryKind.ANALYSIS_FILES, PreliminaryKind.INTERFACE_OPERATIONS],
        )
        assert list(collections[PreliminaryKind.ANALYSIS_FILES].available) == [
            "01-overview.md",
            "02-orders.md",
        ]
        assert endpoint("post", "/orders") in collections[PreliminaryKind.INTERFACE_OPERATIONS].available

    def test_available_override(self, shop_state):
        collections = create_collections(
            shop_state,
            [PreliminaryKind.INTERFACE_OPERATIONS],
            available={PreliminaryKind.INTERFACE_OPERATIONS: [operation("put", "/x")]},
        )
        assert list(collections[PreliminaryKind.INTERFACE_OPERATIONS].available) == [
            endpoint("put", "/x")
        ]

    def test_absent_previous_iteration(self, shop_state):
        assert snapshot_items(shop_state, PreliminaryKind.PREVIOUS_INTERFACE_SCHEMAS) is None

    def test_absent_phase_gives_empty_pool(self):
        collections = create_collections(PipelineState(), [PreliminaryKind.DATABASE_SCHEMAS])
        assert collections[PreliminaryKind.DATABASE_SCHEMAS].exhausted
