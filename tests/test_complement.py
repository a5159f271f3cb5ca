"""
Unit tests for the closure enricher.

Tests libs/preliminary/complement.py and libs/preliminary/schema_visitor.py
"""

import pytest

from conftest import endpoint, operation, ref

from libs.core.exceptions import DanglingReferenceError
from libs.core.models import DatabaseModel
from libs.preliminary.collection import create_collection
from libs.preliminary.complement import DanglingPolicy, complement_closure
from libs.preliminary.kinds import PreliminaryKind
from libs.preliminary.schema_visitor import collect_references, database_markers, direct_references

OPERATIONS = PreliminaryKind.INTERFACE_OPERATIONS
SCHEMAS = PreliminaryKind.INTERFACE_SCHEMAS
DATABASE = PreliminaryKind.DATABASE_SCHEMAS


def snapshot(collections):
    return {kind: set(c.disclosed) for kind, c in collections.items()}


class TestSchemaVisitor:
    """Test reference discovery inside schema definitions."""

    def test_nested_references(self):
        schema = {
            "type": "object",
            "properties": {
                "a": ref("A"),
                "list": {"type": "array", "items": ref("B")},
                "either": {"oneOf": [ref("C"), {"type": "null"}]},
                "map": {"type": "object", "additionalProperties": ref("D")},
            },
        }
        assert sorted(direct_references(schema)) == ["A", "B", "C", "D"]

    def test_cyclic_references_terminate(self):
        schemas = {
            "Category": {
                "type": "object",
                "properties": {"children": {"type": "array", "items": ref("Category")}},
            }
        }
        found, dangling = collect_references(["Category"], schemas)
        assert found == {"Category"}
        assert dangling == set()

    def test_dangling_reported(self):
        found, dangling = collect_references(["A"], {"A": ref("Ghost")})
        assert found == {"A"}
        assert dangling == {"Ghost"}

    def test_database_markers(self):
        schema = {
            "type": "object",
            "x-database-schema": "shop_orders",
            "properties": {
                "customer": {"type": "object", "x-database-schema": "shop_customers", "properties": {}},
            },
        }
        assert sorted(database_markers(schema)) == ["shop_customers", "shop_orders"]


class TestOperationClosure:
    """Prerequisite edges between operations."""

    def test_prerequisite_pulled_in(self):
        # GET /a is not a prerequisite of anything disclosed and stays out
        get_a = operation("get", "/a")
        post_a = operation("post", "/a")
        post_b = operation("post", "/b", prerequisites=[endpoint("post", "/a")])
        collections = {
            OPERATIONS: create_collection(OPERATIONS, [get_a, post_a, post_b], disclosed=[post_b])
        }

        complement_closure(collections, [OPERATIONS])

        assert set(collections[OPERATIONS].disclosed) == {
            endpoint("post", "/b"),
            endpoint("post", "/a"),
        }

    def test_transitive_prerequisites(self):
        ops = [
            operation("post", "/a"),
            operation("post", "/b", prerequisites=[endpoint("post", "/a")]),
            operation("post", "/c", prerequisites=[endpoint("post", "/b")]),
        ]
        collections = {OPERATIONS: create_collection(OPERATIONS, ops, disclosed=[ops[2]])}

        complement_closure(collections, [OPERATIONS])

        assert len(collections[OPERATIONS].disclosed) == 3

    def test_prerequisite_cycle_terminates(self):
        ops = [
            operation("post", "/a", prerequisites=[endpoint("post", "/b")]),
            operation("post", "/b", prerequisites=[endpoint("post", "/a")]),
        ]
        collections = {OPERATIONS: create_collection(OPERATIONS, ops, disclosed=[ops[0]])}

        complement_closure(collections, [OPERATIONS])

        assert len(collections[OPERATIONS].disclosed) == 2

    def test_prerequisite_edges_can_be_skipped(self):
        ops = [
            operation("post", "/a"),
            operation("post", "/b", prerequisites=[endpoint("post", "/a")]),
        ]
        collections = {OPERATIONS: create_collection(OPERATIONS, ops, disclosed=[ops[1]])}

        complement_closure(collections, [OPERATIONS], prerequisite=False)

        assert set(collections[OPERATIONS].disclosed) == {endpoint("post", "/b")}

    def test_body_types_pulled_in(self, shop_interface):
        collections = {
            OPERATIONS: create_collection(
                OPERATIONS,
                shop_interface.operations,
                disclosed=[shop_interface.operations[2]],  # get /orders
            ),
            SCHEMAS: create_collection(SCHEMAS, shop_interface.schemas),
        }

        complement_closure(collections, [OPERATIONS, SCHEMAS])

        assert set(collections[SCHEMAS].disclosed) == {
            "IPageIOrder",
            "IOrder",
            "IOrderItem",
            "ICustomer",
        }


class TestSchemaClosure:
    """Reference edges between schema types."""

    def test_nested_reference(self):
        schemas = {
            "Order": {
                "type": "object",
                "properties": {
                    "lines": {
                        "type": "array",
                        "items": {"type": "object", "properties": {"buyer": ref("Customer")}},
                    }
                },
            },
            "Customer": {"type": "object", "properties": {}},
            "Product": {"type": "object", "properties": {}},
        }
        collections = {SCHEMAS: create_collection(SCHEMAS, schemas, disclosed={"Order": schemas["Order"]})}

        complement_closure(collections, [SCHEMAS])

        assert set(collections[SCHEMAS].disclosed) == {"Order", "Customer"}

    def test_database_models_pulled_in(self, shop_interface):
        collections = {
            SCHEMAS: create_collection(
                SCHEMAS, shop_interface.schemas, disclosed={"ICustomer": shop_interface.schemas["ICustomer"]}
            ),
            DATABASE: create_collection(
                DATABASE,
                [DatabaseModel(name="shop_customers"), DatabaseModel(name="shop_orders")],
            ),
        }

        complement_closure(collections, [SCHEMAS, DATABASE])

        assert set(collections[DATABASE].disclosed) == {"shop_customers"}

    def test_inactive_kind_untouched(self, shop_interface):
        collections = {
            SCHEMAS: create_collection(
                SCHEMAS, shop_interface.schemas, disclosed={"ICustomer": shop_interface.schemas["ICustomer"]}
            ),
            DATABASE: create_collection(DATABASE, [DatabaseModel(name="shop_customers")]),
        }

        complement_closure(collections, [SCHEMAS])

        assert collections[DATABASE].disclosed == {}


class TestClosureProperties:
    """Fixed point and Disclosed within Available."""

    def test_idempotent(self, shop_interface, shop_state):
        collections = {
            OPERATIONS: create_collection(
                OPERATIONS, shop_interface.operations, disclosed=[shop_interface.operations[1]]
            ),
            SCHEMAS: create_collection(SCHEMAS, shop_interface.schemas),
            DATABASE: create_collection(DATABASE, shop_state.database_models),
        }
        kinds = [OPERATIONS, SCHEMAS, DATABASE]

        complement_closure(collections, kinds)
        once = snapshot(collections)
        complement_closure(collections, kinds)

        assert snapshot(collections) == once

    def test_disclosed_within_available(self, shop_interface):
        collections = {
            OPERATIONS: create_collection(
                OPERATIONS, shop_interface.operations, disclosed=[shop_interface.operations[1]]
            ),
            SCHEMAS: create_collection(SCHEMAS, shop_interface.schemas),
        }

        complement_closure(collections, [OPERATIONS, SCHEMAS])

        for collection in collections.values():
            assert set(collection.disclosed) <= set(collection.available)


class TestDanglingPolicy:
    """References whose target is missing from Available."""

    def _collections(self):
        schemas = {"Order": {"type": "object", "properties": {"ghost": ref("Ghost")}}}
        return {SCHEMAS: create_collection(SCHEMAS, schemas, disclosed={"Order": schemas["Order"]})}

    def test_skip(self):
        collections = self._collections()
        complement_closure(collections, [SCHEMAS], dangling=DanglingPolicy.SKIP)
        assert set(collections[SCHEMAS].disclosed) == {"Order"}

    def test_error(self):
        with pytest.raises(DanglingReferenceError) as exc_info:
            complement_closure(self._collections(), [SCHEMAS], dangling=DanglingPolicy.ERROR)
        assert exc_info.value.name == "Ghost"

    def test_missing_prerequisite_operation(self):
        ops = [operation("post", "/b", prerequisites=[endpoint("post", "/a")])]
        collections = {OPERATIONS: create_collection(OPERATIONS, ops, disclosed=ops)}

        with pytest.raises(DanglingReferenceError):
            complement_closure(collections, [OPERATIONS], dangling="error")
