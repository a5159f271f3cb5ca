# conftest.py
# Ensure the repository root is on sys.path so pytest can import the
# top-level namespace packages (libs, apps) consistently, and provide the
# fixtures shared by the preliminary and phase tests.

import logging
import sys
from pathlib import Path
from typing import Any, Callable, List, Union

import pytest

# conftest is at: tests/conftest.py
# Walk up one level to reach the repository root.
ROOT = Path(__file__).resolve().parents[1]
ROOT_STR = str(ROOT)

if ROOT_STR not in sys.path:
    # Insert at front so repo root takes precedence during imports
    sys.path.insert(0, ROOT_STR)

from libs.core.models import (  # noqa: E402
    AnalysisFile,
    DatabaseModel,
    Endpoint,
    InterfaceDocument,
    Operation,
    OperationBody,
    PipelineState,
    Prerequisite,
)
from libs.core.logging_config import reset_logging  # noqa: E402
from libs.llm.client import TokenUsage  # noqa: E402
from libs.preliminary.controller import ConversationContext, ConverseResult  # noqa: E402


def endpoint(method: str, path: str) -> Endpoint:
    return Endpoint(method=method, path=path)


def operation(
    method: str,
    path: str,
    prerequisites: List[Endpoint] = (),
    authorization_type: str = None,
    request_body: str = None,
    response_body: str = None,
) -> Operation:
    return Operation(
        method=method,
        path=path,
        authorization_type=authorization_type,
        request_body=OperationBody(type_name=request_body) if request_body else None,
        response_body=OperationBody(type_name=response_body) if response_body else None,
        prerequisites=[Prerequisite(endpoint=e) for e in prerequisites],
    )


def ref(name: str) -> dict[str, Any]:
    return {"$ref": f"#/components/schemas/{name}"}


@pytest.fixture
def shop_interface() -> InterfaceDocument:
    """Small shopping API: customers, orders and an authenticated admin route."""
    return InterfaceDocument(
        operations=[
            operation("post", "/customers", request_body="ICustomer.ICreate", response_body="ICustomer"),
            operation(
                "post",
                "/orders",
                prerequisites=[endpoint("post", "/customers")],
                request_body="IOrder.ICreate",
                response_body="IOrder",
            ),
            operation("get", "/orders", response_body="IPageIOrder"),
            operation("delete", "/orders/{id}", authorization_type="admin"),
        ],
        schemas={
            "ICustomer": {
                "type": "object",
                "x-database-schema": "shop_customers",
                "properties": {"id": {"type": "string"}, "name": {"type": "string"}},
            },
            "ICustomer.ICreate": {
                "type": "object",
                "properties": {"name": {"type": "string"}},
            },
            "IOrder": {
                "type": "object",
                "x-database-schema": "shop_orders",
                "properties": {
                    "id": {"type": "string"},
                    "customer": ref("ICustomer"),
                    "items": {"type": "array", "items": ref("IOrderItem")},
                },
            },
            "IOrderItem": {
                "type": "object",
                "properties": {"quantity": {"type": "integer"}, "order": ref("IOrder")},
            },
            "IOrder.ICreate": {
                "type": "object",
                "properties": {"customer_id": {"type": "string"}},
            },
            "IPageIOrder": {
                "type": "object",
                "properties": {"data": {"type": "array", "items": ref("IOrder")}},
            },
        },
    )


@pytest.fixture
def shop_state(shop_interface) -> PipelineState:
    return PipelineState(
        analysis_files=[
            AnalysisFile(filename="01-overview.md", document_type="overview", content="Shop."),
            AnalysisFile(filename="02-orders.md", document_type="requirement", content="Orders."),
        ],
        database_models=[
            DatabaseModel(name="shop_customers", definition="model shop_customers {}"),
            DatabaseModel(name="shop_orders", definition="model shop_orders {}"),
        ],
        interface=shop_interface,
    )


Step = Union[Any, Callable[[ConversationContext], Any]]


class ScriptedConverser:
    """
    Converse callable replaying a fixed list of replies.

    Each step is a request model, None (no function call), or a callable
    receiving the round's context and returning one of those. The last step
    repeats once the script runs out.
    """

    def __init__(self, steps: List[Step]):
        self.steps = list(steps)
        self.contexts: List[ConversationContext] = []

    async def __call__(self, context: ConversationContext) -> ConverseResult:
        index = min(len(self.contexts), len(self.steps) - 1)
        self.contexts.append(context)
        step = self.steps[index]
        reply = step(context) if callable(step) else step
        return ConverseResult(
            reply=reply,
            usage=TokenUsage(prompt_tokens=10, completion_tokens=5),
            arguments=reply.model_dump(mode="json") if reply is not None else None,
        )


@pytest.fixture
def scripted():
    """Factory for scripted conversers."""
    return ScriptedConverser


@pytest.fixture
def clean_logging():
    """Undo handlers and root level set by setup_logging."""
    root = logging.getLogger()
    level = root.level
    reset_logging()
    yield
    reset_logging()
    root.setLevel(level)
