"""
Function-call conversation adapter.

Turns one preliminary round into a chat completion that must call the
``process`` function, and parses the call back into a request of the union
offered for that round.

Usage:
    converser = FunctionCallConverser(
        system_prompt=INTERFACE_PREREQUISITE_PROMPT,
        instructions=[{"role": "user", "content": "Analyze POST /orders"}],
    )
    result = await controller.orchestrate(converser)
"""

import json
import logging
import time
from typing import Any, Optional

from pydantic import ValidationError

from libs.core.logging_config import log_llm_call
from libs.llm.client import LLMClient, TokenUsage, get_llm_client
from libs.preliminary.controller import ConversationContext, ConverseResult
from libs.preliminary.kinds import PreliminaryKind
from libs.preliminary.requests import issues_from_validation_error, parse_request
from libs.preliminary.validation_result import IssueCategory, ValidationIssue

logger = logging.getLogger(__name__)

FUNCTION_NAME = "process"

FUNCTION_DESCRIPTION = (
    "Either request more reference material with one of the get* request "
    "types, or finish the task with the complete request."
)


class FunctionCallConverser:
    """Callable satisfying the ``Converse`` contract over an LLMClient."""

    def __init__(
        self,
        system_prompt: str,
        instructions: Optional[list[dict[str, str]]] = None,
        client: Optional[LLMClient] = None,
        prompt_cache_key: Optional[str] = None,
    ):
        self.system_prompt = system_prompt
        self.instructions = instructions or []
        self.client = client or get_llm_client()
        self.prompt_cache_key = prompt_cache_key

    def build_messages(self, context: ConversationContext) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": self.system_prompt},
            *context.histories,
            *self.instructions,
            *context.feedback_messages(),
        ]

    def build_tool(self, context: ConversationContext) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": FUNCTION_NAME,
                "description": FUNCTION_DESCRIPTION,
                "parameters": context.request_schema,
            },
        }

    async def __call__(self, context: ConversationContext) -> ConverseResult:
        start_time = time.time()
        response = await self.client.complete(
            messages=self.build_messages(context),
            tools=[self.build_tool(context)],
            tool_choice={"type": "function", "function": {"name": FUNCTION_NAME}},
            prompt_cache_key=self.prompt_cache_key,
        )
        usage = TokenUsage.from_usage(response.usage)
        log_llm_call(
            logger,
            context.source_id,
            response.model,
            tokens=usage.total_tokens,
            elapsed_ms=(time.time() - start_time) * 1000,
        )

        calls = [call for call in response.tool_calls if call.name == FUNCTION_NAME]
        if not calls:
            return ConverseResult(
                reply=None,
                usage=usage,
                issues=[
                    _issue(
                        "$input",
                        response.content,
                        FUNCTION_NAME,
                        "You did not call the `process` function. Call it with exactly one request.",
                    )
                ],
                arguments=response.content,
            )

        raw = calls[0].arguments
        try:
            arguments = json.loads(raw)
        except json.JSONDecodeError as e:
            return ConverseResult(
                reply=None,
                usage=usage,
                issues=[_issue("$input", raw, "JSON object", f"Arguments are not valid JSON: {e}")],
                arguments=raw,
            )

        try:
            # parse against every kind so an inactive request type is reported
            # by the negotiation validator rather than as a schema mismatch
            reply = parse_request(list(PreliminaryKind), context.complete_model, arguments)
        except ValidationError as e:
            return ConverseResult(
                reply=None,
                usage=usage,
                issues=issues_from_validation_error(e),
                arguments=arguments,
            )
        return ConverseResult(reply=reply, usage=usage, arguments=arguments)


def _issue(path: str, value: Any, expected: str, description: str) -> ValidationIssue:
    return ValidationIssue(
        path=path,
        value=value,
        expected=expected,
        description=description,
        category=IssueCategory.MALFORMED,
    )
