"""OpenAI-compatible chat completion client for Backforge."""

from dataclasses import dataclass
from typing import Any, Optional

import httpx
from pydantic import BaseModel, Field

from libs.core.config import get_settings
from libs.core.exceptions import LLMError, InterventionRequired


class ToolCall(BaseModel):
    """Function call requested by the model."""

    id: str = ""
    name: str
    arguments: str = "{}"  # raw JSON text as produced by the model


class LLMResponse(BaseModel):
    """LLM response."""

    content: Optional[str] = None
    tool_calls: list[ToolCall] = Field(default_factory=list)
    model: str
    usage: dict[str, Any] = Field(default_factory=dict)
    finish_reason: Optional[str] = None


@dataclass
class TokenUsage:
    """Token usage tracking."""

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
        )

    @classmethod
    def from_usage(cls, usage: dict[str, Any]) -> "TokenUsage":
        return cls(
            prompt_tokens=int(usage.get("prompt_tokens", 0) or 0),
            completion_tokens=int(usage.get("completion_tokens", 0) or 0),
        )


class LLMClient:
    """Async HTTP client for an OpenAI-compatible server."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = get_settings()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            llm = self.settings.llm
            self._client = httpx.AsyncClient(
                base_url=llm.base_url,
                timeout=httpx.Timeout(llm.timeout, connect=10.0),
                headers={"Authorization": f"Bearer {llm.api_key}"},
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def complete(
        self,
        messages: list[dict[str, Any]],
        tools: Optional[list[dict[str, Any]]] = None,
        tool_choice: Optional[Any] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        prompt_cache_key: Optional[str] = None,
    ) -> LLMResponse:
        """
        Send a chat completion request.

        Args:
            messages: Chat messages
            tools: Function definitions offered to the model
            tool_choice: Force a specific function ("required", or a function selector)
            temperature: Sampling temperature (defaults to settings)
            max_tokens: Maximum tokens to generate (defaults to settings)
            prompt_cache_key: Shared key so sibling sessions reuse the prompt cache

        Returns:
            LLMResponse with content and/or tool calls

        Raises:
            LLMError: On API errors
            InterventionRequired: On critical failures (fail-fast mode)
        """
        client = await self._get_client()
        llm = self.settings.llm

        payload: dict[str, Any] = {
            "model": llm.model,
            "messages": messages,
            "temperature": llm.temperature if temperature is None else temperature,
            "max_tokens": llm.max_tokens if max_tokens is None else max_tokens,
        }
        if tools:
            payload["tools"] = tools
        if tool_choice is not None:
            payload["tool_choice"] = tool_choice
        if prompt_cache_key is not None:
            payload["prompt_cache_key"] = prompt_cache_key

        try:
            response = await client.post("/chat/completions", json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            if self.settings.fail_fast:
                raise InterventionRequired(
                    component="LLMClient",
                    error=f"HTTP {e.response.status_code}: {e.response.text}",
                    context={"endpoint": "/chat/completions"},
                )
            raise LLMError(f"HTTP error: {e}") from e
        except httpx.RequestError as e:
            if self.settings.fail_fast:
                raise InterventionRequired(
                    component="LLMClient",
                    error=f"Request failed: {e}",
                    context={"base_url": llm.base_url},
                )
            raise LLMError(f"Request error: {e}") from e

        try:
            choice = data["choices"][0]
            message = choice["message"]
        except (KeyError, IndexError, TypeError) as e:
            raise LLMError(f"Malformed completion payload: {e}", context={"data": data}) from e

        return LLMResponse(
            content=message.get("content"),
            tool_calls=[
                ToolCall(
                    id=call.get("id", ""),
                    name=call["function"]["name"],
                    arguments=call["function"].get("arguments") or "{}",
                )
                for call in message.get("tool_calls") or []
            ],
            model=data.get("model", llm.model),
            usage=data.get("usage") or {},
            finish_reason=choice.get("finish_reason"),
        )

    async def health_check(self) -> bool:
        """Check if the server answers on its model listing."""
        try:
            client = await self._get_client()
            response = await client.get("/models")
            return response.status_code == 200
        except httpx.HTTPError:
            return False


# Singleton instance
_llm_client: LLMClient | None = None


def get_llm_client() -> LLMClient:
    """Get LLM client singleton."""
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client
