"""LLM libraries for Backforge."""

from libs.llm.client import LLMClient, LLMResponse, ToolCall, TokenUsage, get_llm_client

__all__ = [
    "LLMClient",
    "LLMResponse",
    "ToolCall",
    "TokenUsage",
    "get_llm_client",
]
