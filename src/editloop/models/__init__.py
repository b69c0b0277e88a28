"""Convenience exports for editloop language-model clients."""

from .call_log import CallLog
from .llm_client import (
    LLMClient,
    LLMClientError,
    LLMRequest,
    LLMResponseFormatError,
    LLMRetryError,
    LLMTransportError,
    TextResponse,
)
from .responses import ResponsesClient

__all__ = [
    "CallLog",
    "LLMClient",
    "LLMClientError",
    "LLMRequest",
    "LLMResponseFormatError",
    "LLMRetryError",
    "LLMTransportError",
    "ResponsesClient",
    "TextResponse",
]
