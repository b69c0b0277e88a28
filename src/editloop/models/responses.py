"""Client for the OpenAI JSON Responses API."""

from __future__ import annotations

import json
import logging
import os
import urllib.error
import urllib.request
from typing import Any, Callable, Dict, Iterator, Optional

from .call_log import CallLog
from .llm_client import LLMClient, LLMResponseFormatError, LLMTransportError

__all__ = ["ResponsesClient"]

LOGGER = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://api.openai.com/v1/responses"

Transport = Callable[[Dict[str, Any]], str]


class ResponsesClient(LLMClient):
    """POSTs request payloads and pulls the reply text out of the response body.

    The API key comes from ``api_key``, ``EDITLOOP_API_KEY`` or
    ``OPENAI_API_KEY``. ``EDITLOOP_LLM_TIMEOUT`` overrides ``timeout``. Tests
    pass ``transport`` to avoid the network; no key is needed then.
    """

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_ENDPOINT,
        model: str = "gpt-5-mini",
        transport: Optional[Transport] = None,
        timeout: float = 120.0,
        max_attempts: int = 3,
        retry_delay: float = 0.5,
        call_log: CallLog | None = None,
    ) -> None:
        super().__init__(model=model, max_attempts=max_attempts, retry_delay=retry_delay, call_log=call_log)
        self._api_key = api_key or os.getenv("EDITLOOP_API_KEY") or os.getenv("OPENAI_API_KEY")
        if transport is None and not self._api_key:
            raise ValueError("An API key is required when using the default transport.")
        self._base_url = base_url
        self._timeout = _timeout_from_env(timeout)
        self._transport = transport or self._post

    def _raw_invoke(self, payload: Dict[str, Any]) -> str:
        body = self._transport(payload)
        text = extract_output_text(body)
        if text is None:
            raise LLMResponseFormatError("Response did not contain any output text.")
        return text

    def _post(self, payload: Dict[str, Any]) -> str:
        LOGGER.debug("POST %s operation=%s", self._base_url, payload.get("metadata", {}).get("operation"))
        request = urllib.request.Request(
            self._base_url,
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json", "Authorization": f"Bearer {self._api_key}"},
            method="POST",
        )
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                return response.read().decode("utf-8")
        except urllib.error.HTTPError as error:  # pragma: no cover - network-dependent
            detail = error.read().decode("utf-8", errors="ignore")
            raise LLMTransportError(f"HTTP {error.code}: {detail}") from error
        except urllib.error.URLError as error:  # pragma: no cover - network-dependent
            raise LLMTransportError(f"Failed to reach {self._base_url}: {error.reason}") from error
        except TimeoutError as error:  # pragma: no cover - network-dependent
            raise LLMTransportError(f"Request timed out after {self._timeout}s") from error


def _timeout_from_env(default: float) -> float:
    override = os.getenv("EDITLOOP_LLM_TIMEOUT")
    if not override:
        return default
    try:
        value = float(override)
    except ValueError:
        LOGGER.warning("Ignoring invalid EDITLOOP_LLM_TIMEOUT value %r", override)
        return default
    return value if value > 0 else default


def extract_output_text(body: str) -> Optional[str]:
    """Return the first non-empty text (or JSON block) in a response body.

    Understands Responses API ``output`` items and chat-completions style
    ``choices``. A body that is not JSON is returned unchanged.
    """
    if not body:
        return None
    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        return body
    if not isinstance(data, dict):
        return body
    nested = data.get("response") if isinstance(data.get("response"), dict) else {}
    for container in (data.get("output") or data.get("outputs"), nested.get("output"), data.get("choices")):
        for text in _texts(container):
            return text
    return body


def _texts(container: Any) -> Iterator[str]:
    if isinstance(container, dict):
        container = [container]
    for item in container or ():
        if not isinstance(item, dict):
            continue
        for part in item.get("content") if isinstance(item.get("content"), list) else ():
            if not isinstance(part, dict):
                continue
            if isinstance(part.get("json"), (dict, list)):
                yield json.dumps(part["json"])
            elif isinstance(part.get("text"), str) and part["text"].strip():
                yield part["text"]
        message = item.get("message")
        candidates = (item.get("text"), message.get("content") if isinstance(message, dict) else None)
        for candidate in candidates:
            if isinstance(candidate, str) and candidate.strip():
                yield candidate
