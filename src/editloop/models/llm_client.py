"""Schema-validated access to a generative model.

Every call names an operation (``selectFilesToEdit``, ``extractFilenames``
...) and a response type. The client asks the model for JSON matching the
type's schema, decodes the reply leniently, validates it with pydantic, and
re-asks when the reply cannot be used.
"""

from __future__ import annotations

import ast
import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from pydantic import ValidationError
from pydantic.type_adapter import TypeAdapter

from .call_log import CallLog

__all__ = [
    "LLMClient",
    "LLMClientError",
    "LLMRequest",
    "LLMResponseFormatError",
    "LLMRetryError",
    "LLMTransportError",
    "TextResponse",
]

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

TEXT_SYSTEM_PROMPT = (
    'Answer with a single JSON object {"text": "<your full answer>"} and nothing else. '
    "Do not wrap the object in markdown."
)

_FENCE_RE = re.compile(r"```[a-zA-Z]*\s*\n(.*?)```", re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")
_SMART_QUOTES = str.maketrans({"\u201c": '"', "\u201d": '"', "\u2018": "'", "\u2019": "'", "\u00a0": " ", "\ufeff": ""})


class LLMClientError(RuntimeError):
    """Any failure to obtain a usable answer from the model."""


class LLMTransportError(LLMClientError):
    """The request never produced a reply (network, HTTP status, timeout)."""


class LLMResponseFormatError(LLMClientError):
    """The reply contained no decodable JSON."""


class LLMRetryError(LLMClientError):
    """Every attempt produced an unusable reply."""


@dataclass(slots=True)
class TextResponse:
    """Envelope for free-form answers."""

    text: str


def strict_schema(schema: Any) -> Any:
    """Return ``schema`` with every object closed and all its properties required."""
    if isinstance(schema, list):
        return [strict_schema(item) for item in schema]
    if not isinstance(schema, dict):
        return schema
    closed = {key: strict_schema(value) for key, value in schema.items()}
    if closed.get("type") == "object":
        closed["additionalProperties"] = False
        if isinstance(closed.get("properties"), dict):
            closed["required"] = sorted(closed["properties"])
    return closed


@dataclass(slots=True)
class LLMRequest(Generic[T]):
    """One generative call: the prompt, the expected type and bookkeeping."""

    prompt: str
    response_model: Type[T]
    operation: str = "generate"
    model: Optional[str] = None
    system_prompt: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    temperature: float = 0.0
    max_attempts: Optional[int] = None

    def to_payload(self, default_model: str) -> Dict[str, Any]:
        """Build a JSON Responses API body with a strict output schema."""
        turns = [("system", self.system_prompt), ("user", self.prompt)]
        schema = strict_schema(TypeAdapter(self.response_model).json_schema())
        payload: Dict[str, Any] = {
            "model": self.model or default_model,
            "input": [
                {"role": role, "content": [{"type": "input_text", "text": text}]} for role, text in turns if text
            ],
            "text": {
                "format": {
                    "type": "json_schema",
                    "name": getattr(self.response_model, "__name__", "response"),
                    "schema": schema,
                    "strict": True,
                }
            },
            "metadata": _metadata_strings({"operation": self.operation, **self.metadata}),
        }
        if self.temperature:
            payload["temperature"] = self.temperature
        return payload


def _metadata_strings(values: Dict[str, Any]) -> Dict[str, str]:
    # The API only accepts short string values.
    rendered: Dict[str, str] = {}
    for key, value in values.items():
        text = value if isinstance(value, str) else json.dumps(value, sort_keys=True, separators=(",", ":"))
        rendered[key] = text if len(text) <= 512 else text[:509] + "..."
    return rendered


def decode_model_json(raw: str) -> Any:
    """Decode the JSON value in a model reply.

    Tries, in order: the whole reply, the body of a markdown fence, and the
    first balanced object or array with trailing commas removed. Each
    candidate is also tried as a Python literal since models sometimes answer
    with single quotes.
    """
    text = raw.strip().translate(_SMART_QUOTES)
    if not text:
        raise LLMResponseFormatError("Model returned an empty response.")

    candidates: List[str] = [text]
    fenced = _FENCE_RE.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())
    balanced = _first_balanced(candidates[-1])
    if balanced:
        candidates.append(_TRAILING_COMMA_RE.sub(r"\1", balanced))

    for candidate in dict.fromkeys(candidates):
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            pass
        try:
            literal = ast.literal_eval(candidate)
        except (SyntaxError, ValueError):
            continue
        if isinstance(literal, (dict, list)):
            return json.loads(json.dumps(literal, default=str))

    raise LLMResponseFormatError(f"Model returned invalid JSON: {text[:200]}")


def _first_balanced(text: str) -> str | None:
    closers = {"{": "}", "[": "]"}
    start: int | None = None
    stack: List[str] = []
    for index, char in enumerate(text):
        if char in closers:
            if start is None:
                start = index
            stack.append(closers[char])
        elif stack and char == stack[-1]:
            stack.pop()
            if not stack:
                return text[start : index + 1]
    return None


class LLMClient:
    """Base client; subclasses provide the transport in :meth:`_raw_invoke`.

    ``generate_text`` and ``generate_json`` are single calls from the caller's
    point of view. Re-asking only happens when a reply fails to decode or
    validate, or the transport drops the request.
    """

    def __init__(
        self,
        model: str,
        *,
        max_attempts: int = 5,
        retry_delay: float = 0.5,
        call_log: CallLog | None = None,
    ) -> None:
        self._model = model
        self._max_attempts = max(1, max_attempts)
        self._retry_delay = retry_delay
        self._call_log = call_log

    @property
    def model(self) -> str:
        return self._model

    def generate_text(self, prompt: str, *, operation: str = "generate_text") -> str:
        request = LLMRequest(
            prompt=prompt,
            response_model=TextResponse,
            operation=operation,
            system_prompt=TEXT_SYSTEM_PROMPT,
        )
        return self.invoke(request).text

    def generate_json(self, prompt: str, response_model: Type[T], *, operation: str = "generate_json") -> T:
        return self.invoke(LLMRequest(prompt=prompt, response_model=response_model, operation=operation))

    def invoke(self, request: LLMRequest[T]) -> T:
        """Run ``request`` until a reply validates or attempts run out.

        Every call, successful or not, is written to the call log when one is
        configured.
        """
        limit = request.max_attempts or self._max_attempts
        adapter = TypeAdapter(request.response_model)
        payload = request.to_payload(self._model)
        attempts: List[Dict[str, Any]] = []
        last_error: Exception | None = None

        for attempt in range(1, limit + 1):
            raw: str | None = None
            try:
                raw = self._raw_invoke(payload)
                result = adapter.validate_python(decode_model_json(raw))
            except (LLMTransportError, LLMResponseFormatError, ValidationError) as error:
                last_error = error
                attempts.append({"attempt": attempt, "raw": raw, "error": str(error)})
                LOGGER.debug("%s attempt %d/%d failed: %s", request.operation, attempt, limit, error)
                if attempt < limit:
                    time.sleep(self._retry_delay)
                continue
            attempts.append({"attempt": attempt, "raw": raw, "error": None})
            self._log_call(request, attempts, result=result)
            return result

        failure = LLMRetryError(
            f"{request.operation}: no schema-valid reply from {request.model or self._model} "
            f"after {limit} attempt(s)"
        )
        self._log_call(request, attempts, error=failure)
        raise failure from last_error

    def _log_call(self, request: LLMRequest[Any], attempts: List[Dict[str, Any]], **outcome: Any) -> None:
        if self._call_log is not None:
            self._call_log.write(request.operation, request.prompt, attempts, **outcome)

    def _raw_invoke(self, payload: Dict[str, Any]) -> str:
        """Send ``payload`` and return the model's reply text."""
        raise NotImplementedError("Subclasses must implement _raw_invoke().")
