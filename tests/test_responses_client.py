from __future__ import annotations

import json
from dataclasses import dataclass

import pytest

from editloop.models.responses import ResponsesClient


@dataclass(slots=True)
class SummaryPayload:
    summary: str


def _responses_api_body(text: str) -> str:
    return json.dumps(
        {
            "id": "resp_mock",
            "object": "response",
            "status": "completed",
            "output": [
                {
                    "id": "msg_mock",
                    "type": "message",
                    "role": "assistant",
                    "content": [{"type": "output_text", "text": text}],
                }
            ],
        }
    )


def test_extracts_output_text_from_responses_api() -> None:
    seen: list[dict] = []

    def transport(payload: dict) -> str:
        seen.append(payload)
        return _responses_api_body(json.dumps({"summary": "Add a subtract helper."}))

    client = ResponsesClient(model="gpt-5-mini", transport=transport)
    result = client.generate_json("prompt", SummaryPayload, operation="summariseRequirements")

    assert result.summary == "Add a subtract helper."
    assert seen[0]["model"] == "gpt-5-mini"


def test_extracts_json_content_block() -> None:
    def transport(_: dict) -> str:
        return json.dumps(
            {"output": [{"type": "message", "content": [{"type": "output_json", "json": {"summary": "ok"}}]}]}
        )

    client = ResponsesClient(transport=transport)

    assert client.generate_json("prompt", SummaryPayload).summary == "ok"


def test_extracts_chat_completions_style_payload() -> None:
    def transport(_: dict) -> str:
        return json.dumps({"choices": [{"message": {"content": '{"text": "spec body"}'}}]})

    client = ResponsesClient(transport=transport)

    assert client.generate_text("prompt") == "spec body"


def test_requires_api_key_without_custom_transport(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("EDITLOOP_API_KEY", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    with pytest.raises(ValueError):
        ResponsesClient()


def test_timeout_override_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EDITLOOP_LLM_TIMEOUT", "7.5")

    client = ResponsesClient(transport=lambda _: "{}")

    assert client._timeout == 7.5
