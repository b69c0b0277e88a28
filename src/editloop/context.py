"""Per-run context threaded explicitly through the collaborators that need it."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping
from uuid import uuid4


@dataclass(slots=True)
class UserCredentials:
    """Model-provider keys available to the code editor."""

    anthropic_key: str | None = None
    deepseek_key: str | None = None
    openai_key: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "UserCredentials":
        env = os.environ if environ is None else environ
        return cls(
            anthropic_key=env.get("ANTHROPIC_API_KEY") or None,
            deepseek_key=env.get("DEEPSEEK_API_KEY") or None,
            openai_key=env.get("OPENAI_API_KEY") or None,
        )


@dataclass(slots=True)
class TraceSpan:
    """Attribute bag describing the current unit of work."""

    name: str
    attributes: Dict[str, Any] = field(default_factory=dict)

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def set_attributes(self, values: Mapping[str, Any]) -> None:
        self.attributes.update(values)


@dataclass(slots=True)
class AgentContext:
    """Identity, credentials, tracing and cost accounting for a single run."""

    agent_id: str = field(default_factory=lambda: uuid4().hex)
    credentials: UserCredentials = field(default_factory=UserCredentials.from_env)
    span: TraceSpan = field(default_factory=lambda: TraceSpan(name="code_edit_workflow"))
    costs: list[float] = field(default_factory=list)

    def add_cost(self, amount: float) -> None:
        self.costs.append(amount)

    @property
    def total_cost(self) -> float:
        return sum(self.costs)


__all__ = ["AgentContext", "TraceSpan", "UserCredentials"]
