from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, protected_namespaces=())


# --- Requests ---


class ChatRequest(CamelModel):
    """Inbound chat payload.

    ``query``, ``model`` and ``userEmail`` are left untyped so the handler can
    reject bad values with its own stable messages instead of a schema error.
    """

    model_config = ConfigDict(extra="ignore")

    query: Any = None
    model: Any = None
    first_model: Any = None
    second_model: Any = None
    image: Any = None
    conversation_id: str | None = None
    user_email: Any = None
    context_mode: bool = False
    file_name: str | None = None
    file_type: str | None = None
    file_url: str | None = None
    list_conversations: bool = False


# --- Results ---


class ModelResponse(CamelModel):
    model_config = ConfigDict(frozen=True)

    model: str
    response: str
    timestamp: int  # epoch milliseconds
    processing_time: int = Field(ge=0)


class ChainResult(CamelModel):
    responses: list[ModelResponse]
    final_output: str
    total_time: int = Field(ge=0)
    model_used: str | None = None
    via: str | None = None

    @classmethod
    def from_steps(cls, steps: list[ModelResponse], total_time: int, **extra: Any) -> "ChainResult":
        """Build a result whose final output is exactly the last step's text."""
        if not steps:
            raise ValueError("A chain result needs at least one step")
        return cls(
            responses=list(steps),
            final_output=steps[-1].response,
            total_time=max(int(total_time), 0),
            **extra,
        )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ModelInfo(BaseModel):
    id: str
    name: str
    description: str
    kind: str


class ModelsResponse(BaseModel):
    models: list[ModelInfo]
