"""Table-driven mapping from model identifiers to clients.

Resolution is a pure lookup: no client is constructed and no network call is
made until ``ResolvedModel.ask`` runs.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Callable

from chainchat.config import Settings, settings
from chainchat.errors import ValidationError
from chainchat.llm_client import HostedModelClient, LocalModelClient
from chainchat.tools.scraped_model import ScrapedModelClient

CHAINED = "chained"
SCRAPED_MODEL_ID = "scira"
HOSTED_REASONING_ID = "deepseek"

HOSTED_GENERAL_MODELS = (
    "meta-llama/Llama-3.3-70B-Instruct-Turbo-Free",
    "meta-llama/Llama-Vision-Free",
)
LOCAL_MODELS = (
    "gemma3:1b",
    "qwen2.5vl:3b",
    "llama3.2",
    "qwen2.5-coder:0.5b",
    "phi:2.7b",
    "tinyllama",
)
VISION_MODELS = frozenset(HOSTED_GENERAL_MODELS + LOCAL_MODELS)


class ModelKind(str, Enum):
    SCRAPED_SERVICE = "scraped_service"
    HOSTED_REASONING = "hosted_reasoning"
    HOSTED_GENERAL = "hosted_general"
    LOCAL = "local"


@dataclass(frozen=True, slots=True)
class ModelSpec:
    kind: ModelKind
    label: str
    response_name: str  # reported as ModelResponse.model
    description: str


MODEL_TABLE: dict[str, ModelSpec] = {
    SCRAPED_MODEL_ID: ModelSpec(
        kind=ModelKind.SCRAPED_SERVICE,
        label="Scira",
        response_name="scira",
        description="Web-grounded answers scraped from scira.ai through a headless browser.",
    ),
    HOSTED_REASONING_ID: ModelSpec(
        kind=ModelKind.HOSTED_REASONING,
        label="DeepSeek R1",
        response_name="deepseek-r1",
        description="DeepSeek R1 Distill Llama 70B via Together AI; reasoning blocks stripped.",
    ),
    **{
        model_id: ModelSpec(
            kind=ModelKind.HOSTED_GENERAL,
            label=model_id.split("/", 1)[-1],
            response_name=model_id,
            description="General model hosted on Together AI.",
        )
        for model_id in HOSTED_GENERAL_MODELS
    },
    **{
        model_id: ModelSpec(
            kind=ModelKind.LOCAL,
            label=model_id,
            response_name=model_id,
            description="Local model served by Ollama.",
        )
        for model_id in LOCAL_MODELS
    },
}

ClientFactories = dict[ModelKind, Callable[[], object]]


@dataclass(slots=True)
class ResolvedModel:
    model_id: str
    spec: ModelSpec
    model_name: str | None
    _factory: Callable[[], object]

    @property
    def kind(self) -> ModelKind:
        return self.spec.kind

    @property
    def label(self) -> str:
        return self.spec.label

    @property
    def response_name(self) -> str:
        return self.spec.response_name

    def client(self) -> object:
        return self._factory()

    async def ask(self, prompt: str) -> str:
        client = self.client()
        if self.kind is ModelKind.SCRAPED_SERVICE:
            return await client.ask(prompt)
        return await client.ask(prompt, self.model_name)


def default_factories(config: Settings | None = None) -> ClientFactories:
    """Client constructors bound to one settings object's credential and endpoints."""
    config = config or settings
    hosted = partial(
        HostedModelClient,
        api_key=config.together_api_key,
        base_url=config.together_base_url,
    )
    return {
        ModelKind.SCRAPED_SERVICE: ScrapedModelClient,
        ModelKind.HOSTED_REASONING: hosted,
        ModelKind.HOSTED_GENERAL: hosted,
        ModelKind.LOCAL: partial(LocalModelClient, base_url=config.ollama_base_url),
    }


def is_resolvable(model_id: object) -> bool:
    return isinstance(model_id, str) and model_id in MODEL_TABLE


def available_models() -> list[dict[str, str]]:
    """Catalog for the models endpoint, including the chained mode token."""
    models = [
        {
            "id": model_id,
            "name": spec.label,
            "description": spec.description,
            "kind": spec.kind.value,
        }
        for model_id, spec in MODEL_TABLE.items()
    ]
    models.append(
        {
            "id": CHAINED,
            "name": "Chained",
            "description": "Runs a first model, then asks a second model to refine its answer.",
            "kind": "chained",
        }
    )
    return models


class Dispatcher:
    """Resolve identifiers to clients; factories are injectable for tests."""

    def __init__(self, factories: ClientFactories | None = None, *, config: Settings | None = None):
        self.config = config or settings
        self._factories = factories or default_factories(self.config)

    def resolve(self, model_id: object) -> ResolvedModel:
        if not is_resolvable(model_id):
            raise ValidationError("Valid model selection is required", details=f"Unknown model: {model_id!r}")

        spec = MODEL_TABLE[model_id]
        if spec.kind is ModelKind.SCRAPED_SERVICE:
            model_name = None
        elif spec.kind is ModelKind.HOSTED_REASONING:
            model_name = self.config.hosted_reasoning_model
        else:
            model_name = model_id
        return ResolvedModel(
            model_id=model_id,
            spec=spec,
            model_name=model_name,
            _factory=self._factories[spec.kind],
        )
