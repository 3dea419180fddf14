from __future__ import annotations

import time
from enum import Enum

from loguru import logger

from chainchat.agents.dispatcher import Dispatcher, ModelKind, ResolvedModel
from chainchat.errors import ChainError
from chainchat.models.schemas import ChainResult, ModelResponse
from chainchat.services import logger as log_service
from chainchat.services.markdown import normalize
from chainchat.services.prompt_store import chain_prompt


class ChainStage(str, Enum):
    STEP1 = "step1"
    STEP2 = "step2"


def _now_ms() -> int:
    return int(time.time() * 1000)


class ChainOrchestrator:
    """Runs one model, or two models where the second refines the first.

    Flow (chained):
      STEP1: ask the first model with the user's query
      STEP2: ask the second model with a prompt embedding the query and the
             first answer verbatim
    Either step failing aborts the chain; there are no retries here.
    """

    def __init__(self, dispatcher: Dispatcher | None = None):
        self.dispatcher = dispatcher or Dispatcher()

    async def _invoke(self, resolved: ResolvedModel, prompt: str) -> ModelResponse:
        t0 = time.monotonic()
        text = await resolved.ask(prompt)
        elapsed_ms = int((time.monotonic() - t0) * 1000)
        return ModelResponse(
            model=resolved.response_name,
            response=normalize(text),
            timestamp=_now_ms(),
            processing_time=elapsed_ms,
        )

    async def run_single(self, query: str, model_id: str) -> ChainResult:
        resolved = self.dispatcher.resolve(model_id)
        logger.info(f"Processing single model request: {model_id}")
        step = await self._invoke(resolved, query)
        log_service.log_chain_step("single", resolved.response_name, "completed",
                                   {"processing_time": step.processing_time})
        return ChainResult.from_steps([step], step.processing_time)

    async def chain(self, query: str, first_model_id: str, second_model_id: str) -> ChainResult:
        logger.info(f"Processing chained request: {first_model_id} -> {second_model_id}")
        started = time.monotonic()
        first = self.dispatcher.resolve(first_model_id)
        second = self.dispatcher.resolve(second_model_id)
        steps: list[ModelResponse] = []
        stage = ChainStage.STEP1

        try:
            log_service.log_chain_step(stage.value, first.response_name, "started")
            steps.append(await self._invoke(first, query))
            log_service.log_chain_step(stage.value, first.response_name, "completed",
                                       {"processing_time": steps[0].processing_time})

            stage = ChainStage.STEP2
            enriched = chain_prompt(query, first.label, steps[0].response)
            log_service.log_chain_step(stage.value, second.response_name, "started",
                                       {"prompt_chars": len(enriched)})
            steps.append(await self._invoke(second, enriched))
            log_service.log_chain_step(stage.value, second.response_name, "completed",
                                       {"processing_time": steps[1].processing_time})
        except Exception as e:
            cause = getattr(e, "message", None) or str(e) or type(e).__name__
            log_service.log_chain_step(stage.value, "", "failed", {"error": cause})
            raise ChainError(f"Chaining failed: {cause}", stage=stage.value) from e

        total_ms = int((time.monotonic() - started) * 1000)
        logger.info(f"Total chained processing time: {total_ms}ms")

        extra = {}
        if second.kind in (ModelKind.HOSTED_REASONING, ModelKind.HOSTED_GENERAL):
            extra = {"model_used": second.model_name, "via": "Together AI"}
        elif second.kind is ModelKind.LOCAL:
            extra = {"model_used": second.model_name, "via": "Ollama"}
        return ChainResult.from_steps(steps, total_ms, **extra)
