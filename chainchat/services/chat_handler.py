from __future__ import annotations

from typing import Any

from loguru import logger

from chainchat.agents.dispatcher import (
    CHAINED,
    HOSTED_REASONING_ID,
    Dispatcher,
    SCRAPED_MODEL_ID,
    VISION_MODELS,
    is_resolvable,
)
from chainchat.agents.orchestrator import ChainOrchestrator
from chainchat.config import Settings, settings as default_settings
from chainchat.errors import ChatError, ConfigurationError, NotFoundError, ValidationError
from chainchat.models.schemas import ChatRequest
from chainchat.services import logger as log_service
from chainchat.services.memory_store import ConversationStore
from chainchat.services.prompt_store import context_prompt, file_prompt, image_prompt

NEW_CONVERSATION = "new"
NEW_CONVERSATION_TITLE = "New Conversation"


class ChatHandler:
    """Validates a chat request, runs the selected model(s) and persists the turn.

    The store is injected and shared for the process lifetime; everything
    else (browser sessions, HTTP clients) is created per request.
    """

    def __init__(
        self,
        store: ConversationStore,
        orchestrator: ChainOrchestrator | None = None,
        *,
        context_window: int | None = None,
        settings: Settings | None = None,
    ):
        self.store = store
        self.settings = settings or default_settings
        # Hosted clients send the same credential handle() checks.
        self.orchestrator = orchestrator or ChainOrchestrator(Dispatcher(config=self.settings))
        self.context_window = (
            self.settings.context_window_turns if context_window is None else context_window
        )

    async def handle(self, request: ChatRequest) -> dict[str, Any]:
        if request.list_conversations:
            user = await self._require_user(request.user_email)
            return {"conversations": await self.store.list_conversations(user["id"])}

        query = request.query
        if _is_blank(query) and request.user_email:
            user = await self._require_user(request.user_email)
            return await self._load_history(user, request.conversation_id)

        if not isinstance(query, str) or not query.strip():
            raise ValidationError("Query is required and must be a string")

        model = request.model
        first_id = second_id = None
        if model == CHAINED:
            first_id = request.first_model or SCRAPED_MODEL_ID
            second_id = request.second_model or HOSTED_REASONING_ID
            if not (is_resolvable(first_id) and is_resolvable(second_id)):
                raise ValidationError(
                    "Valid model selection is required",
                    details=f"Unknown chained models: {first_id!r} -> {second_id!r}",
                )
        elif not is_resolvable(model):
            raise ValidationError("Valid model selection is required")

        if not self.settings.hosted_credential_configured:
            raise ConfigurationError("TOGETHER API key not configured")

        user = await self._resolve_user(request.user_email)
        conversation = await self._resolve_conversation(user, request.conversation_id)
        prior_messages = await self.store.get_messages(conversation["id"]) if conversation else []

        target_model = first_id if model == CHAINED else model
        prompt = self.build_prompt(query, request, target_model, prior_messages)

        if conversation:
            await self.store.create_message(conversation["id"], query, True, model)

        log_service.log_event(
            event_type="chat_started",
            message="Processing chat request",
            model=model,
            conversation_id=conversation["id"] if conversation else None,
            query=query[:100],
        )
        try:
            if model == CHAINED:
                result = await self.orchestrator.chain(prompt, first_id, second_id)
            else:
                result = await self.orchestrator.run_single(prompt, model)
        except ChatError as e:
            logger.error(f"{model} processing error: {e.message}")
            raise ChatError("Internal server error", status_code=500, details=e.message) from e

        messages: list[dict[str, Any]] = []
        if conversation:
            await self.store.create_message(conversation["id"], result.final_output, False, model)
            messages = await self.store.get_messages(conversation["id"])

        payload = result.to_payload()
        payload["conversationId"] = conversation["id"] if conversation else None
        payload["messages"] = messages
        logger.info(f"Request processed successfully in {result.total_time}ms")
        return payload

    def build_prompt(
        self,
        query: str,
        request: ChatRequest,
        target_model: str,
        prior_messages: list[dict[str, Any]],
    ) -> str:
        """Fold image, file and conversation context into the prompt text."""
        prompt = query
        if request.image and target_model in VISION_MODELS:
            prompt = image_prompt(prompt)
        if request.file_name or request.file_url:
            prompt = file_prompt(
                prompt,
                file_name=request.file_name or "",
                file_type=request.file_type or "",
                file_url=request.file_url or "",
            )
        if request.context_mode:
            prompt = context_prompt(prompt, prior_messages, self.context_window)
        return prompt

    async def _resolve_user(self, email: Any) -> dict[str, Any] | None:
        if email is None:
            return None
        return await self._require_user(email)

    async def _require_user(self, email: Any) -> dict[str, Any]:
        if not isinstance(email, str) or not email.strip():
            raise ValidationError("Valid userEmail is required")
        user = await self.store.get_user_by_email(email.strip())
        if not user:
            raise NotFoundError("User not found")
        return user

    async def _resolve_conversation(
        self, user: dict[str, Any] | None, conversation_id: str | None
    ) -> dict[str, Any] | None:
        if conversation_id and conversation_id != NEW_CONVERSATION:
            conversation = await self.store.get_conversation(
                conversation_id, user["id"] if user else None
            )
            if not conversation:
                raise NotFoundError("Conversation not found")
            return conversation
        if user:
            return await self.store.create_conversation(user["id"], NEW_CONVERSATION_TITLE)
        return None

    async def _load_history(
        self, user: dict[str, Any], conversation_id: str | None
    ) -> dict[str, Any]:
        if conversation_id and conversation_id != NEW_CONVERSATION:
            conversation = await self.store.get_conversation(conversation_id, user["id"])
            if not conversation:
                raise NotFoundError("Conversation not found")
        else:
            conversation = await self.store.get_latest_conversation(user["id"])
            if conversation is None:
                conversation = await self.store.create_conversation(user["id"], NEW_CONVERSATION_TITLE)

        return {
            "conversationId": conversation["id"],
            "messages": await self.store.get_messages(conversation["id"]),
        }


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())
