import pytest

from chainchat.agents.dispatcher import (
    CHAINED,
    HOSTED_GENERAL_MODELS,
    LOCAL_MODELS,
    MODEL_TABLE,
    Dispatcher,
    ModelKind,
    available_models,
    is_resolvable,
)
from chainchat.config import Settings, settings
from chainchat.errors import ValidationError
from tests.fakes import FakeModelClient


def make_dispatcher():
    clients = {kind: FakeModelClient(f"{kind.value} reply") for kind in ModelKind}
    dispatcher = Dispatcher({kind: (lambda c=client: c) for kind, client in clients.items()})
    return dispatcher, clients


def test_scira_resolves_to_scraped_client_without_model_name():
    resolved = Dispatcher().resolve("scira")
    assert resolved.kind is ModelKind.SCRAPED_SERVICE
    assert resolved.model_name is None
    assert resolved.label == "Scira"
    assert resolved.response_name == "scira"


def test_deepseek_uses_configured_hosted_model():
    resolved = Dispatcher().resolve("deepseek")
    assert resolved.kind is ModelKind.HOSTED_REASONING
    assert resolved.model_name == settings.hosted_reasoning_model
    assert resolved.response_name == "deepseek-r1"


@pytest.mark.parametrize("model_id", HOSTED_GENERAL_MODELS)
def test_hosted_general_models_pass_id_through(model_id):
    resolved = Dispatcher().resolve(model_id)
    assert resolved.kind is ModelKind.HOSTED_GENERAL
    assert resolved.model_name == model_id


@pytest.mark.parametrize("model_id", LOCAL_MODELS)
def test_local_models_pass_id_through(model_id):
    resolved = Dispatcher().resolve(model_id)
    assert resolved.kind is ModelKind.LOCAL
    assert resolved.model_name == model_id


@pytest.mark.parametrize("model_id", ["gpt-4", "", None, 42, CHAINED])
def test_unknown_model_is_rejected(model_id):
    with pytest.raises(ValidationError) as exc_info:
        Dispatcher().resolve(model_id)
    assert exc_info.value.message == "Valid model selection is required"
    assert not is_resolvable(model_id)


@pytest.mark.asyncio
async def test_ask_routes_to_the_right_client():
    dispatcher, clients = make_dispatcher()

    assert await dispatcher.resolve("scira").ask("q1") == "scraped_service reply"
    assert await dispatcher.resolve("llama3.2").ask("q2") == "local reply"
    assert await dispatcher.resolve("deepseek").ask("q3") == "hosted_reasoning reply"

    assert clients[ModelKind.SCRAPED_SERVICE].calls == [("q1", None)]
    assert clients[ModelKind.LOCAL].calls == [("q2", "llama3.2")]
    assert clients[ModelKind.HOSTED_REASONING].calls == [("q3", settings.hosted_reasoning_model)]
    assert clients[ModelKind.HOSTED_GENERAL].calls == []


def test_resolve_does_not_build_clients():
    built = []
    factories = {kind: (lambda: built.append(True)) for kind in ModelKind}
    Dispatcher(factories).resolve("scira")
    assert built == []


def test_available_models_lists_every_entry_plus_chained():
    ids = [m["id"] for m in available_models()]
    assert set(MODEL_TABLE) <= set(ids)
    assert ids[-1] == CHAINED
    assert len(ids) == len(MODEL_TABLE) + 1


def test_dispatcher_binds_hosted_model_and_key_from_config():
    config = Settings(together_api_key="other-key", hosted_reasoning_model="custom/reasoner", _env_file=None)

    resolved = Dispatcher(config=config).resolve("deepseek")

    assert resolved.model_name == "custom/reasoner"
    assert resolved.client().api_key == "other-key"
