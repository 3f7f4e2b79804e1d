import pytest
from pydantic_ai.models.test import TestModel as CannedModel

from newsdesk.config import Settings
from newsdesk.tools.llm_service import LLMService


@pytest.fixture
def service(settings, monkeypatch):
    svc = LLMService(settings)
    monkeypatch.setattr(svc, "_build_model", lambda secret: CannedModel(custom_output_text='{"ok": true}'))
    return svc


@pytest.mark.asyncio
async def test_generate_returns_model_text(service):
    assert await service.generate("hello", "K1") == '{"ok": true}'


@pytest.mark.asyncio
async def test_agents_are_cached_per_key(service):
    await service.generate("a", "K1")
    await service.generate("b", "K1")
    await service.generate("c", "K2")
    assert len(LLMService._agent_cache) == 2


@pytest.mark.asyncio
async def test_missing_key_raises(service):
    with pytest.raises(RuntimeError):
        await service.generate("hello", None)
    with pytest.raises(RuntimeError):
        await service.generate("hello", "NOT_CONFIGURED")


def test_unsupported_provider():
    svc = LLMService(Settings(LLM_PROVIDER="carrier-pigeon", LLM_API_KEYS="K1=x"))
    with pytest.raises(ValueError):
        svc._build_model("x")


def test_key_parsing_names_bare_secrets():
    s = Settings(LLM_API_KEYS="abc, def ,")
    assert s.get_key_names() == ["KEY_1", "KEY_2"]
    assert dict(s.get_api_keys())["KEY_2"] == "def"
