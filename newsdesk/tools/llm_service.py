"""
LLM Service - pydantic-ai backed text generation for one named credential.

The pipeline only needs raw text back: JSON extraction and schema validation
happen in the prompt gateway. Agents are cached per (provider, model, key) so
rotating keys does not rebuild clients on every call.
"""

import logging
from typing import Dict, Optional, Protocol

import httpx
from pydantic_ai import Agent
from pydantic_ai.models.google import GoogleModel
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.google import GoogleProvider
from pydantic_ai.providers.openai import OpenAIProvider
from pydantic_ai.settings import ModelSettings

from ..config import Settings, get_settings

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = (
    "You are a careful news analyst. Follow the output format in the request exactly "
    "and respond with JSON only."
)


class TextGenerator(Protocol):
    """Anything that turns a prompt into raw text using the named key."""

    async def generate(self, prompt: str, key_name: Optional[str]) -> str: ...


class LLMService:
    """Text generation via pydantic-ai, Gemini or any OpenAI-compatible endpoint."""

    # Cache agents by (provider, model, key_name) across all instances
    _agent_cache: Dict[tuple, Agent] = {}

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._secrets = dict(self.settings.get_api_keys())
        logger.info(
            f"LLM: {self.settings.llm_provider}/{self.settings.llm_model} "
            f"with {len(self._secrets)} key(s)"
        )

    def _build_model(self, secret: str):
        provider = self.settings.llm_provider.lower()
        if provider == "gemini":
            return GoogleModel(
                self.settings.llm_model,
                provider=GoogleProvider(api_key=secret),
            )
        if provider == "openai":
            return OpenAIChatModel(
                self.settings.llm_model,
                provider=OpenAIProvider(
                    base_url=self.settings.llm_base_url or None,
                    api_key=secret,
                    http_client=httpx.AsyncClient(timeout=self.settings.llm_timeout_seconds),
                ),
            )
        raise ValueError(f"Unsupported LLM_PROVIDER: {self.settings.llm_provider}")

    def _get_or_create_agent(self, key_name: str) -> Agent:
        cache_key = (self.settings.llm_provider, self.settings.llm_model, key_name)
        if cache_key not in self._agent_cache:
            secret = self._secrets.get(key_name)
            if not secret:
                raise RuntimeError(f"No secret configured for key {key_name}")
            self._agent_cache[cache_key] = Agent(
                self._build_model(secret),
                output_type=str,
                system_prompt=_SYSTEM_PROMPT,
            )
        return self._agent_cache[cache_key]

    async def generate(self, prompt: str, key_name: Optional[str]) -> str:
        """Run one prompt with the named key. Raises on transport/provider failure."""
        if not key_name:
            raise RuntimeError("No API key available (LLM_API_KEYS is empty)")
        agent = self._get_or_create_agent(key_name)
        result = await agent.run(
            prompt,
            model_settings=ModelSettings(temperature=self.settings.llm_temperature),
        )
        response = result.output
        if response:
            return response
        raise ValueError("Empty response")

    @classmethod
    def clear_cache(cls):
        """Clear agent cache. Useful for testing or config changes."""
        cls._agent_cache.clear()
