"""Groq cloud backend (OpenAI-compatible API)."""

from __future__ import annotations

import httpx

from quickllm.config import ProviderEndpoint
from quickllm.core.types import ProviderKind
from quickllm.errors import ConfigurationError
from quickllm.log import get_logger, preview
from quickllm.providers.base import ConnectionReport, check_model_and_smoke_test
from quickllm.providers.chat_api import (
    bearer_headers,
    catalog_available,
    catalog_models,
    chat_completion,
    missing_key_message,
)
from quickllm.settings import DEFAULT_MODE, ConfigStore

logger = get_logger(__name__)


class GroqClient:
    """Chat completions against api.groq.com with a bearer key."""

    kind = ProviderKind.GROQ.value
    label = "Groq"

    def __init__(
        self,
        settings: ConfigStore,
        endpoint: ProviderEndpoint,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._settings = settings
        self._endpoint = endpoint
        self._transport = transport

    def _client(self, api_key: str, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._endpoint.base_url,
            headers=bearer_headers(api_key),
            timeout=timeout,
            transport=self._transport,
        )

    async def is_available(self) -> bool:
        api_key = self._settings.get_credential(self.kind)
        if not api_key:
            logger.info("groq_key_missing")
            return False
        client = self._client(api_key, self._endpoint.probe_timeout)
        return await catalog_available(client, self.kind)

    async def list_models(self) -> list[str]:
        api_key = self._settings.get_credential(self.kind)
        if not api_key:
            return []
        return await catalog_models(self._client(api_key, self._endpoint.probe_timeout), self.kind)

    async def transform(self, text: str, system_prompt: str, model: str) -> str:
        api_key = self._settings.get_credential(self.kind)
        if not api_key:
            raise ConfigurationError(missing_key_message(self.label))
        logger.debug("groq_request", model=model, text=preview(text))
        return await chat_completion(
            self._client(api_key, self._endpoint.timeout),
            self.kind,
            self.label,
            model=model,
            system_prompt=system_prompt,
            text=text,
        )

    async def test_connection(self) -> ConnectionReport:
        if not self._settings.get_credential(self.kind):
            return ConnectionReport(False, missing_key_message(self.label))
        if not await self.is_available():
            return ConnectionReport(False, "Cannot connect to Groq API")

        model = self._settings.get_model(self.kind)
        system_prompt = self._settings.get_system_prompt(DEFAULT_MODE)
        return await check_model_and_smoke_test(
            self.label,
            model,
            self.list_models,
            lambda text: self.transform(text, system_prompt, model),
        )
