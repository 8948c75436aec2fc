"""OpenRouter cloud backend."""

from __future__ import annotations

from typing import Any, Optional

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

APP_URL = "https://quickllm.app"
APP_TITLE = "QuickLLM"


class OpenRouterClient:
    """Chat completions routed through openrouter.ai.

    OpenRouter attributes traffic by the ``HTTP-Referer`` and ``X-Title``
    headers, so both are sent with every request.
    """

    kind = ProviderKind.OPENROUTER.value
    label = "OpenRouter"

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
        headers = bearer_headers(api_key)
        headers["HTTP-Referer"] = APP_URL
        headers["X-Title"] = APP_TITLE
        return httpx.AsyncClient(
            base_url=self._endpoint.base_url,
            headers=headers,
            timeout=timeout,
            transport=self._transport,
        )

    async def is_available(self) -> bool:
        api_key = self._settings.get_credential(self.kind)
        if not api_key:
            logger.info("openrouter_key_missing")
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
        logger.debug("openrouter_request", model=model, text=preview(text))
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
            return ConnectionReport(False, "Cannot connect to OpenRouter API")

        model = self._settings.get_model(self.kind)
        system_prompt = self._settings.get_system_prompt(DEFAULT_MODE)
        return await check_model_and_smoke_test(
            self.label,
            model,
            self.list_models,
            lambda text: self.transform(text, system_prompt, model),
        )

    async def get_account_info(self) -> Optional[dict[str, Any]]:
        """Key usage and credit limits from ``/auth/key``."""
        api_key = self._settings.get_credential(self.kind)
        if not api_key:
            return None
        try:
            async with self._client(api_key, self._endpoint.probe_timeout) as client:
                response = await client.get("/auth/key")
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("openrouter_account_info_failed", error=str(e))
            return None
