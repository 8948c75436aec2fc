"""Local Ollama daemon backend."""

from __future__ import annotations

from typing import Any

import httpx

from quickllm.config import ProviderEndpoint
from quickllm.core.types import ProviderKind
from quickllm.errors import (
    ConnectivityError,
    ModelNotFoundError,
    ProviderTimeoutError,
    UpstreamError,
)
from quickllm.log import get_logger, preview
from quickllm.providers.base import ConnectionReport, check_model_and_smoke_test
from quickllm.providers.chat_api import TEMPERATURE, TOP_P, error_detail
from quickllm.settings import DEFAULT_MODE, ConfigStore

logger = get_logger(__name__)

PULL_TIMEOUT = 600.0


def build_prompt(system_prompt: str, text: str) -> str:
    return f"{system_prompt}\n\nText to process:\n{text}\n\nResponse:"


class OllamaClient:
    """Talks to ``/api/tags`` and ``/api/generate`` on a local Ollama daemon."""

    kind = ProviderKind.OLLAMA.value
    label = "Ollama"

    def __init__(
        self,
        settings: ConfigStore,
        endpoint: ProviderEndpoint,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._settings = settings
        self._endpoint = endpoint
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._endpoint.base_url,
            timeout=timeout,
            transport=self._transport,
        )

    async def is_available(self) -> bool:
        try:
            async with self._client(self._endpoint.probe_timeout) as client:
                response = await client.get("/api/tags")
        except httpx.HTTPError as e:
            logger.info("ollama_unavailable", error=str(e) or type(e).__name__)
            return False
        return response.status_code == 200

    async def list_models(self) -> list[str]:
        try:
            async with self._client(self._endpoint.probe_timeout) as client:
                response = await client.get("/api/tags")
            response.raise_for_status()
            models = response.json().get("models") or []
            return [m["name"] for m in models if isinstance(m, dict) and "name" in m]
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            logger.warning("ollama_models_unavailable", error=str(e))
            return []

    async def transform(self, text: str, system_prompt: str, model: str) -> str:
        if not await self.is_available():
            raise ConnectivityError(
                "Ollama is not running. Please start Ollama and ensure the model is available.",
                self.kind,
            )

        payload: dict[str, Any] = {
            "model": model,
            "prompt": build_prompt(system_prompt, text),
            "stream": False,
            "options": {"temperature": TEMPERATURE, "top_p": TOP_P},
        }
        logger.debug("ollama_request", model=model, text=preview(text))

        try:
            async with self._client(self._endpoint.timeout) as client:
                response = await client.post("/api/generate", json=payload)
        except httpx.TimeoutException:
            raise ProviderTimeoutError(
                "Request timed out. The text might be too long or the model is slow.", self.kind
            ) from None
        except httpx.ConnectError:
            raise ConnectivityError("Cannot connect to Ollama. Is it running?", self.kind) from None
        except httpx.HTTPError as e:
            raise UpstreamError(f"Ollama error: {e}", self.kind) from e

        if response.status_code == 404:
            raise ModelNotFoundError(
                f'Model "{model}" not found. Please pull it first: ollama pull {model}',
                self.kind,
                status_code=404,
            )
        if not response.is_success:
            raise UpstreamError(
                f"Ollama error: HTTP {response.status_code} {error_detail(response)}".rstrip(),
                self.kind,
                status_code=response.status_code,
            )

        try:
            output = response.json().get("response")
        except (ValueError, AttributeError):
            output = None
        if not isinstance(output, str) or not output.strip():
            raise UpstreamError("No response from provider", self.kind, status_code=response.status_code)

        logger.debug("ollama_response", model=model, output_length=len(output.strip()))
        return output.strip()

    async def test_connection(self) -> ConnectionReport:
        if not await self.is_available():
            return ConnectionReport(False, "Ollama is not running")

        model = self._settings.get_model(self.kind)
        system_prompt = self._settings.get_system_prompt(DEFAULT_MODE)
        return await check_model_and_smoke_test(
            self.label,
            model,
            self.list_models,
            lambda text: self.transform(text, system_prompt, model),
        )

    async def pull_model(self, name: str) -> ConnectionReport:
        """Ask the daemon to download a model."""
        logger.info("ollama_pull_started", model=name)
        try:
            async with self._client(PULL_TIMEOUT) as client:
                response = await client.post("/api/pull", json={"name": name, "stream": False})
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("ollama_pull_failed", model=name, error=str(e))
            return ConnectionReport(False, f"Failed to pull model: {e}")
        logger.info("ollama_pull_finished", model=name)
        return ConnectionReport(True, f"Model {name} pulled successfully")
