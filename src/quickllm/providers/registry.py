"""Dispatch table from provider kind to backend client."""

from __future__ import annotations

from typing import Callable

import httpx

from quickllm.config import ProviderEndpoint, ProvidersConfig
from quickllm.core.types import ProviderKind
from quickllm.errors import ConfigurationError
from quickllm.log import get_logger
from quickllm.providers.base import TextProvider
from quickllm.providers.groq import GroqClient
from quickllm.providers.ollama import OllamaClient
from quickllm.providers.openrouter import OpenRouterClient
from quickllm.settings import ConfigStore

logger = get_logger(__name__)

ProviderFactory = Callable[
    [ConfigStore, ProviderEndpoint, "httpx.AsyncBaseTransport | None"], TextProvider
]

PROVIDER_FACTORIES: dict[str, ProviderFactory] = {
    ProviderKind.OLLAMA: OllamaClient,
    ProviderKind.GROQ: GroqClient,
    ProviderKind.OPENROUTER: OpenRouterClient,
}

PROVIDER_KINDS: tuple[str, ...] = tuple(k.value for k in ProviderKind)


def create_provider(
    kind: str,
    settings: ConfigStore,
    config: ProvidersConfig,
    transport: httpx.AsyncBaseTransport | None = None,
) -> TextProvider:
    factory = PROVIDER_FACTORIES.get(kind)
    if factory is None:
        raise ConfigurationError(f"Unknown provider: {kind}")
    return factory(settings, config.endpoint(kind), transport)


class ProviderRegistry:
    """Lazily builds one client per provider kind."""

    def __init__(
        self,
        settings: ConfigStore,
        config: ProvidersConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._settings = settings
        self._config = config
        self._transport = transport
        self._providers: dict[str, TextProvider] = {}

    def get(self, kind: str) -> TextProvider:
        if kind not in self._providers:
            self._providers[kind] = create_provider(
                kind, self._settings, self._config, self._transport
            )
            logger.debug("provider_created", provider=kind)
        return self._providers[kind]

    def active(self) -> TextProvider:
        return self.get(self._settings.provider)

    def kinds(self) -> tuple[str, ...]:
        return PROVIDER_KINDS
