"""Application orchestrator - wires all components and manages lifecycle."""

from __future__ import annotations

import httpx

from quickllm.config import AppConfig
from quickllm.core.intent import IntentClassifier
from quickllm.core.orchestrator import Orchestrator
from quickllm.log import get_logger
from quickllm.providers.registry import ProviderRegistry
from quickllm.security.key_manager import KeyManager
from quickllm.settings import ConfigStore
from quickllm.storage.database import Database
from quickllm.storage.history_repo import HistoryStore

logger = get_logger(__name__)


class QuickLLMApp:
    """Top-level application object handed to the shell."""

    def __init__(
        self,
        config: AppConfig,
        key_manager: KeyManager | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self.key_manager = key_manager or KeyManager()
        self.settings = ConfigStore(config.storage.settings_path, self.key_manager)
        self.db = Database(config.storage.db_path)
        self.history = HistoryStore(self.db)
        self.providers = ProviderRegistry(self.settings, config.providers, transport)
        self.orchestrator = Orchestrator(
            settings=self.settings,
            providers=self.providers,
            history=self.history,
            classifier=IntentClassifier(),
            status_reset_seconds=config.status_reset_seconds,
        )

    async def start(self, open_session: bool = True) -> None:
        """Load settings, open the database, and begin a session."""
        # 1. Settings (seeds defaults on first run)
        self.settings.load()

        # 2. Database
        await self.db.initialize()

        # 3. Session
        if open_session:
            await self.orchestrator.start()

        logger.info(
            "quickllm_started",
            provider=self.settings.provider,
            mode=self.settings.current_mode,
        )

    async def stop(self) -> None:
        """End the session and close the database."""
        await self.orchestrator.stop()
        await self.db.close()
        logger.info("quickllm_stopped")

    async def __aenter__(self) -> QuickLLMApp:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()
