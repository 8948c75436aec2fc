"""End-to-end test of the wired application."""

import pytest

from helpers import TEST_MACHINE, ollama_generate, ollama_tags
from quickllm.app import QuickLLMApp
from quickllm.config import AppConfig, StorageConfig
from quickllm.security.key_manager import KeyManager


@pytest.fixture
def app_config(tmp_path) -> AppConfig:
    return AppConfig(
        data_dir=str(tmp_path),
        status_reset_seconds=0.01,
        storage=StorageConfig(
            db_path=str(tmp_path / "quickllm.db"),
            settings_path=str(tmp_path / "settings.yaml"),
        ),
    )


class TestQuickLLMApp:
    """Tests for QuickLLMApp lifecycle."""

    @pytest.mark.asyncio
    async def test_process_through_app(self, app_config, router, transport, tmp_path):
        router.add("GET", "/api/tags", ollama_tags("qwen3:4b"))
        router.add("POST", "/api/generate", ollama_generate("Summary."))

        async with QuickLLMApp(app_config, KeyManager(machine_id=TEST_MACHINE), transport) as app:
            result = await app.orchestrator.process("Some long article text")
            session_id = app.orchestrator.session_id
            assert result.text == "Summary."

        assert (tmp_path / "settings.yaml").exists()

        reopened = QuickLLMApp(app_config, KeyManager(machine_id=TEST_MACHINE), transport)
        await reopened.start(open_session=False)
        try:
            session = await reopened.history.get_session(session_id)
            assert session.total_requests == 1
            assert session.end_time is not None
            assert reopened.orchestrator.session_id is None
        finally:
            await reopened.stop()
