"""Tests for the processing flow: status signal, single-flight guard, and audit trail."""

import asyncio

import httpx
import pytest
import pytest_asyncio

from helpers import GROQ_KEY, chat_response, ollama_generate, ollama_tags
from quickllm.core.orchestrator import Orchestrator, ProcessingState
from quickllm.core.types import Status
from quickllm.errors import AuthError, ConfigurationError, ConnectivityError


@pytest.fixture
def statuses() -> list:
    return []


@pytest_asyncio.fixture
async def orchestrator(settings, providers, history, statuses):
    orch = Orchestrator(settings, providers, history, status_reset_seconds=0.01)
    orch.add_status_listener(lambda status, message: statuses.append((status, message)))
    await orch.start()
    yield orch
    await orch.stop()


def _ollama_up(router, output="A short summary."):
    router.add("GET", "/api/tags", ollama_tags("qwen3:4b"))
    router.add("POST", "/api/generate", ollama_generate(output))


class TestProcess:
    """Tests for Orchestrator.process."""

    @pytest.mark.asyncio
    async def test_success_records_everything(self, orchestrator, router, history, statuses):
        _ollama_up(router)
        text = "The quick brown fox jumps over the lazy dog near the riverbank."

        result = await orchestrator.process(text)

        assert [s for s, _ in statuses] == [Status.READY, Status.PROCESSING, Status.SUCCESS]
        assert result.text == "A short summary."
        assert result.mode == "summarize"
        assert result.confidence == 1.0
        assert result.provider == "ollama"
        assert result.model == "qwen3:4b"

        record = await history.get_request(result.request_id)
        assert record.status == "success"
        assert record.input_length == len(text)
        assert record.output_length == len(result.text)

        entries = await history.get_history(orchestrator.session_id)
        assert len(entries) == 1
        assert entries[0].original_text == text
        assert entries[0].processed_text == "A short summary."
        assert orchestrator.state is ProcessingState.IDLE

    @pytest.mark.asyncio
    async def test_status_returns_to_ready(self, orchestrator, router, statuses):
        _ollama_up(router)
        await orchestrator.process("hello world")
        await asyncio.sleep(0.05)

        assert statuses[-1] == (Status.READY, "Ready")

    @pytest.mark.asyncio
    async def test_ollama_down(self, orchestrator, router, history, statuses):
        router.add("GET", "/api/tags", httpx.ConnectError("connection refused"))

        with pytest.raises(ConnectivityError):
            await orchestrator.process("hello world")
        await asyncio.sleep(0.05)

        stats = await history.get_session_stats(orchestrator.session_id)
        assert stats.failed_requests == 1
        assert stats.pending_requests == 0
        assert await history.get_history(orchestrator.session_id) == []

        assert [s for s, _ in statuses] == [Status.READY, Status.PROCESSING, Status.ERROR, Status.READY]
        assert statuses[2][1].startswith("Ollama is not running")
        assert orchestrator.state is ProcessingState.IDLE

    @pytest.mark.asyncio
    async def test_groq_bad_key(self, orchestrator, settings, router, history):
        settings.set_credential("groq", GROQ_KEY)
        settings.set_provider("groq")
        router.add(
            "POST",
            "/chat/completions",
            httpx.Response(401, json={"error": {"message": "Invalid API Key"}}),
        )

        with pytest.raises(AuthError):
            await orchestrator.process("Explain how tides work")

        stats = await history.get_session_stats(orchestrator.session_id)
        assert stats.failed_requests == 1
        assert await history.get_history() == []

    @pytest.mark.asyncio
    async def test_failed_request_keeps_error_message(self, orchestrator, settings, router, history):
        settings.set_provider("groq")

        with pytest.raises(ConfigurationError):
            await orchestrator.process("hello world")

        data = await history.export_data()
        assert data["requests"][0]["status"] == "error"
        assert "API key not configured" in data["requests"][0]["error_message"]
        assert router.requests == []

    @pytest.mark.asyncio
    async def test_blank_input_is_a_no_op(self, orchestrator, router, history, statuses):
        assert await orchestrator.process("   \n") is None

        assert router.requests == []
        assert (await history.get_session(orchestrator.session_id)).total_requests == 0
        assert [s for s, _ in statuses] == [Status.READY]

    @pytest.mark.asyncio
    async def test_second_call_while_busy_is_ignored(self, orchestrator, router, history):
        entered = asyncio.Event()
        release = asyncio.Event()

        async def slow_generate(request):
            entered.set()
            await release.wait()
            return ollama_generate("done")

        router.add("GET", "/api/tags", ollama_tags("qwen3:4b"))
        router.add("POST", "/api/generate", slow_generate)

        first = asyncio.create_task(orchestrator.process("first text"))
        await entered.wait()
        assert orchestrator.state is ProcessingState.PROCESSING

        assert await orchestrator.process("second text") is None

        release.set()
        result = await first
        assert result.text == "done"
        assert len(router.calls("POST", "/api/generate")) == 1
        assert (await history.get_session(orchestrator.session_id)).total_requests == 1

    @pytest.mark.asyncio
    async def test_explicit_mode_beats_classifier(self, orchestrator, settings, router):
        _ollama_up(router, "4")
        settings.set_current_mode("translate")

        result = await orchestrator.process("2+2")

        assert result.mode == "translate"
        assert result.confidence == 1.0
        prompt = router.calls("POST", "/api/generate")[0].content.decode()
        assert "translation assistant" in prompt

    @pytest.mark.asyncio
    async def test_auto_mode_classifies(self, orchestrator, settings, router):
        _ollama_up(router, "4")
        settings.set_current_mode("auto")

        result = await orchestrator.process("2+2")
        assert result.mode == "maths"

    @pytest.mark.asyncio
    async def test_persistence_failure_does_not_fail_processing(self, orchestrator, router, database):
        _ollama_up(router)
        await database.close()

        result = await orchestrator.process("hello world")

        assert result.text == "A short summary."
        assert result.request_id is None
        assert orchestrator.state is ProcessingState.IDLE


class TestStart:
    """Tests for opening the history session."""

    @pytest.mark.asyncio
    async def test_model_lookup_failure_leaves_start_usable(
        self, settings, providers, history, statuses, monkeypatch
    ):
        def broken_model(kind=None):
            raise ConfigurationError(f"Unknown provider: {kind}")

        monkeypatch.setattr(settings, "get_model", broken_model)
        orch = Orchestrator(settings, providers, history, status_reset_seconds=0.01)
        orch.add_status_listener(lambda status, message: statuses.append((status, message)))

        await orch.start()

        assert orch.session_id is None
        assert statuses == [(Status.READY, "Ready")]
        assert await history.list_recent_sessions() == []
        await orch.stop()

    @pytest.mark.asyncio
    async def test_closed_database_leaves_start_usable(self, settings, providers, history, database):
        await database.close()
        orch = Orchestrator(settings, providers, history, status_reset_seconds=0.01)

        await orch.start()

        assert orch.session_id is None
        await orch.stop()


class TestHistoryOptions:
    """Tests for history settings applied after a success."""

    @pytest.mark.asyncio
    async def test_disabled_history_skips_entries(self, orchestrator, settings, router, history):
        _ollama_up(router)
        settings.update_history_settings(enabled=False)

        result = await orchestrator.process("hello world")

        assert (await history.get_request(result.request_id)).status == "success"
        assert await history.get_history() == []

    @pytest.mark.asyncio
    async def test_non_persistent_history_is_pruned(self, orchestrator, settings, router, history):
        _ollama_up(router)
        settings.update_history_settings(max_items=2)

        for text in ("one", "two", "three"):
            await orchestrator.process(text)

        entries = await history.get_history(limit=10)
        assert [e.original_text for e in entries] == ["three", "two"]

    @pytest.mark.asyncio
    async def test_persistent_history_is_kept(self, orchestrator, settings, router, history):
        _ollama_up(router)
        settings.update_history_settings(persistent=True, max_items=2)

        for text in ("one", "two", "three"):
            await orchestrator.process(text)

        assert len(await history.get_history(limit=10)) == 3


class TestConnectionAndClipboard:
    """Tests for connection checks and clipboard logging through the orchestrator."""

    @pytest.mark.asyncio
    async def test_connection_emits_status(self, orchestrator, router, statuses):
        router.add("GET", "/api/tags", ollama_tags("qwen3:4b"))
        router.add("POST", "/api/generate", ollama_generate("Hi!"))

        report = await orchestrator.test_connection()

        assert report.success is True
        assert statuses[-1] == (Status.SUCCESS, report.message)

    @pytest.mark.asyncio
    async def test_connection_for_named_provider(self, orchestrator, settings, router):
        settings.set_credential("groq", GROQ_KEY)
        router.add("GET", "/models", httpx.Response(200, json={"data": [{"id": "llama3-8b-8192"}]}))
        router.add("POST", "/chat/completions", chat_response("Hello!"))

        report = await orchestrator.test_connection("groq")
        assert report.message == "Connected to Groq successfully. Model: llama3-8b-8192"

    @pytest.mark.asyncio
    async def test_clipboard_events_are_logged(self, orchestrator, history):
        await orchestrator.record_clipboard("copy", "some text", source="cli")

        events = await history.list_clipboard_events(orchestrator.session_id)
        assert events[0].operation == "copy"
        assert events[0].content_length == len("some text")

    @pytest.mark.asyncio
    async def test_invalid_clipboard_event_is_only_logged(self, orchestrator, history):
        await orchestrator.record_clipboard("cut", "some text")
        assert await history.list_clipboard_events(orchestrator.session_id) == []

    @pytest.mark.asyncio
    async def test_set_mode(self, orchestrator, settings):
        orchestrator.set_mode("auto")
        assert settings.current_mode == "auto"
