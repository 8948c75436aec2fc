"""Runs one text transformation end to end and reports status to the shell.

    idle -> processing -> (success | error) -> idle

Only one ``process`` call is active at a time; a call made while another is in
flight returns ``None`` immediately. History writes are best-effort: a failed
write is logged and never changes the result returned to the caller.
"""

from __future__ import annotations

import asyncio
import threading
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import Awaitable, Callable, Optional, TypeVar

from quickllm.core.intent import IntentClassifier, IntentResult, resolve_mode
from quickllm.core.types import RequestStatus, Status
from quickllm.errors import PersistenceWarning, QuickLLMError
from quickllm.log import bind_session, get_logger, preview
from quickllm.providers.base import ConnectionReport
from quickllm.providers.registry import ProviderRegistry
from quickllm.settings import ConfigStore
from quickllm.storage.history_repo import HistoryStore

logger = get_logger(__name__)

T = TypeVar("T")

StatusListener = Callable[[Status, str], None]

STATUS_MESSAGES = {
    Status.READY: "Ready",
    Status.PROCESSING: "Processing text...",
    Status.SUCCESS: "Text processed successfully!",
    Status.ERROR: "Error processing text",
}


class ProcessingState(StrEnum):
    IDLE = "idle"
    PROCESSING = "processing"


@dataclass
class ProcessResult:
    text: str
    mode: str
    confidence: float
    provider: str
    model: str
    duration_ms: int
    request_id: Optional[int] = None


class Orchestrator:
    """Picks provider and mode, calls the provider, and records the lifecycle."""

    def __init__(
        self,
        settings: ConfigStore,
        providers: ProviderRegistry,
        history: HistoryStore,
        classifier: IntentClassifier | None = None,
        status_reset_seconds: float = 2.0,
    ):
        self._settings = settings
        self._providers = providers
        self._history = history
        self._classifier = classifier or IntentClassifier()
        self._status_reset_seconds = status_reset_seconds
        self._state = ProcessingState.IDLE
        self._state_lock = threading.Lock()
        self._listeners: list[StatusListener] = []
        self._reset_handle: asyncio.TimerHandle | None = None
        self.session_id: Optional[str] = None

    # -- lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        """Open a history session for this run of the application."""
        self.session_id = await self._persist("create_session", self._open_session())
        bind_session(self.session_id)
        self._emit(Status.READY)

    async def _open_session(self) -> str:
        provider = self._settings.provider
        return await self._history.create_session(provider, self._settings.get_model(provider))

    async def stop(self) -> None:
        if self._reset_handle is not None:
            self._reset_handle.cancel()
            self._reset_handle = None
        if self.session_id:
            await self._persist("end_session", self._history.end_session(self.session_id))
        bind_session(None)

    # -- status signal -------------------------------------------------------

    @property
    def state(self) -> ProcessingState:
        return self._state

    def add_status_listener(self, listener: StatusListener) -> None:
        self._listeners.append(listener)

    def _emit(self, status: Status, message: str | None = None) -> None:
        text = message or STATUS_MESSAGES[status]
        for listener in self._listeners:
            try:
                listener(status, text)
            except Exception as e:
                logger.warning("status_listener_failed", error=str(e))

    def _schedule_ready(self) -> None:
        if self._reset_handle is not None:
            self._reset_handle.cancel()
        loop = asyncio.get_running_loop()
        self._reset_handle = loop.call_later(self._status_reset_seconds, self._emit, Status.READY)

    # -- single-flight guard -------------------------------------------------

    def _try_begin(self) -> bool:
        with self._state_lock:
            if self._state is not ProcessingState.IDLE:
                return False
            self._state = ProcessingState.PROCESSING
            return True

    def _finish(self) -> None:
        with self._state_lock:
            self._state = ProcessingState.IDLE

    # -- operations ----------------------------------------------------------

    def set_mode(self, mode: str) -> None:
        self._settings.set_current_mode(mode)

    def resolve_mode(self, text: str) -> IntentResult:
        return resolve_mode(text, self._settings.current_mode, self._classifier)

    async def test_connection(self, kind: str | None = None) -> ConnectionReport:
        provider = self._providers.get(kind) if kind else self._providers.active()
        report = await provider.test_connection()
        logger.info("connection_tested", provider=provider.kind, success=report.success)
        self._emit(Status.SUCCESS if report.success else Status.ERROR, report.message)
        self._schedule_ready()
        return report

    async def record_clipboard(
        self,
        operation: str,
        content: str,
        mode: str | None = None,
        source: str = "shortcut",
    ) -> None:
        if not self.session_id:
            return
        await self._persist(
            "log_clipboard_event",
            self._history.log_clipboard_event(self.session_id, operation, content, mode, source),
        )

    async def process(self, text: str) -> Optional[ProcessResult]:
        """Transform ``text`` with the configured provider and mode.

        Returns ``None`` without side effects when another call is in flight
        or the text is blank. Provider and configuration failures are raised
        after the request has been marked as failed.
        """
        if not text or not text.strip():
            logger.debug("process_skipped", reason="empty input")
            return None
        if not self._try_begin():
            logger.info("process_skipped", reason="already processing")
            return None

        started = time.monotonic()
        request_id: Optional[int] = None
        self._emit(Status.PROCESSING)
        try:
            intent = self.resolve_mode(text)
            provider_kind = self._settings.provider
            client = self._providers.get(provider_kind)
            model = self._settings.get_model(provider_kind)
            system_prompt = self._settings.get_system_prompt(intent.mode)
            logger.info(
                "process_started",
                mode=intent.mode,
                confidence=round(intent.confidence, 2),
                provider=provider_kind,
                model=model,
                input_length=len(text),
            )
            logger.debug("process_input", text=preview(text))

            if self.session_id:
                request_id = await self._persist(
                    "create_request",
                    self._history.create_request(
                        self.session_id, provider_kind, model, intent.mode, text
                    ),
                )

            try:
                output = await client.transform(text, system_prompt, model)
            except Exception as e:
                duration_ms = _elapsed_ms(started)
                if request_id is not None:
                    await self._persist(
                        "update_request",
                        self._history.update_request(
                            request_id,
                            RequestStatus.ERROR,
                            error_message=str(e) or type(e).__name__,
                            duration_ms=duration_ms,
                        ),
                    )
                raise

            duration_ms = _elapsed_ms(started)
            if request_id is not None:
                await self._persist(
                    "update_request",
                    self._history.update_request(
                        request_id,
                        RequestStatus.SUCCESS,
                        output_text=output,
                        duration_ms=duration_ms,
                    ),
                )
            await self._append_history(intent.mode, text, output, provider_kind, model, duration_ms)

        except QuickLLMError as e:
            logger.error("process_failed", kind=str(e.kind), error=e.message)
            self._emit(Status.ERROR, e.message)
            raise
        except Exception as e:
            logger.error("process_failed", kind="unexpected", error=str(e))
            self._emit(Status.ERROR)
            raise
        finally:
            self._finish()
            self._schedule_ready()

        logger.info("process_finished", duration_ms=duration_ms, output_length=len(output))
        self._emit(Status.SUCCESS)
        return ProcessResult(
            text=output,
            mode=intent.mode,
            confidence=intent.confidence,
            provider=provider_kind,
            model=model,
            duration_ms=duration_ms,
            request_id=request_id,
        )

    async def _append_history(
        self, mode: str, original: str, processed: str, provider: str, model: str, duration_ms: int
    ) -> None:
        settings = self._settings.history_settings
        if not self.session_id or not settings.enabled:
            return
        await self._persist(
            "add_history_entry",
            self._history.add_history_entry(
                self.session_id, mode, original, processed, provider, model, duration_ms
            ),
        )
        if not settings.persistent:
            await self._persist("prune_history", self._history.prune_history(settings.max_items))

    async def _persist(self, operation: str, write: Awaitable[T]) -> Optional[T]:
        """Await a history write, downgrading any failure to a logged warning."""
        try:
            return await write
        except Exception as e:
            logger.warning(
                "persistence_warning",
                category=PersistenceWarning.__name__,
                operation=operation,
                error=str(e),
            )
            return None


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
