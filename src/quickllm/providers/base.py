"""Provider contract shared by the local daemon and the cloud backends."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol, runtime_checkable

from quickllm.errors import QuickLLMError
from quickllm.log import get_logger

logger = get_logger(__name__)

PREVIEW_LENGTH = 100
SMOKE_TEST_INPUT = "Hello"
MODEL_LIST_LIMIT = 5


@dataclass
class ConnectionReport:
    success: bool
    message: str
    test_output: str = ""


@runtime_checkable
class TextProvider(Protocol):
    """What the orchestrator needs from a backend."""

    kind: str
    label: str

    async def is_available(self) -> bool:
        """Cheap reachability probe. Never raises."""
        ...

    async def list_models(self) -> list[str]:
        """Model identifiers offered by the backend. Empty on failure."""
        ...

    async def transform(self, text: str, system_prompt: str, model: str) -> str:
        """Return the non-empty, trimmed model output or raise a ProviderError."""
        ...

    async def test_connection(self) -> ConnectionReport:
        ...


def truncate_output(text: str, length: int = PREVIEW_LENGTH) -> str:
    if len(text) <= length:
        return text
    return text[:length] + "..."


def format_model_list(models: list[str], limit: int = MODEL_LIST_LIMIT) -> str:
    shown = ", ".join(models[:limit])
    if len(models) > limit:
        shown += "..."
    return shown or "(none)"


async def check_model_and_smoke_test(
    label: str,
    model: str,
    list_models: Callable[[], Awaitable[list[str]]],
    transform: Callable[[str], Awaitable[str]],
) -> ConnectionReport:
    """Second half of every connection test: model present, then one live transform."""
    models = await list_models()
    if model not in models:
        return ConnectionReport(
            False,
            f'Model "{model}" not found. Available models: {format_model_list(models)}',
        )

    try:
        output = await transform(SMOKE_TEST_INPUT)
    except QuickLLMError as e:
        logger.warning("connection_test_failed", provider=label, error=str(e))
        return ConnectionReport(False, f"Connection test failed: {e}")

    return ConnectionReport(
        True,
        f"Connected to {label} successfully. Model: {model}",
        truncate_output(output),
    )
