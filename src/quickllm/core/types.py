"""Shared types and enumerations."""

from __future__ import annotations

from enum import StrEnum

AUTO_MODE = "auto"


class ProviderKind(StrEnum):
    OLLAMA = "ollama"
    GROQ = "groq"
    OPENROUTER = "openrouter"


class Status(StrEnum):
    """Status signal rendered by the shell."""

    READY = "ready"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"


class RequestStatus(StrEnum):
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


class ClipboardOperation(StrEnum):
    COPY = "copy"
    PASTE = "paste"
