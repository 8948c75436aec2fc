"""Data models for storage layer."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional


@dataclass
class SessionRecord:
    session_id: str
    start_time: datetime
    provider: Optional[str] = None
    model: Optional[str] = None
    end_time: Optional[datetime] = None
    total_requests: int = 0


@dataclass
class RequestRecord:
    id: int
    session_id: str
    provider: str
    model: str
    mode: str
    input_text: str
    input_length: int
    status: str  # "pending" | "success" | "error"
    timestamp: datetime
    output_text: Optional[str] = None
    output_length: int = 0
    processing_time_ms: Optional[int] = None
    error_message: Optional[str] = None


@dataclass
class ClipboardEvent:
    id: int
    session_id: str
    operation: str  # "copy" | "paste"
    content: str
    content_length: int
    source: str
    timestamp: datetime
    mode: Optional[str] = None


@dataclass
class HistoryEntry:
    id: int
    session_id: str
    mode: str
    original_text: str
    processed_text: str
    provider: str
    model: str
    timestamp: datetime
    processing_time_ms: Optional[int] = None


@dataclass
class SessionStats:
    session_id: str
    start_time: datetime
    end_time: Optional[datetime]
    provider: Optional[str]
    model: Optional[str]
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    pending_requests: int = 0
    avg_processing_time_ms: Optional[float] = None
    total_input_chars: int = 0
    total_output_chars: int = 0


@dataclass
class SettingsBackup:
    id: int
    name: str
    settings: dict[str, Any]
    timestamp: datetime
