"""Durable user settings: modes, provider selection, encrypted credentials, history options.

The settings document lives in a YAML file and is rewritten on every mutation.
Its shape is the exported snapshot::

    currentMode: summarize
    model: {provider, ollamaModel, groqModel, openrouterModel, groqApiKey, openrouterApiKey}
    modes: {<id>: {name, systemPrompt, hotkey}}
    history: {enabled, persistent, maxItems}

Credentials are stored only as KeyManager tokens.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as SchemaError

from quickllm.core.types import AUTO_MODE, ProviderKind
from quickllm.errors import ConfigurationError, ValidationError
from quickllm.log import get_logger
from quickllm.security.key_manager import KeyManager

logger = get_logger(__name__)

DEFAULT_MODE = "summarize"


class ModeConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    system_prompt: str = Field(alias="systemPrompt")
    hotkey: Optional[str] = None


class ModelSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    provider: ProviderKind = ProviderKind.OLLAMA.value
    ollama_model: str = Field("qwen3:4b", alias="ollamaModel")
    groq_model: str = Field("llama3-8b-8192", alias="groqModel")
    openrouter_model: str = Field("meta-llama/llama-3-8b-instruct", alias="openrouterModel")
    groq_api_key: str = Field("", alias="groqApiKey")
    openrouter_api_key: str = Field("", alias="openrouterApiKey")


class HistorySettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    enabled: bool = True
    persistent: bool = False
    max_items: int = Field(10, alias="maxItems", ge=1)


def _builtin_modes() -> dict[str, ModeConfig]:
    return {
        "summarize": ModeConfig(
            name="Summarize",
            system_prompt=(
                "You are a helpful assistant that summarizes text concisely. Provide a clear, "
                "bullet-pointed summary of the key points. Keep it brief but comprehensive."
            ),
            hotkey="CommandOrControl+Shift+1",
        ),
        "translate": ModeConfig(
            name="Translate",
            system_prompt=(
                "You are a translation assistant. Detect the language of the input text and "
                "translate it to English. If it's already in English, ask what language to "
                "translate it to."
            ),
            hotkey="CommandOrControl+Shift+2",
        ),
        "simplify": ModeConfig(
            name="Simplify",
            system_prompt=(
                "You are a helpful assistant that makes complex text easier to understand. "
                "Rewrite the text using simpler language while preserving the original meaning."
            ),
            hotkey="CommandOrControl+Shift+3",
        ),
        "explain": ModeConfig(
            name="Explain",
            system_prompt=(
                "You are a helpful assistant that provides detailed explanations. Take the input "
                "text and explain it in more detail, providing context and background information."
            ),
            hotkey="CommandOrControl+Shift+4",
        ),
        "maths": ModeConfig(
            name="Maths",
            system_prompt=(
                "You are a calculator. Only return the final numeric result of the given "
                "mathematical expression. No text, no explanation, no formatting, just the raw answer."
            ),
            hotkey="CommandOrControl+Shift+5",
        ),
    }


BUILTIN_MODE_IDS = frozenset(_builtin_modes())


class SettingsSnapshot(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_mode: str = Field(DEFAULT_MODE, alias="currentMode")
    model: ModelSettings = Field(default_factory=ModelSettings)
    modes: dict[str, ModeConfig] = Field(default_factory=_builtin_modes)
    history: HistorySettings = Field(default_factory=HistorySettings)


_SNAPSHOT_DEFAULTS: dict[str, Any] = SettingsSnapshot().model_dump(by_alias=True)

_MODEL_FIELDS = {
    ProviderKind.OLLAMA: "ollama_model",
    ProviderKind.GROQ: "groq_model",
    ProviderKind.OPENROUTER: "openrouter_model",
}

_CREDENTIAL_FIELDS = {
    ProviderKind.GROQ: "groq_api_key",
    ProviderKind.OPENROUTER: "openrouter_api_key",
}


@dataclass
class CredentialUpdate:
    success: bool
    message: str
    masked: str = ""


@dataclass
class ProviderConfig:
    kind: str
    model: str
    encrypted_credential: Optional[str]
    credential_status: str  # "unset" | "valid" | "invalid" | "not_required"


def _mode_defined(snapshot: SettingsSnapshot, mode: str) -> bool:
    return mode == AUTO_MODE or mode in snapshot.modes


def _restore_builtin_modes(snapshot: SettingsSnapshot) -> list[str]:
    """Put back any built-in mode missing from ``snapshot``. Edited built-ins are kept."""
    restored = []
    for mode_id, mode in _builtin_modes().items():
        if mode_id not in snapshot.modes:
            snapshot.modes[mode_id] = mode
            restored.append(mode_id)
    return restored


def _provider_kind(kind: str) -> ProviderKind:
    try:
        return ProviderKind(kind)
    except ValueError:
        raise ConfigurationError(f"Unknown provider: {kind}") from None


class ConfigStore:
    """YAML-backed settings store with credentials routed through KeyManager."""

    def __init__(
        self,
        path: str | Path,
        key_manager: KeyManager,
        env: Mapping[str, str] | None = None,
    ):
        self._path = Path(path)
        self._keys = key_manager
        self._env = env if env is not None else os.environ
        self._snapshot = SettingsSnapshot()

    # -- lifecycle -----------------------------------------------------------

    def load(self) -> None:
        """Read the settings file, seeding any missing top-level key with its default."""
        raw: dict[str, Any] = {}
        if self._path.exists():
            raw = yaml.safe_load(self._path.read_text(encoding="utf-8")) or {}
        if not isinstance(raw, dict):
            raise ConfigurationError(
                f"Invalid settings file {self._path}: expected a mapping, got {type(raw).__name__}"
            )

        seeded = [key for key in _SNAPSHOT_DEFAULTS if key not in raw]
        for key in seeded:
            raw[key] = _SNAPSHOT_DEFAULTS[key]

        try:
            snapshot = SettingsSnapshot.model_validate(raw)
        except SchemaError as e:
            raise ConfigurationError(f"Invalid settings file {self._path}: {e}") from e
        restored = _restore_builtin_modes(snapshot)
        if not _mode_defined(snapshot, snapshot.current_mode):
            raise ConfigurationError(
                f"Invalid settings file {self._path}: unknown mode {snapshot.current_mode}"
            )
        self._snapshot = snapshot
        if restored:
            logger.warning("builtin_modes_restored", modes=restored)
        if seeded or restored:
            self.flush()
        if seeded:
            logger.info("settings_seeded", path=str(self._path), keys=seeded)
        logger.debug("settings_loaded", path=str(self._path))

    def flush(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(
            yaml.safe_dump(self.export_settings(), sort_keys=False, allow_unicode=True),
            encoding="utf-8",
        )
        os.replace(tmp_path, self._path)

    @property
    def key_manager(self) -> KeyManager:
        return self._keys

    # -- modes ---------------------------------------------------------------

    @property
    def current_mode(self) -> str:
        return self._snapshot.current_mode

    def set_current_mode(self, mode: str) -> None:
        if not _mode_defined(self._snapshot, mode):
            raise ValidationError(f"Unknown mode: {mode}")
        self._snapshot.current_mode = mode
        self.flush()
        logger.info("mode_changed", mode=mode)

    def modes(self) -> dict[str, ModeConfig]:
        return dict(self._snapshot.modes)

    def get_mode(self, mode: str) -> ModeConfig:
        """Return a mode's config, falling back to the built-in summarize mode."""
        modes = self._snapshot.modes
        if mode in modes:
            return modes[mode]
        return modes.get(DEFAULT_MODE) or _builtin_modes()[DEFAULT_MODE]

    def get_system_prompt(self, mode: str | None = None) -> str:
        return self.get_mode(mode or self.current_mode).system_prompt

    def update_mode(
        self,
        mode_id: str,
        name: str | None = None,
        system_prompt: str | None = None,
        hotkey: str | None = None,
    ) -> ModeConfig:
        """Edit a mode in place, or add a new one when ``mode_id`` is unknown."""
        if mode_id == AUTO_MODE:
            raise ValidationError("'auto' is reserved for intent classification")
        existing = self._snapshot.modes.get(mode_id)
        if existing is None:
            if not name or not system_prompt:
                raise ValidationError("A new mode needs a name and a system prompt")
            updated = ModeConfig(name=name, system_prompt=system_prompt, hotkey=hotkey)
        else:
            updated = existing.model_copy(
                update={
                    k: v
                    for k, v in (
                        ("name", name),
                        ("system_prompt", system_prompt),
                        ("hotkey", hotkey),
                    )
                    if v is not None
                }
            )
        self._snapshot.modes[mode_id] = updated
        self.flush()
        return updated

    def remove_mode(self, mode_id: str) -> None:
        if mode_id in BUILTIN_MODE_IDS:
            raise ValidationError(f"Built-in mode '{mode_id}' cannot be removed")
        if self._snapshot.modes.pop(mode_id, None) is None:
            raise ValidationError(f"Unknown mode: {mode_id}")
        if self._snapshot.current_mode == mode_id:
            self._snapshot.current_mode = DEFAULT_MODE
        self.flush()

    # -- providers -----------------------------------------------------------

    @property
    def provider(self) -> str:
        return self._snapshot.model.provider

    def set_provider(self, kind: str) -> None:
        self._snapshot.model.provider = _provider_kind(kind).value
        self.flush()
        logger.info("provider_changed", provider=kind)

    def get_model(self, kind: str | None = None) -> str:
        provider = _provider_kind(kind or self.provider)
        return getattr(self._snapshot.model, _MODEL_FIELDS[provider])

    def set_model(self, kind: str, model: str) -> None:
        provider = _provider_kind(kind)
        if not model or not model.strip():
            raise ValidationError("Model identifier is required")
        setattr(self._snapshot.model, _MODEL_FIELDS[provider], model.strip())
        self.flush()

    def get_provider_config(self, kind: str) -> ProviderConfig:
        provider = _provider_kind(kind)
        field_name = _CREDENTIAL_FIELDS.get(provider)
        if field_name is None:
            return ProviderConfig(provider.value, self.get_model(provider), None, "not_required")

        token = getattr(self._snapshot.model, field_name) or None
        secret = self.get_credential(provider)
        if not secret:
            status = "unset"
        elif self._keys.validate_format(provider, secret).valid:
            status = "valid"
        else:
            status = "invalid"
        return ProviderConfig(provider.value, self.get_model(provider), token, status)

    # -- credentials ---------------------------------------------------------

    def set_credential(self, kind: str, secret: str) -> CredentialUpdate:
        """Store a provider key encrypted. Blank input clears it."""
        provider = _provider_kind(kind)
        field_name = _CREDENTIAL_FIELDS.get(provider)
        if field_name is None:
            raise ConfigurationError(f"Provider '{provider}' does not use an API key")

        if not secret or not secret.strip():
            setattr(self._snapshot.model, field_name, "")
            self.flush()
            logger.info("credential_cleared", provider=provider.value)
            return CredentialUpdate(True, "API key cleared")

        check = self._keys.validate_format(provider, secret)
        if not check.valid:
            logger.warning("credential_rejected", provider=provider.value, reason=check.reason)
            return CredentialUpdate(False, check.reason)

        stored = self._keys.store(provider, secret)
        setattr(self._snapshot.model, field_name, stored.encrypted)
        self.flush()
        logger.info("credential_stored", provider=provider.value, masked=stored.masked)
        return CredentialUpdate(True, check.reason, stored.masked)

    def get_credential(self, kind: str) -> str:
        """Decrypted key for a provider, else the ``<PROVIDER>_API_KEY`` override, else ``""``."""
        provider = _provider_kind(kind)
        field_name = _CREDENTIAL_FIELDS.get(provider)
        if field_name is None:
            return ""

        token = getattr(self._snapshot.model, field_name)
        secret = self._keys.decrypt(token) if token else ""
        if secret:
            return secret
        return self._env.get(f"{provider.value.upper()}_API_KEY", "").strip()

    def clear_credentials(self) -> None:
        for field_name in _CREDENTIAL_FIELDS.values():
            setattr(self._snapshot.model, field_name, "")
        self.flush()
        logger.info("credentials_cleared")

    # -- history -------------------------------------------------------------

    @property
    def history_settings(self) -> HistorySettings:
        return self._snapshot.history

    def update_history_settings(
        self,
        enabled: bool | None = None,
        persistent: bool | None = None,
        max_items: int | None = None,
    ) -> HistorySettings:
        data = self._snapshot.history.model_dump()
        for key, value in (("enabled", enabled), ("persistent", persistent), ("max_items", max_items)):
            if value is not None:
                data[key] = value
        try:
            self._snapshot.history = HistorySettings.model_validate(data)
        except SchemaError as e:
            raise ValidationError(f"Invalid history settings: {e}") from e
        self.flush()
        return self._snapshot.history

    # -- snapshot ------------------------------------------------------------

    def export_settings(self) -> dict[str, Any]:
        """Whole configuration as a plain dict. Credentials stay encrypted."""
        return self._snapshot.model_dump(by_alias=True)

    def import_settings(self, data: Mapping[str, Any]) -> None:
        """Replace the top-level keys present in ``data``.

        Credentials are taken as already-encrypted tokens.
        """
        merged = self.export_settings()
        for key, value in data.items():
            if key in _SNAPSHOT_DEFAULTS:
                merged[key] = value
            else:
                logger.warning("settings_import_unknown_key", key=key)
        try:
            snapshot = SettingsSnapshot.model_validate(merged)
        except SchemaError as e:
            raise ValidationError(f"Invalid settings snapshot: {e}") from e
        restored = _restore_builtin_modes(snapshot)
        if not _mode_defined(snapshot, snapshot.current_mode):
            raise ValidationError(f"Unknown mode: {snapshot.current_mode}")
        self._snapshot = snapshot
        if restored:
            logger.warning("builtin_modes_restored", modes=restored)
        self.flush()
        logger.info("settings_imported", keys=sorted(k for k in data if k in _SNAPSHOT_DEFAULTS))
