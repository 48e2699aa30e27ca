"""YAML and env loader with fail-fast validation."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from dotenv import load_dotenv

from knowledge_rag.models import EmbeddingBackend, SettingsConfig


# Backends that need a credential, and the env var that carries it.
_BACKEND_TO_ENV: dict[EmbeddingBackend, str] = {
    EmbeddingBackend.OPENAI: "OPENAI_API_KEY",
    EmbeddingBackend.GEMINI: "GEMINI_API_KEY",
}


def _read_yaml(path: str) -> dict:
    resolved = Path(path)
    if not resolved.exists():
        raise FileNotFoundError(f"Missing config file: {path}")
    with resolved.open("r", encoding="utf-8") as file_obj:
        loaded = yaml.safe_load(file_obj) or {}
    if not isinstance(loaded, dict):
        raise ValueError(f"Expected object at root of YAML file: {path}")
    return loaded


def load_settings(settings_path: str = "config/settings.yaml") -> SettingsConfig:
    load_dotenv()
    return SettingsConfig.model_validate(_read_yaml(settings_path))


def get_required_env_keys(settings: SettingsConfig) -> list[str]:
    """Env vars the configured embedding backend needs.

    The auto and deterministic backends never require a key: auto falls back to
    the deterministic provider when no credential is present.
    """
    env_key = _BACKEND_TO_ENV.get(settings.embedding.backend)
    return [env_key] if env_key else []


def validate_secret_env(settings: SettingsConfig) -> list[str]:
    """Return list of missing required env var names."""
    load_dotenv()
    return [key for key in get_required_env_keys(settings) if not os.getenv(key)]
