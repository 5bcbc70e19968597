"""Configuration helpers for the Gemini Image Studio project."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


DEFAULT_MODEL_ID = "gemini-2.5-flash-image"
MAX_GENERATIONS_PER_DAY = 20


@dataclass(slots=True)
class AppConfig:
    """Centralized application configuration."""

    api_key: Optional[str] = None
    model_id: str = DEFAULT_MODEL_ID
    max_generations_per_day: int = MAX_GENERATIONS_PER_DAY
    state_dir: Path = Path("state")
    output_dir: Path = Path("outputs")
    log_dir: Path = Path("logs")
    server_name: str = "127.0.0.1"
    server_port: int = 7860


def _load_env_file(path: Path) -> None:
    """Populate environment variables from a simple KEY=VALUE .env file."""
    if not path.exists():
        return

    for line in path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        key, value = stripped.split("=", 1)
        os.environ[key.strip()] = value.strip()


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """Return an AppConfig instance with environment-aware settings."""
    env_path = Path(config_path) if config_path else Path(".env")
    _load_env_file(env_path)

    api_key = (
        os.getenv("GEMINI_API_KEY")
        or os.getenv("API_KEY")
        or os.getenv("GOOGLE_API_KEY")
    )
    max_per_day = max(0, _int_env("MAX_GENERATIONS_PER_DAY", MAX_GENERATIONS_PER_DAY))

    return AppConfig(
        api_key=api_key or None,
        model_id=os.getenv("GEMINI_MODEL") or DEFAULT_MODEL_ID,
        max_generations_per_day=max_per_day,
        state_dir=Path(os.getenv("STATE_DIR", "state")).expanduser(),
        output_dir=Path(os.getenv("OUTPUT_DIR", "outputs")).expanduser(),
        log_dir=Path(os.getenv("LOG_DIR", "logs")).expanduser(),
        server_name=os.getenv("GRADIO_SERVER_NAME", "127.0.0.1"),
        server_port=_int_env("GRADIO_SERVER_PORT", 7860),
    )
