"""Core configuration for the honeyprobe engine."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="HONEYPROBE_",
        case_sensitive=False,
    )

    # ── App ──────────────────────────────────────────────────────────────
    app_name: str = "honeyprobe"
    app_env: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"

    # ── Solidity compiler ────────────────────────────────────────────────
    solc_version: str | None = None  # pin; otherwise detected from pragma
    solc_fallback_version: str = "0.8.28"

    # ── Foundry ──────────────────────────────────────────────────────────
    forge_path: str = "forge"
    forge_project_dir: str | None = None  # fixed suite location; temp dir if unset
    forge_test_timeout: int = 600
    forge_fmt_timeout: int = 30
    forge_test_file: str = "test/test.sol"

    # ── Fork ─────────────────────────────────────────────────────────────
    fork_url: str = ""
    fork_block: int | None = None

    # ── Synthesized scenarios ────────────────────────────────────────────
    seed_amount: str = "1e20"
    time_skip_seconds: int = 60 * 60 * 24 * 365


@lru_cache
def get_settings() -> Settings:
    """Return cached settings singleton."""
    return Settings()
