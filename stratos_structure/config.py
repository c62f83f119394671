"""Stratos Structure — Application configuration via environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class StructureSettings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "STRATOS_",
        "extra": "ignore",
    }

    # ── Persistence (snapshot revisions) ───────────────────────
    database_url: str = "sqlite:///stratos_structure.db"

    # ── Structure rules ────────────────────────────────────────
    default_orphan_policy: str = "reparent_children_to_grandparent"
    protect_last_root: bool = True
    seed_example_structure: bool = False

    # ── HTTP API ───────────────────────────────────────────────
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # ── Logging ────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"


settings = StructureSettings()
