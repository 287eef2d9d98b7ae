"""Configuration loading for gemplanner.

Config sources (in priority order):
1. Explicit arguments passed to Config()
2. Environment variables (GEMINI_MODEL, GEMINI_API_KEY, etc.)
3. .env file in current directory
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

DEFAULT_CLI_PATH = "gemini"
DEFAULT_CONTEXT7_URL = "https://mcp.context7.com/mcp"
DEFAULT_NPM_REGISTRY_URL = "https://registry.npmjs.org"
DEFAULT_CONTEXTS_DIR = Path("contexts")
DEFAULT_TIMEOUT = 60.0  # seconds
DEFAULT_MAX_OUTPUT_BYTES = 10 * 1024 * 1024
DEFAULT_HTTP_TIMEOUT = 30.0  # seconds


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw not in ("0", "false", "no", "off")


@dataclass
class Config:
    gemini_model: str = ""
    gemini_api_key: str = ""
    gemini_cli_path: str = DEFAULT_CLI_PATH
    gemini_timeout: float = DEFAULT_TIMEOUT
    gemini_max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES
    context7_url: str = DEFAULT_CONTEXT7_URL
    npm_registry_url: str = DEFAULT_NPM_REGISTRY_URL
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    contexts_dir: Path = DEFAULT_CONTEXTS_DIR
    resolve_versions: bool = True
    log_level: str = "INFO"

    @classmethod
    def load(cls) -> Config:
        return cls(
            gemini_model=os.getenv("GEMINI_MODEL", ""),
            gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
            gemini_cli_path=os.getenv("GEMINI_CLI_PATH", "") or DEFAULT_CLI_PATH,
            gemini_timeout=_env_float("GEMINI_TIMEOUT_SECONDS", DEFAULT_TIMEOUT),
            gemini_max_output_bytes=_env_int("GEMINI_MAX_OUTPUT_BYTES", DEFAULT_MAX_OUTPUT_BYTES),
            context7_url=os.getenv("CONTEXT7_URL", "") or DEFAULT_CONTEXT7_URL,
            npm_registry_url=os.getenv("NPM_REGISTRY_URL", "") or DEFAULT_NPM_REGISTRY_URL,
            http_timeout=_env_float("GEMPLANNER_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT),
            contexts_dir=Path(os.getenv("GEMPLANNER_CONTEXTS_DIR", str(DEFAULT_CONTEXTS_DIR))),
            resolve_versions=_env_bool("GEMPLANNER_RESOLVE_VERSIONS", True),
            log_level=os.getenv("GEMPLANNER_LOG_LEVEL", "INFO").upper(),
        )

    def validate(self) -> list[str]:
        """Return a list of missing config issues."""
        issues = []
        if not self.gemini_model:
            issues.append("Gemini model not set (GEMINI_MODEL)")
        if self.gemini_timeout <= 0:
            issues.append("Generator timeout must be positive (GEMINI_TIMEOUT_SECONDS)")
        if self.gemini_max_output_bytes <= 0:
            issues.append("Output cap must be positive (GEMINI_MAX_OUTPUT_BYTES)")
        return issues
