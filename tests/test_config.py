"""Tests for gemplanner.config."""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

from gemplanner.config import (
    DEFAULT_CLI_PATH,
    DEFAULT_CONTEXT7_URL,
    DEFAULT_CONTEXTS_DIR,
    DEFAULT_MAX_OUTPUT_BYTES,
    DEFAULT_TIMEOUT,
    Config,
)

ENV_KEYS = [
    "GEMINI_MODEL",
    "GEMINI_API_KEY",
    "GEMINI_CLI_PATH",
    "GEMINI_TIMEOUT_SECONDS",
    "GEMINI_MAX_OUTPUT_BYTES",
    "CONTEXT7_URL",
    "NPM_REGISTRY_URL",
    "GEMPLANNER_HTTP_TIMEOUT",
    "GEMPLANNER_CONTEXTS_DIR",
    "GEMPLANNER_RESOLVE_VERSIONS",
    "GEMPLANNER_LOG_LEVEL",
]


def _clean_env() -> dict[str, str]:
    return {k: v for k, v in os.environ.items() if k not in ENV_KEYS}


class TestConfigDefaults:
    def test_default_values(self):
        config = Config()
        assert config.gemini_model == ""
        assert config.gemini_api_key == ""
        assert config.gemini_cli_path == DEFAULT_CLI_PATH
        assert config.gemini_timeout == DEFAULT_TIMEOUT
        assert config.gemini_max_output_bytes == DEFAULT_MAX_OUTPUT_BYTES
        assert config.context7_url == DEFAULT_CONTEXT7_URL
        assert config.contexts_dir == DEFAULT_CONTEXTS_DIR
        assert config.resolve_versions is True


class TestConfigLoad:
    def test_load_from_env(self):
        env = {
            "GEMINI_MODEL": "gemini-2.5-pro",
            "GEMINI_API_KEY": "key-123",
            "GEMINI_CLI_PATH": "/opt/gemini/bin/gemini",
            "GEMINI_TIMEOUT_SECONDS": "12.5",
            "GEMINI_MAX_OUTPUT_BYTES": "2048",
            "CONTEXT7_URL": "http://localhost:9000/mcp",
            "GEMPLANNER_CONTEXTS_DIR": "/tmp/ctx",
            "GEMPLANNER_RESOLVE_VERSIONS": "false",
            "GEMPLANNER_LOG_LEVEL": "debug",
        }
        with patch.dict(os.environ, env, clear=False):
            config = Config.load()
        assert config.gemini_model == "gemini-2.5-pro"
        assert config.gemini_api_key == "key-123"
        assert config.gemini_cli_path == "/opt/gemini/bin/gemini"
        assert config.gemini_timeout == 12.5
        assert config.gemini_max_output_bytes == 2048
        assert config.context7_url == "http://localhost:9000/mcp"
        assert config.contexts_dir == Path("/tmp/ctx")
        assert config.resolve_versions is False
        assert config.log_level == "DEBUG"

    def test_load_defaults_when_env_empty(self):
        with patch.dict(os.environ, _clean_env(), clear=True):
            config = Config.load()
        assert config.gemini_model == ""
        assert config.gemini_cli_path == DEFAULT_CLI_PATH
        assert config.gemini_timeout == DEFAULT_TIMEOUT
        assert config.contexts_dir == DEFAULT_CONTEXTS_DIR

    def test_unparseable_numbers_fall_back(self):
        env = _clean_env()
        env.update({"GEMINI_TIMEOUT_SECONDS": "soon", "GEMINI_MAX_OUTPUT_BYTES": "lots"})
        with patch.dict(os.environ, env, clear=True):
            config = Config.load()
        assert config.gemini_timeout == DEFAULT_TIMEOUT
        assert config.gemini_max_output_bytes == DEFAULT_MAX_OUTPUT_BYTES

    def test_blank_cli_path_uses_default(self):
        env = _clean_env()
        env["GEMINI_CLI_PATH"] = ""
        with patch.dict(os.environ, env, clear=True):
            config = Config.load()
        assert config.gemini_cli_path == DEFAULT_CLI_PATH


class TestConfigValidate:
    def test_valid_config(self):
        assert Config(gemini_model="gemini-2.5-pro").validate() == []

    def test_missing_model(self):
        issues = Config().validate()
        assert len(issues) == 1
        assert "GEMINI_MODEL" in issues[0]

    def test_non_positive_limits(self):
        issues = Config(gemini_model="m", gemini_timeout=0, gemini_max_output_bytes=-1).validate()
        assert len(issues) == 2
