"""Tests for environment configuration, prompt overrides and logging setup."""
from __future__ import annotations

import logging
from pathlib import Path

import pytest

from autoagents.config import Config
from autoagents.logging_utils import setup_logging
from autoagents.prompts import EXECUTION_STYLE, load_prompt, worker_system_prompt


def test_config_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for key in ("OPENAI_API_KEY", "AZURE_OPENAI_KEY", "AZURE_OPENAI_ENDPOINT", "AUTOAGENTS_DEFAULT_BACKEND", "AUTOAGENTS_PROMPTS_DIR"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("AUTOAGENTS_HOME", str(tmp_path))

    config = Config.from_env()

    assert config.home == tmp_path
    assert config.recipes_dir == tmp_path / "agents"
    assert config.openai is None
    assert config.azure_openai is None
    assert config.default_backend == "agent"
    assert config.prompt_dirs == (tmp_path / "prompts",)


def test_config_reads_model_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("AUTOAGENTS_HOME", str(tmp_path))
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("OPENAI_MODEL", "gpt-test")
    monkeypatch.setenv("AUTOAGENTS_COLLECT_TIMEOUT", "7.5")
    monkeypatch.setenv("AUTOAGENTS_LOG_LEVEL", "debug")
    monkeypatch.setenv("AUTOAGENTS_PROMPTS_DIR", str(tmp_path / "custom"))

    config = Config.from_env()

    assert config.openai.model == "gpt-test"
    assert config.collect_timeout == 7.5
    assert config.log_level == "DEBUG"
    assert config.prompt_dirs[0] == tmp_path / "custom"


def test_prompt_override_wins_when_non_empty(tmp_path: Path) -> None:
    first = tmp_path / "first"
    second = tmp_path / "second"
    first.mkdir()
    second.mkdir()
    (first / "execution_style.md").write_text("   \n", encoding="utf-8")
    (second / "execution_style.md").write_text("Be brief.", encoding="utf-8")

    assert load_prompt("execution_style.md", EXECUTION_STYLE, [first, second]) == "Be brief."
    assert load_prompt("execution_style.md", EXECUTION_STYLE, [first]) == EXECUTION_STYLE.strip()
    assert "Be brief." in worker_system_prompt("You work.", "now", True, [second])


def test_setup_logging_writes_log_file(tmp_path: Path) -> None:
    logger = setup_logging("WARNING", tmp_path / "logs")
    try:
        logging.getLogger("autoagents.test").debug("file only")
        for handler in logger.handlers:
            handler.flush()
        files = list((tmp_path / "logs").glob("autoagents_*.log"))
        assert len(files) == 1
        assert "file only" in files[0].read_text(encoding="utf-8")
    finally:
        for handler in logger.handlers:
            handler.close()
        logger.handlers = []
