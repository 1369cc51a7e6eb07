from pathlib import Path

import pytest
from pydantic import ValidationError

import pero.config as config_module
from pero.config import Config
from pero.run_chat import ChatRunOptions


def test_load_prefers_local_config_yaml(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)

    home_cfg = tmp_path / "home_config.yaml"
    home_cfg.write_text("model:\n  gateway: ollama\n  model: llama3.2\n", encoding="utf-8")
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", home_cfg)

    local_cfg = tmp_path / "pero.yaml"
    local_cfg.write_text(
        (
            "model:\n"
            "  gateway: openai\n"
            "  model: gpt-4o-mini\n"
            "chat:\n"
            "  include_tool: result\n"
        ),
        encoding="utf-8",
    )

    cfg = Config.load()

    assert cfg.model.gateway == "openai"
    assert cfg.model.model == "gpt-4o-mini"
    assert cfg.chat.include_tool == "result"


def test_load_falls_back_to_default_path_when_no_local(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)

    home_cfg = tmp_path / "home_config.yaml"
    home_cfg.write_text("model:\n  gateway: gemini\n  model: gemini-2.5-flash\n", encoding="utf-8")
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", home_cfg)

    cfg = Config.load()

    assert cfg.model.gateway == "gemini"
    assert cfg.model.model == "gemini-2.5-flash"


def test_load_missing_file_uses_defaults(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", tmp_path / "absent.yaml")

    cfg = Config.load()

    assert cfg.model.gateway == "openrouter"
    assert cfg.chat.max_tool_depth == 20
    assert cfg.tools.default_timeout_ms == 120000


def test_environment_overrides_yaml(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    cfg_path = tmp_path / "custom.yaml"
    cfg_path.write_text("model:\n  gateway: ollama\n  model: yaml-model\n", encoding="utf-8")
    monkeypatch.setenv("PERO_MODEL__MODEL", "env-model")

    cfg = Config.load(cfg_path)

    assert cfg.model.gateway == "ollama"
    assert cfg.model.model == "env-model"


def test_save_round_trips_through_yaml(tmp_path: Path):
    cfg = Config()
    cfg.chat.tools_placement = "bottom"
    path = tmp_path / "nested" / "config.yaml"

    cfg.save(path)

    assert Config.load(path).chat.tools_placement == "bottom"


def test_chat_options_from_config_ignore_unset_overrides():
    cfg = Config()
    cfg.chat.max_tool_depth = 7

    options = ChatRunOptions.from_config(cfg, model="other/model", gateway=None, include_tool="call")

    assert options.model == "other/model"
    assert options.gateway == "openrouter"
    assert options.include_tool == "call"
    assert options.max_tool_depth == 7


def test_chat_options_reject_unknown_modes():
    with pytest.raises(ValidationError):
        ChatRunOptions.from_config(Config(), include_tool="everything")
