from __future__ import annotations

import json
from pathlib import Path

import pytest

from config import APP_CONFIG_KEY, JsonConfigStore, default_live_config


def test_config_read_write(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DASHSCOPE_API_KEY", raising=False)
    path = tmp_path / "nested" / "config.json"
    store = JsonConfigStore(path=path)

    assert store.get_api_key() == ""

    store.set_api_key("abc")

    reloaded = JsonConfigStore(path=path)
    assert reloaded.get_api_key() == "abc"
    assert json.loads(path.read_text(encoding="utf-8")) == {"apiKey": "abc"}


def test_config_invalid_json_fallback(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DASHSCOPE_API_KEY", raising=False)
    path = tmp_path / "config.json"
    path.write_text("{invalid", encoding="utf-8")

    store = JsonConfigStore(path=path)
    assert store.get_api_key() == ""


def test_environment_key_is_fallback(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DASHSCOPE_API_KEY", "from-env")
    store = JsonConfigStore(path=tmp_path / "config.json")
    assert store.get_api_key() == "from-env"

    store.set_api_key("stored")
    assert store.get_api_key() == "stored"


def test_default_path_uses_fixed_identifier() -> None:
    assert JsonConfigStore().path.name == f"{APP_CONFIG_KEY}.json"


def test_default_live_config() -> None:
    config = default_live_config()
    assert config.mime_type == "audio/pcm;rate=16000"
    assert config.output_rate == 24000
    assert config.block_size == 4096
    assert "The Pulse" in config.system_instruction
