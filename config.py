"""Runtime constants and a simple JSON-based config store."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from models import LiveConfig

logger = logging.getLogger(__name__)

APP_CONFIG_KEY = "the_pulse_config_v1"

SAMPLE_RATE_INPUT = 16000
SAMPLE_RATE_OUTPUT = 24000
BLOCK_SIZE = 4096
FFT_SIZE = 256
VOLUME_INTERVAL_S = 1 / 60
OUTPUT_STRIDE = 50
OUTPUT_GAIN = 3.0

DEFAULT_MODEL = "qwen-omni-turbo-realtime-latest"
DEFAULT_VOICE = "Chelsie"

INITIAL_SYSTEM_INSTRUCTION = """
You are "The Pulse", a high-performance, low-latency cognitive engine.
Your goal is to be a seamless extension of the user's thought process.
Keep responses concise, insight-dense, and conversational.
Do not use markdown formatting in your spoken responses.
Focus on "Logic Pulses" - extracting the core intent and meaning rapidly.
"""


def default_live_config() -> LiveConfig:
    return LiveConfig(
        model=DEFAULT_MODEL,
        voice=DEFAULT_VOICE,
        system_instruction=INITIAL_SYSTEM_INSTRUCTION.strip(),
        input_rate=SAMPLE_RATE_INPUT,
        output_rate=SAMPLE_RATE_OUTPUT,
        block_size=BLOCK_SIZE,
    )


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "the_pulse" / f"{APP_CONFIG_KEY}.json"

    @property
    def path(self) -> Path:
        return self._path

    def get_api_key(self) -> str:
        data = self._read_all()
        key = str(data.get("apiKey", ""))
        return key or os.getenv("DASHSCOPE_API_KEY", "")

    def set_api_key(self, key: str) -> None:
        data = self._read_all()
        data["apiKey"] = key
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Failed to parse config %s: %s", self._path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
