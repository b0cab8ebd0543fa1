"""Core data models for the live session."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import numpy as np


class ConnectionState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    ERROR = "ERROR"


class Sender(str, Enum):
    USER = "user"
    MODEL = "model"


@dataclass
class AudioFrame:
    samples: np.ndarray
    sample_rate: int = 16000
    timestamp_ms: int = 0

    def silent(self) -> "AudioFrame":
        """Zero-filled frame of identical size."""
        return AudioFrame(
            samples=np.zeros_like(self.samples),
            sample_rate=self.sample_rate,
            timestamp_ms=self.timestamp_ms,
        )


@dataclass(frozen=True)
class EncodedAudioChunk:
    data: str
    mime_type: str


@dataclass(frozen=True)
class TranscriptItem:
    id: str
    text: str
    sender: Sender
    timestamp: int
    is_partial: bool = False


@dataclass(frozen=True)
class TranscriptEvent:
    text: str
    sender: Sender
    is_final: bool = False


@dataclass
class ServerMessage:
    """One inbound message; absent fields mean no update of that kind."""

    audio: Optional[str] = None
    output_transcription: Optional[str] = None
    input_transcription: Optional[str] = None
    input_transcription_final: bool = False
    turn_complete: bool = False


@dataclass(frozen=True)
class SessionStats:
    user_chars: int = 0
    model_chars: int = 0
    elapsed_s: float = 0.0


@dataclass
class LiveConfig:
    model: str
    voice: str
    system_instruction: str
    input_rate: int = 16000
    output_rate: int = 24000
    block_size: int = 4096
    response_modalities: list[str] = field(default_factory=lambda: ["AUDIO"])
    input_transcription: bool = True
    output_transcription: bool = True

    @property
    def mime_type(self) -> str:
        return f"audio/pcm;rate={self.input_rate}"
