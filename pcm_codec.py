"""Float sample <-> base64 PCM16 conversion.

Wire format is little-endian signed 16-bit mono PCM, base64 text encoded.
Negative samples scale by 0x8000 and non-negative ones by 0x7FFF so that
both -1.0 and 1.0 land exactly on the int16 range ends.
"""

from __future__ import annotations

import base64
import binascii
from typing import Sequence, Union

import numpy as np

from errors import DecodeError
from models import AudioFrame, EncodedAudioChunk

Samples = Union[np.ndarray, Sequence[float]]


def mime_type_for(sample_rate: int) -> str:
    return f"audio/pcm;rate={sample_rate}"


def float32_to_int16(samples: Samples) -> np.ndarray:
    clipped = np.clip(np.asarray(samples, dtype=np.float32), -1.0, 1.0)
    scaled = np.where(clipped < 0, clipped * 0x8000, clipped * 0x7FFF)
    # astype truncates toward zero
    return scaled.astype("<i2")


def int16_to_float32(pcm: np.ndarray) -> np.ndarray:
    return pcm.astype(np.float32) / 32768.0


def encode(samples: Samples, sample_rate: int = 16000) -> EncodedAudioChunk:
    """Encode float samples in [-1, 1] as a base64 PCM16 chunk."""
    payload = float32_to_int16(samples).tobytes()
    return EncodedAudioChunk(
        data=base64.b64encode(payload).decode("ascii"),
        mime_type=mime_type_for(sample_rate),
    )


def decode(data: str, output_rate: int = 24000) -> AudioFrame:
    """Decode a base64 PCM16 payload into a mono float frame.

    Raises DecodeError on malformed base64 or an odd byte count.
    """
    try:
        raw = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError, TypeError) as exc:
        raise DecodeError(f"invalid base64 audio payload: {exc}") from exc
    if len(raw) % 2:
        raise DecodeError(f"PCM16 payload has odd byte length {len(raw)}")
    pcm = np.frombuffer(raw, dtype="<i2")
    return AudioFrame(samples=int16_to_float32(pcm), sample_rate=output_rate)
