"""Microphone frame source adapter."""

from __future__ import annotations

import logging
import threading
import time
from queue import Full, Queue
from typing import Any

import numpy as np

from errors import DEVICE_UNAVAILABLE, PERMISSION_DENIED, DeviceError
from models import AudioFrame

try:
    import sounddevice as sd
except Exception:  # pragma: no cover - PortAudio missing on the host
    sd = None  # type: ignore

logger = logging.getLogger(__name__)


class SoundDeviceFrameSource:
    def __init__(
        self,
        sample_rate: int = 16000,
        block_size: int = 4096,
        device: int | str | None = None,
    ) -> None:
        self.sample_rate = sample_rate
        self.block_size = block_size
        self.device = device
        self._stream: Any = None
        self._running = False
        self._lock = threading.Lock()
        self.dropped_frames = 0
        self._audio_queue: Queue[AudioFrame | None] | None = None

    def start(self, audio_queue: Queue[AudioFrame | None]) -> None:
        with self._lock:
            if self._running:
                return
            if sd is None:
                raise DeviceError("sounddevice is not installed", code=DEVICE_UNAVAILABLE)
            self._audio_queue = audio_queue
            try:
                self._stream = sd.InputStream(
                    samplerate=self.sample_rate,
                    channels=1,
                    dtype="float32",
                    blocksize=self.block_size,
                    device=self.device,
                    callback=self._on_audio,
                )
                self._running = True
                self._stream.start()
            except Exception as exc:
                self._running = False
                self._close_stream()
                raise self._to_device_error(exc) from exc
            logger.info("Microphone capture started at %d Hz, block %d", self.sample_rate, self.block_size)

    def stop(self) -> None:
        with self._lock:
            if self._running:
                self._running = False
                if self._stream is not None:
                    self._stream.stop()
            self._emit_sentinel_if_needed()

    def close(self) -> None:
        with self._lock:
            self._running = False
            self._close_stream()
            self._audio_queue = None

    def _close_stream(self) -> None:
        if self._stream is None:
            return
        stream, self._stream = self._stream, None
        try:
            stream.close()
        except Exception as exc:
            logger.warning("Failed to close input stream: %s", exc)

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if not self._running or self._audio_queue is None:
            return
        if status:
            logger.debug("Input stream status: %s", status)
        samples = np.asarray(indata, dtype=np.float32)
        if samples.ndim > 1:
            samples = samples[:, 0]
        frame = AudioFrame(
            samples=samples.copy(),
            sample_rate=self.sample_rate,
            timestamp_ms=int(time.time() * 1000),
        )
        try:
            self._audio_queue.put_nowait(frame)
        except Full:
            self.dropped_frames += 1
            logger.warning("Audio queue full, dropped %d frames so far", self.dropped_frames)

    def _emit_sentinel_if_needed(self) -> None:
        if self._audio_queue is None:
            return
        try:
            self._audio_queue.put_nowait(None)
        except Full:
            logger.warning("Audio queue full, end-of-capture sentinel not delivered")

    def _to_device_error(self, exc: Exception) -> DeviceError:
        message = str(exc) or exc.__class__.__name__
        low = message.lower()
        if "permission" in low or "not permitted" in low or "denied" in low:
            return DeviceError(f"microphone access denied: {message}", code=PERMISSION_DENIED)
        return DeviceError(f"microphone unavailable: {message}", code=DEVICE_UNAVAILABLE)
