"""Protocol interfaces used by LiveSessionController."""

from __future__ import annotations

from dataclasses import dataclass
from queue import Queue
from typing import Callable, Optional, Protocol

from models import AudioFrame, EncodedAudioChunk, LiveConfig, ServerMessage


class FrameSource(Protocol):
    """Produces fixed-size capture blocks onto a queue until stopped.

    ``stop`` ends frame production and posts a ``None`` sentinel; ``close``
    releases the device. Both must tolerate repeated calls.
    """

    def start(self, audio_queue: Queue[AudioFrame | None]) -> None: ...

    def stop(self) -> None: ...

    def close(self) -> None: ...


class FrameSink(Protocol):
    def send(self, chunk: EncodedAudioChunk) -> None: ...

    def close(self) -> None: ...


@dataclass
class LiveCallbacks:
    on_open: Optional[Callable[[], None]] = None
    on_message: Optional[Callable[[ServerMessage], None]] = None
    on_close: Optional[Callable[[str], None]] = None
    on_error: Optional[Callable[[str, str], None]] = None


class LiveClient(Protocol):
    def connect(self, credential: str, config: LiveConfig, callbacks: LiveCallbacks) -> FrameSink:
        """Open a streaming session; raises TransportError on failure."""
        ...
