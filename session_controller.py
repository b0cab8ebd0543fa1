"""State-machine based live session orchestration.

One controller owns one microphone source, one remote stream and two worker
threads: the sender, which drains captured frames in capture order and ships
them as PCM16 chunks, and the volume loop, which samples the latest input
spectrum at the visualizer cadence.

Every session attempt gets a generation number. Worker threads and transport
callbacks carry the generation they were created for and do nothing once it
is stale, so nothing fires after ``disconnect()`` has returned.
"""

from __future__ import annotations

import logging
import threading
import time
from queue import Empty, Queue
from typing import Any, Callable, Optional

from config import FFT_SIZE, OUTPUT_GAIN, OUTPUT_STRIDE, VOLUME_INTERVAL_S, default_live_config
from errors import TRANSPORT_ERROR, DecodeError, MissingCredentialError, describe
from interfaces import FrameSink, FrameSource, LiveCallbacks, LiveClient
from models import (
    AudioFrame,
    ConnectionState,
    LiveConfig,
    Sender,
    ServerMessage,
    SessionStats,
    TranscriptEvent,
)
from pcm_codec import decode, encode
from transcript import Transcript, apply_event, compute_stats, now_ms
from volume import buffer_volume, byte_frequency_data, spectrum_volume

logger = logging.getLogger(__name__)

StateCallback = Callable[[ConnectionState, ConnectionState], None]
TranscriptEventCallback = Callable[[str, Sender, bool], None]
TranscriptCallback = Callable[[Transcript], None]
VolumeCallback = Callable[[float], None]
ErrorCallback = Callable[[str, str], None]

ALLOWED_TRANSITIONS = {
    ConnectionState.DISCONNECTED: {ConnectionState.CONNECTING},
    ConnectionState.CONNECTING: {
        ConnectionState.CONNECTED,
        ConnectionState.ERROR,
        ConnectionState.DISCONNECTED,
    },
    ConnectionState.CONNECTED: {ConnectionState.DISCONNECTED},
    ConnectionState.ERROR: {ConnectionState.DISCONNECTED},
}


class LiveSessionController:
    def __init__(
        self,
        frame_source: FrameSource,
        live_client: LiveClient,
        config: Optional[LiveConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        clock_ms: Callable[[], int] = now_ms,
        volume_interval_s: float = VOLUME_INTERVAL_S,
        fft_size: int = FFT_SIZE,
        output_stride: int = OUTPUT_STRIDE,
        output_gain: float = OUTPUT_GAIN,
        queue_maxsize: int = 50,
        join_timeout_s: float = 1.0,
        on_state_change: Optional[StateCallback] = None,
        on_transcript_event: Optional[TranscriptEventCallback] = None,
        on_transcript: Optional[TranscriptCallback] = None,
        on_volume: Optional[VolumeCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._frame_source = frame_source
        self._live_client = live_client
        self._config = config or default_live_config()
        self._clock = clock
        self._clock_ms = clock_ms
        self._volume_interval_s = volume_interval_s
        self._fft_size = fft_size
        self._output_stride = output_stride
        self._output_gain = output_gain
        self._queue_maxsize = queue_maxsize
        self._join_timeout_s = join_timeout_s
        self._on_state_change = on_state_change
        self._on_transcript_event = on_transcript_event
        self._on_transcript = on_transcript
        self._on_volume = on_volume
        self._on_error = on_error

        self._lock = threading.RLock()
        self._state = ConnectionState.DISCONNECTED
        self._generation = 0
        self._paused = False
        self._stop_event = threading.Event()
        self._stream: Optional[FrameSink] = None
        self._source_active = False
        self._sender_thread: Optional[threading.Thread] = None
        self._volume_thread: Optional[threading.Thread] = None
        self._latest_frame: Optional[AudioFrame] = None

        self._transcript: Transcript = ()
        self._connected_at: Optional[float] = None
        self._elapsed_s = 0.0
        self._decode_errors = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def config(self) -> LiveConfig:
        return self._config

    @property
    def transcript(self) -> Transcript:
        return self._transcript

    @property
    def decode_errors(self) -> int:
        return self._decode_errors

    def stats(self) -> SessionStats:
        with self._lock:
            elapsed = self._elapsed_s
            if self._connected_at is not None:
                elapsed += self._clock() - self._connected_at
            return compute_stats(self._transcript, elapsed)

    def clear_transcript(self) -> None:
        with self._lock:
            self._transcript = ()
            self._elapsed_s = 0.0
            if self._connected_at is not None:
                self._connected_at = self._clock()
            if self._on_transcript:
                self._on_transcript(self._transcript)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def connect(self, credential: str) -> bool:
        """Open a session. Returns True once CONNECTED, False on failure.

        Raises MissingCredentialError without touching any resource when
        ``credential`` is empty.
        """
        if not credential or not credential.strip():
            raise MissingCredentialError()

        with self._lock:
            if self._state != ConnectionState.DISCONNECTED:
                logger.warning("connect() ignored in state %s", self._state.value)
                return False
            self._generation += 1
            generation = self._generation
            self._stop_event = threading.Event()
            stop_event = self._stop_event
            self._paused = False
            self._latest_frame = None
            audio_queue: Queue[AudioFrame | None] = Queue(maxsize=self._queue_maxsize)
            self._source_active = True
            self._transition(ConnectionState.CONNECTING)

        try:
            self._frame_source.start(audio_queue)
            stream = self._live_client.connect(credential, self._config, self._callbacks_for(generation))
        except Exception as exc:
            code, message = describe(exc)
            logger.error("Connect failed: %s", message)
            if not self._fail(generation, code, message):
                self._release_source()
            return False

        with self._lock:
            if generation == self._generation and self._state == ConnectionState.CONNECTING:
                self._stream = stream
                self._connected_at = self._clock()
                self._sender_thread = threading.Thread(
                    target=self._pump_audio,
                    args=(generation, audio_queue, stream, stop_event),
                    name="pulse-sender",
                    daemon=True,
                )
                self._volume_thread = threading.Thread(
                    target=self._volume_loop,
                    args=(generation, stop_event),
                    name="pulse-volume",
                    daemon=True,
                )
                self._transition(ConnectionState.CONNECTED)
                self._sender_thread.start()
                self._volume_thread.start()
                return True

        # disconnect() ran while the session was opening
        logger.info("Session opened after disconnect, releasing it")
        self._safe_close_stream(stream)
        self._release_source()
        return False

    def set_paused(self, paused: bool) -> None:
        with self._lock:
            if self._paused == paused:
                return
            self._paused = paused
            logger.info("Session %s", "paused" if paused else "resumed")
            if paused and self._state == ConnectionState.CONNECTED:
                self._emit_volume(0.0)

    def disconnect(self) -> None:
        """Tear the session down. Safe to call from any state, any number of times."""
        with self._lock:
            if self._state == ConnectionState.DISCONNECTED and not self._holds_resources():
                return
            self._generation += 1
            self._stop_event.set()
            self._paused = False
            self._latest_frame = None
            if self._connected_at is not None:
                self._elapsed_s += self._clock() - self._connected_at
                self._connected_at = None
            volume_thread, self._volume_thread = self._volume_thread, None
            sender_thread, self._sender_thread = self._sender_thread, None
            stream, self._stream = self._stream, None
            source_active, self._source_active = self._source_active, False
            if self._state != ConnectionState.DISCONNECTED:
                self._transition(ConnectionState.DISCONNECTED)
                self._emit_volume(0.0)

        self._join(volume_thread)
        if source_active:
            self._safe_stop_source()
        self._join(sender_thread)
        self._safe_close_stream(stream)
        if source_active:
            self._safe_close_source()
        logger.info("Session torn down")

    # ------------------------------------------------------------------
    # Worker threads
    # ------------------------------------------------------------------

    def _pump_audio(
        self,
        generation: int,
        audio_queue: Queue[AudioFrame | None],
        stream: FrameSink,
        stop_event: threading.Event,
    ) -> None:
        """Encode and send frames in capture order until the end sentinel."""
        while True:
            try:
                frame = audio_queue.get(timeout=0.2)
            except Empty:
                if stop_event.is_set():
                    return
                continue
            if frame is None:
                return

            with self._lock:
                paused = self._paused
                if not paused and generation == self._generation:
                    self._latest_frame = frame
            outbound = frame.silent() if paused else frame
            chunk = encode(outbound.samples, self._config.input_rate)
            try:
                stream.send(chunk)
            except Exception as exc:
                code, message = describe(exc)
                logger.error("Audio send failed: %s", message)
                self._fail(generation, code, message)
                return

    def _volume_loop(self, generation: int, stop_event: threading.Event) -> None:
        while not stop_event.wait(self._volume_interval_s):
            with self._lock:
                if generation != self._generation or self._state != ConnectionState.CONNECTED:
                    return
                if self._paused:
                    self._emit_volume(0.0)
                    continue
                frame = self._latest_frame
                if frame is None:
                    continue
                spectrum = byte_frequency_data(frame.samples, self._fft_size)
                self._emit_volume(spectrum_volume(spectrum))

    # ------------------------------------------------------------------
    # Transport callbacks
    # ------------------------------------------------------------------

    def _callbacks_for(self, generation: int) -> LiveCallbacks:
        return LiveCallbacks(
            on_open=lambda: logger.debug("Remote session %d open", generation),
            on_message=lambda message: self._handle_message(generation, message),
            on_close=lambda reason: self._handle_close(generation, reason),
            on_error=lambda code, message: self._fail(generation, code or TRANSPORT_ERROR, message),
        )

    def _handle_message(self, generation: int, message: ServerMessage) -> None:
        with self._lock:
            if generation != self._generation or self._state not in (
                ConnectionState.CONNECTING,
                ConnectionState.CONNECTED,
            ):
                logger.debug("Dropping message for stale session %d", generation)
                return

            if message.audio and not self._paused:
                try:
                    frame = decode(message.audio, self._config.output_rate)
                except DecodeError as exc:
                    self._decode_errors += 1
                    logger.warning("Dropping malformed model audio: %s", exc)
                else:
                    self._emit_volume(buffer_volume(frame.samples, self._output_stride, self._output_gain))

            if message.output_transcription:
                self._apply_transcript_event(TranscriptEvent(message.output_transcription, Sender.MODEL))
            if message.input_transcription:
                self._apply_transcript_event(
                    TranscriptEvent(message.input_transcription, Sender.USER, is_final=message.input_transcription_final)
                )
            if message.turn_complete:
                self._apply_transcript_event(TranscriptEvent("", Sender.MODEL, is_final=True))
                self._apply_transcript_event(TranscriptEvent("", Sender.USER, is_final=True))

    def _handle_close(self, generation: int, reason: str) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._generation += 1
            if self._state == ConnectionState.CONNECTING:
                self._transition(ConnectionState.ERROR)
                self._emit_error(TRANSPORT_ERROR, f"session closed before it was ready: {reason}")
            else:
                logger.info("Remote closed the session: %s", reason)
        self.disconnect()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _apply_transcript_event(self, event: TranscriptEvent) -> None:
        if self._on_transcript_event:
            self._on_transcript_event(event.text, event.sender, event.is_final)
        updated = apply_event(self._transcript, event, clock_ms=self._clock_ms)
        if updated is self._transcript:
            return
        self._transcript = updated
        if self._on_transcript:
            self._on_transcript(updated)

    def _fail(self, generation: int, code: str, message: str) -> bool:
        """Report an error and tear down. Returns False if the session was already gone."""
        with self._lock:
            if generation != self._generation:
                return False
            # a connect() returning before disconnect() runs must see the session as stale
            self._generation += 1
            if self._state == ConnectionState.CONNECTING:
                self._transition(ConnectionState.ERROR)
            self._emit_error(code, message)
        self.disconnect()
        return True

    def _holds_resources(self) -> bool:
        return (
            self._source_active
            or self._stream is not None
            or self._sender_thread is not None
            or self._volume_thread is not None
        )

    def _release_source(self) -> None:
        self._safe_stop_source()
        self._safe_close_source()

    def _join(self, thread: Optional[threading.Thread]) -> None:
        if thread is None or thread.ident is None or thread is threading.current_thread():
            return
        thread.join(timeout=self._join_timeout_s)
        if thread.is_alive():
            logger.warning("Thread %s did not stop within %.1fs", thread.name, self._join_timeout_s)

    def _safe_stop_source(self) -> None:
        try:
            self._frame_source.stop()
        except Exception as exc:
            logger.warning("Failed to stop audio capture: %s", exc)

    def _safe_close_source(self) -> None:
        try:
            self._frame_source.close()
        except Exception as exc:
            logger.warning("Failed to release audio device: %s", exc)

    def _safe_close_stream(self, stream: Any) -> None:
        if stream is None:
            return
        try:
            stream.close()
        except Exception as exc:
            logger.warning("Failed to close remote session: %s", exc)

    def _emit_volume(self, volume: float) -> None:
        if self._on_volume:
            self._on_volume(volume)

    def _emit_error(self, code: str, message: str) -> None:
        if self._on_error:
            self._on_error(code, message)

    def _transition(self, to_state: ConnectionState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        if to_state not in ALLOWED_TRANSITIONS[from_state]:
            raise RuntimeError(f"illegal transition {from_state.value} -> {to_state.value}")
        logger.info("Connection state %s -> %s", from_state.value, to_state.value)
        self._state = to_state
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
