"""Remote streaming client backed by DashScope Qwen-Omni realtime.

The realtime conversation runs over a websocket owned by the SDK; its
callbacks fire on the SDK's receive thread. Server events are reduced to
``ServerMessage`` values so the session controller never sees SDK types.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Optional

from dashscope.audio.qwen_omni import (
    AudioFormat,
    MultiModality,
    OmniRealtimeCallback,
    OmniRealtimeConversation,
)

from errors import TRANSPORT_ERROR, TransportError, classify_transport_error
from interfaces import LiveCallbacks
from models import EncodedAudioChunk, LiveConfig, ServerMessage

logger = logging.getLogger(__name__)

INPUT_FORMATS = {16000: AudioFormat.PCM_16000HZ_MONO_16BIT}
OUTPUT_FORMATS = {24000: AudioFormat.PCM_24000HZ_MONO_16BIT}

INPUT_TRANSCRIPTION_MODEL = "gummy-realtime-v1"


def to_server_message(event: dict) -> Optional[ServerMessage]:
    """Map one realtime server event to a ServerMessage, or None if irrelevant."""
    kind = event.get("type", "")
    if kind == "response.audio.delta":
        return ServerMessage(audio=event.get("delta") or None)
    if kind == "response.audio_transcript.delta":
        return ServerMessage(output_transcription=event.get("delta") or None)
    if kind == "conversation.item.input_audio_transcription.completed":
        # one completed user utterance per event
        return ServerMessage(input_transcription=event.get("transcript") or None, input_transcription_final=True)
    if kind == "response.done":
        return ServerMessage(turn_complete=True)
    return None


class _CallbackBridge(OmniRealtimeCallback):
    def __init__(self, callbacks: LiveCallbacks) -> None:
        super().__init__()
        self._callbacks = callbacks

    def on_open(self) -> None:
        logger.info("Realtime session opened")
        if self._callbacks.on_open:
            self._callbacks.on_open()

    def on_close(self, close_status_code: Any, close_msg: Any) -> None:
        logger.info("Realtime session closed: %s %s", close_status_code, close_msg)
        if self._callbacks.on_close:
            self._callbacks.on_close(f"{close_status_code} {close_msg}".strip())

    def on_event(self, response: dict) -> None:
        kind = response.get("type", "")
        if kind == "error":
            error = response.get("error") or {}
            message = str(error.get("message") or error or "remote error")
            code = classify_transport_error(Exception(f"{error.get('code', '')} {message}"))
            logger.error("Realtime session error: %s", message)
            if self._callbacks.on_error:
                self._callbacks.on_error(code, message)
            return
        message = to_server_message(response)
        if message is None:
            logger.debug("Ignoring realtime event %s", kind)
            return
        if self._callbacks.on_message:
            self._callbacks.on_message(message)


class DashscopeLiveStream:
    def __init__(self, conversation: Any, mime_type: str) -> None:
        self._conversation = conversation
        self._mime_type = mime_type
        self._lock = threading.Lock()

    def send(self, chunk: EncodedAudioChunk) -> None:
        if chunk.mime_type != self._mime_type:
            raise TransportError(f"unexpected chunk format {chunk.mime_type}, session expects {self._mime_type}")
        with self._lock:
            conversation = self._conversation
        if conversation is None:
            raise TransportError("session is closed")
        try:
            conversation.append_audio(chunk.data)
        except Exception as exc:
            raise TransportError(f"send failed: {exc}", code=classify_transport_error(exc)) from exc

    def close(self) -> None:
        with self._lock:
            conversation, self._conversation = self._conversation, None
        if conversation is None:
            return
        conversation.close()


class DashscopeLiveClient:
    def __init__(self, url: str | None = None) -> None:
        self._url = url

    def connect(self, credential: str, config: LiveConfig, callbacks: LiveCallbacks) -> DashscopeLiveStream:
        try:
            input_format = INPUT_FORMATS[config.input_rate]
            output_format = OUTPUT_FORMATS[config.output_rate]
        except KeyError as exc:
            raise TransportError(f"unsupported sample rate {exc.args[0]}", code=TRANSPORT_ERROR) from exc

        modalities = [getattr(MultiModality, name.upper()) for name in config.response_modalities]
        if config.output_transcription and MultiModality.TEXT not in modalities:
            modalities.append(MultiModality.TEXT)

        kwargs: dict[str, Any] = {
            "model": config.model,
            "callback": _CallbackBridge(callbacks),
            "api_key": credential,
        }
        if self._url:
            kwargs["url"] = self._url

        conversation = None
        try:
            conversation = OmniRealtimeConversation(**kwargs)
            conversation.connect()
            conversation.update_session(
                output_modalities=modalities,
                voice=config.voice,
                input_audio_format=input_format,
                output_audio_format=output_format,
                enable_input_audio_transcription=config.input_transcription,
                input_audio_transcription_model=INPUT_TRANSCRIPTION_MODEL,
                enable_turn_detection=True,
                turn_detection_type="server_vad",
                instructions=config.system_instruction,
            )
        except Exception as exc:
            if conversation is not None:
                try:
                    conversation.close()
                except Exception as close_exc:
                    logger.warning("Failed to close half-open session: %s", close_exc)
            raise TransportError(f"failed to open session: {exc}", code=classify_transport_error(exc)) from exc

        logger.info("Realtime session ready (model=%s, voice=%s)", config.model, config.voice)
        return DashscopeLiveStream(conversation, config.mime_type)
