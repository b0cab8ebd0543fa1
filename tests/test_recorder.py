"""Tests for SoundDeviceFrameSource."""

from __future__ import annotations

from queue import Queue
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from errors import DEVICE_UNAVAILABLE, PERMISSION_DENIED, DeviceError
from models import AudioFrame
from recorder import SoundDeviceFrameSource


def _block(n_samples: int = 4096, value: float = 0.25) -> np.ndarray:
    """Shape sounddevice hands to the callback: (frames, channels)."""
    return np.full((n_samples, 1), value, dtype=np.float32)


# ---------------------------------------------------------------
# Basic start / stop / close
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_start_opens_mono_float_stream(mock_sd: MagicMock) -> None:
    mock_stream = MagicMock()
    mock_sd.InputStream.return_value = mock_stream

    source = SoundDeviceFrameSource(sample_rate=16000, block_size=4096)
    q: Queue[AudioFrame | None] = Queue()
    source.start(q)

    kwargs = mock_sd.InputStream.call_args.kwargs
    assert kwargs["samplerate"] == 16000
    assert kwargs["channels"] == 1
    assert kwargs["dtype"] == "float32"
    assert kwargs["blocksize"] == 4096
    mock_stream.start.assert_called_once()

    source.stop()
    mock_stream.stop.assert_called_once()
    mock_stream.close.assert_not_called()
    assert q.get_nowait() is None

    source.close()
    mock_stream.close.assert_called_once()


@patch("recorder.sd")
def test_start_is_idempotent(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    source = SoundDeviceFrameSource()
    q: Queue[AudioFrame | None] = Queue()
    source.start(q)
    source.start(q)

    assert mock_sd.InputStream.call_count == 1
    source.stop()
    source.close()


@patch("recorder.sd")
def test_stop_and_close_are_idempotent(mock_sd: MagicMock) -> None:
    mock_stream = MagicMock()
    mock_sd.InputStream.return_value = mock_stream

    source = SoundDeviceFrameSource()
    q: Queue[AudioFrame | None] = Queue()
    source.start(q)
    source.stop()
    source.stop()
    source.close()
    source.close()

    mock_stream.stop.assert_called_once()
    mock_stream.close.assert_called_once()


def test_stop_and_close_before_start_are_noops() -> None:
    source = SoundDeviceFrameSource()
    source.stop()
    source.close()


# ---------------------------------------------------------------
# Audio callback pushes frames to queue
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_callback_pushes_audio_frames(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    source = SoundDeviceFrameSource(sample_rate=16000, block_size=4096)
    q: Queue[AudioFrame | None] = Queue(maxsize=50)
    source.start(q)

    block = _block()
    source._on_audio(block, frames=4096, time_info=None, status=None)
    block[:] = 0.0  # the device reuses its buffer

    frame = q.get_nowait()
    assert isinstance(frame, AudioFrame)
    assert frame.sample_rate == 16000
    assert frame.samples.shape == (4096,)
    assert np.allclose(frame.samples, 0.25)

    source.stop()


@patch("recorder.sd")
def test_queue_full_increments_dropped_frames(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    source = SoundDeviceFrameSource()
    q: Queue[AudioFrame | None] = Queue(maxsize=1)
    source.start(q)

    source._on_audio(_block(), frames=4096, time_info=None, status=None)
    assert source.dropped_frames == 0

    source._on_audio(_block(), frames=4096, time_info=None, status=None)
    assert source.dropped_frames == 1

    source.stop()


@patch("recorder.sd")
def test_callback_after_stop_is_noop(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    source = SoundDeviceFrameSource()
    q: Queue[AudioFrame | None] = Queue()
    source.start(q)
    source.stop()
    q.get_nowait()

    source._on_audio(_block(), frames=4096, time_info=None, status=None)
    assert q.empty()


# ---------------------------------------------------------------
# Device failures
# ---------------------------------------------------------------

def test_start_raises_without_sounddevice(monkeypatch: pytest.MonkeyPatch) -> None:
    import recorder as rec_mod

    monkeypatch.setattr(rec_mod, "sd", None)

    source = SoundDeviceFrameSource()
    with pytest.raises(DeviceError, match="sounddevice is not installed") as info:
        source.start(Queue())
    assert info.value.code == DEVICE_UNAVAILABLE


@patch("recorder.sd")
def test_missing_device_maps_to_device_unavailable(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.side_effect = Exception("Error querying device -1")

    source = SoundDeviceFrameSource()
    with pytest.raises(DeviceError) as info:
        source.start(Queue())
    assert info.value.code == DEVICE_UNAVAILABLE


@patch("recorder.sd")
def test_permission_denied_releases_stream(mock_sd: MagicMock) -> None:
    mock_stream = MagicMock()
    mock_stream.start.side_effect = Exception("Permission denied by the system")
    mock_sd.InputStream.return_value = mock_stream

    source = SoundDeviceFrameSource()
    with pytest.raises(DeviceError) as info:
        source.start(Queue())

    assert info.value.code == PERMISSION_DENIED
    mock_stream.close.assert_called_once()
