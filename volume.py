"""Loudness scalars in [0, 1] for the visualizer."""

from __future__ import annotations

from typing import Sequence, Union

import numpy as np

MIN_DECIBELS = -100.0
MAX_DECIBELS = -30.0

Samples = Union[np.ndarray, Sequence[float]]


def byte_frequency_data(samples: Samples, fft_size: int = 256) -> np.ndarray:
    """Byte-scaled magnitude spectrum of the most recent ``fft_size`` samples.

    Mirrors a browser analyser node: Blackman window, magnitude in dB mapped
    linearly from [MIN_DECIBELS, MAX_DECIBELS] onto [0, 255], ``fft_size // 2``
    bins.
    """
    data = np.asarray(samples, dtype=np.float64)[-fft_size:]
    if data.size < fft_size:
        data = np.pad(data, (fft_size - data.size, 0))
    spectrum = np.abs(np.fft.rfft(data * np.blackman(fft_size)))[: fft_size // 2] / fft_size
    with np.errstate(divide="ignore"):
        db = 20.0 * np.log10(spectrum)
    scaled = (db - MIN_DECIBELS) * (255.0 / (MAX_DECIBELS - MIN_DECIBELS))
    return np.clip(np.nan_to_num(scaled, neginf=0.0), 0, 255).astype(np.uint8)


def spectrum_volume(magnitudes: Samples) -> float:
    """Mean of a [0, 255] frequency-magnitude array, normalized to [0, 1]."""
    values = np.asarray(magnitudes, dtype=np.float64)
    if values.size == 0:
        return 0.0
    return float(np.clip(values.mean() / 255.0, 0.0, 1.0))


def buffer_volume(samples: Samples, stride: int = 50, gain: float = 3.0) -> float:
    """Mean absolute amplitude over every ``stride``-th sample, times ``gain``, capped at 1."""
    values = np.asarray(samples, dtype=np.float64)[::stride]
    if values.size == 0:
        return 0.0
    return float(min(1.0, np.abs(values).mean() * gain))
