"""Sample format conversion between device buffers and the recording sink."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from pttscribe.errors import StreamConfigError

if TYPE_CHECKING:
    from numpy.typing import DTypeLike, NDArray

INT16_SCALE = 32768.0
INT16_MAX = 32767.0
UINT16_BIAS = 32768
AUDIO_CLIP_MIN = -1.0
AUDIO_CLIP_MAX = 1.0

SUPPORTED_DTYPES = (np.dtype(np.int16), np.dtype(np.uint16), np.dtype(np.float32))


def check_supported(dtype: "DTypeLike") -> np.dtype:
    """Return ``dtype`` normalised, or raise if the device format is not handled."""
    dt = np.dtype(dtype)
    if dt not in SUPPORTED_DTYPES:
        raise StreamConfigError(f"Unsupported sample format: {dt}")
    return dt


def sink_dtype_for(source_dtype: "DTypeLike") -> np.dtype:
    """Float devices record as 32-bit float, integer devices as 16-bit signed int."""
    if check_supported(source_dtype).kind == "f":
        return np.dtype(np.float32)
    return np.dtype(np.int16)


def to_float32(samples: "NDArray") -> "NDArray[np.float32]":
    """Normalise a buffer of any supported format to float32 in [-1.0, 1.0]."""
    dt = samples.dtype
    if dt == np.uint16:
        centered = samples.astype(np.int32) - UINT16_BIAS
        return (centered / INT16_SCALE).astype(np.float32)
    if dt.kind in ("i", "u"):
        scale = float(np.iinfo(dt).max) + 1.0
        return (samples / scale).astype(np.float32)
    return np.clip(samples, AUDIO_CLIP_MIN, AUDIO_CLIP_MAX).astype(np.float32)


def convert_samples(samples: "NDArray", target_dtype: "DTypeLike") -> "NDArray":
    """
    Convert every sample in ``samples`` to ``target_dtype``.

    Integer width changes shift by the width difference, unsigned sources are
    bias corrected, and float targets are normalised to [-1.0, 1.0].
    """
    target = np.dtype(target_dtype)
    source = samples.dtype
    if source == target:
        if target.kind == "f":
            return np.clip(samples, AUDIO_CLIP_MIN, AUDIO_CLIP_MAX)
        return samples

    if target.kind == "f":
        return to_float32(samples).astype(target)

    if source.kind == "f":
        scaled = np.clip(samples, AUDIO_CLIP_MIN, AUDIO_CLIP_MAX) * INT16_MAX
        return _rescale_int(np.rint(scaled).astype(np.int16), target)

    if source == np.uint16:
        samples = (samples.astype(np.int32) - UINT16_BIAS).astype(np.int16)
    return _rescale_int(samples, target)


def _rescale_int(samples: "NDArray", target: np.dtype) -> "NDArray":
    src_bits = samples.dtype.itemsize * 8
    dst_bits = target.itemsize * 8
    wide = samples.astype(np.int64)
    if dst_bits > src_bits:
        wide = wide << (dst_bits - src_bits)
    elif dst_bits < src_bits:
        wide = wide >> (src_bits - dst_bits)
    if target.kind == "u":
        wide = wide + (1 << (dst_bits - 1))
    return wide.astype(target)
