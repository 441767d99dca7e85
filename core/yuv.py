"""
Planar YUV 4:2:0 (I420) to packed RGB24 conversion.

Uses the BT.601 integer approximation:
    C = Y - 16, D = U - 128, E = V - 128
    R = (298C + 409E + 128) >> 8
    G = (298C - 100D - 208E + 128) >> 8
    B = (298C + 516D + 128) >> 8
Chroma is sampled at half resolution (nearest, no interpolation).
"""
from __future__ import annotations
from typing import Union

import numpy as np

Buffer = Union[bytes, bytearray, memoryview, np.ndarray]


def expected_i420_size(width: int, height: int) -> int:
    """Bytes needed for a width x height I420 buffer: Y plane plus two quarter-size chroma planes."""
    return width * height + 2 * (width // 2) * (height // 2)


def i420_to_rgb(buf: Buffer, width: int, height: int) -> np.ndarray:
    """
    Convert an I420 buffer to interleaved RGB.

    Args:
        buf: Planar Y, U, V bytes (any buffer-protocol object or uint8 array).
        width: Frame width in pixels.
        height: Frame height in pixels.

    Returns:
        np.ndarray: uint8 array of shape (height, width, 3); `.tobytes()` is the RGB24 buffer.

    Raises:
        ValueError: Dimensions too small or buffer shorter than the I420 layout requires.
    """
    width, height = int(width), int(height)
    if width < 2 or height < 2:
        raise ValueError(f"frame too small for 4:2:0 chroma: {width}x{height}")

    if isinstance(buf, np.ndarray):
        raw = np.ascontiguousarray(buf, dtype=np.uint8).reshape(-1)
    else:
        raw = np.frombuffer(buf, dtype=np.uint8)

    y_size = width * height
    cw, ch = width // 2, height // 2
    c_size = cw * ch
    need = y_size + 2 * c_size
    if raw.size < need:
        raise ValueError(f"I420 buffer too short: got {raw.size} bytes, need {need} for {width}x{height}")

    y_plane = raw[:y_size].reshape(height, width).astype(np.int32)
    u_plane = raw[y_size:y_size + c_size].reshape(ch, cw)
    v_plane = raw[y_size + c_size:need].reshape(ch, cw)

    # nearest chroma sample; odd edges reuse the last chroma row/column
    rows = np.minimum(np.arange(height) >> 1, ch - 1)
    cols = np.minimum(np.arange(width) >> 1, cw - 1)
    d = u_plane[rows[:, None], cols[None, :]].astype(np.int32) - 128
    e = v_plane[rows[:, None], cols[None, :]].astype(np.int32) - 128
    c = y_plane - 16

    rgb = np.empty((height, width, 3), dtype=np.uint8)
    rgb[..., 0] = np.clip((298 * c + 409 * e + 128) >> 8, 0, 255)
    rgb[..., 1] = np.clip((298 * c - 100 * d - 208 * e + 128) >> 8, 0, 255)
    rgb[..., 2] = np.clip((298 * c + 516 * d + 128) >> 8, 0, 255)
    return rgb
