import numpy as np
import pytest

from core.yuv import expected_i420_size, i420_to_rgb
from tests.fakes import solid_i420


def _reference_pixel(y, u, v):
    c, d, e = y - 16, u - 128, v - 128
    clip = lambda n: max(0, min(255, n))
    return (
        clip((298 * c + 409 * e + 128) >> 8),
        clip((298 * c - 100 * d - 208 * e + 128) >> 8),
        clip((298 * c + 516 * d + 128) >> 8),
    )


@pytest.mark.parametrize("yuv, rgb", [
    ((16, 128, 128), (0, 0, 0)),
    ((235, 128, 128), (255, 255, 255)),
    ((81, 90, 240), (255, 0, 0)),
])
def test_known_colors(yuv, rgb):
    out = i420_to_rgb(solid_i420(4, 4, *yuv), 4, 4)
    assert out.shape == (4, 4, 3)
    assert out.dtype == np.uint8
    assert (out.reshape(-1, 3) == np.array(rgb, dtype=np.uint8)).all()


def test_matches_scalar_formula_on_random_frame():
    rng = np.random.default_rng(7)
    w, h = 6, 4
    buf = rng.integers(0, 256, size=expected_i420_size(w, h), dtype=np.uint8)
    out = i420_to_rgb(buf.tobytes(), w, h)

    ys = buf[: w * h]
    us = buf[w * h: w * h + (w // 2) * (h // 2)]
    vs = buf[w * h + (w // 2) * (h // 2):]
    for j in range(h):
        for i in range(w):
            ci = (j // 2) * (w // 2) + (i // 2)
            assert tuple(out[j, i]) == _reference_pixel(int(ys[j * w + i]), int(us[ci]), int(vs[ci]))


def test_output_length_and_range():
    rng = np.random.default_rng(1)
    w, h = 640, 480
    buf = rng.integers(0, 256, size=expected_i420_size(w, h), dtype=np.uint8)
    out = i420_to_rgb(buf, w, h)
    assert len(out.tobytes()) == w * h * 3
    assert out.min() >= 0 and out.max() <= 255


def test_2x2_block_shares_chroma():
    w, h = 4, 2
    y = bytes([100] * (w * h))
    u = bytes([60, 200])
    v = bytes([128, 128])
    out = i420_to_rgb(y + u + v, w, h)
    # columns 0-1 use the first chroma sample, 2-3 the second
    assert (out[:, 0] == out[:, 1]).all() and (out[0, 0] == out[1, 1]).all()
    assert (out[:, 2] == out[:, 3]).all()
    assert not (out[0, 0] == out[0, 2]).all()


def test_extra_trailing_bytes_are_ignored():
    buf = solid_i420(4, 4, 235, 128, 128) + b"\x00" * 10
    assert (i420_to_rgb(buf, 4, 4) == 255).all()


def test_odd_dimensions_reuse_last_chroma_sample():
    w, h = 5, 3
    buf = solid_i420(w, h, 235, 128, 128)
    assert len(buf) == expected_i420_size(w, h)
    out = i420_to_rgb(buf, w, h)
    assert out.shape == (3, 5, 3)
    assert (out == 255).all()


def test_short_buffer_raises():
    with pytest.raises(ValueError):
        i420_to_rgb(b"\x00" * 10, 4, 4)


@pytest.mark.parametrize("w, h", [(1, 4), (4, 1), (0, 0)])
def test_degenerate_dimensions_raise(w, h):
    with pytest.raises(ValueError):
        i420_to_rgb(b"\x00" * 64, w, h)
