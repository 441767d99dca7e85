import numpy as np
import pytest

from core.config import Settings
from core.yuv import expected_i420_size, i420_to_rgb
from scripts.cli import analyze_video, bgr_to_frame


def test_bgr_to_frame_crops_to_even_i420():
    bgr = np.zeros((11, 13, 3), dtype=np.uint8)
    bgr[..., 2] = 255  # red in BGR
    frame = bgr_to_frame(bgr)
    assert (frame.width, frame.height) == (12, 10)
    assert frame.data.size == expected_i420_size(12, 10)

    rgb = i420_to_rgb(frame.data, frame.width, frame.height)
    assert rgb[..., 0].mean() > 200
    assert rgb[..., 2].mean() < 50


@pytest.mark.asyncio
async def test_analyze_video_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        await analyze_video(str(tmp_path / "missing.mp4"), Settings())
