"""
CLI to run a video file through the live emotion pipeline -> JSON events.

Frames are sampled every FRAME_THROTTLE_MS of video time, converted to I420
the way a WebRTC track would deliver them, and pushed through the same
detector/classifier/broadcast pipeline the server uses.
"""
from __future__ import annotations
import argparse, asyncio, json
import logging
import os

import cv2

from core.broadcast import Broadcaster, EMOTION_CHANNEL
from core.classifier import EmotionClassifierStage
from core.config import Settings
from core.detector import FaceDetectorStage
from core.models import Frame
from core.pipeline import EmotionPipeline
from core.registry import SessionRegistry

logger = logging.getLogger(__name__)


class CollectingSubscriber:
    def __init__(self):
        self.messages = []

    async def send_json(self, data) -> None:
        self.messages.append(data)


def bgr_to_frame(bgr) -> Frame:
    h, w = bgr.shape[:2]
    # I420 needs even dimensions
    bgr = bgr[: h - (h % 2), : w - (w % 2)]
    h, w = bgr.shape[:2]
    return Frame(width=w, height=h, data=cv2.cvtColor(bgr, cv2.COLOR_BGR2YUV_I420))


async def analyze_video(video_path: str, settings: Settings, track_id: str = "file") -> list:
    """
    Returns:
        list: Wire-format emotion events, in emission order.
    """
    if not os.path.exists(video_path):
        raise FileNotFoundError(f"Video not found: {video_path}")

    broadcaster = Broadcaster()
    sub = CollectingSubscriber()
    broadcaster.subscribe(EMOTION_CHANNEL, sub)
    pipeline = EmotionPipeline(FaceDetectorStage(settings), EmotionClassifierStage(settings), broadcaster)
    await pipeline.warm_up()

    session = SessionRegistry().register(track_id)
    cap = cv2.VideoCapture(video_path)
    if not cap.isOpened():
        raise RuntimeError(f"Could not open video: {video_path}")
    fps = cap.get(cv2.CAP_PROP_FPS) or 25.0
    interval_frames = max(1, int(round(fps * settings.FRAME_THROTTLE_MS / 1000.0)))
    logger.debug(f"[cli] fps={fps} interval_frames={interval_frames}")

    frame_index = 0
    try:
        while True:
            ok, bgr = cap.read()
            if not ok:
                break
            if frame_index % interval_frames == 0:
                try:
                    await pipeline.process(session, bgr_to_frame(bgr))
                except Exception:
                    logger.exception(f"[cli] frame {frame_index} failed; continuing")
            frame_index += 1
    finally:
        cap.release()
    return [m["data"] for m in sub.messages]


def main():
    p = argparse.ArgumentParser()
    p.add_argument("--video", required=True, help="Path to input video")
    p.add_argument("--out", default="output/emotions.json", help="Path to output JSON")
    p.add_argument("--interval-ms", type=float, default=None, help="Sampling interval override")
    args = p.parse_args()

    settings = Settings()
    if args.interval_ms is not None:
        settings = Settings(FRAME_THROTTLE_MS=args.interval_ms)
    logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL, logging.INFO))

    events = asyncio.run(analyze_video(args.video, settings))
    print(json.dumps(events, indent=2, ensure_ascii=False))

    out_dir = os.path.dirname(args.out)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    with open(args.out, "w", encoding="utf-8") as f:
        json.dump(events, f, indent=2, ensure_ascii=False)
    print(f"Events written to {args.out}")

if __name__ == "__main__":
    main()
