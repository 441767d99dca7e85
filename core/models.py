"""
Data models for frames, detections, emotion events and signaling IO.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional, Literal, Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field


@dataclass
class Frame:
    """One raw video frame: planar YUV 4:2:0 pixels plus dimensions."""
    width: int
    height: int
    data: Union[bytes, bytearray, memoryview, np.ndarray]


@dataclass(frozen=True)
class DetectionBox:
    """Axis-aligned face rectangle in pixel coordinates."""
    x: float
    y: float
    width: float
    height: float

    def as_dict(self) -> dict:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


class EmotionScore(BaseModel):
    emotion: str
    probability: float


class BoxModel(BaseModel):
    x: float
    y: float
    width: float
    height: float


class EmotionResult(BaseModel):
    box: BoxModel
    emotions: List[EmotionScore]
    dominant: EmotionScore


class EmotionEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    track_id: str = Field(alias="trackId")
    ts: int
    box: BoxModel
    dominant_emotion: EmotionScore = Field(alias="dominantEmotion")
    emotions: List[EmotionScore]

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


# signaling models


class IceCandidateInit(BaseModel):
    candidate: str = ""
    sdpMid: Optional[str] = None
    sdpMLineIndex: Optional[int] = None


class SessionOffer(BaseModel):
    type: Literal["offer"]
    sdp: str = Field(min_length=1)
    iceCandidates: List[IceCandidateInit] = Field(default_factory=list)


class SessionAnswer(BaseModel):
    type: str
    sdp: str


class SessionInfo(BaseModel):
    track_id: str
    peer_id: str
    state: str
    has_seen_face: bool
    last_processed_at: Optional[float] = None
