"""
Configuration for the live emotion service.
"""
from __future__ import annotations
from typing import List, Dict
import json
import logging
import os

from pydantic import BaseModel

logger = logging.getLogger(__name__)

DEFAULT_ICE_SERVERS: List[Dict] = [{"urls": "stun:stun.l.google.com:19302"}]


class Settings(BaseModel):
    """
    Runtime settings with environment-variable overrides.
    """
    HOST: str = os.getenv("HOST", "localhost")
    PORT: int = int(os.getenv("PORT", "3001"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    FRAME_THROTTLE_MS: float = float(os.getenv("FRAME_THROTTLE_MS", "200"))
    ICE_SERVERS: str | None = os.getenv("ICE_SERVERS")
    ICE_GATHER_TIMEOUT: float = float(os.getenv("ICE_GATHER_TIMEOUT", "3"))
    CONNECT_TIMEOUT: float = float(os.getenv("CONNECT_TIMEOUT", "300"))

    DETECTOR_BACKEND: str = os.getenv("DETECTOR_BACKEND", "opencv")
    MIN_FACE_CONFIDENCE: float = float(os.getenv("MIN_FACE_CONFIDENCE", "0.5"))
    MIN_FACE_SIZE: int = int(os.getenv("MIN_FACE_SIZE", "20"))
    BOX_MARGIN: float = float(os.getenv("BOX_MARGIN", "0.03"))
    EMOTION_MODEL_PATH: str | None = os.getenv("EMOTION_MODEL_PATH") or None

    CORS_ORIGIN_REGEX: str = os.getenv(
        "CORS_ORIGIN_REGEX", r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"
    )

    def __init__(self, **data):
        super().__init__(**data)
        # Normalize numeric knobs that must not go negative
        object.__setattr__(self, "FRAME_THROTTLE_MS", max(0.0, float(self.FRAME_THROTTLE_MS)))
        object.__setattr__(self, "ICE_GATHER_TIMEOUT", max(0.0, float(self.ICE_GATHER_TIMEOUT)))
        object.__setattr__(self, "BOX_MARGIN", max(0.0, float(self.BOX_MARGIN)))
        object.__setattr__(self, "LOG_LEVEL", (self.LOG_LEVEL or "INFO").strip().upper())

    def ice_servers(self) -> List[Dict]:
        """
        Parse ICE_SERVERS (a JSON array of RTCIceServer-like dicts).

        Malformed or non-array values fall back to the public STUN default.
        """
        if not self.ICE_SERVERS:
            return [dict(s) for s in DEFAULT_ICE_SERVERS]
        try:
            parsed = json.loads(self.ICE_SERVERS)
        except ValueError:
            logger.warning("[config] ICE_SERVERS is not valid JSON; using default STUN server")
            return [dict(s) for s in DEFAULT_ICE_SERVERS]
        if not isinstance(parsed, list):
            logger.warning("[config] ICE_SERVERS must be a JSON array; using default STUN server")
            return [dict(s) for s in DEFAULT_ICE_SERVERS]
        return [s for s in parsed if isinstance(s, dict) and s.get("urls")]
