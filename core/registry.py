"""
Per-track stream sessions and the registry that owns them.
"""
from __future__ import annotations
from enum import Enum
from typing import Dict, List, Optional
import logging
import time

from core.models import SessionInfo

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    NEGOTIATING = "negotiating"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    CLOSED = "closed"
    FAILED = "failed"

    @classmethod
    def from_transport(cls, raw: str) -> "ConnectionState":
        """Map an RTCPeerConnection.connectionState string onto the session states."""
        raw = (raw or "").lower()
        if raw in ("new", "connecting", "checking"):
            return cls.NEGOTIATING
        return cls(raw)

    @property
    def terminal(self) -> bool:
        return self in (ConnectionState.CLOSED, ConnectionState.FAILED)


_TRANSITIONS = {
    ConnectionState.NEGOTIATING: {ConnectionState.CONNECTED, ConnectionState.CLOSED, ConnectionState.FAILED},
    ConnectionState.CONNECTED: {ConnectionState.DISCONNECTED, ConnectionState.CLOSED, ConnectionState.FAILED},
    ConnectionState.DISCONNECTED: {ConnectionState.CONNECTED, ConnectionState.CLOSED, ConnectionState.FAILED},
    ConnectionState.CLOSED: set(),
    ConnectionState.FAILED: set(),
}


def can_transition(src: ConnectionState, dst: ConnectionState) -> bool:
    return dst in _TRANSITIONS[src]


class StreamSession:
    """Processing state of one video track."""

    def __init__(self, track_id: str, peer_id: str = ""):
        self.track_id = track_id
        self.peer_id = peer_id
        self.state = ConnectionState.NEGOTIATING
        self.created_at = time.time()
        self.closed = False
        self.busy = False
        self._has_seen_face = False
        self._last_processed_at: Optional[float] = None

    # ---- narrow interface used by the frame sink ----
    @property
    def has_seen_face(self) -> bool:
        return self._has_seen_face

    @has_seen_face.setter
    def has_seen_face(self, value: bool) -> None:
        self._has_seen_face = bool(value)

    @property
    def last_processed_at(self) -> Optional[float]:
        return self._last_processed_at

    @last_processed_at.setter
    def last_processed_at(self, value: float) -> None:
        self._last_processed_at = float(value)

    def transition(self, dst: ConnectionState) -> bool:
        """Apply a state change; illegal or repeated transitions are ignored."""
        if dst == self.state or not can_transition(self.state, dst):
            return False
        logger.debug(f"[session] track={self.track_id} {self.state.value} -> {dst.value}")
        self.state = dst
        return True

    def info(self) -> SessionInfo:
        return SessionInfo(
            track_id=self.track_id,
            peer_id=self.peer_id,
            state=self.state.value,
            has_seen_face=self.has_seen_face,
            last_processed_at=self.last_processed_at,
        )


class SessionRegistry:
    """Track id -> StreamSession."""

    def __init__(self):
        self._sessions: Dict[str, StreamSession] = {}

    def register(self, track_id: str, peer_id: str = "") -> StreamSession:
        if track_id in self._sessions:
            logger.warning(f"[session] track={track_id} registered twice; replacing")
        session = StreamSession(track_id, peer_id)
        self._sessions[track_id] = session
        return session

    def get(self, track_id: str) -> Optional[StreamSession]:
        return self._sessions.get(track_id)

    def remove(self, track_id: str, session: Optional[StreamSession] = None) -> bool:
        """
        Drop `track_id`. With `session`, only when that exact session is still
        registered; a newer session reusing the id stays.
        """
        current = self._sessions.get(track_id)
        if current is None or (session is not None and current is not session):
            return False
        del self._sessions[track_id]
        return True

    def sessions(self) -> List[StreamSession]:
        return list(self._sessions.values())

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, track_id: str) -> bool:
        return track_id in self._sessions
