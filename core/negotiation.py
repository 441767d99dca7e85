"""
WebRTC offer/answer handling on top of aiortc.

One PeerSession per RTCPeerConnection. Each received video track gets a
StreamSession in the registry and a FrameSink feeding the emotion pipeline.
Audio tracks are accepted and ignored.
"""
from __future__ import annotations
from typing import Callable, Dict, List, Optional
import asyncio
import logging
import uuid

from aiortc import RTCConfiguration, RTCIceServer, RTCPeerConnection, RTCSessionDescription
from aiortc.sdp import candidate_from_sdp
from pydantic import ValidationError

from core.config import Settings
from core.errors import InvalidOfferError, NegotiationError
from core.models import IceCandidateInit, SessionAnswer, SessionOffer
from core.registry import ConnectionState, SessionRegistry, can_transition
from core.sink import FrameSink

logger = logging.getLogger(__name__)

OFFER_SHAPE_HINT = 'Body must be an RTCSessionDescriptionInit offer { type: "offer", sdp: "..." }'


def parse_offer(payload) -> SessionOffer:
    """
    Validate an offer body.

    Raises:
        InvalidOfferError: Not an object, type != "offer", or empty sdp.
    """
    if not isinstance(payload, dict):
        raise InvalidOfferError(OFFER_SHAPE_HINT)
    if payload.get("type") != "offer" or not isinstance(payload.get("sdp"), str) or not payload["sdp"].strip():
        raise InvalidOfferError(OFFER_SHAPE_HINT)
    try:
        return SessionOffer.model_validate(payload)
    except ValidationError as e:
        raise InvalidOfferError(f"{OFFER_SHAPE_HINT}: {e.errors()[0].get('msg', 'invalid')}") from e


def parse_candidate(init: IceCandidateInit):
    """Browser-style candidate init -> aiortc RTCIceCandidate, or None for end-of-candidates."""
    sdp = (init.candidate or "").strip()
    if not sdp:
        return None
    if sdp.startswith("candidate:"):
        sdp = sdp[len("candidate:"):]
    candidate = candidate_from_sdp(sdp)
    candidate.sdpMid = init.sdpMid
    candidate.sdpMLineIndex = init.sdpMLineIndex
    return candidate


def build_rtc_configuration(settings: Settings) -> RTCConfiguration:
    servers = []
    for s in settings.ice_servers():
        servers.append(RTCIceServer(urls=s["urls"], username=s.get("username"), credential=s.get("credential")))
    return RTCConfiguration(iceServers=servers)


class PeerSession:
    """One negotiated peer connection and the sinks of its video tracks."""

    def __init__(self, pc, handler: "NegotiationHandler", remote: Optional[str] = None):
        self.id = uuid.uuid4().hex[:12]
        self.pc = pc
        self.remote = remote or "unknown"
        self.state = ConnectionState.NEGOTIATING
        self.sinks: Dict[str, FrameSink] = {}
        self._handler = handler
        self._closed = False
        self._idle_timer: Optional[asyncio.TimerHandle] = None

    @property
    def closed(self) -> bool:
        return self._closed

    def arm_idle_timer(self, timeout: float) -> None:
        """Force-close the connection if it is not connected within `timeout` seconds."""
        if self._closed or self.state == ConnectionState.CONNECTED:
            return
        loop = asyncio.get_running_loop()
        self._idle_timer = loop.call_later(timeout, self._expire)

    def _cancel_idle_timer(self) -> None:
        if self._idle_timer is not None:
            self._idle_timer.cancel()
            self._idle_timer = None

    def _expire(self) -> None:
        self._idle_timer = None
        if self._closed or self.state == ConnectionState.CONNECTED:
            return
        logger.warning(f"[webrtc] peer={self.id} never connected; closing abandoned negotiation from {self.remote}")
        asyncio.ensure_future(self.close(ConnectionState.CLOSED))

    # ---- transport events ----
    def on_track(self, track) -> None:
        if self._closed:
            return
        if getattr(track, "kind", None) != "video":
            logger.debug(f"[webrtc] peer={self.id} {getattr(track, 'kind', '?')} track accepted, not processed")
            return

        track_id = str(getattr(track, "id", None) or uuid.uuid4().hex)
        logger.info(f"[webrtc] received video track id={track_id} peer={self.id}")
        h = self._handler
        session = h.registry.register(track_id, peer_id=self.id)
        if self.state != ConnectionState.NEGOTIATING:
            session.transition(self.state)

        sink = FrameSink(
            track,
            session,
            h.pipeline,
            interval_ms=h.settings.FRAME_THROTTLE_MS,
            on_cleanup=self._on_sink_cleanup,
        )
        self.sinks[track_id] = sink
        sink.start()

    def _on_sink_cleanup(self, sink: FrameSink) -> None:
        track_id = sink.session.track_id
        if self.sinks.get(track_id) is sink:
            del self.sinks[track_id]
        self._handler.registry.remove(track_id, sink.session)

    async def on_connection_state_change(self) -> None:
        raw = getattr(self.pc, "connectionState", "")
        logger.info(f"[webrtc] connection state: {raw} peer={self.id} from {self.remote}")
        try:
            state = ConnectionState.from_transport(raw)
        except ValueError:
            logger.warning(f"[webrtc] unknown connection state {raw!r} peer={self.id}")
            return
        await self.apply_state(state)

    async def apply_state(self, state: ConnectionState) -> None:
        if state == self.state or not can_transition(self.state, state):
            return
        self.state = state
        for sink in list(self.sinks.values()):
            sink.session.transition(state)

        if state == ConnectionState.CONNECTED:
            self._cancel_idle_timer()
            logger.info(f"[webrtc] peer={self.id} connected from {self.remote}")
        elif state in (ConnectionState.DISCONNECTED, ConnectionState.CLOSED, ConnectionState.FAILED):
            await self.close(state)

    async def close(self, reason: ConnectionState = ConnectionState.CLOSED) -> None:
        """Tear down every sink and the peer connection. Only the first call has any effect."""
        if self._closed:
            return
        self._closed = True
        self._cancel_idle_timer()

        final = reason if reason.terminal else ConnectionState.CLOSED
        if not self.state.terminal:
            self.state = final
        for sink in list(self.sinks.values()):
            sink.session.transition(self.state)
            sink.cleanup()

        self._handler.forget(self)
        try:
            await self.pc.close()
        except Exception:
            logger.exception(f"[webrtc] error closing peer={self.id}")
        logger.info(f"[webrtc] peer={self.id} closed ({self.state.value})")


class NegotiationHandler:
    """Accepts SDP offers and returns answers; owns all live peer sessions."""

    def __init__(
        self,
        settings: Settings,
        registry: SessionRegistry,
        pipeline,
        pc_factory: Callable[[RTCConfiguration], object] | None = None,
    ):
        self.settings = settings
        self.registry = registry
        self.pipeline = pipeline
        self._pc_factory = pc_factory or (lambda config: RTCPeerConnection(configuration=config))
        self._peers: Dict[str, PeerSession] = {}

    def active_peers(self) -> List[PeerSession]:
        return list(self._peers.values())

    def forget(self, peer: PeerSession) -> None:
        self._peers.pop(peer.id, None)

    async def handle_offer(self, payload, remote: Optional[str] = None) -> SessionAnswer:
        """
        Negotiate a receive-only session for an SDP offer.

        Args:
            payload: `{type: "offer", sdp: str, iceCandidates?: [...]}`.
            remote: Client address, for logging.

        Returns:
            SessionAnswer: The local answer description.

        Raises:
            InvalidOfferError: Malformed offer; no connection is created.
            NegotiationError: Transport-level failure; the connection is closed.
        """
        offer = parse_offer(payload)

        pc = self._pc_factory(build_rtc_configuration(self.settings))
        peer = PeerSession(pc, self, remote)
        self._peers[peer.id] = peer
        pc.on("track", peer.on_track)
        pc.on("connectionstatechange", peer.on_connection_state_change)

        for kind in ("video", "audio"):
            try:
                pc.addTransceiver(kind, direction="recvonly")
            except Exception:
                logger.debug(f"[webrtc] could not pre-add recvonly {kind} transceiver", exc_info=True)

        try:
            await pc.setRemoteDescription(RTCSessionDescription(sdp=offer.sdp, type=offer.type))
            await self._apply_candidates(pc, offer.iceCandidates, peer)
            answer = await pc.createAnswer()
            local = await self._set_local_description(pc, answer, peer)
        except Exception as e:
            logger.exception(f"[webrtc] error handling offer from {peer.remote}")
            await peer.close(ConnectionState.FAILED)
            raise NegotiationError(f"negotiation failed: {e}") from e

        if local is None or not getattr(local, "sdp", None):
            await peer.close(ConnectionState.FAILED)
            raise NegotiationError("Failed to create local description")

        peer.arm_idle_timer(self.settings.CONNECT_TIMEOUT)
        logger.info(f"[webrtc] answered offer peer={peer.id} from {peer.remote}")
        return SessionAnswer(type=local.type, sdp=local.sdp)

    async def _apply_candidates(self, pc, candidates: List[IceCandidateInit], peer: PeerSession) -> None:
        for init in candidates or []:
            try:
                candidate = parse_candidate(init)
                if candidate is None:
                    continue
                await pc.addIceCandidate(candidate)
            except Exception as e:
                logger.warning(f"[webrtc] peer={peer.id} failed to add remote ICE candidate: {e}")

    async def _set_local_description(self, pc, answer, peer: PeerSession):
        """
        Apply the answer, waiting for ICE gathering at most ICE_GATHER_TIMEOUT seconds.

        aiortc gathers candidates inside setLocalDescription. If that has not
        finished in time the answer is returned as created, without the full
        candidate list, and gathering continues in the background.
        """
        task = asyncio.ensure_future(pc.setLocalDescription(answer))
        done, _ = await asyncio.wait({task}, timeout=self.settings.ICE_GATHER_TIMEOUT)
        if task in done:
            task.result()
            return pc.localDescription or answer

        logger.warning(
            f"[webrtc] peer={peer.id} ICE gathering incomplete after {self.settings.ICE_GATHER_TIMEOUT}s; "
            "answering with partial candidates"
        )

        def _late(t: asyncio.Task) -> None:
            if not t.cancelled() and t.exception() is not None:
                logger.error(f"[webrtc] peer={peer.id} late setLocalDescription failed: {t.exception()}")

        task.add_done_callback(_late)
        return answer

    async def close_all(self) -> None:
        for peer in list(self._peers.values()):
            await peer.close()
