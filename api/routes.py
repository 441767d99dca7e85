"""
Signaling, session and real-time event endpoints.
"""
from __future__ import annotations
from typing import List
import logging
import re

from fastapi import APIRouter, HTTPException, Request, WebSocket, WebSocketDisconnect

from core.broadcast import EMOTION_CHANNEL
from core.errors import InvalidOfferError, NegotiationError
from core.models import SessionAnswer, SessionInfo

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/webrtc/offer", response_model=SessionAnswer)
async def webrtc_offer(request: Request) -> SessionAnswer:
    """
    Accept an SDP offer and answer with a receive-only session.

    Body: `{type: "offer", sdp: "...", iceCandidates?: [...]}`.

    Returns:
        SessionAnswer: `{type, sdp}`; 400 for a malformed offer, 500 on negotiation
        failure, 503 when the inference engines failed to start.
    """
    state = request.app.state
    remote = request.client.host if request.client else None
    if state.pipeline.failed:
        raise HTTPException(status_code=503, detail="Inference engines unavailable")

    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Body must be JSON")

    logger.debug(f"[api] /webrtc/offer from {remote}")
    try:
        return await state.negotiator.handle_offer(payload, remote=remote)
    except InvalidOfferError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NegotiationError:
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get("/sessions", response_model=List[SessionInfo])
async def list_sessions(request: Request) -> List[SessionInfo]:
    return [s.info() for s in request.app.state.registry.sessions()]


@router.websocket("/ws/emotion")
async def emotion_events(websocket: WebSocket):
    """Subscribe to the `emotion` channel; each message is `{event, data}`."""
    state = websocket.app.state
    origin = websocket.headers.get("origin")
    if origin and not re.match(state.settings.CORS_ORIGIN_REGEX, origin):
        logger.warning(f"[api] rejecting /ws/emotion from origin={origin}")
        await websocket.close(code=1008, reason="origin not allowed")
        return

    broadcaster = state.broadcaster
    await websocket.accept()
    broadcaster.subscribe(EMOTION_CHANNEL, websocket)
    try:
        await websocket.send_json({"event": "ready", "channel": EMOTION_CHANNEL})
        # inbound messages are ignored; receiving only detects the disconnect
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.unsubscribe(EMOTION_CHANNEL, websocket)
