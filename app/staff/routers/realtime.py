"""Live presence channel for an instructor's session dashboard"""
import asyncio
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from app.core.dependencies import get_broadcaster
from app.core.realtime import PresenceBroadcaster, Subscription

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realtime"])


async def _pump(websocket: WebSocket, subscription: Subscription):
    async for message in subscription:
        await websocket.send_json(message)


@router.websocket("/ws/sessions/{session_id}")
async def watch_session(
    websocket: WebSocket,
    session_id: str,
    broadcaster: PresenceBroadcaster = Depends(get_broadcaster),
):
    """
    Stream presenceUpdated and sessionClosed events for one session.

    Incoming client frames are ignored; they only keep the socket alive.
    """
    await websocket.accept()
    subscription = broadcaster.subscribe(session_id)
    sender = asyncio.create_task(_pump(websocket, subscription))

    logger.info(
        f"Dashboard connected to session {session_id}",
        extra={"session_id": session_id, "watchers": broadcaster.watcher_count(session_id)},
    )

    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        sender.cancel()
        subscription.close()
        logger.info(
            f"Dashboard disconnected from session {session_id}",
            extra={"session_id": session_id, "dropped": subscription.dropped},
        )
