"""
WebSocket endpoint for bridge notifications.

Each connection is one observer. Inbound frames are handled by an
ObserverSession while a second task forwards the observer's inbox to the
socket. Whichever side stops first ends the connection.
"""

import asyncio
import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status

from ..container import Container
from ..services.notifications.broadcaster import ObserverInbox
from ..services.notifications.protocol import ObserverSession
from .dependencies import get_ws_container

logger = structlog.stdlib.get_logger("websocket")
router = APIRouter(tags=["websocket"])


def _generate_observer_id() -> str:
    return f"obs_{uuid.uuid4().hex[:12]}"


async def _receive_loop(websocket: WebSocket, session: ObserverSession) -> None:
    try:
        while True:
            raw = await websocket.receive_text()
            for reply in await session.handle_message(raw):
                await websocket.send_json(reply.to_wire())
    except WebSocketDisconnect:
        logger.info("observer_disconnected")


async def _send_loop(websocket: WebSocket, inbox: ObserverInbox) -> None:
    async for message in inbox:
        await websocket.send_json(message.to_wire())


async def _release(session: ObserverSession, *tasks: Optional[asyncio.Task]) -> None:
    unfinished = [task for task in tasks if task is not None and not task.done()]
    for task in unfinished:
        task.cancel()
    await asyncio.gather(*unfinished, return_exceptions=True)
    await session.close()


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    container: Container = Depends(get_ws_container),
):
    """
    Real-time bridge updates.

    Protocol:
        -> {"type": "subscribe", "channel": "bridge_updates"}
        <- {"type": "subscribed", "channel": "bridge_updates", ...}
        <- {"type": "broadcast", "channel": "bridge_updates", "data": {...}}
    """
    await websocket.accept()

    observer_id = _generate_observer_id()
    structlog.contextvars.bind_contextvars(observer_id=observer_id)

    session = ObserverSession(container.broadcaster, observer_id)
    logger.info("observer_connected", observers=container.broadcaster.observer_count)

    receiver = sender = None
    try:
        await websocket.send_json(session.welcome().to_wire())
        receiver = asyncio.create_task(_receive_loop(websocket, session))
        sender = asyncio.create_task(_send_loop(websocket, session.inbox))
        done, pending = await asyncio.wait(
            {receiver, sender}, return_when=asyncio.FIRST_COMPLETED
        )
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.error("observer_session_error", error=str(task.exception()))

        if sender in done and receiver not in done and not sender.cancelled() and sender.exception() is None:
            # Inbox closed by the broadcaster (observer fell behind)
            await websocket.close(
                code=status.WS_1013_TRY_AGAIN_LATER,
                reason="Observer fell behind; reconnect and resubscribe",
            )
    finally:
        structlog.contextvars.unbind_contextvars("observer_id")
        # Runs to completion even when the server cancels the endpoint on disconnect
        await asyncio.shield(_release(session, receiver, sender))
