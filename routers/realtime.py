import asyncio
import json
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from broadcaster import EVENT_DESTROY, EVENT_PANIC, EVENT_SUBSCRIBED
from dependencies import Services, get_services, require_room_auth
from errors import RoomError
from logging_config import get_logger
from models import AuthContext, RequestCredentials
from schemas.messages import EmitRequest

logger = get_logger(__name__)

realtime_router = APIRouter(prefix="/api/realtime", tags=["realtime"])

TERMINAL_EVENTS = {EVENT_DESTROY, EVENT_PANIC}


@realtime_router.post("/emit")
async def emit(body: EmitRequest, services: Services = Depends(get_services)):
    await services.messages.relay(body.channel, body.event, body.data)
    return {"success": True}


@realtime_router.get("/history")
async def history(auth: AuthContext = Depends(require_room_auth), services: Services = Depends(get_services)):
    return {"events": await services.messages.replay_log(auth)}


async def forward_room_events(websocket: WebSocket, pubsub, room_id: str):
    """Relay pub/sub messages for one room to one websocket until the room dies."""
    while True:
        message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
        if message is None:
            continue
        await websocket.send_text(message["data"])
        try:
            event = json.loads(message["data"]).get("event")
        except (json.JSONDecodeError, AttributeError):
            logger.error(f"Malformed event on channel for room {room_id}")
            continue
        if event in TERMINAL_EVENTS:
            logger.info(f"Room {room_id} ended with {event}, closing subscriber")
            return


async def drain_client(websocket: WebSocket):
    # Clients only listen; reading detects disconnects.
    while True:
        await websocket.receive_text()


@realtime_router.websocket("/ws")
async def room_events(websocket: WebSocket, roomId: Optional[str] = None):
    services: Services = websocket.app.state.services
    credentials = RequestCredentials.from_cookies(websocket.cookies, roomId)
    try:
        auth = await services.access_gate.authenticate(credentials)
    except RoomError as e:
        logger.info(f"WebSocket subscription rejected for room {roomId}: {e.message}")
        await websocket.close(code=1008, reason=e.message)
        return

    await websocket.accept()
    pubsub = await services.backend.subscribe_to_room(auth.room_id)
    await websocket.send_json({"event": EVENT_SUBSCRIBED, "roomId": auth.room_id})
    tasks = [
        asyncio.create_task(forward_room_events(websocket, pubsub, auth.room_id)),
        asyncio.create_task(drain_client(websocket)),
    ]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc and not isinstance(exc, WebSocketDisconnect):
                logger.error(f"WebSocket relay error for room {auth.room_id}: {exc}", exc_info=exc)
    finally:
        for task in tasks:
            task.cancel()
        # a cancelled reader must finish before the connection is released
        await asyncio.gather(*tasks, return_exceptions=True)
        await pubsub.unsubscribe()
        await pubsub.aclose()
        logger.debug(f"Closed pub/sub subscription for room {auth.room_id}")
    try:
        await websocket.close()
    except RuntimeError:
        # already closed by the client
        pass
