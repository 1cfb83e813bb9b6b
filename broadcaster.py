import json

from backend import RedisBackend
from constants import ROOM_EVENT_STREAM_MAXLEN, SECURE_STREAM_MAXLEN
from logging_config import get_logger
from redis_keys import REDIS_EVENT_STREAM_KEY, REDIS_SECURE_SIGNAL_STREAM_KEY
from ttl_sync import TTLSynchronizer
from utils import now_ms

logger = get_logger(__name__)

EVENT_MESSAGE = "chat.message"
EVENT_ENCRYPTED = "chat.encrypted"
EVENT_SELF_DESTRUCT = "chat.self_destruct"
EVENT_DESTROY = "chat.destroy"
EVENT_DESTROY_REQUEST = "chat.destroy-request"
EVENT_DESTROY_DENIED = "chat.destroy-denied"
EVENT_TIMER_EXTENDED = "chat.timer-extended"
EVENT_PANIC = "chat.panic"
EVENT_SUBSCRIBED = "realtime.subscribed"

# Only the server emits these; the signaling relay refuses them.
RESERVED_EVENTS = frozenset({
    EVENT_MESSAGE,
    EVENT_ENCRYPTED,
    EVENT_SELF_DESTRUCT,
    EVENT_DESTROY,
    EVENT_DESTROY_REQUEST,
    EVENT_DESTROY_DENIED,
    EVENT_TIMER_EXTENDED,
    EVENT_PANIC,
    EVENT_SUBSCRIBED,
})


class LifecycleBroadcaster:
    """Fans out room events to channel subscribers.

    Every event is published on the room channel and appended to the room's
    event stream. Secure-room events can also go to the capped signal log so
    late joiners can replay them. The TTL of touched keys is re-synced after
    each emit.
    """

    def __init__(self, backend: RedisBackend, ttl_sync: TTLSynchronizer):
        self.backend = backend
        self.ttl_sync = ttl_sync

    async def emit(self, room_id: str, event: str, data, secure: bool = False, replay: bool = True):
        timestamp = now_ms()
        await self.backend.append_stream(
            REDIS_EVENT_STREAM_KEY.format(slug=room_id),
            {"event": event, "payload": json.dumps(data), "timestamp": timestamp},
            maxlen=ROOM_EVENT_STREAM_MAXLEN,
        )
        await self.backend.publish_message(room_id, {
            "event": event,
            "data": data,
            "roomId": room_id,
            "timestamp": timestamp,
        })
        if secure and replay:
            await self.backend.append_stream(
                REDIS_SECURE_SIGNAL_STREAM_KEY.format(slug=room_id),
                {"event": event, "payload": json.dumps(data), "timestamp": timestamp},
                maxlen=SECURE_STREAM_MAXLEN,
            )
        if secure:
            await self.ttl_sync.after_secure_write(room_id)
        else:
            await self.ttl_sync.after_event(room_id)
        logger.debug(f"Emitted {event} to room {room_id} (secure={secure})")

    async def destroyed(self, room_id: str, secure: bool, reason: str = "destroy"):
        # Secure clients play the self-destruct animation before tearing down.
        if secure:
            await self.emit(room_id, EVENT_SELF_DESTRUCT, {
                "roomId": room_id,
                "reason": reason,
                "timestamp": now_ms(),
            }, secure=True, replay=False)
        await self.emit(room_id, EVENT_DESTROY, {"isDestroyed": True}, secure=secure, replay=False)

    async def panicked(self, room_id: str):
        await self.emit(room_id, EVENT_PANIC, {"triggered": True})

    async def destroy_requested(self, room_id: str, secure: bool, requested_by: str, requester_id: str, requester_name: str):
        await self.emit(room_id, EVENT_DESTROY_REQUEST, {
            "requestedBy": requested_by,
            "requesterId": requester_id,
            "requesterName": requester_name,
        }, secure=secure)

    async def destroy_denied(self, room_id: str, secure: bool, requester_id: str):
        await self.emit(room_id, EVENT_DESTROY_DENIED, {"denied": True, "requesterId": requester_id}, secure=secure)

    async def timer_extended(self, room_id: str, new_ttl: int):
        await self.emit(room_id, EVENT_TIMER_EXTENDED, {"newTtl": new_ttl})
