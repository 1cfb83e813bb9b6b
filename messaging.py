import json
import secrets

from backend import RedisBackend
from broadcaster import EVENT_ENCRYPTED, EVENT_MESSAGE, RESERVED_EVENTS, LifecycleBroadcaster
from constants import SECURE_STREAM_MAXLEN
from errors import Conflict, Forbidden, NotFound, ValidationError
from logging_config import get_logger
from models import AuthContext, RoomMode
from redis_keys import REDIS_SECURE_MESSAGE_STREAM_KEY, REDIS_SECURE_SIGNAL_STREAM_KEY
from schemas.messages import EncryptedMessageRequest, SendMessageRequest
from ttl_sync import TTLSynchronizer
from utils import now_ms

logger = get_logger(__name__)


def new_message_id() -> str:
    return secrets.token_urlsafe(16)


class MessageService:
    """Room traffic: plaintext messages for legacy rooms, opaque encrypted
    envelopes for secure rooms, and the signaling relay."""

    def __init__(self, backend: RedisBackend, ttl_sync: TTLSynchronizer, broadcaster: LifecycleBroadcaster):
        self.backend = backend
        self.ttl_sync = ttl_sync
        self.broadcaster = broadcaster

    async def post(self, auth: AuthContext, body: SendMessageRequest) -> dict:
        if auth.is_secure:
            raise Conflict("Use /api/messages/encrypted for secure rooms")
        if await self.backend.get_room(auth.room_id, RoomMode.LEGACY) is None:
            raise NotFound("Room does not exist.")

        message = {
            "id": new_message_id(),
            "sender": body.sender,
            "text": body.text,
            "timestamp": now_ms(),
            "roomId": auth.room_id,
        }
        if body.vanish_after:
            message["vanishAfter"] = body.vanish_after
        if body.type != "text":
            message["type"] = body.type

        await self.backend.append_message(
            auth.room_id,
            {**message, "token": auth.token},
            {"id": message["id"], "sender": body.sender, "timestamp": message["timestamp"]},
        )
        await self.broadcaster.emit(auth.room_id, EVENT_MESSAGE, message)
        await self.ttl_sync.after_message(auth.room_id)
        logger.debug(f"Message {message['id']} posted to room {auth.room_id}")
        return message

    async def list_messages(self, auth: AuthContext) -> dict:
        if auth.is_secure:
            return {"secure": True, "messages": []}
        messages = []
        for message in await self.backend.get_messages(auth.room_id):
            # Only the sender gets its own token back.
            if message.get("token") != auth.token:
                message.pop("token", None)
            messages.append(message)
        return {"messages": messages}

    async def participants(self, auth: AuthContext) -> list[str]:
        if auth.is_secure:
            return []
        senders = []
        for entry in await self.backend.get_history(auth.room_id):
            sender = entry.get("sender")
            if isinstance(sender, str) and sender and sender not in senders:
                senders.append(sender)
        return senders

    async def post_encrypted(self, auth: AuthContext, payload: EncryptedMessageRequest) -> dict:
        if not auth.is_secure:
            raise Conflict("Encrypted envelopes are only supported in secure rooms")
        if payload.room_id and payload.room_id != auth.room_id:
            raise ValidationError("roomId mismatch")
        if await self.backend.get_room(auth.room_id, RoomMode.SECURE) is None:
            raise NotFound("Secure room not found")

        message_id = new_message_id()
        accepted_at = now_ms()
        envelope = payload.envelope.model_dump(by_alias=True, exclude_none=True)
        await self.backend.append_stream(
            REDIS_SECURE_MESSAGE_STREAM_KEY.format(slug=auth.room_id),
            {
                "id": message_id,
                "senderToken": auth.token,
                "acceptedAt": accepted_at,
                "envelope": json.dumps(envelope),
            },
            maxlen=SECURE_STREAM_MAXLEN,
        )
        await self.broadcaster.emit(auth.room_id, EVENT_ENCRYPTED, {
            "id": message_id,
            "roomId": auth.room_id,
            "envelope": envelope,
            "timestamp": accepted_at,
        }, secure=True, replay=False)
        return {"id": message_id, "accepted_at": accepted_at}

    async def relay(self, channel: str, event: str, data):
        if event in RESERVED_EVENTS:
            logger.warning(f"Refused relay of reserved event {event} to room {channel}")
            raise Forbidden(f"Event {event} cannot be relayed")
        record = await self.backend.resolve_room(channel)
        if record is None:
            raise NotFound("Room not found")
        namespace, _, name = event.partition(".")
        if namespace and name:
            await self.broadcaster.emit(channel, f"{namespace}.{name}", data, secure=record.is_secure)

    async def replay_log(self, auth: AuthContext) -> list[dict]:
        if not auth.is_secure:
            return []
        events = []
        for entry in await self.backend.read_stream(REDIS_SECURE_SIGNAL_STREAM_KEY.format(slug=auth.room_id)):
            try:
                payload = json.loads(entry.get("payload") or "null")
            except json.JSONDecodeError:
                payload = None
            events.append({
                "id": entry["id"],
                "event": entry.get("event"),
                "payload": payload,
                "timestamp": int(entry.get("timestamp") or 0),
            })
        return events
