import asyncio
import json
from typing import Optional

import redis.asyncio as redis

from constants import REDIS_HOST, REDIS_PORT, REDIS_PASSWORD
from logging_config import get_logger
from models import RoomMode, RoomRecord
from redis_keys import (
    REDIS_EVENT_STREAM_KEY,
    REDIS_HISTORY_KEY,
    REDIS_MESSAGES_KEY,
    REDIS_META_KEY,
    REDIS_PERMANENT_ROOMS_KEY,
    REDIS_ROOM_CHANNEL,
    REDIS_SECURE_MESSAGE_STREAM_KEY,
    REDIS_SECURE_META_KEY,
    REDIS_SECURE_SIGNAL_STREAM_KEY,
)

logger = get_logger(__name__)


def create_redis_client() -> redis.Redis:
    """Build the process-wide async Redis client from environment settings."""
    logger.info(f"Creating Redis client for {REDIS_HOST}:{REDIS_PORT}")
    return redis.Redis(host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, decode_responses=True)


def meta_key_for(room_id: str, mode: RoomMode) -> str:
    if mode == RoomMode.SECURE:
        return REDIS_SECURE_META_KEY.format(slug=room_id)
    return REDIS_META_KEY.format(slug=room_id)


def room_scoped_keys(room_id: str) -> list[str]:
    """Every key that belongs to a room, in both modes."""
    return [
        REDIS_EVENT_STREAM_KEY.format(slug=room_id),
        REDIS_META_KEY.format(slug=room_id),
        REDIS_SECURE_META_KEY.format(slug=room_id),
        REDIS_MESSAGES_KEY.format(slug=room_id),
        REDIS_HISTORY_KEY.format(slug=room_id),
        REDIS_SECURE_MESSAGE_STREAM_KEY.format(slug=room_id),
        REDIS_SECURE_SIGNAL_STREAM_KEY.format(slug=room_id),
    ]


class RedisBackend:
    def __init__(self, redis_client: redis.Redis):
        self.redis_client = redis_client
        logger.info("Initializing RedisBackend")

    @staticmethod
    def _encode_mapping(room_data: dict) -> dict:
        # Convert dict values to strings for Redis hash, skip None values
        room_data_str = {}
        for k, v in room_data.items():
            if v is None:
                continue
            if isinstance(v, (dict, list)):
                room_data_str[k] = json.dumps(v)
            else:
                room_data_str[k] = str(v)
        return room_data_str

    async def ping(self) -> bool:
        return await self.redis_client.ping()

    async def create_room(self, room_id: str, room_data: dict, mode: RoomMode = RoomMode.LEGACY, ttl: int = 0):
        key = meta_key_for(room_id, mode)
        logger.info(f"Creating {mode.value} room {room_id} with TTL {ttl} seconds")
        await self.redis_client.hset(key, mapping=self._encode_mapping(room_data))
        if ttl:
            await self.redis_client.expire(key, ttl)
        logger.debug(f"Room {room_id} created successfully with key: {key}")
        return room_id

    async def get_room(self, room_id: str, mode: RoomMode) -> Optional[RoomRecord]:
        key = meta_key_for(room_id, mode)
        room_data = await self.redis_client.hgetall(key)
        if not room_data:
            logger.debug(f"Room {room_id} not found under {key}")
            return None
        return RoomRecord.from_hash(room_id, mode, key, room_data)

    async def resolve_room(self, room_id: str) -> Optional[RoomRecord]:
        """Load a room, preferring the secure record over the legacy one."""
        secure, legacy = await asyncio.gather(
            self.get_room(room_id, RoomMode.SECURE),
            self.get_room(room_id, RoomMode.LEGACY),
        )
        return secure or legacy

    async def update_room(self, meta_key: str, fields: dict):
        await self.redis_client.hset(meta_key, mapping=self._encode_mapping(fields))

    async def get_room_field(self, meta_key: str, field: str) -> Optional[str]:
        return await self.redis_client.hget(meta_key, field)

    async def ttl(self, key: str) -> int:
        return await self.redis_client.ttl(key)

    async def expire_keys(self, keys: list[str], ttl: int):
        await asyncio.gather(*(self.redis_client.expire(key, ttl) for key in keys))

    async def index_permanent_room(self, room_id: str, created_at: int):
        await self.redis_client.zadd(REDIS_PERMANENT_ROOMS_KEY, {room_id: created_at})

    async def remove_permanent_rooms(self, room_ids: list[str]):
        if room_ids:
            await self.redis_client.zrem(REDIS_PERMANENT_ROOMS_KEY, *room_ids)

    async def delete_room(self, room_id: str):
        """Delete every room-scoped key and the permanent index entry.

        Deletes are issued in parallel without a transaction.
        """
        logger.info(f"Deleting room {room_id}")
        keys = room_scoped_keys(room_id)
        results = await asyncio.gather(
            *(self.redis_client.delete(key) for key in keys),
            self.redis_client.zrem(REDIS_PERMANENT_ROOMS_KEY, room_id),
        )
        logger.debug(f"Room {room_id} deleted: {dict(zip(keys + [REDIS_PERMANENT_ROOMS_KEY], results))}")
        return True

    async def append_message(self, room_id: str, message: dict, history_entry: dict):
        await asyncio.gather(
            self.redis_client.rpush(REDIS_MESSAGES_KEY.format(slug=room_id), json.dumps(message)),
            self.redis_client.rpush(REDIS_HISTORY_KEY.format(slug=room_id), json.dumps(history_entry)),
        )

    async def _read_json_list(self, key: str) -> list[dict]:
        items = []
        for raw in await self.redis_client.lrange(key, 0, -1):
            try:
                items.append(json.loads(raw))
            except json.JSONDecodeError:
                logger.warning(f"Skipping malformed entry in {key}")
        return items

    async def get_messages(self, room_id: str) -> list[dict]:
        return await self._read_json_list(REDIS_MESSAGES_KEY.format(slug=room_id))

    async def get_history(self, room_id: str) -> list[dict]:
        return await self._read_json_list(REDIS_HISTORY_KEY.format(slug=room_id))

    async def append_stream(self, key: str, fields: dict, maxlen: int) -> str:
        return await self.redis_client.xadd(key, self._encode_mapping(fields), maxlen=maxlen, approximate=False)

    async def read_stream(self, key: str) -> list[dict]:
        entries = await self.redis_client.xrange(key)
        return [{"id": entry_id, **fields} for entry_id, fields in entries]

    def get_room_channel_name(self, room_id: str) -> str:
        """Get the Redis pub/sub channel name for a room."""
        return REDIS_ROOM_CHANNEL.format(slug=room_id)

    async def publish_message(self, room_id: str, message: dict) -> int:
        """Publish a message to the room's Redis pub/sub channel."""
        channel = self.get_room_channel_name(room_id)
        subscribers = await self.redis_client.publish(channel, json.dumps(message))
        logger.debug(f"Published message to room {room_id} channel {channel}, {subscribers} subscribers")
        return subscribers

    async def subscribe_to_room(self, room_id: str):
        """Create a pubsub subscriber for a room channel."""
        channel = self.get_room_channel_name(room_id)
        logger.debug(f"Subscribing to Redis channel {channel} for room {room_id}")
        pubsub = self.redis_client.pubsub()
        await pubsub.subscribe(channel)
        return pubsub
