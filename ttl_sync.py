from typing import Optional

from backend import RedisBackend
from constants import (
    LIFECYCLE_FALLBACK_TTL_SECONDS,
    PERMANENT_FALLBACK_TTL_SECONDS,
    SECURE_ROOM_TTL_SECONDS,
    TTL_NO_EXPIRY,
)
from logging_config import get_logger
from redis_keys import (
    REDIS_EVENT_STREAM_KEY,
    REDIS_HISTORY_KEY,
    REDIS_MESSAGES_KEY,
    REDIS_META_KEY,
    REDIS_SECURE_MESSAGE_STREAM_KEY,
    REDIS_SECURE_META_KEY,
    REDIS_SECURE_SIGNAL_STREAM_KEY,
)

logger = get_logger(__name__)


class TTLSynchronizer:
    """Keeps a room's dependent keys aligned with its metadata expiry.

    The metadata key is authoritative. Dependent keys get:
    - the same remaining TTL when the room has a finite expiry,
    - `permanent_ttl` when the room never expires (None leaves them alone),
    - `missing_ttl` when the room record is already gone.
    """

    def __init__(self, backend: RedisBackend):
        self.backend = backend

    async def sync(
        self,
        meta_key: str,
        keys: list[str],
        permanent_ttl: Optional[int] = None,
        missing_ttl: Optional[int] = LIFECYCLE_FALLBACK_TTL_SECONDS,
    ) -> int:
        ttl = await self.backend.ttl(meta_key)
        if ttl > 0:
            target = ttl
        elif ttl == TTL_NO_EXPIRY:
            target = permanent_ttl
        else:
            target = missing_ttl
        if not target:
            return ttl
        await self.backend.expire_keys(keys, target)
        logger.debug(f"Synced TTL of {len(keys)} keys to {target}s from {meta_key} (ttl={ttl})")
        return target

    async def after_message(self, room_id: str) -> int:
        # Messages of permanent rooms persist with the room.
        return await self.sync(
            REDIS_META_KEY.format(slug=room_id),
            [
                REDIS_MESSAGES_KEY.format(slug=room_id),
                REDIS_HISTORY_KEY.format(slug=room_id),
                REDIS_EVENT_STREAM_KEY.format(slug=room_id),
            ],
        )

    async def after_event(self, room_id: str) -> int:
        return await self.sync(
            REDIS_META_KEY.format(slug=room_id),
            [REDIS_EVENT_STREAM_KEY.format(slug=room_id)],
            permanent_ttl=PERMANENT_FALLBACK_TTL_SECONDS,
        )

    async def after_secure_write(self, room_id: str) -> int:
        meta_key = REDIS_SECURE_META_KEY.format(slug=room_id)
        return await self.sync(
            meta_key,
            [
                meta_key,
                REDIS_EVENT_STREAM_KEY.format(slug=room_id),
                REDIS_SECURE_MESSAGE_STREAM_KEY.format(slug=room_id),
                REDIS_SECURE_SIGNAL_STREAM_KEY.format(slug=room_id),
            ],
            permanent_ttl=SECURE_ROOM_TTL_SECONDS,
        )

    async def extend(self, room_id: str, new_ttl: int):
        keys = [
            REDIS_META_KEY.format(slug=room_id),
            REDIS_MESSAGES_KEY.format(slug=room_id),
            REDIS_HISTORY_KEY.format(slug=room_id),
            REDIS_EVENT_STREAM_KEY.format(slug=room_id),
        ]
        await self.backend.expire_keys(keys, new_ttl)
        logger.info(f"Room {room_id} expiry set to {new_ttl}s across {len(keys)} keys")
