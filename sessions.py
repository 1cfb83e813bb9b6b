import secrets
import time
from typing import Optional

from backend import RedisBackend
from constants import LONG_COOKIE_MAX_AGE
from logging_config import get_logger
from redis_keys import REDIS_SESSION_KEY, REDIS_USER_ROOMS_KEY

logger = get_logger(__name__)


class SessionStore:
    """Read side of user sessions plus the per-user room index."""

    def __init__(self, backend: RedisBackend):
        self.redis_client = backend.redis_client

    async def create_session(self, user_id: str, username: str) -> str:
        session_id = secrets.token_urlsafe(24)
        key = REDIS_SESSION_KEY.format(session_id=session_id)
        await self.redis_client.hset(key, mapping={
            "userId": user_id,
            "username": username,
            "createdAt": str(int(time.time() * 1000)),
        })
        await self.redis_client.expire(key, LONG_COOKIE_MAX_AGE)
        return session_id

    async def get_user_id(self, session_id: Optional[str]) -> Optional[str]:
        if not session_id:
            return None
        return await self.redis_client.hget(REDIS_SESSION_KEY.format(session_id=session_id), "userId") or None

    async def track_room(self, user_id: str, room_id: str):
        await self.redis_client.zadd(REDIS_USER_ROOMS_KEY.format(user_id=user_id), {room_id: int(time.time() * 1000)})
        logger.debug(f"Tracked room {room_id} for user {user_id}")

    async def untrack_rooms(self, user_id: str, room_ids: list[str]):
        if room_ids:
            await self.redis_client.zrem(REDIS_USER_ROOMS_KEY.format(user_id=user_id), *room_ids)

    async def has_tracked_room(self, user_id: str, room_id: str) -> bool:
        score = await self.redis_client.zscore(REDIS_USER_ROOMS_KEY.format(user_id=user_id), room_id)
        return score is not None

    async def list_rooms(self, user_id: str) -> list[str]:
        # newest first
        return await self.redis_client.zrange(REDIS_USER_ROOMS_KEY.format(user_id=user_id), 0, -1, desc=True)

    async def session_has_tracked_room(self, session_id: Optional[str], room_id: str) -> bool:
        user_id = await self.get_user_id(session_id)
        if not user_id:
            return False
        return await self.has_tracked_room(user_id, room_id)
