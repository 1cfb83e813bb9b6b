from backend import RedisBackend
from errors import Unauthorized
from logging_config import get_logger
from models import AuthContext, RequestCredentials

logger = get_logger(__name__)


class AccessGate:
    """Per-request membership check for room-scoped operations.

    Resolves the room mode (secure first, then legacy), picks the token from
    the mode's cookie and requires it to be in `connected`. Anything short of
    that is an Unauthorized error; there is no partial result.
    """

    def __init__(self, backend: RedisBackend):
        self.backend = backend

    async def authenticate(self, credentials: RequestCredentials) -> AuthContext:
        room_id = credentials.room_id
        if not room_id:
            raise Unauthorized("Missing Room ID or Token")

        record = await self.backend.resolve_room(room_id)
        if record is None:
            logger.warning(f"Access denied: room {room_id} not found")
            raise Unauthorized()

        token = credentials.token_for(record.mode)
        if not token:
            raise Unauthorized("Missing Room ID or Token")
        if token not in record.connected:
            logger.warning(f"Access denied: token not connected to room {room_id}")
            raise Unauthorized("Invalid Token")

        return AuthContext(
            room_id=room_id,
            token=token,
            connected=list(record.connected),
            is_secure=record.is_secure,
            meta_key=record.meta_key,
        )
