import secrets
from typing import Optional

from backend import RedisBackend
from errors import Conflict, Forbidden
from logging_config import get_logger
from models import Admission, RoomRecord
from sessions import SessionStore

logger = get_logger(__name__)


def new_token() -> str:
    return secrets.token_urlsafe(16)


def new_guest_id() -> str:
    return secrets.token_urlsafe(12)


async def admit(
    backend: RedisBackend,
    sessions: SessionStore,
    record: RoomRecord,
    identity_key: str,
    existing_token: Optional[str] = None,
    session_id: Optional[str] = None,
) -> Admission:
    """Admit `identity_key` into a room, reusing its bound token when possible.

    Shared by the entry gateway and the secure gatekeeper. The read of
    `connected` and the write back are not atomic, so concurrent joins can
    overshoot `max_participants`.
    """
    if identity_key in record.revoked_participants:
        logger.warning(f"Revoked identity rejected from room {record.room_id}")
        raise Forbidden("Room access denied")

    mapped_token = record.participants.get(identity_key)
    if mapped_token and mapped_token in record.connected:
        # Returning participant, never evicted by capacity.
        return Admission(token=mapped_token, is_new=False, is_creator=False)

    token = mapped_token
    if not token and existing_token and existing_token in record.connected:
        token = existing_token

    is_new = False
    if not token:
        if len(record.connected) >= record.max_participants:
            if not await sessions.session_has_tracked_room(session_id, record.room_id):
                logger.warning(
                    f"Room {record.room_id} is full ({len(record.connected)}/{record.max_participants})"
                )
                raise Conflict("Room is full")
        token = new_token()
        is_new = True

    is_creator = not record.creator_token and not record.connected
    next_connected = record.connected if token in record.connected else record.connected + [token]
    next_participants = {**record.participants, identity_key: token}
    updates = {
        "connected": next_connected,
        "participants": next_participants,
    }
    if is_creator:
        updates["creatorToken"] = token

    await backend.update_room(record.meta_key, updates)
    record.connected = next_connected
    record.participants = next_participants
    if is_creator:
        record.creator_token = token
    logger.info(
        f"Admitted participant to room {record.room_id} "
        f"({len(next_connected)}/{record.max_participants}, creator={is_creator})"
    )
    return Admission(token=token, is_new=is_new, is_creator=is_creator)
