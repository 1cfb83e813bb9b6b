from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode

from backend import RedisBackend
from errors import Conflict, Forbidden
from logging_config import get_logger
from membership import admit, new_guest_id
from models import RequestCredentials
from sessions import SessionStore

logger = get_logger(__name__)

ERROR_ROOM_NOT_FOUND = "room-not-found"
ERROR_AUTH_REQUIRED = "room-auth-required"
ERROR_ACCESS_DENIED = "room-access-denied"
ERROR_ROOM_FULL = "room-full"


def error_redirect(error: str, room_id: Optional[str] = None) -> str:
    params = {"error": error}
    if room_id:
        params["roomId"] = room_id
    return f"/?{urlencode(params)}"


@dataclass
class EntryDecision:
    room_id: str
    redirect_to: Optional[str] = None
    token: Optional[str] = None
    is_secure: bool = False
    is_creator: bool = False
    minted_guest_id: Optional[str] = None

    @property
    def admitted(self) -> bool:
        return self.redirect_to is None


class EntryGateway:
    """Admission check run once per room page request."""

    def __init__(self, backend: RedisBackend, sessions: SessionStore):
        self.backend = backend
        self.sessions = sessions

    async def enter(self, room_id: str, credentials: RequestCredentials) -> EntryDecision:
        record = await self.backend.resolve_room(room_id)
        if record is None:
            return EntryDecision(room_id, redirect_to=error_redirect(ERROR_ROOM_NOT_FOUND))

        if record.is_secure:
            # Secure rooms only gain members through the proof endpoint.
            token = credentials.token_for(record.mode)
            if not token or token not in record.connected:
                return EntryDecision(room_id, redirect_to=error_redirect(ERROR_AUTH_REQUIRED, room_id), is_secure=True)
            return EntryDecision(room_id, token=token, is_secure=True, is_creator=record.creator_token == token)

        if record.needs_verification and not credentials.room_verified:
            return EntryDecision(room_id, redirect_to=error_redirect(ERROR_AUTH_REQUIRED, room_id))

        minted_guest_id = None
        identity_key = credentials.identity_key
        if identity_key is None:
            minted_guest_id = new_guest_id()
            identity_key = f"guest:{minted_guest_id}"

        try:
            admission = await admit(
                self.backend,
                self.sessions,
                record,
                identity_key,
                existing_token=credentials.auth_token,
                session_id=credentials.session_id,
            )
        except Forbidden:
            return EntryDecision(room_id, redirect_to=error_redirect(ERROR_ACCESS_DENIED))
        except Conflict:
            return EntryDecision(room_id, redirect_to=error_redirect(ERROR_ROOM_FULL))

        return EntryDecision(
            room_id,
            token=admission.token,
            is_creator=admission.is_creator,
            minted_guest_id=minted_guest_id,
        )
