import uuid
from typing import Optional

from backend import RedisBackend
from broadcaster import LifecycleBroadcaster
from constants import MIN_PARTICIPANTS, KDF_DEFAULT_ITERATIONS, SECURE_ROOM_TTL_SECONDS, TTL_MISSING, TTL_NO_EXPIRY
from errors import Conflict, Forbidden, NotFound, ValidationError
from gatekeeper import normalize_answer, normalize_hex
from logging_config import get_logger
from models import AuthContext, RequestCredentials, RoomMode
from schemas.rooms import CreateRoomRequest, CreateSecureRoomRequest, PermanentRoom
from sessions import SessionStore
from ttl_sync import TTLSynchronizer
from utils import now_ms

logger = get_logger(__name__)


def generate_room_id() -> str:
    return uuid.uuid4().hex


class RoomAuthority:
    """Owns room lifecycle: creation, verification, membership exit, roles
    and the destructive operations (destroy, panic).

    Membership-changing operations re-read the room record and write the
    whole membership field back; they are not transactional.
    """

    def __init__(
        self,
        backend: RedisBackend,
        sessions: SessionStore,
        ttl_sync: TTLSynchronizer,
        broadcaster: LifecycleBroadcaster,
    ):
        self.backend = backend
        self.sessions = sessions
        self.ttl_sync = ttl_sync
        self.broadcaster = broadcaster

    async def create(self, config: CreateRoomRequest) -> str:
        if config.panic_password and config.password and config.panic_password == config.password:
            raise ValidationError("Panic password must be different from room password")

        room_id = generate_room_id()
        created_at = now_ms()
        ttl_seconds = config.ttl_minutes * 60
        await self.backend.create_room(room_id, {
            "connected": [],
            "createdAt": created_at,
            "maxParticipants": config.max_participants,
            "ttlMinutes": config.ttl_minutes,
            "password": config.password or None,
            "panicPassword": config.panic_password or None,
            "securityQuestion": config.security_question or None,
            "securityAnswer": normalize_answer(config.security_answer) if config.security_answer else None,
        }, mode=RoomMode.LEGACY, ttl=ttl_seconds)

        if ttl_seconds <= 0:
            await self.backend.index_permanent_room(room_id, created_at)
        logger.info(
            f"Room {room_id} created: max_participants={config.max_participants}, "
            f"ttl_minutes={config.ttl_minutes}, password={bool(config.password)}"
        )
        return room_id

    async def create_secure(self, config: CreateSecureRoomRequest) -> dict:
        room_id = generate_room_id()
        created_at = now_ms()
        expires_at = created_at + SECURE_ROOM_TTL_SECONDS * 1000
        await self.backend.create_room(room_id, {
            "mode": "secure-v2",
            "connected": [],
            "participants": {},
            "revokedParticipants": [],
            "createdAt": created_at,
            "expiresAt": expires_at,
            "maxParticipants": config.max_participants,
            "securityQuestion": config.security_question.strip(),
            "roomSaltHex": normalize_hex(config.room_salt_hex),
            "kdfIterations": config.kdf_iterations,
            "gatekeeperVerifierHex": normalize_hex(config.gatekeeper_verifier_hex),
        }, mode=RoomMode.SECURE, ttl=SECURE_ROOM_TTL_SECONDS)
        logger.info(f"Secure room {room_id} created: max_participants={config.max_participants}")
        return {"room_id": room_id, "expires_at": expires_at, "ttl_seconds": SECURE_ROOM_TTL_SECONDS}

    async def verify(self, room_id: str, password: Optional[str], security_answer: Optional[str]) -> bool:
        if await self.backend.get_room(room_id, RoomMode.SECURE) is not None:
            raise Conflict("Use /api/room/verify-proof for secure rooms")

        record = await self.backend.get_room(room_id, RoomMode.LEGACY)
        if record is None:
            raise NotFound("Room not found")

        if record.password and record.password != password:
            logger.warning(f"Verification failed for room {room_id}: wrong password")
            raise Forbidden("Incorrect password")

        if record.security_answer and record.security_answer != normalize_answer(security_answer or ""):
            logger.warning(f"Verification failed for room {room_id}: wrong security answer")
            raise Forbidden("Incorrect security answer")
        return True

    async def ttl(self, room_id: Optional[str]) -> dict:
        if not room_id:
            return {"ttl": TTL_NO_EXPIRY}
        record = await self.backend.resolve_room(room_id)
        if record is None:
            return {"ttl": TTL_MISSING}
        return {"ttl": await self.backend.ttl(record.meta_key), "secure": record.is_secure}

    async def info(self, room_id: Optional[str]) -> dict:
        if not room_id:
            return {"exists": False}
        record = await self.backend.resolve_room(room_id)
        if record is None:
            return {"exists": False}
        if record.is_secure:
            return {
                "exists": True,
                "secure": True,
                "securityQuestion": record.security_question,
                "roomSaltHex": record.room_salt_hex,
                "kdfIterations": record.kdf_iterations or KDF_DEFAULT_ITERATIONS,
                "maxParticipants": record.max_participants or MIN_PARTICIPANTS,
                "hasPassword": False,
            }
        return {
            "exists": True,
            "secure": False,
            "hasPassword": bool(record.password),
            "securityQuestion": record.security_question,
        }

    async def _require_creator(self, auth: AuthContext, message: str):
        creator_token = await self.backend.get_room_field(auth.meta_key, "creatorToken")
        if creator_token != auth.token:
            logger.warning(f"Non-creator attempted a creator-only action in room {auth.room_id}")
            raise Forbidden(message)

    async def role(self, auth: AuthContext) -> str:
        creator_token = await self.backend.get_room_field(auth.meta_key, "creatorToken")
        return "creator" if creator_token == auth.token else "member"

    async def exit(self, auth: AuthContext, credentials: RequestCredentials):
        mode = RoomMode.SECURE if auth.is_secure else RoomMode.LEGACY
        record = await self.backend.get_room(auth.room_id, mode)
        if record is None:
            raise NotFound("Room not found")
        if record.creator_token and record.creator_token == auth.token:
            raise Forbidden("Room creator cannot exit this room")

        revoked = set(record.revoked_participants)
        next_participants = {}
        for identity_key, token in record.participants.items():
            if token == auth.token:
                revoked.add(identity_key)
            else:
                next_participants[identity_key] = token
        if credentials.identity_key:
            revoked.add(credentials.identity_key)
            next_participants.pop(credentials.identity_key, None)

        await self.backend.update_room(auth.meta_key, {
            "connected": [token for token in record.connected if token != auth.token],
            "participants": next_participants,
            "revokedParticipants": sorted(revoked),
        })

        user_id = await self.sessions.get_user_id(credentials.session_id)
        if user_id:
            await self.sessions.untrack_rooms(user_id, [auth.room_id])
        logger.info(f"Participant exited room {auth.room_id}; {len(revoked)} identities revoked")

    async def destroy(self, auth: AuthContext, reason: str = "destroy"):
        if reason == "destroy-approved":
            await self._require_creator(auth, "Only the room creator can approve destruction")
        else:
            await self._require_creator(auth, "Only the room creator can destroy the room")
        await self.backend.delete_room(auth.room_id)
        await self.broadcaster.destroyed(auth.room_id, secure=auth.is_secure, reason=reason)
        logger.info(f"Room {auth.room_id} destroyed by creator (reason={reason})")

    async def request_destroy(self, auth: AuthContext, requester_id: str, requester_name: Optional[str]):
        creator_token = await self.backend.get_room_field(auth.meta_key, "creatorToken")
        if creator_token == auth.token:
            raise Conflict("Creator can destroy directly")
        await self.broadcaster.destroy_requested(
            auth.room_id,
            secure=auth.is_secure,
            requested_by=auth.token,
            requester_id=requester_id,
            requester_name=requester_name or "a participant",
        )
        logger.info(f"Destroy requested for room {auth.room_id}")

    async def approve_destroy(self, auth: AuthContext):
        await self.destroy(auth, reason="destroy-approved")

    async def deny_destroy(self, auth: AuthContext, requester_id: str):
        await self._require_creator(auth, "Only the room creator can deny destruction")
        await self.broadcaster.destroy_denied(auth.room_id, secure=auth.is_secure, requester_id=requester_id)
        logger.info(f"Destroy request denied for room {auth.room_id}")

    async def extend_timer(self, auth: AuthContext, minutes: int) -> int:
        await self._require_creator(auth, "Only the room creator can extend the timer")
        if auth.is_secure:
            raise Conflict("Secure rooms have a fixed 1-hour TTL and cannot be extended")

        current_ttl = await self.backend.ttl(auth.meta_key)
        if current_ttl == TTL_NO_EXPIRY:
            raise Conflict("Permanent rooms don't have a timer to extend")

        new_ttl = max(current_ttl, 0) + minutes * 60
        await self.ttl_sync.extend(auth.room_id, new_ttl)
        await self.broadcaster.timer_extended(auth.room_id, new_ttl)
        return new_ttl

    async def panic(self, auth: AuthContext, panic_password: str):
        if auth.is_secure:
            raise Forbidden("Panic password is not available in secure mode")

        stored_panic = await self.backend.get_room_field(auth.meta_key, "panicPassword")
        if not stored_panic:
            raise Conflict("This room has no panic password configured")
        if stored_panic != panic_password:
            logger.warning(f"Wrong panic password for room {auth.room_id}")
            raise Forbidden("Incorrect panic password")

        await self.backend.delete_room(auth.room_id)
        await self.broadcaster.panicked(auth.room_id)
        logger.info(f"Room {auth.room_id} destroyed by panic password")

    async def list_permanent_rooms(self, user_id: str) -> list[PermanentRoom]:
        """List a user's tracked permanent rooms, pruning stale index entries."""
        rooms = []
        stale_tracked = []
        stale_global = []
        for room_id in await self.sessions.list_rooms(user_id):
            record = await self.backend.get_room(room_id, RoomMode.LEGACY)
            if record is None:
                stale_tracked.append(room_id)
                stale_global.append(room_id)
                continue
            if record.ttl_minutes != 0:
                stale_tracked.append(room_id)
                continue
            rooms.append(PermanentRoom(
                room_id=room_id,
                created_at=record.created_at,
                max_participants=record.max_participants,
                has_password=bool(record.password),
            ))

        await self.sessions.untrack_rooms(user_id, stale_tracked)
        await self.backend.remove_permanent_rooms(stale_global)
        return rooms
