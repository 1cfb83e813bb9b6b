"""Knowledge-proof gating for secure rooms.

Clients derive ``room_key = PBKDF2-SHA256(answer, salt, iterations)`` and
``proof = SHA256(room_key || GATEKEEPER_TAG)``. The server stores the creator's
proof as the room verifier and only ever compares proofs; it never sees the
answer or the room key, so it cannot decrypt room traffic.

``derive_room_key_hex`` and ``derive_gatekeeper_proof_hex`` are reference
implementations of the client side of that scheme; the server itself only
uses ``timing_safe_hex_equals``.
"""
import hashlib
import hmac
import re
from dataclasses import dataclass
from typing import Optional

from backend import RedisBackend
from constants import GATEKEEPER_TAG, KDF_DEFAULT_ITERATIONS, ROOM_KEY_BYTES, SECURE_ROOM_TTL_SECONDS
from errors import Forbidden, NotFound
from logging_config import get_logger
from membership import admit, new_guest_id
from models import RequestCredentials, RoomMode
from sessions import SessionStore
from ttl_sync import TTLSynchronizer
from utils import now_ms

logger = get_logger(__name__)

HEX_RE = re.compile(r"^[0-9a-f]+$")


def normalize_hex(value: str) -> str:
    return value.strip().lower()


def normalize_answer(answer: str) -> str:
    return answer.strip().lower()


def timing_safe_hex_equals(expected_hex: str, received_hex: str) -> bool:
    a = normalize_hex(expected_hex or "")
    b = normalize_hex(received_hex or "")
    if not HEX_RE.match(a) or not HEX_RE.match(b) or len(a) != len(b) or len(a) % 2:
        return False
    return hmac.compare_digest(bytes.fromhex(a), bytes.fromhex(b))


def derive_room_key_hex(answer: str, salt_hex: str, iterations: int = KDF_DEFAULT_ITERATIONS) -> str:
    """Client-side room key derivation. Callers normalize the answer first."""
    key = hashlib.pbkdf2_hmac("sha256", answer.encode("utf-8"), bytes.fromhex(normalize_hex(salt_hex)), iterations, ROOM_KEY_BYTES)
    return key.hex()


def derive_gatekeeper_proof_hex(room_key_hex: str) -> str:
    return hashlib.sha256(bytes.fromhex(room_key_hex) + GATEKEEPER_TAG.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class ProofResult:
    join_token: str
    expires_at: int
    minted_guest_id: Optional[str] = None


class SecureGatekeeper:
    def __init__(self, backend: RedisBackend, sessions: SessionStore, ttl_sync: TTLSynchronizer):
        self.backend = backend
        self.sessions = sessions
        self.ttl_sync = ttl_sync

    async def verify_proof(self, room_id: str, proof_hex: str, credentials: RequestCredentials) -> ProofResult:
        record = await self.backend.get_room(room_id, RoomMode.SECURE)
        if record is None:
            raise NotFound("Secure room not found")

        if not timing_safe_hex_equals(record.gatekeeper_verifier_hex or "", proof_hex):
            logger.warning(f"Invalid gatekeeper proof for room {room_id}")
            raise Forbidden("Invalid proof")

        minted_guest_id = None
        identity_key = credentials.identity_key
        if identity_key is None:
            minted_guest_id = new_guest_id()
            identity_key = f"guest:{minted_guest_id}"

        admission = await admit(
            self.backend,
            self.sessions,
            record,
            identity_key,
            session_id=credentials.session_id,
        )
        await self.ttl_sync.after_secure_write(room_id)

        expires_at = record.expires_at or now_ms() + SECURE_ROOM_TTL_SECONDS * 1000
        return ProofResult(join_token=admission.token, expires_at=expires_at, minted_guest_id=minted_guest_id)
