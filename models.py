import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional

from constants import (
    AUTH_TOKEN_COOKIE,
    GUEST_PARTICIPANT_COOKIE,
    MIN_PARTICIPANTS,
    ROOM_VERIFIED_COOKIE_PREFIX,
    SECURE_ROOM_COOKIE_PREFIX,
    SESSION_COOKIE,
)


class RoomMode(str, Enum):
    LEGACY = "legacy"
    SECURE = "secure"


def _parse_string_list(raw) -> list[str]:
    if isinstance(raw, list):
        return [item for item in raw if isinstance(item, str)]
    if not isinstance(raw, str):
        return []
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return []
    if not isinstance(parsed, list):
        return []
    return [item for item in parsed if isinstance(item, str)]


def _parse_identity_map(raw) -> dict[str, str]:
    if not isinstance(raw, str):
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    if not isinstance(parsed, dict):
        return {}
    return {k: v for k, v in parsed.items() if isinstance(k, str) and isinstance(v, str)}


def _parse_int(raw, default: Optional[int] = None) -> Optional[int]:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


@dataclass
class RoomRecord:
    """Decoded view of a room's metadata hash.

    Membership fields are stored as JSON strings inside the hash; anything
    malformed decodes to an empty collection instead of failing the request.
    """

    room_id: str
    mode: RoomMode
    meta_key: str
    connected: list[str] = field(default_factory=list)
    participants: dict[str, str] = field(default_factory=dict)
    revoked_participants: set[str] = field(default_factory=set)
    max_participants: int = MIN_PARTICIPANTS
    creator_token: Optional[str] = None
    created_at: Optional[int] = None
    expires_at: Optional[int] = None
    ttl_minutes: Optional[int] = None
    password: Optional[str] = None
    panic_password: Optional[str] = None
    security_question: Optional[str] = None
    security_answer: Optional[str] = None
    room_salt_hex: Optional[str] = None
    kdf_iterations: Optional[int] = None
    gatekeeper_verifier_hex: Optional[str] = None

    @classmethod
    def from_hash(cls, room_id: str, mode: RoomMode, meta_key: str, raw: Mapping[str, str]) -> "RoomRecord":
        return cls(
            room_id=room_id,
            mode=mode,
            meta_key=meta_key,
            connected=_parse_string_list(raw.get("connected")),
            participants=_parse_identity_map(raw.get("participants")),
            revoked_participants=set(_parse_string_list(raw.get("revokedParticipants"))),
            max_participants=_parse_int(raw.get("maxParticipants"), MIN_PARTICIPANTS) or MIN_PARTICIPANTS,
            creator_token=raw.get("creatorToken") or None,
            created_at=_parse_int(raw.get("createdAt")),
            expires_at=_parse_int(raw.get("expiresAt")),
            ttl_minutes=_parse_int(raw.get("ttlMinutes")),
            password=raw.get("password") or None,
            panic_password=raw.get("panicPassword") or None,
            security_question=raw.get("securityQuestion") or None,
            security_answer=raw.get("securityAnswer") or None,
            room_salt_hex=raw.get("roomSaltHex") or None,
            kdf_iterations=_parse_int(raw.get("kdfIterations")),
            gatekeeper_verifier_hex=raw.get("gatekeeperVerifierHex") or None,
        )

    @property
    def is_secure(self) -> bool:
        return self.mode == RoomMode.SECURE

    @property
    def needs_verification(self) -> bool:
        return bool(self.password or self.security_question)


@dataclass(frozen=True)
class RequestCredentials:
    """Cookie-borne credentials of one inbound request."""

    room_id: Optional[str] = None
    auth_token: Optional[str] = None
    secure_token: Optional[str] = None
    session_id: Optional[str] = None
    guest_id: Optional[str] = None
    room_verified: bool = False

    @classmethod
    def from_cookies(cls, cookies: Mapping[str, str], room_id: Optional[str] = None) -> "RequestCredentials":
        secure_token = cookies.get(f"{SECURE_ROOM_COOKIE_PREFIX}{room_id}") if room_id else None
        verified = cookies.get(f"{ROOM_VERIFIED_COOKIE_PREFIX}{room_id}") if room_id else None
        return cls(
            room_id=room_id or None,
            auth_token=cookies.get(AUTH_TOKEN_COOKIE) or None,
            secure_token=secure_token or None,
            session_id=cookies.get(SESSION_COOKIE) or None,
            guest_id=cookies.get(GUEST_PARTICIPANT_COOKIE) or None,
            room_verified=verified == "true",
        )

    @property
    def identity_key(self) -> Optional[str]:
        if self.session_id:
            return f"session:{self.session_id}"
        if self.guest_id:
            return f"guest:{self.guest_id}"
        return None

    def token_for(self, mode: RoomMode) -> Optional[str]:
        if mode == RoomMode.SECURE:
            return self.secure_token or self.auth_token
        return self.auth_token


@dataclass(frozen=True)
class AuthContext:
    """Result of a successful Access Gate check."""

    room_id: str
    token: str
    connected: list[str]
    is_secure: bool
    meta_key: str


@dataclass(frozen=True)
class Admission:
    """Outcome of admitting an identity into a room."""

    token: str
    is_new: bool
    is_creator: bool
