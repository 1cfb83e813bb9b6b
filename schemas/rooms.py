import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from constants import (
    DEFAULT_TTL_MINUTES,
    KDF_DEFAULT_ITERATIONS,
    KDF_MAX_ITERATIONS,
    KDF_MIN_ITERATIONS,
    MAX_EXTEND_MINUTES,
    MAX_PARTICIPANTS,
    MAX_TTL_MINUTES,
    MIN_PARTICIPANTS,
    MIN_TTL_MINUTES,
)

PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]).{8,}$")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateRoomRequest(CamelModel):
    max_participants: int = Field(MIN_PARTICIPANTS, ge=MIN_PARTICIPANTS, le=MAX_PARTICIPANTS)
    password: Optional[str] = Field(None, min_length=8, max_length=128)
    panic_password: Optional[str] = Field(None, min_length=4, max_length=128)
    ttl_minutes: int = Field(DEFAULT_TTL_MINUTES, ge=MIN_TTL_MINUTES, le=MAX_TTL_MINUTES)
    security_question: Optional[str] = Field(None, max_length=500)
    security_answer: Optional[str] = Field(None, max_length=500)

    @field_validator("password")
    @classmethod
    def password_strength(cls, value):
        if value is not None and not PASSWORD_RE.match(value):
            raise ValueError("Password must contain at least 1 uppercase, 1 lowercase, 1 digit, and 1 special character")
        return value

    @model_validator(mode="after")
    def check_pairs(self):
        if self.security_question and not self.security_answer:
            raise ValueError("Security answer is required when a security question is set")
        if self.panic_password and self.password and self.panic_password == self.password:
            raise ValueError("Panic password must be different from room password")
        return self


class CreateRoomResponse(CamelModel):
    room_id: str


class CreateSecureRoomRequest(CamelModel):
    security_question: str = Field(..., min_length=1, max_length=500)
    room_salt_hex: str = Field(..., pattern=r"^[0-9a-fA-F]{16,256}$")
    kdf_iterations: int = Field(KDF_DEFAULT_ITERATIONS, ge=KDF_MIN_ITERATIONS, le=KDF_MAX_ITERATIONS)
    gatekeeper_verifier_hex: str = Field(..., pattern=r"^[0-9a-fA-F]{64}$")
    max_participants: int = Field(MIN_PARTICIPANTS, ge=MIN_PARTICIPANTS, le=MAX_PARTICIPANTS)


class CreateSecureRoomResponse(CamelModel):
    room_id: str
    expires_at: int
    ttl_seconds: int


class VerifyRoomRequest(CamelModel):
    room_id: str
    password: Optional[str] = None
    security_answer: Optional[str] = None


class VerifyProofRequest(CamelModel):
    room_id: str = Field(..., min_length=1, max_length=128)
    proof_hex: str = Field(..., pattern=r"^[0-9a-fA-F]{64}$")


class VerifyProofResponse(CamelModel):
    ok: bool = True
    join_token: str
    expires_at: int


class RequestDestroyRequest(CamelModel):
    requester_id: str = Field(..., min_length=1, max_length=128)
    requester_name: Optional[str] = Field(None, min_length=1, max_length=64)


class DenyDestroyRequest(CamelModel):
    requester_id: str = Field(..., min_length=1, max_length=128)


class ExtendTimerRequest(CamelModel):
    minutes: int = Field(..., ge=1, le=MAX_EXTEND_MINUTES)


class PanicRequest(CamelModel):
    panic_password: str


class TrackRoomRequest(CamelModel):
    room_id: str = Field(..., min_length=1, max_length=128)


class PermanentRoom(CamelModel):
    room_id: str
    created_at: Optional[int] = None
    max_participants: int
    has_password: bool
