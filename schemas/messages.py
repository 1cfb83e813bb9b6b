from typing import Any, Literal, Optional

from pydantic import Field, field_validator

from schemas.rooms import CamelModel


class SendMessageRequest(CamelModel):
    sender: str = Field(..., max_length=1_000_000)
    text: str = Field(..., max_length=1_000_000)
    vanish_after: Optional[int] = Field(None, ge=5, le=300)
    type: Literal["text", "stego", "audio"] = "text"


class EncryptedEnvelope(CamelModel):
    v: Literal[1]
    kind: Literal["text", "stego.notice", "stego.payload"]
    iv_hex: str = Field(..., pattern=r"^[0-9a-fA-F]{24}$")
    cipher_hex: str = Field(..., pattern=r"^[0-9a-fA-F]+$", max_length=1_500_000)
    aad_hex: Optional[str] = Field(None, pattern=r"^[0-9a-fA-F]*$")
    created_at: int

    @field_validator("cipher_hex")
    @classmethod
    def even_length(cls, value):
        if len(value) % 2:
            raise ValueError("cipherHex must be even-length hex")
        return value


class EncryptedMessageRequest(CamelModel):
    room_id: Optional[str] = None
    envelope: EncryptedEnvelope


class EncryptedMessageResponse(CamelModel):
    id: str
    accepted_at: int


class EmitRequest(CamelModel):
    channel: str = Field(..., min_length=1)
    event: str = Field(..., min_length=1)
    data: Any = None
