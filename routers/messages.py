from fastapi import APIRouter, Depends

from dependencies import Services, get_services, require_room_auth
from models import AuthContext
from schemas.messages import EncryptedMessageRequest, EncryptedMessageResponse, SendMessageRequest

messages_router = APIRouter(prefix="/api/messages", tags=["messages"])


@messages_router.post("")
async def send_message(
    body: SendMessageRequest,
    auth: AuthContext = Depends(require_room_auth),
    services: Services = Depends(get_services),
):
    await services.messages.post(auth, body)
    return {"success": True}


@messages_router.get("")
async def list_messages(auth: AuthContext = Depends(require_room_auth), services: Services = Depends(get_services)):
    return await services.messages.list_messages(auth)


@messages_router.get("/participants")
async def list_participants(auth: AuthContext = Depends(require_room_auth), services: Services = Depends(get_services)):
    return {"participants": await services.messages.participants(auth)}


@messages_router.post("/encrypted", response_model=EncryptedMessageResponse)
async def send_encrypted(
    body: EncryptedMessageRequest,
    auth: AuthContext = Depends(require_room_auth),
    services: Services = Depends(get_services),
):
    accepted = await services.messages.post_encrypted(auth, body)
    return EncryptedMessageResponse(**accepted)
