from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status

import cookies
from dependencies import Services, get_credentials, get_services, require_room_auth
from logging_config import get_logger
from models import AuthContext, RequestCredentials
from schemas.rooms import (
    CreateRoomRequest,
    CreateRoomResponse,
    CreateSecureRoomRequest,
    CreateSecureRoomResponse,
    DenyDestroyRequest,
    ExtendTimerRequest,
    PanicRequest,
    RequestDestroyRequest,
    VerifyProofRequest,
    VerifyProofResponse,
    VerifyRoomRequest,
)

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/api/room", tags=["rooms"])


@rooms_router.post("/create", response_model=CreateRoomResponse)
async def create_room(room: CreateRoomRequest, request: Request, services: Services = Depends(get_services)):
    client_host = request.client.host if request.client else "unknown"
    logger.info(f"Room creation request from {client_host}, max_participants: {room.max_participants}, ttl_minutes: {room.ttl_minutes}")
    room_id = await services.authority.create(room)
    return CreateRoomResponse(room_id=room_id)


@rooms_router.post("/create-secure", response_model=CreateSecureRoomResponse, status_code=status.HTTP_201_CREATED)
async def create_secure_room(room: CreateSecureRoomRequest, services: Services = Depends(get_services)):
    created = await services.authority.create_secure(room)
    return CreateSecureRoomResponse(**created)


@rooms_router.post("/verify-proof", response_model=VerifyProofResponse)
async def verify_proof(
    body: VerifyProofRequest,
    request: Request,
    response: Response,
    services: Services = Depends(get_services),
):
    credentials = RequestCredentials.from_cookies(request.cookies, body.room_id)
    result = await services.gatekeeper.verify_proof(body.room_id, body.proof_hex, credentials)
    cookies.set_secure_room_tokens(response, body.room_id, result.join_token)
    if result.minted_guest_id:
        cookies.set_guest_id(response, result.minted_guest_id)
    return VerifyProofResponse(join_token=result.join_token, expires_at=result.expires_at)


@rooms_router.post("/verify")
async def verify_room(body: VerifyRoomRequest, response: Response, services: Services = Depends(get_services)):
    await services.authority.verify(body.room_id, body.password, body.security_answer)
    cookies.set_room_verified(response, body.room_id)
    return {"success": True}


@rooms_router.get("/ttl")
async def get_room_ttl(room_id: Optional[str] = Query(None, alias="roomId"), services: Services = Depends(get_services)):
    return await services.authority.ttl(room_id)


@rooms_router.get("/info")
async def get_room_info(room_id: Optional[str] = Query(None, alias="roomId"), services: Services = Depends(get_services)):
    return await services.authority.info(room_id)


@rooms_router.post("/exit")
async def exit_room(
    response: Response,
    auth: AuthContext = Depends(require_room_auth),
    credentials: RequestCredentials = Depends(get_credentials),
    services: Services = Depends(get_services),
):
    await services.authority.exit(auth, credentials)
    cookies.clear_room_tokens(response, auth.room_id, auth.is_secure)
    return {"success": True}


@rooms_router.get("/role")
async def get_role(auth: AuthContext = Depends(require_room_auth), services: Services = Depends(get_services)):
    return {"role": await services.authority.role(auth)}


@rooms_router.delete("")
async def destroy_room(auth: AuthContext = Depends(require_room_auth), services: Services = Depends(get_services)):
    await services.authority.destroy(auth)
    return {"success": True}


@rooms_router.post("/request-destroy")
async def request_destroy(
    body: RequestDestroyRequest,
    auth: AuthContext = Depends(require_room_auth),
    services: Services = Depends(get_services),
):
    await services.authority.request_destroy(auth, body.requester_id, body.requester_name)
    return {"success": True}


@rooms_router.post("/approve-destroy")
async def approve_destroy(auth: AuthContext = Depends(require_room_auth), services: Services = Depends(get_services)):
    await services.authority.approve_destroy(auth)
    return {"success": True}


@rooms_router.post("/deny-destroy")
async def deny_destroy(
    body: DenyDestroyRequest,
    auth: AuthContext = Depends(require_room_auth),
    services: Services = Depends(get_services),
):
    await services.authority.deny_destroy(auth, body.requester_id)
    return {"success": True}


@rooms_router.post("/extend-timer")
async def extend_timer(
    body: ExtendTimerRequest,
    auth: AuthContext = Depends(require_room_auth),
    services: Services = Depends(get_services),
):
    new_ttl = await services.authority.extend_timer(auth, body.minutes)
    return {"success": True, "newTtl": new_ttl}


@rooms_router.post("/panic")
async def panic(
    body: PanicRequest,
    auth: AuthContext = Depends(require_room_auth),
    services: Services = Depends(get_services),
):
    await services.authority.panic(auth, body.panic_password)
    return {"success": True}
