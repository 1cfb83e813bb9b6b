from fastapi import APIRouter, Depends

from dependencies import Services, get_credentials, get_services
from errors import Unauthorized
from models import RequestCredentials
from schemas.rooms import TrackRoomRequest

auth_router = APIRouter(prefix="/api/auth", tags=["auth"])


async def require_user_id(
    credentials: RequestCredentials = Depends(get_credentials),
    services: Services = Depends(get_services),
) -> str:
    user_id = await services.sessions.get_user_id(credentials.session_id)
    if not user_id:
        raise Unauthorized("Not authenticated")
    return user_id


@auth_router.post("/track-room")
async def track_room(
    body: TrackRoomRequest,
    user_id: str = Depends(require_user_id),
    services: Services = Depends(get_services),
):
    await services.sessions.track_room(user_id, body.room_id)
    return {"success": True}


@auth_router.get("/permanent-rooms")
async def permanent_rooms(user_id: str = Depends(require_user_id), services: Services = Depends(get_services)):
    rooms = await services.authority.list_permanent_rooms(user_id)
    return {"rooms": [room.model_dump(by_alias=True) for room in rooms]}
