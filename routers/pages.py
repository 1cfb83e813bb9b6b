from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse

import cookies
from dependencies import Services, get_services
from logging_config import get_logger
from models import RequestCredentials

logger = get_logger(__name__)

pages_router = APIRouter(tags=["pages"])


@pages_router.get("/room/{room_id}")
async def enter_room(room_id: str, request: Request, services: Services = Depends(get_services)):
    """Admission check in front of the room page.

    Redirects to `/?error=...` when the caller cannot enter; otherwise returns
    the admission and makes sure the room token cookies are current.
    """
    credentials = RequestCredentials.from_cookies(request.cookies, room_id)
    decision = await services.entry_gateway.enter(room_id, credentials)
    if not decision.admitted:
        logger.info(f"Entry to room {room_id} redirected to {decision.redirect_to}")
        return RedirectResponse(decision.redirect_to, status_code=302)

    response = JSONResponse({
        "roomId": room_id,
        "admitted": True,
        "secure": decision.is_secure,
        "creator": decision.is_creator,
    })
    if decision.is_secure:
        if credentials.auth_token != decision.token or credentials.secure_token != decision.token:
            cookies.set_secure_room_tokens(response, room_id, decision.token)
    elif credentials.auth_token != decision.token:
        cookies.set_auth_token(response, decision.token)
    if decision.minted_guest_id:
        cookies.set_guest_id(response, decision.minted_guest_id)
    return response
