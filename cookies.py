from fastapi import Response

from constants import (
    AUTH_TOKEN_COOKIE,
    GUEST_PARTICIPANT_COOKIE,
    IS_PRODUCTION,
    LONG_COOKIE_MAX_AGE,
    ROOM_VERIFIED_COOKIE_PREFIX,
    SECURE_ROOM_COOKIE_PREFIX,
    SECURE_ROOM_TTL_SECONDS,
)


def secure_room_cookie_name(room_id: str) -> str:
    return f"{SECURE_ROOM_COOKIE_PREFIX}{room_id}"


def _set(response: Response, key: str, value: str, max_age: int):
    response.set_cookie(
        key,
        value,
        max_age=max_age,
        path="/",
        httponly=True,
        secure=IS_PRODUCTION,
        samesite="strict",
    )


def _clear(response: Response, key: str):
    response.delete_cookie(key, path="/", httponly=True, secure=IS_PRODUCTION, samesite="strict")


def set_auth_token(response: Response, token: str):
    _set(response, AUTH_TOKEN_COOKIE, token, LONG_COOKIE_MAX_AGE)


def set_guest_id(response: Response, guest_id: str):
    _set(response, GUEST_PARTICIPANT_COOKIE, guest_id, LONG_COOKIE_MAX_AGE)


def set_room_verified(response: Response, room_id: str):
    _set(response, f"{ROOM_VERIFIED_COOKIE_PREFIX}{room_id}", "true", LONG_COOKIE_MAX_AGE)


def set_secure_room_tokens(response: Response, room_id: str, token: str):
    _set(response, secure_room_cookie_name(room_id), token, SECURE_ROOM_TTL_SECONDS)
    _set(response, AUTH_TOKEN_COOKIE, token, SECURE_ROOM_TTL_SECONDS)


def clear_room_tokens(response: Response, room_id: str, is_secure: bool):
    _clear(response, AUTH_TOKEN_COOKIE)
    if is_secure:
        _clear(response, secure_room_cookie_name(room_id))
