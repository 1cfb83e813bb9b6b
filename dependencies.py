from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Query
from fastapi.requests import HTTPConnection

from access import AccessGate
from backend import RedisBackend
from broadcaster import LifecycleBroadcaster
from entry_gateway import EntryGateway
from gatekeeper import SecureGatekeeper
from messaging import MessageService
from models import AuthContext, RequestCredentials
from room_authority import RoomAuthority
from sessions import SessionStore
from ttl_sync import TTLSynchronizer


@dataclass
class Services:
    backend: RedisBackend
    sessions: SessionStore
    ttl_sync: TTLSynchronizer
    broadcaster: LifecycleBroadcaster
    gatekeeper: SecureGatekeeper
    access_gate: AccessGate
    entry_gateway: EntryGateway
    authority: RoomAuthority
    messages: MessageService


def build_services(redis_client) -> Services:
    """Wire every component around one shared Redis client."""
    backend = RedisBackend(redis_client)
    sessions = SessionStore(backend)
    ttl_sync = TTLSynchronizer(backend)
    broadcaster = LifecycleBroadcaster(backend, ttl_sync)
    return Services(
        backend=backend,
        sessions=sessions,
        ttl_sync=ttl_sync,
        broadcaster=broadcaster,
        gatekeeper=SecureGatekeeper(backend, sessions, ttl_sync),
        access_gate=AccessGate(backend),
        entry_gateway=EntryGateway(backend, sessions),
        authority=RoomAuthority(backend, sessions, ttl_sync, broadcaster),
        messages=MessageService(backend, ttl_sync, broadcaster),
    )


def get_services(connection: HTTPConnection) -> Services:
    return connection.app.state.services


def get_credentials(
    connection: HTTPConnection,
    room_id: Optional[str] = Query(None, alias="roomId"),
) -> RequestCredentials:
    return RequestCredentials.from_cookies(connection.cookies, room_id)


async def require_room_auth(
    credentials: RequestCredentials = Depends(get_credentials),
    services: Services = Depends(get_services),
) -> AuthContext:
    return await services.access_gate.authenticate(credentials)
