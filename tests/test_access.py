"""Tests for the per-request Access Gate."""

import json

import pytest

from errors import Unauthorized
from models import RequestCredentials


async def seed_room(redis_client, key, connected):
    await redis_client.hset(key, mapping={"connected": json.dumps(connected), "maxParticipants": "2"})


class TestAccessGate:
    @pytest.mark.asyncio
    async def test_missing_room_id(self, services):
        with pytest.raises(Unauthorized):
            await services.access_gate.authenticate(RequestCredentials(auth_token="t1"))

    @pytest.mark.asyncio
    async def test_missing_room(self, services):
        with pytest.raises(Unauthorized):
            await services.access_gate.authenticate(RequestCredentials(room_id="r1", auth_token="t1"))

    @pytest.mark.asyncio
    async def test_missing_token(self, redis_client, services):
        await seed_room(redis_client, "meta:r1", ["t1"])
        with pytest.raises(Unauthorized):
            await services.access_gate.authenticate(RequestCredentials(room_id="r1"))

    @pytest.mark.asyncio
    async def test_token_not_connected(self, redis_client, services):
        await seed_room(redis_client, "meta:r1", ["t1"])
        with pytest.raises(Unauthorized):
            await services.access_gate.authenticate(RequestCredentials(room_id="r1", auth_token="t2"))

    @pytest.mark.asyncio
    async def test_legacy_member(self, redis_client, services):
        await seed_room(redis_client, "meta:r1", ["t1", "t2"])

        auth = await services.access_gate.authenticate(RequestCredentials(room_id="r1", auth_token="t2"))

        assert auth.room_id == "r1"
        assert auth.token == "t2"
        assert auth.connected == ["t1", "t2"]
        assert auth.is_secure is False
        assert auth.meta_key == "meta:r1"

    @pytest.mark.asyncio
    async def test_secure_room_prefers_room_scoped_cookie(self, redis_client, services):
        await seed_room(redis_client, "meta:s1:secure", ["secure-token"])
        credentials = RequestCredentials.from_cookies(
            {"x-auth-token": "stale", "room-secure-s1": "secure-token"},
            "s1",
        )

        auth = await services.access_gate.authenticate(credentials)

        assert auth.is_secure is True
        assert auth.token == "secure-token"
        assert auth.meta_key == "meta:s1:secure"

    @pytest.mark.asyncio
    async def test_secure_record_wins_over_legacy(self, redis_client, services):
        await seed_room(redis_client, "meta:r1", ["legacy-token"])
        await seed_room(redis_client, "meta:r1:secure", ["secure-token"])

        with pytest.raises(Unauthorized):
            await services.access_gate.authenticate(RequestCredentials(room_id="r1", auth_token="legacy-token"))


class TestRequestCredentials:
    def test_session_identity_takes_precedence(self):
        credentials = RequestCredentials.from_cookies({"x-session": "s", "x-participant-id": "g"}, "r1")
        assert credentials.identity_key == "session:s"

    def test_guest_identity(self):
        credentials = RequestCredentials.from_cookies({"x-participant-id": "g"}, "r1")
        assert credentials.identity_key == "guest:g"

    def test_no_identity(self):
        assert RequestCredentials.from_cookies({}, "r1").identity_key is None

    def test_verified_cookie_is_room_scoped(self):
        credentials = RequestCredentials.from_cookies({"room-verified-r1": "true"}, "r2")
        assert credentials.room_verified is False
