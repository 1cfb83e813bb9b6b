"""Tests for room lifecycle operations."""

import json

import pytest
from pydantic import ValidationError as PydanticValidationError

from backend import room_scoped_keys
from errors import Conflict, Forbidden, NotFound, ValidationError
from models import AuthContext, RequestCredentials, RoomMode
from schemas.rooms import CreateRoomRequest, CreateSecureRoomRequest


async def create_room(services, **overrides):
    config = {"max_participants": 3, "ttl_minutes": 10, **overrides}
    return await services.authority.create(CreateRoomRequest(**config))


async def join(services, room_id, guest_id):
    credentials = RequestCredentials(room_id=room_id, guest_id=guest_id)
    decision = await services.entry_gateway.enter(room_id, credentials)
    assert decision.admitted
    auth = await services.access_gate.authenticate(
        RequestCredentials(room_id=room_id, guest_id=guest_id, auth_token=decision.token)
    )
    return auth, RequestCredentials(room_id=room_id, guest_id=guest_id, auth_token=decision.token)


def assert_membership_consistent(record):
    assert set(record.connected) == set(record.participants.values())


class TestCreate:
    @pytest.mark.asyncio
    async def test_finite_room_expires(self, redis_client, services):
        room_id = await create_room(services, ttl_minutes=5)

        assert 299 <= await redis_client.ttl(f"meta:{room_id}") <= 300
        assert await redis_client.zscore("rooms:permanent", room_id) is None
        assert await redis_client.hget(f"meta:{room_id}", "connected") == "[]"

    @pytest.mark.asyncio
    async def test_permanent_room_is_indexed(self, redis_client, services):
        room_id = await create_room(services, ttl_minutes=0)

        assert await redis_client.ttl(f"meta:{room_id}") == -1
        created_at = int(await redis_client.hget(f"meta:{room_id}", "createdAt"))
        assert await redis_client.zscore("rooms:permanent", room_id) == created_at

    def test_panic_password_must_differ(self):
        with pytest.raises(PydanticValidationError):
            CreateRoomRequest(password="Str0ng!pass", panic_password="Str0ng!pass")

    @pytest.mark.asyncio
    async def test_panic_password_must_differ_when_constructed_directly(self, services):
        config = CreateRoomRequest.model_construct(
            max_participants=2, ttl_minutes=10, password="Str0ng!pass", panic_password="Str0ng!pass",
            security_question=None, security_answer=None,
        )
        with pytest.raises(ValidationError):
            await services.authority.create(config)

    def test_security_question_needs_answer(self):
        with pytest.raises(PydanticValidationError):
            CreateRoomRequest(security_question="pet?")

    @pytest.mark.asyncio
    async def test_security_answer_is_normalized(self, redis_client, services):
        room_id = await create_room(services, security_question="pet?", security_answer="  Rex ")
        assert await redis_client.hget(f"meta:{room_id}", "securityAnswer") == "rex"


class TestVerify:
    @pytest.mark.asyncio
    async def test_password_and_answer(self, services):
        room_id = await create_room(services, password="Str0ng!pass", security_question="pet?", security_answer="Rex")

        assert await services.authority.verify(room_id, "Str0ng!pass", " REX ")
        with pytest.raises(Forbidden):
            await services.authority.verify(room_id, "wrong", "rex")
        with pytest.raises(Forbidden):
            await services.authority.verify(room_id, "Str0ng!pass", "max")

    @pytest.mark.asyncio
    async def test_verify_does_not_touch_membership(self, redis_client, services):
        room_id = await create_room(services, password="Str0ng!pass")
        before = await redis_client.hgetall(f"meta:{room_id}")

        await services.authority.verify(room_id, "Str0ng!pass", None)

        assert await redis_client.hgetall(f"meta:{room_id}") == before

    @pytest.mark.asyncio
    async def test_verify_on_secure_room_conflicts(self, services, proof):
        created = await services.authority.create_secure(CreateSecureRoomRequest(
            security_question="color?",
            room_salt_hex="00112233445566778899aabbccddeeff",
            gatekeeper_verifier_hex=proof("blue"),
        ))
        with pytest.raises(Conflict):
            await services.authority.verify(created["room_id"], None, "blue")

    @pytest.mark.asyncio
    async def test_verify_missing_room(self, services):
        with pytest.raises(NotFound):
            await services.authority.verify("nope", None, None)


class TestExit:
    @pytest.mark.asyncio
    async def test_creator_cannot_exit(self, services):
        room_id = await create_room(services)
        creator, creator_credentials = await join(services, room_id, "a")

        with pytest.raises(Forbidden):
            await services.authority.exit(creator, creator_credentials)

    @pytest.mark.asyncio
    async def test_member_exit_revokes_identity(self, services):
        room_id = await create_room(services)
        await join(services, room_id, "a")
        member, member_credentials = await join(services, room_id, "b")

        await services.authority.exit(member, member_credentials)

        record = await services.backend.get_room(room_id, RoomMode.LEGACY)
        assert member.token not in record.connected
        assert "guest:b" in record.revoked_participants
        assert "guest:b" not in record.participants
        assert_membership_consistent(record)

        decision = await services.entry_gateway.enter(room_id, RequestCredentials(room_id=room_id, guest_id="b"))
        assert decision.redirect_to == "/?error=room-access-denied"

    @pytest.mark.asyncio
    async def test_exit_is_idempotent(self, services):
        room_id = await create_room(services)
        await join(services, room_id, "a")
        member, member_credentials = await join(services, room_id, "b")

        await services.authority.exit(member, member_credentials)
        await services.authority.exit(member, member_credentials)

        record = await services.backend.get_room(room_id, RoomMode.LEGACY)
        assert record.revoked_participants == {"guest:b"}
        assert_membership_consistent(record)

    @pytest.mark.asyncio
    async def test_exit_untracks_user_room(self, services):
        room_id = await create_room(services, ttl_minutes=0)
        await join(services, room_id, "a")
        session_id = await services.sessions.create_session("user-1", "bob")
        await services.sessions.track_room("user-1", room_id)
        decision = await services.entry_gateway.enter(room_id, RequestCredentials(room_id=room_id, session_id=session_id))
        credentials = RequestCredentials(room_id=room_id, session_id=session_id, auth_token=decision.token)
        auth = await services.access_gate.authenticate(credentials)

        await services.authority.exit(auth, credentials)

        assert not await services.sessions.has_tracked_room("user-1", room_id)


class TestRolesAndDestroy:
    @pytest.mark.asyncio
    async def test_roles(self, services):
        room_id = await create_room(services)
        creator, _ = await join(services, room_id, "a")
        member, _ = await join(services, room_id, "b")

        assert await services.authority.role(creator) == "creator"
        assert await services.authority.role(member) == "member"

    @pytest.mark.asyncio
    async def test_member_cannot_destroy(self, services):
        room_id = await create_room(services)
        await join(services, room_id, "a")
        member, _ = await join(services, room_id, "b")

        with pytest.raises(Forbidden):
            await services.authority.destroy(member)

    @pytest.mark.asyncio
    async def test_destroy_removes_every_key(self, redis_client, services):
        room_id = await create_room(services, ttl_minutes=0)
        creator, _ = await join(services, room_id, "a")
        await redis_client.rpush(f"messages:{room_id}", "{}")
        await redis_client.rpush(f"history:{room_id}", "{}")

        await services.authority.destroy(creator)

        for key in room_scoped_keys(room_id):
            if key == room_id:
                continue
            assert not await redis_client.exists(key)
        assert await redis_client.zscore("rooms:permanent", room_id) is None
        assert await services.authority.info(room_id) == {"exists": False}
        assert await services.authority.ttl(room_id) == {"ttl": -2}

    @pytest.mark.asyncio
    async def test_destroy_leaves_only_short_lived_event_residue(self, redis_client, services):
        room_id = await create_room(services)
        creator, _ = await join(services, room_id, "a")

        await services.authority.destroy(creator)

        events = await redis_client.xrange(room_id)
        assert [fields["event"] for _, fields in events] == ["chat.destroy"]
        assert 0 < await redis_client.ttl(room_id) <= 120

    @pytest.mark.asyncio
    async def test_creator_cannot_request_destroy(self, services):
        room_id = await create_room(services)
        creator, _ = await join(services, room_id, "a")

        with pytest.raises(Conflict):
            await services.authority.request_destroy(creator, "req-1", None)

    @pytest.mark.asyncio
    async def test_destroy_request_is_relayed_without_state(self, redis_client, services):
        room_id = await create_room(services)
        await join(services, room_id, "a")
        member, _ = await join(services, room_id, "b")
        before = await redis_client.hgetall(f"meta:{room_id}")

        await services.authority.request_destroy(member, "req-1", None)
        await services.authority.request_destroy(member, "req-1", None)

        assert await redis_client.hgetall(f"meta:{room_id}") == before
        events = [fields for _, fields in await redis_client.xrange(room_id)]
        assert [e["event"] for e in events] == ["chat.destroy-request", "chat.destroy-request"]
        assert json.loads(events[0]["payload"])["requesterName"] == "a participant"

    @pytest.mark.asyncio
    async def test_only_creator_denies(self, services):
        room_id = await create_room(services)
        creator, _ = await join(services, room_id, "a")
        member, _ = await join(services, room_id, "b")

        with pytest.raises(Forbidden):
            await services.authority.deny_destroy(member, "req-1")
        await services.authority.deny_destroy(creator, "req-1")


class TestExtendTimer:
    @pytest.mark.asyncio
    async def test_extend_finite_room(self, redis_client, services):
        room_id = await create_room(services, ttl_minutes=5)
        creator, _ = await join(services, room_id, "a")

        new_ttl = await services.authority.extend_timer(creator, 10)

        assert 899 <= new_ttl <= 900
        assert await redis_client.ttl(f"meta:{room_id}") == new_ttl

    @pytest.mark.asyncio
    async def test_permanent_room_cannot_extend(self, services):
        room_id = await create_room(services, ttl_minutes=0)
        creator, _ = await join(services, room_id, "a")

        with pytest.raises(Conflict):
            await services.authority.extend_timer(creator, 10)

    @pytest.mark.asyncio
    async def test_secure_room_cannot_extend(self, services):
        auth = AuthContext(room_id="s1", token="tok", connected=["tok"], is_secure=True, meta_key="meta:s1:secure")
        await services.backend.update_room("meta:s1:secure", {"creatorToken": "tok", "connected": ["tok"]})

        with pytest.raises(Conflict):
            await services.authority.extend_timer(auth, 10)

    @pytest.mark.asyncio
    async def test_member_cannot_extend(self, services):
        room_id = await create_room(services)
        await join(services, room_id, "a")
        member, _ = await join(services, room_id, "b")

        with pytest.raises(Forbidden):
            await services.authority.extend_timer(member, 10)


class TestPanic:
    @pytest.mark.asyncio
    async def test_wrong_panic_password(self, redis_client, services):
        room_id = await create_room(services, panic_password="duress")
        member, _ = await join(services, room_id, "a")

        with pytest.raises(Forbidden):
            await services.authority.panic(member, "nope")
        assert await redis_client.exists(f"meta:{room_id}")

    @pytest.mark.asyncio
    async def test_panic_without_configured_password(self, services):
        room_id = await create_room(services)
        member, _ = await join(services, room_id, "a")

        with pytest.raises(Conflict):
            await services.authority.panic(member, "anything")

    @pytest.mark.asyncio
    async def test_panic_destroys_silently(self, redis_client, services):
        room_id = await create_room(services, panic_password="duress")
        await join(services, room_id, "a")
        member, _ = await join(services, room_id, "b")

        await services.authority.panic(member, "duress")

        assert not await redis_client.exists(f"meta:{room_id}")
        events = [fields["event"] for _, fields in await redis_client.xrange(room_id)]
        assert events == ["chat.panic"]

    @pytest.mark.asyncio
    async def test_panic_unavailable_in_secure_rooms(self, services):
        auth = AuthContext(room_id="s1", token="tok", connected=["tok"], is_secure=True, meta_key="meta:s1:secure")
        with pytest.raises(Forbidden):
            await services.authority.panic(auth, "duress")


class TestPermanentRooms:
    @pytest.mark.asyncio
    async def test_listing_prunes_stale_entries(self, redis_client, services):
        permanent = await create_room(services, ttl_minutes=0, password="Str0ng!pass")
        finite = await create_room(services, ttl_minutes=5)
        await redis_client.zadd("rooms:permanent", {"ghost": 1})
        for room_id in (permanent, finite, "ghost"):
            await services.sessions.track_room("user-1", room_id)

        rooms = await services.authority.list_permanent_rooms("user-1")

        assert [room.room_id for room in rooms] == [permanent]
        assert rooms[0].has_password is True
        assert await services.sessions.list_rooms("user-1") == [permanent]
        assert await redis_client.zscore("rooms:permanent", "ghost") is None


class TestSecureRoomLifecycle:
    async def create_secure_room(self, services, proof):
        created = await services.authority.create_secure(CreateSecureRoomRequest(
            security_question="color?",
            room_salt_hex="00112233445566778899aabbccddeeff",
            gatekeeper_verifier_hex=proof("blue"),
            max_participants=3,
        ))
        return created["room_id"]

    async def join_secure(self, services, room_id, guest_id, proof):
        result = await services.gatekeeper.verify_proof(
            room_id, proof("blue"), RequestCredentials(room_id=room_id, guest_id=guest_id)
        )
        credentials = RequestCredentials(room_id=room_id, guest_id=guest_id, secure_token=result.join_token)
        return await services.access_gate.authenticate(credentials), credentials

    @pytest.mark.asyncio
    async def test_destroy_removes_secure_logs(self, redis_client, services, proof):
        room_id = await self.create_secure_room(services, proof)
        creator, _ = await self.join_secure(services, room_id, "g1", proof)
        await services.broadcaster.emit(room_id, "webrtc.offer", {"sdp": "x"}, secure=True)
        await services.backend.append_stream(f"stream:room:{room_id}:msg", {"id": "m1"}, maxlen=50)
        assert await redis_client.exists(f"stream:room:{room_id}:signal")

        await services.authority.destroy(creator)

        for key in (f"meta:{room_id}:secure", f"stream:room:{room_id}:msg", f"stream:room:{room_id}:signal"):
            assert not await redis_client.exists(key)
        assert await services.authority.ttl(room_id) == {"ttl": -2}
        events = [fields["event"] for _, fields in await redis_client.xrange(room_id)]
        assert events[-2:] == ["chat.self_destruct", "chat.destroy"]

    @pytest.mark.asyncio
    async def test_exited_member_cannot_prove_again(self, services, proof):
        room_id = await self.create_secure_room(services, proof)
        await self.join_secure(services, room_id, "g1", proof)
        member, member_credentials = await self.join_secure(services, room_id, "g2", proof)

        await services.authority.exit(member, member_credentials)

        with pytest.raises(Forbidden):
            await services.gatekeeper.verify_proof(
                room_id, proof("blue"), RequestCredentials(room_id=room_id, guest_id="g2")
            )
        record = await services.backend.get_room(room_id, RoomMode.SECURE)
        assert record.revoked_participants == {"guest:g2"}
        assert member.token not in record.connected
        assert_membership_consistent(record)
