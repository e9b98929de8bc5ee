"""Tests for login sessions, login-attempt sessions, and the session codec."""

import time

import pytest
from sqlmodel import Session

from src.catalog.core.errors import StorageUnavailable
from src.catalog.core.models.session import AuthSession, SessionPayload
from src.catalog.core.services.session.auth_session import (
    AuthSessionService,
    auth_session_key,
)
from src.catalog.core.services.session.session_codec import SessionCodec
from src.catalog.core.services.session.user_session import (
    UserSessionService,
    session_key,
)
from src.catalog.core.storage.session_storage import InMemorySessionStorage
from src.catalog.entities.identity import Identity, IdentityRepository


@pytest.fixture
def stored_identity(identity_repository: IdentityRepository) -> Identity:
    return identity_repository.insert(
        Identity(
            external_id="g1",
            email="ann@example.com",
            username="ann",
            display_name="Ann",
        )
    )


@pytest.fixture
def user_sessions(session_storage: InMemorySessionStorage) -> UserSessionService:
    return UserSessionService(session_storage, session_max_age=3600)


@pytest.fixture
def auth_sessions(session_storage: InMemorySessionStorage) -> AuthSessionService:
    return AuthSessionService(session_storage, ttl_seconds=600)


class TestSessionCodec:
    def test_encode_keeps_only_identity_id(self, stored_identity: Identity):
        payload = SessionCodec.encode(stored_identity)

        assert payload.model_dump() == {"identity_id": stored_identity.id}

    def test_decode_reads_current_profile(
        self, identity_repository: IdentityRepository, stored_identity: Identity
    ):
        codec = SessionCodec(identity_repository)
        payload = SessionCodec.encode(stored_identity)
        identity_repository.update_fields(stored_identity.id, display_name="Ann K.")

        user = codec.decode(payload)

        assert user is not None
        assert user.id == stored_identity.id
        assert user.display_name == "Ann K."
        assert user.email == "ann@example.com"
        assert user.auth_method == "session"
        assert not user.degraded

    def test_decode_missing_identity_returns_none(self, identity_repository: IdentityRepository):
        codec = SessionCodec(identity_repository)

        assert codec.decode(SessionPayload(identity_id="gone")) is None

    def test_decode_degrades_when_storage_is_down(self, session: Session):
        class DownRepository(IdentityRepository):
            def get(self, identity_id):
                raise StorageUnavailable("Identity storage unavailable")

        user = SessionCodec(DownRepository(session)).decode(SessionPayload(identity_id="id-1"))

        assert user is not None
        assert user.id == "id-1"
        assert user.degraded
        assert user.display_name is None

    def test_decode_raises_when_degraded_mode_is_off(self, session: Session):
        class DownRepository(IdentityRepository):
            def get(self, identity_id):
                raise StorageUnavailable("Identity storage unavailable")

        codec = SessionCodec(DownRepository(session), degraded_decode=False)

        with pytest.raises(StorageUnavailable):
            codec.decode(SessionPayload(identity_id="id-1"))


class TestUserSessionService:
    @pytest.mark.asyncio
    async def test_establish_and_read(
        self, user_sessions: UserSessionService, stored_identity: Identity
    ):
        session_id = await user_sessions.establish(stored_identity)

        payload = await user_sessions.read(session_id)

        assert payload == SessionPayload(identity_id=stored_identity.id)

    @pytest.mark.asyncio
    async def test_each_login_gets_a_fresh_id(
        self, user_sessions: UserSessionService, stored_identity: Identity
    ):
        first = await user_sessions.establish(stored_identity)
        second = await user_sessions.establish(stored_identity)

        assert first != second
        assert len(first) >= 43

    @pytest.mark.asyncio
    async def test_previous_session_is_destroyed(
        self, user_sessions: UserSessionService, stored_identity: Identity
    ):
        planted = await user_sessions.establish(stored_identity)

        fresh = await user_sessions.establish(stored_identity, previous_session_id=planted)

        assert await user_sessions.read(planted) is None
        assert await user_sessions.read(fresh) is not None

    @pytest.mark.asyncio
    async def test_read_without_id(self, user_sessions: UserSessionService):
        assert await user_sessions.read(None) is None
        assert await user_sessions.read("") is None
        assert await user_sessions.read("unknown") is None

    @pytest.mark.asyncio
    async def test_destroy_is_idempotent(
        self, user_sessions: UserSessionService, stored_identity: Identity
    ):
        session_id = await user_sessions.establish(stored_identity)

        await user_sessions.destroy(session_id)
        await user_sessions.destroy(session_id)
        await user_sessions.destroy(None)

        assert await user_sessions.read(session_id) is None

    @pytest.mark.asyncio
    async def test_expired_session_reads_as_none(
        self, session_storage: InMemorySessionStorage, stored_identity: Identity
    ):
        sessions = UserSessionService(session_storage, session_max_age=1)
        session_id = await sessions.establish(stored_identity)

        session_storage._data[session_key(session_id)]["expires_at"] = time.time() - 1

        assert await sessions.read(session_id) is None

    @pytest.mark.asyncio
    async def test_record_with_extra_fields_is_rejected(
        self, session_storage: InMemorySessionStorage, user_sessions: UserSessionService
    ):
        session_storage._data[session_key("tampered")] = {
            "data": {"identity_id": "id-1", "email": "x@y.com"},
            "expires_at": time.time() + 60,
        }

        assert await user_sessions.read("tampered") is None

    @pytest.mark.asyncio
    async def test_purge_expired(
        self, session_storage: InMemorySessionStorage, stored_identity: Identity
    ):
        sessions = UserSessionService(session_storage, session_max_age=3600)
        live = await sessions.establish(stored_identity)
        stale = await sessions.establish(stored_identity)
        session_storage._data[session_key(stale)]["expires_at"] = time.time() - 1

        assert await sessions.purge_expired() == 1
        assert await sessions.read(live) is not None


class TestAuthSessionService:
    @pytest.mark.asyncio
    async def test_consume_returns_stored_verifier(self, auth_sessions: AuthSessionService):
        session_id = await auth_sessions.create_auth_session("google", "state-1", "verifier-1")

        auth_session = await auth_sessions.consume_auth_session(session_id, "google", "state-1")

        assert isinstance(auth_session, AuthSession)
        assert auth_session.code_verifier == "verifier-1"

    @pytest.mark.asyncio
    async def test_consume_is_single_use(self, auth_sessions: AuthSessionService):
        session_id = await auth_sessions.create_auth_session("google", "state-1", "verifier-1")

        await auth_sessions.consume_auth_session(session_id, "google", "state-1")

        assert await auth_sessions.consume_auth_session(session_id, "google", "state-1") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("provider", "state"),
        [("google", "wrong-state"), ("google", None), ("google", ""), ("other", "state-1")],
    )
    async def test_mismatch_rejects_and_burns_the_attempt(
        self,
        auth_sessions: AuthSessionService,
        session_storage: InMemorySessionStorage,
        provider,
        state,
    ):
        session_id = await auth_sessions.create_auth_session("google", "state-1", "verifier-1")

        assert await auth_sessions.consume_auth_session(session_id, provider, state) is None
        assert auth_session_key(session_id) not in session_storage._data

    @pytest.mark.asyncio
    async def test_missing_cookie(self, auth_sessions: AuthSessionService):
        assert await auth_sessions.consume_auth_session(None, "google", "state-1") is None

    @pytest.mark.asyncio
    async def test_expired_attempt(
        self, auth_sessions: AuthSessionService, session_storage: InMemorySessionStorage
    ):
        session_id = await auth_sessions.create_auth_session("google", "state-1", "verifier-1")
        record = session_storage._data[auth_session_key(session_id)]
        record["data"]["expires_at"] = int(time.time()) - 1

        assert await auth_sessions.consume_auth_session(session_id, "google", "state-1") is None
