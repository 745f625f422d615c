"""Tests for the IdentityProvider (users, passwords, JWT)."""

from datetime import timedelta

import jwt
import pytest

from anonlink.errors import DuplicateKeyError, InvalidCredentialsError, InvalidTokenError
from anonlink.services import identity as identity_module
from anonlink.services.identity import IdentityProvider, Principal

pytestmark = pytest.mark.anyio


class TestRegisterAndAuthenticate:

    async def test_register_then_login_then_verify(self, identity):
        registered = await identity.register("alice", "alice@example.com", "s3cret!")

        principal, token = await identity.authenticate("alice", "s3cret!")

        assert principal == registered
        assert identity.verify(token) == Principal(user_id=registered.user_id, username="alice")

    async def test_duplicate_username(self, identity):
        await identity.register("alice", "alice@example.com", "s3cret!")

        with pytest.raises(DuplicateKeyError):
            await identity.register("alice", "other@example.com", "s3cret!")

    async def test_duplicate_email(self, identity):
        await identity.register("alice", "alice@example.com", "s3cret!")

        with pytest.raises(DuplicateKeyError):
            await identity.register("bob", "alice@example.com", "s3cret!")

    async def test_wrong_password_and_unknown_user_fail_the_same_way(self, identity):
        await identity.register("alice", "alice@example.com", "s3cret!")

        with pytest.raises(InvalidCredentialsError) as wrong_password:
            await identity.authenticate("alice", "guess")
        with pytest.raises(InvalidCredentialsError) as unknown_user:
            await identity.authenticate("nobody", "guess")

        assert str(wrong_password.value) == str(unknown_user.value)

    async def test_password_is_not_stored_in_clear(self, identity, session_factory):
        from sqlalchemy import select
        from anonlink.models.user import User

        await identity.register("alice", "alice@example.com", "s3cret!")
        async with session_factory() as db:
            user = (await db.execute(select(User))).scalar_one()

        assert "s3cret!" not in user.password_hash


    async def test_password_hashing_runs_off_the_event_loop(self, identity, monkeypatch):
        offloaded = []
        real_to_thread = identity_module.asyncio.to_thread

        async def recording_to_thread(func, *args):
            offloaded.append(func.__name__)
            return await real_to_thread(func, *args)

        monkeypatch.setattr(identity_module.asyncio, "to_thread", recording_to_thread)

        await identity.register("alice", "alice@example.com", "s3cret!")
        await identity.authenticate("alice", "s3cret!")

        assert offloaded == ["generate_password_hash", "check_password_hash"]

class TestVerify:

    async def test_rejects_garbage(self, identity):
        with pytest.raises(InvalidTokenError):
            identity.verify("not.a.jwt")

    async def test_rejects_token_signed_with_other_secret(self, identity, session_factory):
        other = IdentityProvider(session_factory, jwt_secret="another-secret")
        token = other.issue_token(Principal(user_id="u1", username="eve"))

        with pytest.raises(InvalidTokenError):
            identity.verify(token)

    async def test_rejects_expired_token(self, session_factory):
        provider = IdentityProvider(session_factory, jwt_secret="s", token_ttl=timedelta(seconds=-1))
        token = provider.issue_token(Principal(user_id="u1", username="alice"))

        with pytest.raises(InvalidTokenError):
            provider.verify(token)

    async def test_token_carries_subject(self, identity):
        token = identity.issue_token(Principal(user_id="u1", username="alice"))

        payload = jwt.decode(token, "test-secret", algorithms=["HS256"])

        assert payload["sub"] == "u1"
        assert payload["username"] == "alice"
