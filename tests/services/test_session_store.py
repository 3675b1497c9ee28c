"""Tests for SessionStore."""

from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from app.models.base import utc_now
from app.services.session_store import SessionStore

TTL = timedelta(days=30)


def _digest(n: int) -> str:
    return f"{n:064x}"


@pytest.mark.unit
class TestCreate:
    async def test_lifetime_is_exactly_ttl(self, session_store: SessionStore, make_account):
        account = await make_account()
        now = utc_now()

        session = await session_store.create(account.id, _digest(1), now, TTL)

        assert session.created_at == now
        assert session.expires_at - session.created_at == TTL
        assert session.revoked is False
        assert session.is_usable(now)

    async def test_token_hash_is_unique(self, session_store: SessionStore, make_account):
        account = await make_account()
        await session_store.create(account.id, _digest(1), utc_now(), TTL)

        with pytest.raises(IntegrityError):
            await session_store.create(account.id, _digest(1), utc_now(), TTL)

    async def test_client_metadata_truncated(self, session_store: SessionStore, make_account):
        account = await make_account()

        session = await session_store.create(
            account.id, _digest(1), utc_now(), TTL, user_agent="x" * 1000, ip_address="1.2.3.4"
        )

        assert len(session.user_agent) == 255
        assert session.ip_address == "1.2.3.4"

    async def test_lookup_by_hash(self, session_store: SessionStore, make_account):
        account = await make_account()
        session = await session_store.create(account.id, _digest(7), utc_now(), TTL)

        assert (await session_store.get_by_token_hash(_digest(7))).id == session.id
        assert await session_store.get_by_token_hash(_digest(8)) is None


@pytest.mark.unit
class TestRevoke:
    async def test_revoke_is_guarded(self, session_store: SessionStore, make_account):
        account = await make_account()
        session = await session_store.create(account.id, _digest(1), utc_now(), TTL)

        assert await session_store.revoke(session.id, utc_now()) is True
        assert await session_store.revoke(session.id, utc_now()) is False

        stored = await session_store.get_by_token_hash(_digest(1))
        assert stored.revoked is True
        assert stored.revoked_at is not None

    async def test_revoke_skips_expired_session(
        self, session_store: SessionStore, make_account
    ):
        account = await make_account()
        now = utc_now()
        session = await session_store.create(
            account.id, _digest(1), now - timedelta(days=31), TTL
        )

        assert await session_store.revoke(session.id, now) is False

        stored = await session_store.get_by_token_hash(_digest(1))
        assert stored.revoked is False
        assert stored.revoked_at is None

    async def test_revoke_all(self, session_store: SessionStore, make_account):
        alice = await make_account("alice")
        bob = await make_account("bob")
        for n in range(3):
            await session_store.create(alice.id, _digest(n), utc_now(), TTL)
        await session_store.create(bob.id, _digest(10), utc_now(), TTL)

        assert await session_store.revoke_all(alice.id, utc_now()) == 3
        assert await session_store.revoke_all(alice.id, utc_now()) == 0
        assert await session_store.list_usable(alice.id, utc_now()) == []
        assert len(await session_store.list_usable(bob.id, utc_now())) == 1

    async def test_revoke_others_keeps_one(self, session_store: SessionStore, make_account):
        account = await make_account()
        keep = await session_store.create(account.id, _digest(1), utc_now(), TTL)
        await session_store.create(account.id, _digest(2), utc_now(), TTL)
        await session_store.create(account.id, _digest(3), utc_now(), TTL)

        assert await session_store.revoke_others(account.id, keep.id, utc_now()) == 2

        usable = await session_store.list_usable(account.id, utc_now())
        assert [s.id for s in usable] == [keep.id]


@pytest.mark.unit
class TestDeleteStale:
    async def test_removes_expired_and_old_revoked_only(
        self, session_store: SessionStore, make_account
    ):
        account = await make_account()
        now = utc_now()
        live = await session_store.create(account.id, _digest(1), now, TTL)
        await session_store.create(account.id, _digest(2), now - timedelta(days=40), TTL)
        old_revoked = await session_store.create(account.id, _digest(3), now, TTL)
        recent_revoked = await session_store.create(account.id, _digest(4), now, TTL)
        await session_store.revoke(old_revoked.id, now - timedelta(days=10))
        await session_store.revoke(recent_revoked.id, now - timedelta(days=1))

        revoked_before = now - timedelta(days=7)
        assert await session_store.count_stale(now, revoked_before) == 2
        assert await session_store.delete_stale(now, revoked_before) == 2

        assert (await session_store.get_by_token_hash(_digest(1))).id == live.id
        assert await session_store.get_by_token_hash(_digest(2)) is None
        assert await session_store.get_by_token_hash(_digest(3)) is None
        assert (await session_store.get_by_token_hash(_digest(4))).revoked is True
