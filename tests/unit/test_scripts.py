"""Tests for the key generation and session pruning scripts."""

import stat
from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.tokens import AccessTokenIssuer, SigningKeys
from app.models.account import AccountRole
from app.models.base import utc_now
from app.services.session_store import SessionStore
from scripts.generate_keys import PRIVATE_KEY_FILE, PUBLIC_KEY_FILE, write_key_pair
from scripts.prune_sessions import prune


@pytest.mark.unit
class TestGenerateKeys:
    def test_written_keys_sign_and_verify(self, tmp_path):
        private_path, public_path = write_key_pair(tmp_path, 2048)

        assert private_path.name == PRIVATE_KEY_FILE
        assert public_path.name == PUBLIC_KEY_FILE
        assert stat.S_IMODE(private_path.stat().st_mode) == 0o600

        keys = SigningKeys.from_files(
            "test", private_key_path=private_path, public_key_path=public_path
        )
        issuer = AccessTokenIssuer(keys)
        token = issuer.issue("acct-1", "alice", AccountRole.MEMBER, timedelta(minutes=5))
        assert issuer.verify(token).account_id == "acct-1"

    def test_refuses_to_overwrite(self, tmp_path):
        write_key_pair(tmp_path, 2048)
        original = (tmp_path / PRIVATE_KEY_FILE).read_bytes()

        with pytest.raises(FileExistsError):
            write_key_pair(tmp_path, 2048)
        assert (tmp_path / PRIVATE_KEY_FILE).read_bytes() == original

    def test_force_overwrites(self, tmp_path):
        write_key_pair(tmp_path, 2048)
        original = (tmp_path / PRIVATE_KEY_FILE).read_bytes()

        write_key_pair(tmp_path, 2048, overwrite=True)

        assert (tmp_path / PRIVATE_KEY_FILE).read_bytes() != original


@pytest.mark.unit
class TestPruneSessions:
    async def test_dry_run_counts_without_deleting(self, engine, session_store, make_account):
        account = await make_account()
        now = utc_now()
        await session_store.create(
            account.id, "a" * 64, now - timedelta(days=60), timedelta(days=30)
        )
        await session_store.create(account.id, "b" * 64, now, timedelta(days=30))

        factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        with patch("scripts.prune_sessions.get_async_session", factory):
            assert await prune(retention_days=7, dry_run=True) == 1
            assert await prune(retention_days=7, dry_run=False) == 1
            assert await prune(retention_days=7, dry_run=True) == 0

        assert await session_store.get_by_token_hash("b" * 64) is not None

    async def test_retention_window_is_respected(self, engine, make_account):
        account = await make_account()
        now = utc_now()
        factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        async with factory() as db:
            store = SessionStore(db)
            session = await store.create(account.id, "c" * 64, now, timedelta(days=30))
            await store.revoke(session.id, now - timedelta(days=3))

        with patch("scripts.prune_sessions.get_async_session", factory):
            assert await prune(retention_days=7, dry_run=True) == 0
            assert await prune(retention_days=1, dry_run=True) == 1
