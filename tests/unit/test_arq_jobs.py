"""Tests for arq jobs, the job queue client and email dispatch."""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from arq import Retry
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.base import utc_now
from app.services.email import EmailTemplate
from app.services.email_dispatch import SEND_IDENTITY_EMAIL_JOB, QueuedEmailDispatcher
from app.services.session_store import SessionStore
from app.tasks.email_jobs import send_identity_email_job
from app.tasks.queue import enqueue_job
from app.tasks.session_jobs import purge_stale_sessions_job


@pytest.mark.unit
class TestSendIdentityEmailJob:
    @patch("app.tasks.email_jobs.send_identity_email", new_callable=AsyncMock)
    async def test_sends_email(self, mock_send):
        mock_send.return_value = True

        await send_identity_email_job({"job_try": 1}, "bob@example.com", "verification", "tok")

        mock_send.assert_awaited_once_with(
            to="bob@example.com", template=EmailTemplate.VERIFICATION, token="tok"
        )

    @patch("app.tasks.email_jobs.send_identity_email", new_callable=AsyncMock)
    async def test_failure_raises_retry_with_backoff(self, mock_send):
        mock_send.return_value = False

        with pytest.raises(Retry) as exc_info:
            await send_identity_email_job({"job_try": 2}, "bob@example.com", "password_reset", "t")

        assert exc_info.value.defer_score == 10_000  # 2 * 5 seconds, in ms

    @patch("app.tasks.email_jobs.send_identity_email", new_callable=AsyncMock)
    async def test_unknown_template_is_dropped(self, mock_send):
        await send_identity_email_job({"job_try": 1}, "bob@example.com", "newsletter", "t")

        mock_send.assert_not_called()


@pytest.mark.unit
class TestPurgeStaleSessionsJob:
    async def test_deletes_expired_and_old_revoked(
        self, db_session: AsyncSession, make_account, engine
    ):
        account = await make_account("sweeper")
        store = SessionStore(db_session)
        now = utc_now()
        await store.create(account.id, "a" * 64, now - timedelta(days=31), timedelta(days=30))
        live = await store.create(account.id, "b" * 64, now, timedelta(days=30))

        factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        with patch("app.tasks.session_jobs.get_async_session", factory):
            deleted = await purge_stale_sessions_job({})

        assert deleted == 1
        remaining = await store.list_usable(account.id, utc_now())
        assert [s.id for s in remaining] == [live.id]


@pytest.mark.unit
class TestEnqueueJob:
    async def test_returns_job_id(self):
        pool = MagicMock()
        pool.enqueue_job = AsyncMock(return_value=MagicMock(job_id="job-1"))
        with patch("app.tasks.queue.get_queue", new=AsyncMock(return_value=pool)):
            job_id = await enqueue_job("some_job", x=1)

        assert job_id == "job-1"
        pool.enqueue_job.assert_awaited_once_with("some_job", _job_id=None, _defer_by=None, x=1)

    async def test_redis_failure_returns_none(self):
        with patch(
            "app.tasks.queue.get_queue", new=AsyncMock(side_effect=ConnectionError("down"))
        ):
            assert await enqueue_job("some_job") is None

    async def test_duplicate_job_returns_none(self):
        pool = MagicMock()
        pool.enqueue_job = AsyncMock(return_value=None)
        with patch("app.tasks.queue.get_queue", new=AsyncMock(return_value=pool)):
            assert await enqueue_job("some_job", _job_id="fixed") is None


@pytest.mark.unit
class TestQueuedEmailDispatcher:
    async def test_enqueues_identity_email_job(self):
        with patch(
            "app.services.email_dispatch.enqueue_job", new=AsyncMock(return_value="job-9")
        ) as mock_enqueue:
            await QueuedEmailDispatcher().send("a@example.com", EmailTemplate.PASSWORD_RESET, "t")

        mock_enqueue.assert_awaited_once_with(
            SEND_IDENTITY_EMAIL_JOB, email="a@example.com", template="password_reset", token="t"
        )

    async def test_enqueue_failure_does_not_raise(self):
        with patch("app.services.email_dispatch.enqueue_job", new=AsyncMock(return_value=None)):
            await QueuedEmailDispatcher().send("a@example.com", EmailTemplate.VERIFICATION, "t")
