"""
Hand-off of identity emails to the background queue.

Request handlers never talk to SMTP. They enqueue a job and move on; delivery
and its retries happen in the arq worker (app.tasks.email_jobs).
"""

from typing import Protocol

from app.core.logging import get_logger
from app.services.email import EmailTemplate
from app.tasks.queue import enqueue_job

logger = get_logger(__name__)

SEND_IDENTITY_EMAIL_JOB = "send_identity_email_job"


class EmailDispatcher(Protocol):
    async def send(self, email: str, template: EmailTemplate, token: str) -> None: ...


class QueuedEmailDispatcher:
    """EmailDispatcher that enqueues an arq job per message."""

    async def send(self, email: str, template: EmailTemplate, token: str) -> None:
        job_id = await enqueue_job(
            SEND_IDENTITY_EMAIL_JOB,
            email=email,
            template=template.value,
            token=token,
        )
        if job_id is None:
            logger.warning("identity_email_not_enqueued", template=template.value)
