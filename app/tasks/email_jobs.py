"""Identity email jobs for the arq worker."""

from typing import Any

from arq import Retry

from app.core.logging import bind_context, get_logger
from app.services.email import EmailTemplate, send_identity_email

logger = get_logger(__name__)


async def send_identity_email_job(
    ctx: dict[str, Any], email: str, template: str, token: str
) -> None:
    """
    Deliver a verification or password-reset email.

    Args:
        ctx: ARQ context dict
        email: Recipient address
        template: EmailTemplate value
        token: Raw ephemeral token (not hashed)

    Raises:
        Retry: If SMTP delivery fails (retried up to max_tries)
    """
    bind_context(task="send_identity_email", template=template)

    try:
        kind = EmailTemplate(template)
    except ValueError:
        logger.error("identity_email_unknown_template", template=template)
        return

    if await send_identity_email(to=email, template=kind, token=token):
        logger.info("identity_email_sent", template=template, job_try=ctx.get("job_try"))
        return

    logger.error("identity_email_failed", template=template, job_try=ctx.get("job_try"))
    raise Retry(defer=ctx["job_try"] * 5)
