"""Identity email rendering and SMTP delivery."""

import asyncio
from dataclasses import dataclass
from email.message import EmailMessage
from enum import StrEnum
from urllib.parse import quote

import aiosmtplib
from aiosmtplib.errors import (
    SMTPAuthenticationError,
    SMTPConnectError,
    SMTPConnectTimeoutError,
    SMTPException,
    SMTPReadTimeoutError,
)

from app.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

SMTP_TIMEOUT_SECONDS = 30
SMTP_CONNECT_ATTEMPTS = 3


class EmailTemplate(StrEnum):
    """Kinds of identity email the platform sends."""

    VERIFICATION = "verification"
    PASSWORD_RESET = "password_reset"


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    body: str
    html: str


_HTML_LAYOUT = """<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <style>
        body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
        .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
        .button {{
            display: inline-block;
            padding: 12px 24px;
            background-color: #2f6feb;
            color: white;
            text-decoration: none;
            border-radius: 4px;
        }}
    </style>
</head>
<body>
    <div class="container">
        <h2>{heading}</h2>
        <p>{lead}</p>
        <p><a href="{url}" class="button">{action}</a></p>
        <p>Or copy this link into your browser:</p>
        <p><code>{url}</code></p>
        <p><small>This link will expire in {lifetime}.</small></p>
        <p><small>{footer}</small></p>
    </div>
</body>
</html>
"""


def _hours(value: int) -> str:
    return "1 hour" if value == 1 else f"{value} hours"


def render_email(template: EmailTemplate, token: str) -> RenderedEmail:
    """
    Build subject and bodies for an identity email.

    The raw token is URL-quoted into a frontend link; it is the only
    per-recipient content.
    """
    if template is EmailTemplate.VERIFICATION:
        url = f"{settings.FRONTEND_URL}/verify-email?token={quote(token)}"
        lifetime = _hours(settings.EMAIL_VERIFICATION_EXPIRE_HOURS)
        heading = f"Welcome to {settings.SMTP_FROM_NAME}!"
        lead = "Please confirm your email address by opening the link below."
        footer = "If you didn't create an account, you can safely ignore this email."
        subject = "Verify your email address"
        action = "Verify Email Address"
    elif template is EmailTemplate.PASSWORD_RESET:
        url = f"{settings.FRONTEND_URL}/reset-password?token={quote(token)}"
        lifetime = _hours(settings.PASSWORD_RESET_EXPIRE_HOURS)
        heading = "Reset your password"
        lead = "We received a request to reset your password."
        footer = "If you didn't request this, you can ignore this email. Your password will not change."
        subject = "Reset your password"
        action = "Reset Password"
    else:
        raise ValueError(f"Unknown email template: {template}")

    body = f"""{heading}

{lead}

{url}

This link will expire in {lifetime}.

{footer}
"""
    html = _HTML_LAYOUT.format(
        heading=heading, lead=lead, url=url, action=action, lifetime=lifetime, footer=footer
    )
    return RenderedEmail(subject=subject, body=body, html=html)


async def send_email(to: str, subject: str, body: str, html: str | None = None) -> bool:
    """
    Send email via SMTP.

    Only connection failures are retried, with exponential backoff. Anything
    that happens after the server may have accepted the message is not
    retried here; the calling job decides whether to try again.

    Returns:
        True if the message was handed to the SMTP server, False otherwise
    """
    message = EmailMessage()
    message["From"] = f"{settings.SMTP_FROM_NAME} <{settings.SMTP_FROM_EMAIL}>"
    message["To"] = to
    message["Subject"] = subject
    message.set_content(body)
    if html:
        message.add_alternative(html, subtype="html")

    for attempt in range(SMTP_CONNECT_ATTEMPTS):
        try:
            await aiosmtplib.send(
                message,
                hostname=settings.SMTP_HOST,
                port=settings.SMTP_PORT,
                username=settings.SMTP_USER or None,
                password=settings.SMTP_PASSWORD or None,
                use_tls=settings.SMTP_TLS,
                start_tls=settings.SMTP_STARTTLS,
                timeout=SMTP_TIMEOUT_SECONDS,
            )
            logger.info("email_sent", subject=subject, attempt=attempt + 1)
            return True

        except SMTPReadTimeoutError as e:
            # Server may have queued the message already
            logger.error("email_send_timeout_after_data", subject=subject, error=str(e))
            return False

        except SMTPAuthenticationError as e:
            logger.error("email_auth_failed", subject=subject, error=str(e))
            return False

        except (SMTPConnectError, SMTPConnectTimeoutError) as e:
            logger.warning(
                "email_connection_failed",
                subject=subject,
                attempt=attempt + 1,
                error=str(e),
                error_type=type(e).__name__,
            )
            if attempt < SMTP_CONNECT_ATTEMPTS - 1:
                await asyncio.sleep(2**attempt)

        except SMTPException as e:
            logger.error(
                "email_smtp_error", subject=subject, error=str(e), error_type=type(e).__name__
            )
            return False

    logger.error("email_connection_failed_all_retries", subject=subject)
    return False


async def send_identity_email(to: str, template: EmailTemplate, token: str) -> bool:
    """Render and send one identity email."""
    rendered = render_email(template, token)
    return await send_email(to=to, subject=rendered.subject, body=rendered.body, html=rendered.html)
