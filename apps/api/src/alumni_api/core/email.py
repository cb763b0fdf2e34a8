"""
Alumni emails, delivered through Resend.

Three messages leave this service: the verification link, the approval
notice and the rejection notice. Each sender reports success as a bool so
the caller can queue a retry instead of failing the request.
"""

import asyncio
import logging
from html import escape

import resend

from alumni_api.core.config import settings

logger = logging.getLogger(__name__)

resend.api_key = settings.resend_api_key or None

_STYLES = """
        body { font-family: system-ui, -apple-system, sans-serif; line-height: 1.6; color: #1f2937; }
        .container { max-width: 600px; margin: 0 auto; padding: 40px 20px; }
        .header { color: #1a365d; margin-bottom: 24px; }
        .button { display: inline-block; background-color: #1a365d; color: white; padding: 14px 28px; text-decoration: none; border-radius: 8px; margin: 24px 0; }
        .success { background-color: #d1fae5; border: 1px solid #22c55e; padding: 16px; border-radius: 8px; margin: 16px 0; }
        .message-box { background-color: #f3f4f6; padding: 16px; border-radius: 8px; margin: 16px 0; }
        .link { word-break: break-all; color: #3b82f6; }
        .footer { margin-top: 40px; padding-top: 20px; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 14px; }
"""


def _page(body: str) -> str:
    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <style>{_STYLES}</style>
    </head>
    <body>
        <div class="container">
            {body}
            <div class="footer">
                <p>{escape(settings.school_name)} Alumni Network</p>
            </div>
        </div>
    </body>
    </html>
    """


async def send_email(to_email: str, subject: str, html_content: str) -> bool:
    """
    Hand one message to Resend. Never raises.

    Without an API key the message is only logged and counts as sent.
    """
    if not settings.email_configured:
        logger.info(f"[email disabled] would send '{subject}' to {to_email}")
        return True

    message: resend.Emails.SendParams = {
        "from": settings.email_from,
        "to": [to_email],
        "subject": subject,
        "html": html_content,
    }
    try:
        # blocking client
        sent = await asyncio.to_thread(resend.Emails.send, message)
    except Exception as e:
        logger.error(f"Resend rejected '{subject}' for {to_email}: {e}")
        return False

    logger.info(f"'{subject}' delivered to {to_email} (resend id {sent['id']})")
    return True


async def send_alumni_verification(to_email: str, name: str, token: str) -> bool:
    """Send the email-verification link for a fresh registration or a resend."""
    safe_name = escape(name)
    school = escape(settings.school_name)

    verification_url = f"{settings.frontend_url}/alumni/verify/{token}"
    body = f"""
            <h1 class="header">Confirm your email address</h1>

            <p>Dear {safe_name},</p>

            <p>Thank you for registering with the <strong>{school}</strong> alumni network.
            Once you confirm this address, our team will review your profile.</p>

            <a href="{verification_url}" class="button">Confirm my email</a>

            <p>If the button does not work, open this address in your browser:</p>
            <p class="link">{verification_url}</p>

            <p>Did not register? No action is needed; the link simply expires unused.</p>
    """
    return await send_email(
        to_email=to_email,
        subject=f"Verify your email - {settings.school_name} Alumni",
        html_content=_page(body),
    )


async def send_alumni_approved(to_email: str, name: str, slug: str) -> bool:
    """Tell the alumnus their profile is live in the public directory."""
    safe_name = escape(name)
    school = escape(settings.school_name)

    profile_url = f"{settings.frontend_url}/alumni/{slug}"
    body = f"""
            <h1 class="header">Your Profile Is Live</h1>

            <p>Dear {safe_name},</p>

            <div class="success">
                <strong>Congratulations!</strong> Your alumni profile has been approved and
                is now visible in the <strong>{school}</strong> alumni directory.
            </div>

            <a href="{profile_url}" class="button">View Your Profile</a>

            <p>Thank you for staying connected with your school.</p>
    """
    return await send_email(
        to_email=to_email,
        subject=f"Your profile has been approved - {settings.school_name} Alumni",
        html_content=_page(body),
    )


async def send_alumni_rejected(to_email: str, name: str, reason: str | None) -> bool:
    """Tell the alumnus their submission was not accepted, with the reason if any."""
    safe_name = escape(name)
    contact = escape(settings.alumni_contact_email)

    reason_block = ""
    if reason:
        reason_block = f"""
            <div class="message-box">
                <p><strong>Note from the reviewer:</strong> {escape(reason)}</p>
            </div>
        """

    body = f"""
            <h1 class="header">Profile Update</h1>

            <p>Dear {safe_name},</p>

            <p>Thank you for your interest in the alumni network. After review, we are unable
            to approve your profile submission at this time.</p>
            {reason_block}
            <p>If you have questions or would like to resubmit with updated details, please
            write to us at <a href="mailto:{contact}">{contact}</a>.</p>
    """
    return await send_email(
        to_email=to_email,
        subject=f"About your profile submission - {settings.school_name} Alumni",
        html_content=_page(body),
    )
