"""
Email delivery using Resend
Bodies are MJML, compiled to HTML before sending
"""

import logging
from typing import Optional, Union

import resend
from mjml import mjml_to_html

from .config import EMAIL_FROM_ADDRESS, RESEND_API_KEY
from .email_templates import verification_code_template

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


class EmailSendError(Exception):
    pass


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    try:
        result = mjml_to_html(mjml_content)
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        raise EmailSendError(f"Failed to compile MJML template: {str(e)}") from e

    # mjml_to_html returns an object exposing html and errors
    errors = getattr(result, "errors", None) or (result.get("errors") if isinstance(result, dict) else None)
    if errors:
        logger.warning(f"MJML compilation warnings: {errors}")
    if isinstance(result, dict):
        return result.get("html", "")
    return getattr(result, "html", str(result))


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    mjml_content: str,
    cc: Optional[list[str]] = None,
    bcc: Optional[list[str]] = None,
    attachments: Optional[list[dict]] = None,
    from_address: Optional[str] = None,
) -> dict:
    """
    Send an email through Resend

    Args:
        to: Recipient email(s)
        subject: Email subject line
        mjml_content: MJML template content (will be compiled to HTML)
        cc: Optional carbon copy recipients
        bcc: Optional blind carbon copy recipients
        attachments: Optional list of {"filename": str, "content": bytes}
        from_address: Optional custom from address

    Returns:
        Resend response dict (contains the message "id")
    """
    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise EmailSendError("Email service not configured")

    html_content = compile_mjml_to_html(mjml_content)
    recipients = [to] if isinstance(to, str) else to

    email_data = {
        "from": from_address or EMAIL_FROM_ADDRESS,
        "to": recipients,
        "subject": subject,
        "html": html_content,
    }
    if cc:
        email_data["cc"] = cc
    if bcc:
        email_data["bcc"] = bcc
    if attachments:
        email_data["attachments"] = [
            {"filename": attachment["filename"], "content": list(attachment["content"])}
            for attachment in attachments
        ]

    try:
        logger.info(f"📧 Sending email via Resend to: {recipients}")
        response = resend.Emails.send(email_data)
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return response
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise EmailSendError(f"Failed to send email: {str(e)}") from e


async def send_verification_code_email(to: str, code: str) -> dict:
    """Send the booking wizard email verification code"""
    return await send_email(
        to=to,
        subject=f"Your verification code: {code}",
        mjml_content=verification_code_template(code),
    )
