"""Email service using MailerSend."""
import base64
import html
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import httpx

from ...config import get_settings

logger = logging.getLogger(__name__)


class EmailDeliveryError(RuntimeError):
    """Raised when an email could not be handed to the provider."""


@dataclass
class EmailAttachment:
    name: str
    content_type: str
    base64: str

    @classmethod
    def from_bytes(cls, name: str, content_type: str, data: bytes) -> "EmailAttachment":
        return cls(name=name, content_type=content_type, base64=base64.b64encode(data).decode("ascii"))

    def to_mailersend(self) -> dict:
        return {"filename": self.name, "content": self.base64, "disposition": "attachment"}


def _full_name(first_name: str, last_name: str) -> str:
    return html.escape(f"{first_name} {last_name}".strip() or "there")


def _layout(heading: str, subtitle: str, body_html: str) -> str:
    return f"""
<!DOCTYPE html>
<html>
<head>
    <style>
        body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #333; }}
        .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
        .header {{ text-align: center; padding: 20px 0; border-bottom: 2px solid #0f766e; }}
        .logo {{ color: #0f766e; font-size: 24px; font-weight: bold; letter-spacing: 2px; }}
        .subtitle {{ color: #6b7280; font-size: 13px; }}
        .content {{ padding: 30px 0; }}
        .code {{ display: inline-block; padding: 10px 20px; font-size: 20px; letter-spacing: 4px; font-weight: 600; border-radius: 9999px; background: #f3f4f6; border: 1px solid #e5e7eb; }}
        .note {{ background: #f8f9fa; border-radius: 8px; padding: 16px; margin: 16px 0; }}
        .btn {{ display: inline-block; background: #0f766e; color: white; padding: 14px 28px; text-decoration: none; border-radius: 6px; font-weight: 600; margin: 10px 0; }}
        .footer {{ text-align: center; padding-top: 20px; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 12px; }}
    </style>
</head>
<body>
    <div class="container">
        <div class="header">
            <div class="logo">NPT</div>
            <div class="subtitle">{subtitle}</div>
        </div>
        <div class="content">
            <h2>{heading}</h2>
            {body_html}
            <p>Thank you,<br>NPT HR</p>
        </div>
        <div class="footer">
            <p>This is an automated message from the NPT onboarding portal.</p>
        </div>
    </div>
</body>
</html>
"""


class EmailService:
    """Service for sending onboarding emails via MailerSend API."""

    def __init__(self):
        self.settings = get_settings()
        self.api_key = self.settings.mailersend_api_key
        self.from_email = self.settings.mailersend_from_email
        self.from_name = self.settings.mailersend_from_name
        self.base_url = "https://api.mailersend.com/v1"

    def is_configured(self) -> bool:
        """Check if email service is properly configured."""
        return bool(self.api_key)

    async def send_email(
        self,
        to_email: str,
        to_name: Optional[str],
        subject: str,
        html_content: str,
        attachments: Optional[list[EmailAttachment]] = None,
    ) -> None:
        """Send a single email via MailerSend.

        Raises EmailDeliveryError when the provider is not configured, rejects
        the message, or cannot be reached. Callers decide whether that failure
        is fatal.
        """
        if not self.is_configured():
            raise EmailDeliveryError("MailerSend is not configured")

        payload = {
            "from": {
                "email": self.from_email,
                "name": self.from_name,
            },
            "to": [
                {
                    "email": to_email,
                    "name": to_name or to_email,
                }
            ],
            "subject": subject,
            "html": html_content,
        }
        if attachments:
            payload["attachments"] = [attachment.to_mailersend() for attachment in attachments]

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    f"{self.base_url}/email",
                    json=payload,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    timeout=30.0,
                )
        except httpx.HTTPError as exc:
            raise EmailDeliveryError(f"Error sending email to {to_email}: {exc}") from exc

        if response.status_code not in (200, 201, 202):
            raise EmailDeliveryError(
                f"MailerSend rejected email to {to_email}: {response.status_code} - {response.text}"
            )
        logger.info("Sent email '%s' to %s", subject, to_email)

    async def send_onboarding_invitation_email(
        self,
        to_email: str,
        first_name: str,
        last_name: str,
        subsidiary: str,
        invite_url: str,
        expires_at: datetime,
    ) -> None:
        subject = "NPT Employee Onboarding – Complete Your Details"
        body = f"""
            <p>Hi {_full_name(first_name, last_name)},</p>
            <p>Welcome to <strong>NPT ({html.escape(subsidiary)})</strong>. Please complete your
            onboarding details using the secure link below.</p>
            <p><a href="{html.escape(invite_url)}" class="btn">Start onboarding</a></p>
            <p>This link expires on <strong>{expires_at.strftime('%B %d, %Y %H:%M UTC')}</strong>.
            You will be asked for a verification code sent to this address.</p>
        """
        await self.send_email(
            to_email,
            f"{first_name} {last_name}".strip(),
            subject,
            _layout("Complete your onboarding", f"NPT ({html.escape(subsidiary)}) Onboarding", body),
        )

    async def send_manual_form_email(
        self,
        to_email: str,
        first_name: str,
        last_name: str,
        subsidiary: str,
        attachment: EmailAttachment,
    ) -> None:
        subject = "NPT Employee Onboarding – Manual Form Attached"
        body = f"""
            <p>Hi {_full_name(first_name, last_name)},</p>
            <p>Please find the NPT ({html.escape(subsidiary)}) onboarding form attached. Fill it in,
            sign it and return it to HR together with the requested documents.</p>
        """
        await self.send_email(
            to_email,
            f"{first_name} {last_name}".strip(),
            subject,
            _layout("Your onboarding form", f"NPT ({html.escape(subsidiary)}) Onboarding", body),
            attachments=[attachment],
        )

    async def send_onboarding_otp_email(
        self,
        to_email: str,
        first_name: str,
        last_name: str,
        subsidiary: str,
        otp_code: str,
        expires_in_minutes: int,
    ) -> None:
        subject = "Your NPT Onboarding Verification Code"
        body = f"""
            <p>Hi {_full_name(first_name, last_name)},</p>
            <p>Use the code below to verify your email and continue your onboarding for
            <strong>NPT ({html.escape(subsidiary)})</strong>.</p>
            <p style="text-align:center;"><span class="code">{html.escape(otp_code)}</span></p>
            <p>This code expires in <strong>{expires_in_minutes} minutes</strong>. Do not share it with anyone.</p>
            <p class="subtitle">If you did not request this code, you can safely ignore this email.</p>
        """
        await self.send_email(
            to_email,
            f"{first_name} {last_name}".strip(),
            subject,
            _layout("Your verification code", f"NPT ({html.escape(subsidiary)}) Onboarding", body),
        )

    async def send_modification_request_email(
        self,
        to_email: str,
        first_name: str,
        last_name: str,
        subsidiary: str,
        message: str,
        portal_url: str,
    ) -> None:
        subject = "NPT Employee Onboarding – Update Required"
        body = f"""
            <p>Hi {_full_name(first_name, last_name)},</p>
            <p>HR has reviewed your onboarding details and needs a few changes:</p>
            <div class="note">{html.escape(message)}</div>
            <p><a href="{html.escape(portal_url)}" class="btn">Update my details</a></p>
        """
        await self.send_email(
            to_email,
            f"{first_name} {last_name}".strip(),
            subject,
            _layout("Updates requested", f"NPT ({html.escape(subsidiary)}) Onboarding", body),
        )

    async def send_onboarding_approved_email(
        self,
        to_email: str,
        first_name: str,
        last_name: str,
        subsidiary: str,
        employee_number: Optional[str] = None,
    ) -> None:
        subject = "NPT Employee Onboarding – Approved"
        number_html = ""
        if employee_number:
            number_html = f"<p>Your employee number is <strong>{html.escape(employee_number)}</strong>.</p>"
        body = f"""
            <p>Hi {_full_name(first_name, last_name)},</p>
            <p>Your onboarding with <strong>NPT ({html.escape(subsidiary)})</strong> has been approved.</p>
            {number_html}
        """
        await self.send_email(
            to_email,
            f"{first_name} {last_name}".strip(),
            subject,
            _layout("Onboarding approved", f"NPT ({html.escape(subsidiary)}) Onboarding", body),
        )

    async def send_termination_notice_email(
        self,
        to_email: str,
        first_name: str,
        last_name: str,
        subsidiary: str,
    ) -> None:
        subject = "NPT Employee Onboarding – Status Update"
        body = f"""
            <p>Hi {_full_name(first_name, last_name)},</p>
            <p>Your onboarding with <strong>NPT ({html.escape(subsidiary)})</strong> has been closed
            and the onboarding link you received is no longer active.</p>
            <p>If you believe this is a mistake, please contact HR.</p>
        """
        await self.send_email(
            to_email,
            f"{first_name} {last_name}".strip(),
            subject,
            _layout("Onboarding closed", f"NPT ({html.escape(subsidiary)}) Onboarding", body),
        )


def get_email_service() -> EmailService:
    return EmailService()
