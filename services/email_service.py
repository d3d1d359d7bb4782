"""
Email service for password resets and account status notices.
Uses fastapi-mail; sending is best-effort and never fails the request.
"""
from typing import Optional, TYPE_CHECKING

from fastapi_mail import MessageSchema, MessageType

from core.logger import logger
import config

if TYPE_CHECKING:
    from fastapi_mail import FastMail


def _wrap(title: str, body: str) -> str:
    return f"""
    <html>
    <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
        <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
            <h2 style="color: #2E7D32;">{config.SMTP_FROM_NAME}</h2>
            <h3>{title}</h3>
            {body}
            <p style="color: #666; font-size: 12px;">This is an automated message, please do not reply.</p>
        </div>
    </body>
    </html>
    """


class EmailService:
    """Service for sending emails via fastapi-mail."""

    @staticmethod
    async def send_html(fm: Optional["FastMail"], to_email: str, subject: str, html_body: str) -> bool:
        """
        Send one HTML email.

        Args:
            fm: FastMail instance (from request.app.state.mail); None when SMTP is not configured

        Returns:
            True if sent successfully, False otherwise
        """
        if fm is None:
            logger.warning(f"Email not sent to {to_email} (SMTP not configured): {subject}")
            return False

        message = MessageSchema(
            subject=subject,
            recipients=[to_email],
            body=html_body,
            subtype=MessageType.html,
        )
        try:
            await fm.send_message(message)
            logger.info(f"Email sent to {to_email}: {subject}")
            return True
        except Exception as e:
            logger.error(f"Failed to send email to {to_email}: {e}", exc_info=True)
            return False

    @staticmethod
    async def send_password_reset_email(fm: Optional["FastMail"], to_email: str, name: str, token: str) -> bool:
        reset_link = f"{config.FRONTEND_URL.rstrip('/')}/reset-password?token={token}"
        body = f"""
            <p>Hello {name},</p>
            <p>We received a request to reset your password. The link below is valid for
            {config.PASSWORD_RESET_EXPIRE_MINUTES} minutes.</p>
            <p><a href="{reset_link}" style="background-color: #2E7D32; color: white; padding: 10px 20px;
               text-decoration: none; border-radius: 5px;">Reset password</a></p>
            <p>If you didn't request this, you can ignore this email.</p>
        """
        return await EmailService.send_html(fm, to_email, "Reset your password", _wrap("Password reset", body))

    @staticmethod
    async def send_account_status_email(
        fm: Optional["FastMail"],
        to_email: str,
        name: str,
        status: str,
        reason: Optional[str] = None,
    ) -> bool:
        if status == "approved":
            body = f"<p>Hello {name},</p><p>Your account has been approved. You can now sign in.</p>"
        else:
            body = f"<p>Hello {name},</p><p>Your account registration was not approved.</p>"
            if reason:
                body += f"<p>Reason: {reason}</p>"
        return await EmailService.send_html(
            fm, to_email, f"Account {status}", _wrap(f"Account {status}", body)
        )
