"""
Email service for account and clearance notifications.
Uses fastapi-mail for async sending; templates live in services.email_templates.
"""
from typing import Optional

from fastapi_mail import ConnectionConfig, FastMail, MessageSchema, MessageType

from core.logger import logger
from services.email_templates import (
    EmailContent,
    WelcomeEmailData, OfficerWelcomeEmailData, PasswordResetEmailData,
    DocumentNotificationData, ClearanceCompletionData,
    NewDocumentNotificationData, BulkImportSummaryData,
    render_welcome_email, render_officer_welcome_email, render_password_reset_email,
    render_document_approved_email, render_document_rejected_email,
    render_document_under_review_email, render_clearance_completed_email,
    render_new_document_notification, render_bulk_import_summary,
)
import config


def create_mail_client(suppress_send: Optional[bool] = None) -> Optional[FastMail]:
    """
    Build the FastMail client from SMTP settings.

    Returns None when SMTP credentials are missing and sending is not suppressed.
    """
    if suppress_send is None:
        suppress_send = config.MAIL_SUPPRESS_SEND
    if not suppress_send and not (config.SMTP_USER and config.SMTP_PASSWORD):
        logger.warning("SMTP credentials not set (SMTP_USER/SMTP_PASSWORD). Notification emails will not be sent.")
        return None

    mail_conf = ConnectionConfig(
        MAIL_USERNAME=config.SMTP_USER,
        MAIL_PASSWORD=config.SMTP_PASSWORD,
        MAIL_FROM=config.SMTP_FROM_EMAIL,
        MAIL_FROM_NAME=config.SMTP_FROM_NAME,
        MAIL_PORT=config.SMTP_PORT,
        MAIL_SERVER=config.SMTP_HOST,
        MAIL_STARTTLS=config.SMTP_USE_TLS,
        MAIL_SSL_TLS=config.SMTP_USE_SSL,
        USE_CREDENTIALS=bool(config.SMTP_USER and config.SMTP_PASSWORD),
        VALIDATE_CERTS=True,
        SUPPRESS_SEND=1 if suppress_send else 0,
    )
    return FastMail(mail_conf)


class EmailService:
    """
    Sends notification emails.

    One instance is built at startup and shared through app.state. Every
    send_* method returns True/False and never raises: a failed email must
    not undo the change that triggered it.
    """

    def __init__(self, mail: Optional[FastMail]):
        self.mail = mail

    @property
    def enabled(self) -> bool:
        return self.mail is not None

    async def send(self, to_email: str, content: EmailContent) -> bool:
        """
        Send rendered content to one recipient.

        Args:
            to_email: Recipient email address
            content: Rendered subject and HTML body

        Returns:
            True if sent successfully, False otherwise
        """
        if self.mail is None:
            logger.warning(f"Email not configured, skipped '{content.subject}' to {to_email}")
            return False

        message = MessageSchema(
            subject=content.subject,
            recipients=[to_email],
            body=content.html,
            subtype=MessageType.html,
        )
        try:
            await self.mail.send_message(message)
            logger.info(f"Email '{content.subject}' sent to {to_email}")
            return True
        except Exception as e:
            logger.error(f"Failed to send '{content.subject}' to {to_email}: {e}", exc_info=True)
            return False

    async def send_welcome_email(self, data: WelcomeEmailData) -> bool:
        return await self.send(data.student_email, render_welcome_email(data))

    async def send_officer_welcome_email(self, data: OfficerWelcomeEmailData) -> bool:
        return await self.send(data.officer_email, render_officer_welcome_email(data))

    async def send_password_reset_email(self, data: PasswordResetEmailData) -> bool:
        return await self.send(data.email, render_password_reset_email(data))

    async def send_document_approved_email(self, data: DocumentNotificationData) -> bool:
        return await self.send(data.student_email, render_document_approved_email(data))

    async def send_document_rejected_email(self, data: DocumentNotificationData) -> bool:
        return await self.send(data.student_email, render_document_rejected_email(data))

    async def send_document_under_review_email(self, data: DocumentNotificationData) -> bool:
        return await self.send(data.student_email, render_document_under_review_email(data))

    async def send_clearance_completed_email(self, data: ClearanceCompletionData) -> bool:
        return await self.send(data.student_email, render_clearance_completed_email(data))

    async def send_new_document_notification(self, to_email: str, data: NewDocumentNotificationData) -> bool:
        return await self.send(to_email, render_new_document_notification(data))

    async def send_bulk_import_summary(self, to_email: str, data: BulkImportSummaryData) -> bool:
        return await self.send(to_email, render_bulk_import_summary(data))
