"""
FieldTrack - Outbound Mail

Thin smtplib wrapper used by the password recovery flow and the
background jobs. With SMTP_HOST unset, messages are logged and dropped,
which keeps development and test runs offline.
"""

import logging
import smtplib
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Iterable, List, Optional, Tuple

from fieldtrack.config import Settings


logger = logging.getLogger(__name__)

XLSX_MIME_SUBTYPE = "vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class MailDeliveryError(Exception):
    """Raised when the relay rejects or cannot be reached."""


class Mailer:
    def __init__(self, settings: Settings):
        self.host = settings.SMTP_HOST
        self.port = settings.SMTP_PORT
        self.username = settings.SMTP_USER
        self.password = settings.SMTP_PASSWORD
        self.use_tls = settings.SMTP_STARTTLS
        self.sender = settings.MAIL_FROM
        self.frontend_url = settings.FRONTEND_URL.rstrip("/")
        self.reset_expire_minutes = settings.PASSWORD_RESET_EXPIRE_MINUTES

    @property
    def enabled(self) -> bool:
        return bool(self.host)

    def send(
        self,
        recipients: Iterable[str],
        subject: str,
        body_html: str,
        attachments: Optional[List[Tuple[str, bytes]]] = None,
    ) -> None:
        """
        Deliver one message to every recipient.

        Args:
            recipients: Destination addresses
            subject: Subject line
            body_html: HTML body
            attachments: (filename, content) pairs, sent as xlsx

        Raises:
            MailDeliveryError: SMTP failure
        """
        recipients = [r for r in recipients if r]
        if not recipients:
            logger.warning("Mail '%s' has no recipients; skipped", subject)
            return

        msg = MIMEMultipart("mixed")
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = ", ".join(recipients)
        msg.attach(MIMEText(body_html, "html", "utf-8"))

        for filename, content in attachments or []:
            part = MIMEApplication(content, _subtype=XLSX_MIME_SUBTYPE)
            part.add_header("Content-Disposition", "attachment", filename=filename)
            msg.attach(part)

        if not self.enabled:
            logger.info("SMTP disabled; would send '%s' to %d recipient(s)", subject, len(recipients))
            return

        try:
            with smtplib.SMTP(self.host, self.port, timeout=30) as server:
                if self.use_tls:
                    server.starttls()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise MailDeliveryError(str(e)) from e

        logger.info("Mail '%s' sent to %d recipient(s)", subject, len(recipients))

    def send_password_reset(self, to_email: str, name: str, token: str) -> None:
        reset_url = f"{self.frontend_url}/reset-password?token={token}"
        body = f"""
        <h2>Password reset</h2>
        <p>Hello {name},</p>
        <p>Use the link below to choose a new password:</p>
        <p><a href="{reset_url}">Reset password</a></p>
        <p>This link expires in {self.reset_expire_minutes} minutes.</p>
        <p>If you did not request this, ignore this email.</p>
        """
        self.send([to_email], "FieldTrack password reset", body)

    def send_report(self, recipients: Iterable[str], month: int, year: int, filename: str, content: bytes) -> None:
        body = f"""
        <h2>Monthly movement report</h2>
        <p>Attached is the movement report for {month:02d}/{year}.</p>
        """
        self.send(recipients, f"FieldTrack movement report {month:02d}/{year}", body, [(filename, content)])

    def send_inactivity_notice(self, to_email: str, name: str, months: int) -> None:
        body = f"""
        <h2>No recent activity</h2>
        <p>Hello {name},</p>
        <p>We have not recorded any movement for your account in the last {months} months.</p>
        <p>If you are still in the field, remember to log your movements in the app.</p>
        """
        self.send([to_email], "FieldTrack: no recent activity", body)
