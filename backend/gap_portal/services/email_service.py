"""Notification emails sent after a concept paper submission.

Sends over SMTP when ``SMTP_HOST``, ``SMTP_USER`` and ``SMTP_PASSWORD`` are
set; otherwise the message is only logged, so local development works without
a mail server.
"""

import asyncio
import html
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from gap_portal.services.eligibility import EligibilityResult
from gap_portal.settings import SmtpSettings

logger = logging.getLogger(__name__)

SUCCESS_SUBJECT = "Concept Paper Submission Successful"
INELIGIBLE_SUBJECT = "Concept Paper Submission Status"


def success_email_html(name: Optional[str]) -> str:
    recipient = html.escape(name or "Applicant")
    return f"""\
<html>
  <body style="font-family: Arial, sans-serif; color: #333;">
    <h2>Concept Paper Received</h2>
    <p>Dear {recipient},</p>
    <p>Thank you for submitting your concept paper. Your organization meets
    the preliminary eligibility criteria and your submission has been
    forwarded for review.</p>
    <p>We will contact you about the next steps of the application
    process.</p>
    <p>Kind regards,<br>The Grants Team</p>
  </body>
</html>
"""


def ineligible_email_html(name: Optional[str], reason: Optional[str]) -> str:
    recipient = html.escape(name or "Applicant")
    detail = html.escape(reason or "The eligibility criteria were not met.")
    return f"""\
<html>
  <body style="font-family: Arial, sans-serif; color: #333;">
    <h2>Concept Paper Submission Status</h2>
    <p>Dear {recipient},</p>
    <p>Thank you for submitting your concept paper. After a preliminary
    review, your organization does not currently meet the eligibility
    criteria for this grant.</p>
    <p><strong>Reason:</strong> {detail}</p>
    <p>Your submission has been recorded. Please contact us if you believe
    this assessment is incorrect.</p>
    <p>Kind regards,<br>The Grants Team</p>
  </body>
</html>
"""


class EmailService:
    def __init__(self, settings: Optional[SmtpSettings] = None) -> None:
        self.settings = settings or SmtpSettings.from_env()

    def _send_smtp(self, to_email: str, subject: str, html_content: str) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.settings.from_email
        msg["To"] = to_email
        msg.attach(MIMEText(html_content, "html"))

        with smtplib.SMTP(self.settings.host, self.settings.port) as server:
            server.starttls()
            server.login(self.settings.user, self.settings.password)
            server.sendmail(self.settings.from_email, [to_email], msg.as_string())

    async def send_email(self, to_email: str, subject: str, html_content: str) -> bool:
        """
        Send one HTML email.

        Args:
            to_email: Recipient address
            subject: Subject line
            html_content: HTML body

        Returns:
            True if sent (or logged when SMTP is not configured), False on
            delivery failure
        """
        if not to_email:
            logger.warning("Email not sent, no recipient for %r", subject)
            return False

        if not self.settings.configured:
            logger.info(
                "[EMAIL STUB] Would send email to %s\n"
                "  Subject: %s\n"
                "  HTML length: %d chars\n"
                "  (Configure SMTP_HOST, SMTP_USER, SMTP_PASSWORD to enable sending)",
                to_email,
                subject,
                len(html_content),
            )
            return True

        try:
            await asyncio.to_thread(self._send_smtp, to_email, subject, html_content)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Failed to send email to %s: %s", to_email, e)
            return False

        logger.info("Email sent to %s: %s", to_email, subject)
        return True

    async def send_eligibility_notification(
        self,
        to_email: str,
        contact_name: Optional[str],
        eligibility: EligibilityResult,
    ) -> bool:
        """Send the success or the ineligible template, never both."""
        if eligibility.eligible:
            return await self.send_email(
                to_email, SUCCESS_SUBJECT, success_email_html(contact_name)
            )
        return await self.send_email(
            to_email,
            INELIGIBLE_SUBJECT,
            ineligible_email_html(contact_name, eligibility.reason),
        )
