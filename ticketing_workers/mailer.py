"""
Email delivery for ticketing workers.
"""

import asyncio
import logging
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional, Dict, Any

from ticketing.core.config import config

logger = logging.getLogger(__name__)


class EmailService:
    """Sends email over SMTP using the configured account."""

    def __init__(self, email_config: Optional[Dict[str, Any]] = None):
        self.config = email_config

    def _load_config(self):
        """Load SMTP settings on first use."""
        if self.config is None:
            self.config = asyncio.run(config.get_email_config())

    def _get_smtp_connection(self) -> smtplib.SMTP:
        """Get SMTP connection."""
        if self.config["smtp_use_tls"]:
            server = smtplib.SMTP(self.config["smtp_host"], self.config["smtp_port"])
            server.starttls()
        else:
            server = smtplib.SMTP_SSL(self.config["smtp_host"], self.config["smtp_port"])

        if self.config["smtp_username"] and self.config["smtp_password"]:
            server.login(self.config["smtp_username"], self.config["smtp_password"])

        return server

    def build_message(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None
    ) -> MIMEMultipart:
        msg = MIMEMultipart('alternative')
        msg['From'] = f"{self.config['from_name']} <{self.config['from_email']}>"
        msg['To'] = to_email
        msg['Subject'] = subject

        if text_content:
            msg.attach(MIMEText(text_content, 'plain'))
        msg.attach(MIMEText(html_content, 'html'))
        return msg

    def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None
    ) -> bool:
        """
        Send an email.

        Args:
            to_email: Recipient email address
            subject: Email subject
            html_content: HTML body
            text_content: Plain text body (optional)

        Returns:
            True if email sent successfully, False otherwise
        """
        try:
            self._load_config()
            msg = self.build_message(to_email, subject, html_content, text_content)

            with self._get_smtp_connection() as server:
                server.send_message(msg)

            logger.info(f"Email sent successfully to {to_email}")
            return True

        except Exception as e:
            logger.error(f"Failed to send email to {to_email}: {e}")
            return False


# Global email service instance
email_service = EmailService()
