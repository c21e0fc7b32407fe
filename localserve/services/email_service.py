"""Service for sending emails."""

import html
import logging
import os
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from ..domain.models import Customer, Subscription

logger = logging.getLogger(__name__)


class EmailService:
    """Service for sending emails via SMTP."""

    def __init__(
        self,
        smtp_host: Optional[str] = None,
        smtp_port: Optional[int] = None,
        smtp_username: Optional[str] = None,
        smtp_password: Optional[str] = None,
        from_email: Optional[str] = None,
        from_name: str = "LocalServe",
    ):
        self.smtp_host = smtp_host or os.getenv("SMTP_HOST", "")
        self.smtp_port = smtp_port or int(os.getenv("SMTP_PORT", "587"))
        self.smtp_username = smtp_username or os.getenv("SMTP_USERNAME", "")
        self.smtp_password = smtp_password or os.getenv("SMTP_PASSWORD", "")
        self.from_email = from_email or os.getenv("SMTP_FROM_EMAIL", "")
        self.from_name = from_name
        self.enabled = bool(self.smtp_host and self.smtp_username and self.from_email)

    def send_cancellation_notice(self, customer: Customer, subscription: Subscription) -> bool:
        """
        Tell a customer their subscription was cancelled.

        Args:
            customer: Owning customer profile
            subscription: The cancelled subscription

        Returns:
            True if sent (or logged in development), False otherwise
        """
        plan_name = subscription.plan.name or "your plan"
        cancellation = subscription.cancellation
        reason = cancellation.reason if cancellation else ""
        refund_line = ""
        if cancellation and cancellation.refund_status == "pending":
            refund_line = f"A refund of {cancellation.refund_amount:.2f} {subscription.billing.currency} is pending."

        subject = "Subscription cancelled - LocalServe"
        message = (
            f"Your subscription to {plan_name} (#{subscription.id}) has been cancelled. "
            f"Reason: {reason}. {refund_line}"
        ).strip()
        return self.send_notification(customer.email, customer.full_name, subject, message)

    def send_notification(self, to_email: str, full_name: str, subject: str, message: str) -> bool:
        if not self.enabled:
            logger.info("[EMAIL] %s -> %s: %s", subject, to_email, message)
            return True

        safe_name = html.escape(full_name)
        safe_message = html.escape(message)
        html_body = f"""
        <html>
            <body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
                <h2 style="color: #1e293b;">{html.escape(subject)}</h2>
                <p style="color: #475569;">Hello {safe_name},</p>
                <p style="color: #475569; line-height: 1.6;">{safe_message}</p>
                <div style="border-top: 1px solid #e2e8f0; padding-top: 20px;">
                    <p style="color: #94a3b8; font-size: 12px;">
                        This is an automated notification from LocalServe.
                        To manage your notification preferences, please visit your account settings.
                    </p>
                </div>
            </body>
        </html>
        """

        text_body = f"""
        Hello {full_name},

        {message}

        This is an automated notification from LocalServe.
        """

        return self._send_email(to_email, subject, html_body, text_body)

    def _send_email(self, to_email: str, subject: str, html_body: str, text_body: str) -> bool:
        """
        Send an email via SMTP.

        Returns:
            True if sent successfully, False otherwise
        """
        try:
            msg = MIMEMultipart("alternative")
            msg["Subject"] = subject
            msg["From"] = f"{self.from_name} <{self.from_email}>"
            msg["To"] = to_email

            msg.attach(MIMEText(text_body, "plain", "utf-8"))
            msg.attach(MIMEText(html_body, "html", "utf-8"))

            with smtplib.SMTP(self.smtp_host, self.smtp_port) as server:
                server.starttls()
                server.login(self.smtp_username, self.smtp_password)
                server.send_message(msg)

            return True

        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("Failed to send email to %s: %s", to_email, exc)
            return False
