"""
Notification Gateway
--------------------
One consolidated message per user per batch run.

  ConsoleNotifier  - logs the message (development default)
  SmtpNotifier     - email via SMTP
  WebhookNotifier  - JSON POST to a chat webhook

send_batch_report() returns True on delivery and False on a delivery error.
"""

import asyncio
import logging
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage
from typing import List, Optional

import requests

from config.settings import Settings
from models.schemas import Report, User

logger = logging.getLogger(__name__)


def batch_subject(reports: List[Report]) -> str:
    if len(reports) == 1:
        return f"Your Weekly Competitor Watch Report: {reports[0].business_name}"
    return f"Your Weekly Competitor Watch Reports ({len(reports)} businesses)"


def batch_body(user: User, reports: List[Report], dashboard_url: str) -> str:
    greeting = f"Hi {user.first_name}," if user.first_name else "Hi,"
    lines = [greeting, "", "Your weekly competitor reports are ready:", ""]
    for report in reports:
        lines.append(f"- {report.business_name}: {len(report.competitors)} competitors")
        if report.executive_summary:
            summary = report.executive_summary
            lines.append(f"  {summary[:200]}{'...' if len(summary) > 200 else ''}")
    lines += ["", f"View the full reports: {dashboard_url}"]
    return "\n".join(lines)


class NotificationGateway(ABC):

    def __init__(self, dashboard_url: str = "http://localhost:5173/dashboard"):
        self.dashboard_url = dashboard_url

    @abstractmethod
    async def send_batch_report(self, user: User, reports: List[Report]) -> bool:
        raise NotImplementedError


class ConsoleNotifier(NotificationGateway):

    async def send_batch_report(self, user: User, reports: List[Report]) -> bool:
        logger.info(
            f"📧 To: {user.email} | Subject: {batch_subject(reports)}\n"
            f"{batch_body(user, reports, self.dashboard_url)}"
        )
        return True


class SmtpNotifier(NotificationGateway):

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        sender: str = "noreply@competitorwatch.local",
        dashboard_url: str = "http://localhost:5173/dashboard",
    ):
        super().__init__(dashboard_url)
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender = sender

    def _send(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=30) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password or "")
            smtp.send_message(message)

    async def send_batch_report(self, user: User, reports: List[Report]) -> bool:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = user.email
        message["Subject"] = batch_subject(reports)
        message.set_content(batch_body(user, reports, self.dashboard_url))

        try:
            await asyncio.to_thread(self._send, message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"❌ Email to {user.email} failed: {e}")
            return False
        logger.info(f"📧 Batch email sent to {user.email} ({len(reports)} reports)")
        return True


class WebhookNotifier(NotificationGateway):

    def __init__(self, webhook_url: str, timeout: int = 20, dashboard_url: str = "http://localhost:5173/dashboard"):
        super().__init__(dashboard_url)
        self.webhook_url = webhook_url
        self.timeout = timeout

    def _post(self, text: str) -> None:
        resp = requests.post(self.webhook_url, json={"text": text}, timeout=self.timeout)
        if resp.status_code >= 300:
            raise RuntimeError(f"Webhook failed: {resp.status_code} {resp.text}")

    async def send_batch_report(self, user: User, reports: List[Report]) -> bool:
        text = f"*{batch_subject(reports)}* ({user.email})\n{batch_body(user, reports, self.dashboard_url)}"
        try:
            await asyncio.to_thread(self._post, text)
        except (requests.RequestException, RuntimeError) as e:
            logger.error(f"❌ Webhook notification for {user.email} failed: {e}")
            return False
        return True


def create_notifier(config: Settings) -> NotificationGateway:
    if config.SMTP_HOST:
        return SmtpNotifier(
            host=config.SMTP_HOST,
            port=config.SMTP_PORT,
            username=config.SMTP_USER,
            password=config.SMTP_PASSWORD,
            use_tls=config.SMTP_USE_TLS,
            sender=config.SMTP_FROM,
            dashboard_url=config.DASHBOARD_URL,
        )
    if config.NOTIFY_WEBHOOK_URL:
        return WebhookNotifier(
            config.NOTIFY_WEBHOOK_URL, timeout=config.NOTIFY_TIMEOUT, dashboard_url=config.DASHBOARD_URL
        )
    return ConsoleNotifier(config.DASHBOARD_URL)
