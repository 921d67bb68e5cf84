# backend/safe_report/mailer.py
from __future__ import annotations

import asyncio
import datetime as dt
import html
import smtplib
import ssl
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate, make_msgid, parseaddr
from typing import List, Optional, Union

import resend

from .config import Settings, settings as default_settings
from .errors import ConfigurationError, DeliveryFailure
from .leads import LeadRecorder
from .log import get_logger
from .merger import GeneratedDocument
from .models import DeliveryReceipt, SummaryFields, recipient_list

LOG = get_logger("mailer")

SUBJECT = "Your EquityList SAFE Calculator Results"
SENDER_NAME = "EquityList SAFE Calculator"


def _na(value: Optional[str]) -> str:
    return html.escape(value) if value else "N/A"


def build_report_email(summary: Optional[SummaryFields] = None) -> str:
    """HTML body for the report email; summary values fall back to N/A."""
    s = summary or SummaryFields()
    name = html.escape(s.first_name) if s.first_name else "User"
    return f"""
    <div style="font-family: sans-serif; max-width: 600px; line-height: 1.6; color: #334155;">
        <h2>Hi {name},</h2>
        <p>Thank you for using our SAFE Calculator. Please find your detailed report attached.</p>

        <div style="background: #f1f5f9; padding: 20px; border-radius: 8px; margin: 20px 0;">
            <p style="margin: 5px 0;"><strong>Founder Ownership:</strong> {_na(s.founder_ownership)}</p>
            <p style="margin: 5px 0;"><strong>Post-Money Valuation:</strong> {_na(s.post_money)}</p>
            <p style="margin: 5px 0;"><strong>Total Raised:</strong> {_na(s.total_raised)}</p>
        </div>

        <p>If you have any questions about these results, feel free to reply to this email.</p>
        <p>Best regards,<br>The EquityList Team</p>
    </div>
    """


# -----------------------------------------------------------------------------
# Provider channels
# -----------------------------------------------------------------------------
class SmtpChannel:
    """SMTP with implicit TLS (port 465) or STARTTLS."""

    name = "smtp"

    def __init__(self, host: str, port: int, user: str, password: str,
                 implicit_tls: bool = True, timeout: float = 30, sender: Optional[str] = None):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.implicit_tls = implicit_tls
        self.timeout = timeout
        self.sender = sender or formataddr((SENDER_NAME, user))

    @classmethod
    def from_settings(cls, s: Settings) -> "SmtpChannel":
        if not s.smtp_user or not s.smtp_pass:
            raise ConfigurationError("Missing SMTP credentials.")
        return cls(
            host=s.smtp_host,
            port=s.smtp_port,
            user=s.smtp_user,
            password=s.smtp_pass,
            implicit_tls=s.smtp_uses_implicit_tls,
            timeout=s.smtp_timeout,
            sender=s.email_from,
        )

    def _connect(self) -> smtplib.SMTP:
        context = ssl.create_default_context()
        if self.implicit_tls:
            server = smtplib.SMTP_SSL(self.host, self.port, context=context, timeout=self.timeout)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        try:
            if not self.implicit_tls:
                server.starttls(context=context)
            server.login(self.user, self.password)
        except BaseException:
            server.close()
            raise
        return server

    def verify(self) -> None:
        try:
            server = self._connect()
            server.noop()
            server.quit()
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryFailure(f"SMTP verification failed: {e}") from e

    def send(self, recipients: List[str], subject: str, html_content: str,
             attachment_name: str, attachment: bytes) -> str:
        msg = MIMEMultipart("mixed")
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = ", ".join(recipients)
        msg["Date"] = formatdate(localtime=True)
        message_id = make_msgid(domain=parseaddr(self.sender)[1].split("@")[-1] or None)
        msg["Message-ID"] = message_id
        msg.attach(MIMEText(html_content, "html"))

        part = MIMEApplication(attachment, _subtype="pdf")
        part.add_header("Content-Disposition", "attachment", filename=attachment_name)
        msg.attach(part)

        LOG.info(f"[SMTP] Attempting delivery to {', '.join(recipients)} via {self.host}:{self.port}...")
        try:
            server = self._connect()
            try:
                server.sendmail(parseaddr(self.sender)[1], recipients, msg.as_string())
            finally:
                server.quit()
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryFailure(f"SMTP send failed: {e}") from e
        return message_id


class ResendChannel:
    """Resend HTTPS API; the sender must be on a verified domain."""

    name = "resend"

    def __init__(self, api_key: str, sender: str):
        self.api_key = api_key
        self.sender = sender

    @classmethod
    def from_settings(cls, s: Settings) -> "ResendChannel":
        if not s.resend_api_key:
            raise ConfigurationError("Missing RESEND_API_KEY.")
        if not s.email_from:
            raise ConfigurationError("EMAIL_FROM must use a Resend-verified domain.")
        return cls(s.resend_api_key, s.email_from)

    def verify(self) -> None:
        resend.api_key = self.api_key
        try:
            resend.Domains.list()
        except Exception as e:
            raise DeliveryFailure(f"Resend verification failed: {e}") from e

    def send(self, recipients: List[str], subject: str, html_content: str,
             attachment_name: str, attachment: bytes) -> str:
        email_data = {
            "from": self.sender,
            "to": recipients,
            "subject": subject,
            "html": html_content,
            "attachments": [{"filename": attachment_name, "content": list(attachment)}],
        }

        LOG.info(f"[Resend] Attempting delivery to {', '.join(recipients)}...")
        resend.api_key = self.api_key
        try:
            response = resend.Emails.send(email_data)
        except Exception as e:
            raise DeliveryFailure(f"Resend send failed: {e}") from e
        message_id = (response or {}).get("id", "")
        if not message_id:
            raise DeliveryFailure(f"Resend returned no message id: {response}")
        return message_id


# -----------------------------------------------------------------------------
# Dispatcher
# -----------------------------------------------------------------------------
class DeliveryDispatcher:
    """Records the lead, then emails the report through the configured channel."""

    def __init__(self, settings: Optional[Settings] = None, recorder: Optional[LeadRecorder] = None):
        self.settings = settings or default_settings
        self.recorder = recorder or LeadRecorder(self.settings.leads_file)

    def resolve_channel(self) -> Union[SmtpChannel, ResendChannel]:
        provider = self.settings.email_provider
        if provider == "auto":
            provider = "resend" if self.settings.resend_api_key else "smtp"
        if provider == "smtp":
            return SmtpChannel.from_settings(self.settings)
        if provider == "resend":
            return ResendChannel.from_settings(self.settings)
        raise ConfigurationError(f"Unknown EMAIL_PROVIDER: {provider}")

    async def send(self, recipients: Union[str, List[str]], document: GeneratedDocument,
                   summary: Optional[SummaryFields] = None) -> DeliveryReceipt:
        to_list = recipient_list(recipients)
        if not to_list:
            raise DeliveryFailure("No recipient supplied.")
        primary = to_list[0]

        # lead is kept even when delivery later fails
        await asyncio.to_thread(self.recorder.record, primary, summary)

        channel = self.resolve_channel()
        body = build_report_email(summary)
        attachment_name = document.filename

        try:
            if self.settings.email_verify_transport:
                await asyncio.to_thread(channel.verify)
                LOG.info(f"[Mailer] {channel.name} transport verified")
            message_id = await asyncio.to_thread(
                channel.send, to_list, SUBJECT, body, attachment_name, document.content
            )
        except DeliveryFailure as e:
            LOG.error(f"[Mailer] Delivery to {primary} failed: {e}")
            raise

        LOG.info(f"[Mailer] Delivered {len(document)} byte report to {', '.join(to_list)} "
                 f"via {channel.name}. Message ID: {message_id or 'n/a'}")
        return DeliveryReceipt(
            provider=channel.name,
            message_id=message_id,
            recipients=to_list,
            attachment_name=attachment_name,
            sent_at=dt.datetime.now(dt.timezone.utc).isoformat(),
        )
