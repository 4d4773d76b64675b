"""Email providers: SMTP and Amazon SES."""
import asyncio
import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid
from typing import Optional, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..config import Settings
from ..exceptions import DeliveryError

logger = logging.getLogger(__name__)

# SES errors that will fail the same way on every attempt
_SES_PERMANENT_ERRORS = (
    "MessageRejected",
    "MailFromDomainNotVerifiedException",
    "AccountSendingPausedException",
)


class EmailProvider(Protocol):
    async def send(self, to: str, subject: str, html: str, text: str) -> str:
        """Send one email, returning the provider's message id."""


@dataclass
class EmailConfig:
    """SMTP configuration for sending emails."""
    host: str
    port: int = 587
    username: str = ""
    password: str = ""
    use_tls: bool = True
    from_address: str = ""
    timeout: float = 30


class SmtpEmailProvider:
    """Sends multipart (plain text + HTML) email over SMTP."""

    def __init__(self, config: EmailConfig):
        self.config = config

    def _build_message(self, to: str, subject: str, html: str, text: str) -> MIMEMultipart:
        from_addr = self.config.from_address or self.config.username
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = from_addr
        msg["To"] = to
        msg["Message-ID"] = make_msgid()
        # Last part is the preferred one
        msg.attach(MIMEText(text, "plain", "utf-8"))
        msg.attach(MIMEText(html, "html", "utf-8"))
        return msg

    def _send_sync(self, to: str, subject: str, html: str, text: str) -> str:
        config = self.config
        if not config.host:
            raise DeliveryError("SMTP host is not configured", code="NotConfigured", retryable=False)

        msg = self._build_message(to, subject, html, text)
        from_addr = msg["From"]

        try:
            with smtplib.SMTP(config.host, config.port, timeout=config.timeout) as server:
                if config.use_tls:
                    server.starttls(context=ssl.create_default_context())
                if config.username and config.password:
                    server.login(config.username, config.password)
                server.sendmail(from_addr, [to], msg.as_string())
        except smtplib.SMTPAuthenticationError as e:
            raise DeliveryError(
                f"SMTP authentication failed for user '{config.username}': {e}",
                code="SMTPAuthenticationError",
                retryable=False,
            ) from e
        except smtplib.SMTPRecipientsRefused as e:
            raise DeliveryError(
                f"Recipients refused by server: {e}", code="SMTPRecipientsRefused", retryable=False
            ) from e
        except smtplib.SMTPSenderRefused as e:
            raise DeliveryError(
                f"Sender address refused: {e}", code="SMTPSenderRefused", retryable=False
            ) from e
        except smtplib.SMTPException as e:
            raise DeliveryError(f"SMTP error: {type(e).__name__}: {e}", code=type(e).__name__) from e
        except OSError as e:
            # Connection refused, DNS failures and socket timeouts
            raise DeliveryError(
                f"Failed to connect to SMTP server {config.host}:{config.port}: {e}",
                code="ConnectionError",
            ) from e

        return msg["Message-ID"]

    async def send(self, to: str, subject: str, html: str, text: str) -> str:
        message_id = await asyncio.to_thread(self._send_sync, to, subject, html, text)
        logger.info(f"Email sent to {to}: {subject}")
        return message_id


class SesEmailProvider:
    """Sends email through Amazon SES."""

    def __init__(self, region: str, from_email: str, from_name: str = "", client=None):
        self.client = client or boto3.client("ses", region_name=region)
        self.from_email = from_email
        self.from_name = from_name

    @property
    def source(self) -> str:
        if self.from_name:
            return f"{self.from_name} <{self.from_email}>"
        return self.from_email

    def _send_sync(self, to: str, subject: str, html: str, text: str) -> str:
        if not self.from_email:
            raise DeliveryError("SES sender address is not configured", code="NotConfigured", retryable=False)

        try:
            response = self.client.send_email(
                Source=self.source,
                Destination={"ToAddresses": [to]},
                Message={
                    "Subject": {"Data": subject, "Charset": "UTF-8"},
                    "Body": {
                        "Html": {"Data": html, "Charset": "UTF-8"},
                        "Text": {"Data": text, "Charset": "UTF-8"},
                    },
                },
            )
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            raise DeliveryError(
                f"SES send failed ({error_code}): {e}",
                code=error_code,
                retryable=error_code not in _SES_PERMANENT_ERRORS,
            ) from e
        except BotoCoreError as e:
            raise DeliveryError(f"SES request failed: {e}") from e

        return response["MessageId"]

    async def send(self, to: str, subject: str, html: str, text: str) -> str:
        message_id = await asyncio.to_thread(self._send_sync, to, subject, html, text)
        logger.info(f"Email sent to {to} via SES (id={message_id}): {subject}")
        return message_id


def build_email_provider(settings: Settings, timeout: Optional[float] = None) -> EmailProvider:
    """Create the email provider selected by ``EMAIL_BACKEND``."""
    if settings.email_backend == "ses":
        return SesEmailProvider(
            region=settings.aws_region,
            from_email=settings.ses_from_email,
            from_name=settings.ses_from_name,
        )
    return SmtpEmailProvider(
        EmailConfig(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            from_address=settings.email_from,
            timeout=timeout or settings.provider_timeout_seconds,
        )
    )
