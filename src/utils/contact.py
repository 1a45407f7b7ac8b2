"""Contact form validation and email relay."""

import asyncio
import logging
import re
import smtplib
from datetime import datetime
from email.message import EmailMessage
from typing import Optional, Mapping, Any
from pydantic import BaseModel
from tenacity import Retrying, stop_after_attempt, wait_exponential, retry_if_exception_type

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

SUCCESS_MESSAGE = "Thank you for your message! We'll get back to you within 24 hours."
DEMO_MESSAGE = f"{SUCCESS_MESSAGE} (Demo mode - email not actually sent)"
DELIVERY_ISSUE_MESSAGE = (
    f"{SUCCESS_MESSAGE} (Note: There was an issue with our email system, "
    "but your message was received)"
)

# Connection-level failures worth another try; auth or recipient errors are not
TRANSIENT_SMTP_ERRORS = (
    smtplib.SMTPServerDisconnected,
    smtplib.SMTPConnectError,
    ConnectionError,
    TimeoutError,
)


class ContactSubmission(BaseModel):
    """A validated contact form submission."""
    name: str
    email: str
    message: str


class ContactOutcome(BaseModel):
    """What the user is told, plus what actually happened.

    Attributes:
        success: Always True once validation passed
        message: User-facing confirmation text
        delivered: Whether both emails were sent
        demo: Whether no transport was configured
    """
    success: bool = True
    message: str
    delivered: bool = False
    demo: bool = False


def validate_contact(data: Mapping[str, Any]) -> Optional[str]:
    """Validate a raw contact form payload.

    Returns:
        An error message for the first failed rule, or None if valid
    """
    name = data.get("name")
    email = data.get("email")
    message = data.get("message")

    if not name or not email or not message:
        return "All fields are required"
    if not all(isinstance(v, str) for v in (name, email, message)):
        return "All fields are required"

    if len(name) < 2 or len(name) > 100:
        return "Name must be between 2 and 100 characters"

    if len(message) < 10 or len(message) > 1000:
        return "Message must be between 10 and 1000 characters"

    if not EMAIL_PATTERN.match(email):
        return "Please enter a valid email address"

    return None


class EmailTransportConfig(BaseModel):
    """SMTP connection details for one of the three supported transports."""
    service: str
    host: str
    port: int = 587
    use_ssl: bool = False
    username: Optional[str] = None
    password: Optional[str] = None
    sender: str
    sender_name: str = "MemeTee"
    admin_recipient: str
    timeout: int = 20

    @classmethod
    def from_settings(cls, settings) -> Optional["EmailTransportConfig"]:
        """Build the transport from settings.

        Returns:
            The transport config, or None if email is not configured
        """
        if not settings.email_configured():
            return None

        service = settings.email_service.lower()
        common = {
            "sender_name": settings.business_name,
            "timeout": settings.email_timeout,
        }

        if service == "gmail":
            sender = settings.from_email or settings.gmail_user
            return cls(
                service="gmail",
                host="smtp.gmail.com",
                port=587,
                username=settings.gmail_user,
                password=settings.gmail_app_password,
                sender=sender,
                admin_recipient=settings.admin_email or settings.gmail_user or settings.support_email,
                **common,
            )

        if service == "sendgrid":
            sender = settings.from_email or settings.support_email
            return cls(
                service="sendgrid",
                host="smtp.sendgrid.net",
                port=587,
                username="apikey",
                password=settings.sendgrid_api_key,
                sender=sender,
                admin_recipient=settings.admin_email or settings.support_email,
                **common,
            )

        if not settings.smtp_host:
            return None

        return cls(
            service="smtp",
            host=settings.smtp_host,
            port=settings.smtp_port,
            use_ssl=settings.smtp_secure,
            username=settings.smtp_user,
            password=settings.smtp_pass,
            sender=settings.from_email or settings.smtp_user or settings.support_email,
            admin_recipient=settings.admin_email or settings.support_email,
            **common,
        )


def send_email(config: EmailTransportConfig, to: str, subject: str, body: str) -> None:
    """Send one plain-text email over SMTP (blocking).

    Raises:
        smtplib.SMTPException: If delivery fails
    """
    msg = EmailMessage()
    msg["From"] = f'"{config.sender_name}" <{config.sender}>'
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content(body)

    smtp_class = smtplib.SMTP_SSL if config.use_ssl else smtplib.SMTP
    with smtp_class(config.host, config.port, timeout=config.timeout) as server:
        if not config.use_ssl:
            server.starttls()
        if config.username and config.password:
            server.login(config.username, config.password)
        server.send_message(msg)


class ContactNotifier:
    """Relays contact form submissions by email.

    Sends a confirmation to the customer and a notification to the admin.
    Delivery failures are logged for operator follow-up but the user still
    sees a success message, so they do not resubmit.

    Attributes:
        transport: SMTP transport, or None for demo mode
        max_attempts: Attempts per email on transient SMTP errors
    """

    def __init__(
        self,
        transport: Optional[EmailTransportConfig],
        max_attempts: int = 2,
        sender=send_email,
        retry_wait=None
    ):
        """Initialize the notifier.

        Args:
            transport: SMTP transport config, None when email is unconfigured
            max_attempts: Attempts per email on transient SMTP errors
            sender: Callable(config, to, subject, body) that delivers one email
            retry_wait: tenacity wait strategy between attempts
        """
        self.transport = transport
        self.max_attempts = max(1, max_attempts)
        self.sender = sender
        self.retry_wait = retry_wait or wait_exponential(multiplier=1, min=1, max=5)

    @classmethod
    def from_settings(cls, settings) -> "ContactNotifier":
        return cls(
            EmailTransportConfig.from_settings(settings),
            max_attempts=settings.email_max_attempts,
        )

    @property
    def is_configured(self) -> bool:
        return self.transport is not None

    def _send_with_retry(self, to: str, subject: str, body: str) -> None:
        for attempt in Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self.retry_wait,
            retry=retry_if_exception_type(TRANSIENT_SMTP_ERRORS),
            reraise=True
        ):
            with attempt:
                self.sender(self.transport, to, subject, body)

    def _deliver(self, submission: ContactSubmission, client_ip: str) -> None:
        business = self.transport.sender_name
        received = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

        self._send_with_retry(
            submission.email,
            f"Thanks for contacting {business}! We'll be in touch soon",
            f"Hi {submission.name},\n\n"
            f"Thanks for contacting {business}! We've received your message: \"{submission.message}\"\n\n"
            "We'll get back to you within 24 hours.\n\n"
            f"Best regards,\nThe {business} Team",
        )
        self._send_with_retry(
            self.transport.admin_recipient,
            f"New Contact Form Submission from {submission.name}",
            "New contact form submission:\n\n"
            f"Name: {submission.name}\n"
            f"Email: {submission.email}\n"
            f"Message: \"{submission.message}\"\n\n"
            f"Time: {received}\n"
            f"IP: {client_ip}",
        )

    async def submit(self, submission: ContactSubmission, client_ip: str = "unknown") -> ContactOutcome:
        """Relay a validated submission.

        Never raises on delivery failure.
        """
        if not self.is_configured:
            logger.info("Email not configured, reporting demo success")
            return ContactOutcome(message=DEMO_MESSAGE, demo=True)

        try:
            await asyncio.to_thread(self._deliver, submission, client_ip)
        except Exception as e:
            logger.error(
                f"Email delivery failed for contact from {submission.name} "
                f"<{submission.email}> ({client_ip}): {e}"
            )
            return ContactOutcome(message=DELIVERY_ISSUE_MESSAGE)

        logger.info(f"Contact form submission from {submission.name} ({submission.email}) processed successfully")
        return ContactOutcome(message=SUCCESS_MESSAGE, delivered=True)
