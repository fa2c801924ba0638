"""
Email service for invoice, reminder and payment emails.

WHAT: A unified interface for dispatching billing emails through an email
provider (Resend in production, a mock provider in development and tests).

WHY: Email is how invoices reach clients:
1. Sending an invoice - a draft becomes "sent" only after a successful dispatch
2. Payment reminders - gentle, firm and final escalation
3. Payment confirmations - best effort, after the payment has committed

HOW: Uses the Resend API over httpx. The service:
- Renders HTML/text bodies through EmailTemplateService (Jinja2)
- Returns EmailDispatchResult(email_id, status) on success
- Raises EmailServiceError on any failure; it never retries
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, List

import httpx

from chaching.core.config import settings
from chaching.core.exceptions import EmailServiceError
from chaching.models.invoice import Invoice, ReminderType
from chaching.models.payment import Payment
from chaching.services.email_template_service import EmailTemplateService, get_email_template_service

logger = logging.getLogger(__name__)


RESEND_API_URL = "https://api.resend.com/emails"

# Newest messages kept by MockEmailProvider
MOCK_OUTBOX_LIMIT = 100


# ============================================================================
# Email Types
# ============================================================================


class EmailType(str, Enum):
    """Kinds of billing email, used for logging and tracking."""

    INVOICE = "invoice"
    REMINDER = "reminder"
    PAYMENT_CONFIRMATION = "payment_confirmation"


@dataclass
class EmailMessage:
    """
    Represents an email to be sent.

    WHY: Structured email data ensures all required fields are present and
    gives the mock provider something to assert against in tests.
    """

    to_email: str
    subject: str
    html_content: str
    text_content: Optional[str] = None
    from_email: Optional[str] = None
    reply_to: Optional[str] = None
    email_type: EmailType = EmailType.INVOICE
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class EmailResult:
    """Provider-level outcome of a send."""

    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    provider: Optional[str] = None


@dataclass
class EmailDispatchResult:
    """
    Outcome of a successful dispatch as seen by the billing engine.

    Attributes:
        email_id: Provider message id
        status: "sent"
        subject: Subject line that went out
    """

    email_id: Optional[str]
    status: str = "sent"
    subject: Optional[str] = None


# ============================================================================
# Email Provider Interface
# ============================================================================


class EmailProvider(ABC):
    """
    Abstract base class for email providers.

    WHY: Provider abstraction allows switching providers and testing with a
    mock provider.
    """

    @abstractmethod
    async def send(self, message: EmailMessage) -> EmailResult:
        """
        Send an email message.

        Args:
            message: The email message to send

        Returns:
            EmailResult with success status and provider details
        """
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        """Check if API keys/credentials are present."""
        pass


class ResendProvider(EmailProvider):
    """Resend email provider implementation."""

    def __init__(self, api_key: Optional[str] = None, timeout: float = 30.0):
        """
        Initialize Resend provider.

        Args:
            api_key: Resend API key (defaults to settings)
            timeout: HTTP request timeout in seconds
        """
        self._api_key = api_key or settings.RESEND_API_KEY
        self._default_from = settings.EMAIL_FROM or f"{settings.BUSINESS_NAME} <{settings.BUSINESS_EMAIL}>"
        self.timeout = timeout

    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def send(self, message: EmailMessage) -> EmailResult:
        """
        Send email via Resend API.

        HOW: Uses httpx for async HTTP requests to Resend API.

        Args:
            message: Email message to send

        Returns:
            EmailResult with send status
        """
        if not self.is_configured():
            return EmailResult(
                success=False,
                error="Resend API key not configured",
                provider="resend",
            )

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    RESEND_API_URL,
                    headers={
                        "Authorization": f"Bearer {self._api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "from": message.from_email or self._default_from,
                        "to": [message.to_email],
                        "subject": message.subject,
                        "html": message.html_content,
                        "text": message.text_content,
                        "reply_to": message.reply_to,
                    },
                )
        except httpx.HTTPError as e:
            logger.error(f"Resend send error: {e}")
            return EmailResult(
                success=False,
                error=str(e),
                provider="resend",
            )

        if response.status_code in (200, 201):
            data = response.json()
            return EmailResult(
                success=True,
                message_id=data.get("id"),
                provider="resend",
            )

        return EmailResult(
            success=False,
            error=f"Resend API error: {response.status_code} - {response.text}",
            provider="resend",
        )


class MockEmailProvider(EmailProvider):
    """
    Mock email provider for testing and development.

    Logs emails instead of sending them. Only the newest MOCK_OUTBOX_LIMIT
    messages are kept, since this is also the fallback provider when no
    API key is configured.
    """

    sent_emails: List[EmailMessage] = []
    """Class-level list to track sent emails for testing."""

    def is_configured(self) -> bool:
        return True

    async def send(self, message: EmailMessage) -> EmailResult:
        logger.info(
            f"[MOCK EMAIL] To: {message.to_email}, "
            f"Subject: {message.subject}, "
            f"Type: {message.email_type.value}"
        )

        outbox = MockEmailProvider.sent_emails
        outbox.append(message)
        del outbox[:-MOCK_OUTBOX_LIMIT]

        return EmailResult(
            success=True,
            message_id=f"mock-{datetime.utcnow().timestamp()}",
            provider="mock",
        )

    @classmethod
    def clear_sent_emails(cls):
        """Clear sent emails list (for test cleanup)."""
        cls.sent_emails = []


# ============================================================================
# Email Service
# ============================================================================


class EmailService:
    """
    High-level email service for billing emails.

    WHAT: Composes and dispatches invoice, reminder and payment
    confirmation emails.

    WHY: The lifecycle manager and payment engine only need "did it go out,
    and under which id"; provider details stay here.
    """

    def __init__(
        self,
        provider: Optional[EmailProvider] = None,
        template_service: Optional[EmailTemplateService] = None,
    ):
        """
        Initialize email service.

        Args:
            provider: Email provider to use (auto-detected if not provided)
            template_service: Template renderer (shared instance if not provided)
        """
        self._templates = template_service or get_email_template_service()
        if provider:
            self._provider = provider
        elif settings.email_enabled:
            self._provider = ResendProvider()
        else:
            logger.warning("No email provider configured, using mock provider")
            self._provider = MockEmailProvider()

    async def send_email(self, message: EmailMessage) -> EmailDispatchResult:
        """
        Send an email message.

        Args:
            message: Email message to send

        Returns:
            EmailDispatchResult

        Raises:
            EmailServiceError: If the provider reports a failure
        """
        logger.info(
            f"Sending {message.email_type.value} email to {message.to_email}",
            extra={
                "email_type": message.email_type.value,
                "to": message.to_email,
            },
        )

        result = await self._provider.send(message)

        if not result.success:
            logger.error(
                f"Email send failed: {result.error}",
                extra={
                    "email_type": message.email_type.value,
                    "to": message.to_email,
                    "error": result.error,
                },
            )
            raise EmailServiceError(
                message="Failed to send email",
                email_type=message.email_type.value,
                provider=result.provider,
                error=result.error,
            )

        logger.info(
            f"Email sent successfully: {result.message_id}",
            extra={
                "message_id": result.message_id,
                "provider": result.provider,
            },
        )
        return EmailDispatchResult(email_id=result.message_id, status="sent", subject=message.subject)

    def _recipient(self, invoice: Invoice) -> str:
        if not invoice.client_email:
            raise EmailServiceError(
                message="Client has no email address",
                invoice_id=invoice.id,
            )
        return invoice.client_email

    async def send_invoice_email(self, invoice: Invoice, pdf_url: Optional[str] = None) -> EmailDispatchResult:
        """
        Send an invoice to its client.

        Args:
            invoice: Invoice to send
            pdf_url: Download link for the PDF

        Returns:
            EmailDispatchResult

        Raises:
            EmailServiceError: Missing recipient or provider failure
        """
        to_email = self._recipient(invoice)
        subject, html, text = self._templates.render_invoice_email(invoice, pdf_url)

        return await self.send_email(EmailMessage(
            to_email=to_email,
            subject=subject,
            html_content=html,
            text_content=text,
            email_type=EmailType.INVOICE,
            metadata={"invoice_id": invoice.id, "invoice_number": invoice.invoice_number},
        ))

    async def send_reminder_email(
        self,
        invoice: Invoice,
        reminder_type: ReminderType = ReminderType.GENTLE,
    ) -> EmailDispatchResult:
        """
        Send a payment reminder.

        Raises:
            EmailServiceError: Missing recipient or provider failure
        """
        to_email = self._recipient(invoice)
        subject, html, text = self._templates.render_reminder_email(invoice, reminder_type)

        return await self.send_email(EmailMessage(
            to_email=to_email,
            subject=subject,
            html_content=html,
            text_content=text,
            email_type=EmailType.REMINDER,
            metadata={
                "invoice_id": invoice.id,
                "invoice_number": invoice.invoice_number,
                "reminder_type": reminder_type.value,
            },
        ))

    async def send_payment_confirmation(self, invoice: Invoice, payment: Payment) -> EmailDispatchResult:
        """
        Confirm a recorded payment to the client.

        Raises:
            EmailServiceError: Missing recipient or provider failure
        """
        to_email = self._recipient(invoice)
        subject, html, text = self._templates.render_payment_confirmation_email(invoice, payment)

        return await self.send_email(EmailMessage(
            to_email=to_email,
            subject=subject,
            html_content=html,
            text_content=text,
            email_type=EmailType.PAYMENT_CONFIRMATION,
            metadata={"invoice_id": invoice.id, "payment_id": payment.id},
        ))


# ============================================================================
# Module-level convenience functions
# ============================================================================


_email_service: Optional[EmailService] = None


def get_email_service() -> EmailService:
    """
    Get or create the global email service instance.

    Returns:
        EmailService instance
    """
    global _email_service

    if _email_service is None:
        _email_service = EmailService()

    return _email_service
