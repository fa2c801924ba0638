"""
Email Template Service for rendering Jinja2 billing email templates.

WHAT: Loads and renders the invoice, reminder and payment confirmation
emails from HTML templates.

WHY: Template-based emails keep branding in one base layout and let the
wording change without touching the dispatch code. Autoescaping keeps
client-supplied names out of the markup.

HOW: Uses a Jinja2 Environment with a FileSystemLoader over the
templates/emails directory of the package. Each render method returns
(subject, html_content, text_content).
"""

import logging
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader, TemplateError, TemplateNotFound, select_autoescape

from chaching.core.config import settings
from chaching.core.exceptions import EmailServiceError
from chaching.models.invoice import Invoice, ReminderType
from chaching.models.payment import Payment


logger = logging.getLogger(__name__)


DEFAULT_TEMPLATE_DIR = Path(__file__).parent.parent / "templates" / "emails"

REMINDER_SUBJECT_PREFIXES = {
    ReminderType.GENTLE: "Reminder",
    ReminderType.FIRM: "Payment overdue",
    ReminderType.FINAL: "Final notice",
}

REMINDER_OPENERS = {
    ReminderType.GENTLE: "This is a friendly reminder that",
    ReminderType.FIRM: "Our records show that",
    ReminderType.FINAL: "This is a final notice that",
}


def format_money(amount: Optional[Decimal], currency: str) -> str:
    """Format an amount as "PHP 7,840.00"."""
    return f"{currency} {(amount or Decimal('0')):,.2f}"


class EmailTemplateService:
    """
    Service for rendering billing email templates.

    Example:
        template_service = EmailTemplateService()
        subject, html, text = template_service.render_invoice_email(invoice, pdf_url)
    """

    def __init__(self, template_dir: Optional[Path] = None):
        """
        Initialize template service.

        Args:
            template_dir: Path to templates directory (defaults to chaching/templates/emails)
        """
        self._template_dir = template_dir or DEFAULT_TEMPLATE_DIR
        self._env = self._create_environment()

    def _create_environment(self) -> Environment:
        """
        Create Jinja2 environment.

        WHY: Autoescaping HTML templates prevents client names and notes
        from injecting markup into outgoing emails.
        """
        return Environment(
            loader=FileSystemLoader(str(self._template_dir)),
            autoescape=select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def _get_base_context(self) -> Dict[str, Any]:
        return {
            "year": datetime.utcnow().year,
            "business_name": settings.BUSINESS_NAME,
            "business_email": settings.BUSINESS_EMAIL,
        }

    def render_template(self, template_name: str, context: Dict[str, Any]) -> str:
        """
        Render a template with given context.

        Args:
            template_name: Name of template file (e.g., "invoice.html")
            context: Template variables

        Returns:
            Rendered HTML string

        Raises:
            EmailServiceError: If template not found or render fails
        """
        try:
            template = self._env.get_template(template_name)
            return template.render(**{**self._get_base_context(), **context})
        except TemplateNotFound:
            logger.error(f"Email template not found: {template_name}")
            raise EmailServiceError(
                message=f"Email template not found: {template_name}",
                template=template_name,
            )
        except TemplateError as e:
            logger.error(f"Error rendering template {template_name}: {e}")
            raise EmailServiceError(
                message="Failed to render email template",
                template=template_name,
                error=str(e),
            )

    def render_invoice_email(self, invoice: Invoice, pdf_url: Optional[str] = None) -> tuple[str, str, str]:
        """
        Render the email that delivers an invoice.

        The amount shown is the net amount due, which differs from the total
        when the client withholds tax.

        Returns:
            Tuple of (subject, html_content, text_content)
        """
        currency = invoice.currency.value
        amount_due = format_money(invoice.net_amount_due or invoice.total, currency)
        due_date = invoice.due_date.isoformat()
        subject = f"Invoice {invoice.invoice_number} from {settings.BUSINESS_NAME}"

        html = self.render_template("invoice.html", {
            "title": subject,
            "client_name": invoice.client_name,
            "invoice_number": invoice.invoice_number,
            "amount_due": amount_due,
            "due_date": due_date,
            "pdf_url": pdf_url,
        })
        text = self._generate_text_version(
            f"Hi {invoice.client_name},\n\n"
            f"Invoice {invoice.invoice_number} for {amount_due} is due on {due_date}.\n"
            + (f"View it at {pdf_url}\n" if pdf_url else "")
        )
        return subject, html, text

    def render_reminder_email(self, invoice: Invoice, reminder_type: ReminderType) -> tuple[str, str, str]:
        """
        Render a payment reminder.

        Gentle, firm and final reminders differ in subject prefix and
        opening sentence.

        Returns:
            Tuple of (subject, html_content, text_content)
        """
        balance = format_money(invoice.remaining_balance, invoice.currency.value)
        due_date = invoice.due_date.isoformat()
        subject = f"{REMINDER_SUBJECT_PREFIXES[reminder_type]}: Invoice {invoice.invoice_number}"
        sentence = (
            f"{REMINDER_OPENERS[reminder_type]} invoice {invoice.invoice_number} has an outstanding "
            f"balance of {balance}, due on {due_date}."
        )

        html = self.render_template("reminder.html", {
            "title": subject,
            "client_name": invoice.client_name,
            "sentence": sentence,
            "is_final": reminder_type == ReminderType.FINAL,
        })
        text = self._generate_text_version(f"Hi {invoice.client_name},\n\n{sentence}\n")
        return subject, html, text

    def render_payment_confirmation_email(self, invoice: Invoice, payment: Payment) -> tuple[str, str, str]:
        """
        Render the confirmation sent after a payment is recorded.

        Returns:
            Tuple of (subject, html_content, text_content)
        """
        subject = f"Payment received for Invoice {invoice.invoice_number}"
        amount = format_money(payment.amount, payment.currency.value)
        remaining = format_money(invoice.remaining_balance, invoice.currency.value)
        payment_date = payment.payment_date.isoformat()

        html = self.render_template("payment_confirmation.html", {
            "title": subject,
            "client_name": invoice.client_name,
            "invoice_number": invoice.invoice_number,
            "amount": amount,
            "payment_date": payment_date,
            "remaining_balance": remaining,
        })
        text = self._generate_text_version(
            f"Hi {invoice.client_name},\n\n"
            f"We received {amount} on {payment_date} for invoice {invoice.invoice_number}. "
            f"Remaining balance: {remaining}.\n"
        )
        return subject, html, text

    @staticmethod
    def _generate_text_version(content: str) -> str:
        """Plain text fallback with the business footer."""
        footer = f"\n\n---\n{settings.BUSINESS_NAME}\n{settings.BUSINESS_EMAIL}"
        return content.strip() + footer


# Module-level singleton
_template_service: Optional[EmailTemplateService] = None


def get_email_template_service() -> EmailTemplateService:
    """
    Get or create the global template service instance.

    WHY: One Environment keeps compiled templates cached across requests.
    """
    global _template_service

    if _template_service is None:
        _template_service = EmailTemplateService()

    return _template_service
