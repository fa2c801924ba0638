"""
PDF generation service for invoices.

WHAT: Renders invoice PDFs with ReportLab and stores them on disk.

WHY: Sending an invoice requires a PDF reference, and clients download the
same document later. Rendering is pure Python (no headless browser), and a
stored PDF is reused as long as the invoice content that appears on it is
unchanged.

HOW: Uses ReportLab's platypus for layout:
- Issuer header, bill-to block and dates
- Line items table, totals table (with VAT withholding when applicable)
- Files stored under PDF_STORAGE_DIR/{user_id}/{invoice_number}-{fingerprint}.pdf
"""

import asyncio
import hashlib
import io
import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, List, Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import (
    SimpleDocTemplate,
    Paragraph,
    Spacer,
    Table,
    TableStyle,
)
from reportlab.lib.enums import TA_RIGHT

from chaching.core.config import settings
from chaching.core.exceptions import PDFGenerationError
from chaching.models.invoice import Invoice, InvoiceStatus

logger = logging.getLogger(__name__)


# ============================================================================
# Configuration
# ============================================================================


@dataclass
class CompanyInfo:
    """Issuer details printed in the PDF header."""

    name: str
    address: str
    phone: str
    email: str
    tin: Optional[str] = None

    @classmethod
    def from_settings(cls) -> "CompanyInfo":
        return cls(
            name=settings.BUSINESS_NAME,
            address=settings.BUSINESS_ADDRESS,
            phone=settings.BUSINESS_PHONE,
            email=settings.BUSINESS_EMAIL,
            tin=settings.BUSINESS_TIN,
        )


# ============================================================================
# PDF Styles
# ============================================================================


def get_styles():
    """
    Get PDF document styles.

    NOTE: getSampleStyleSheet already defines BodyText; adding a style with
    that name raises KeyError, so custom styles use their own names.
    """
    styles = getSampleStyleSheet()

    styles.add(ParagraphStyle(
        name='DocumentTitle',
        parent=styles['Heading1'],
        fontSize=22,
        spaceAfter=16,
        textColor=colors.HexColor('#1a365d'),
    ))

    styles.add(ParagraphStyle(
        name='SectionHeader',
        parent=styles['Heading2'],
        fontSize=13,
        spaceBefore=12,
        spaceAfter=8,
        textColor=colors.HexColor('#2d3748'),
    ))

    styles.add(ParagraphStyle(
        name='InvoiceBody',
        parent=styles['Normal'],
        fontSize=10,
        spaceBefore=4,
        spaceAfter=4,
    ))

    styles.add(ParagraphStyle(
        name='SmallText',
        parent=styles['Normal'],
        fontSize=8,
        textColor=colors.HexColor('#718096'),
    ))

    styles.add(ParagraphStyle(
        name='RightAlign',
        parent=styles['Normal'],
        fontSize=10,
        alignment=TA_RIGHT,
    ))

    return styles


# ============================================================================
# Helper Functions
# ============================================================================


CURRENCY_PREFIX = {"PHP": "PHP ", "USD": "$", "EUR": "EUR "}


def format_currency(amount: Any, currency: str = "PHP") -> str:
    """
    Format an amount with its currency prefix and thousands separators.

    ReportLab's base fonts lack the peso sign, so PHP and EUR use codes.

    Returns:
        Formatted string (e.g., "PHP 7,840.00")
    """
    prefix = CURRENCY_PREFIX.get(currency, f"{currency} ")
    if amount is None:
        amount = Decimal("0")
    value = Decimal(str(amount)).quantize(Decimal("0.01"))
    sign = "-" if value < 0 else ""
    return f"{sign}{prefix}{abs(value):,.2f}"


def format_date(d: Any) -> str:
    """Format a date for display (e.g., "January 15, 2024")."""
    if d is None:
        return ""

    if isinstance(d, datetime):
        d = d.date()

    if isinstance(d, date):
        return d.strftime("%B %d, %Y")

    return str(d)


def invoice_fingerprint(invoice: Invoice) -> str:
    """
    Short hash of everything printed on the invoice.

    WHY: Two renders of the same content must map to the same file so
    repeated sends reuse the stored PDF.
    """
    parts = [
        invoice.invoice_number,
        invoice.client_name,
        invoice.client_email or "",
        invoice.client_address or "",
        invoice.currency.value,
        invoice.issue_date.isoformat(),
        invoice.due_date.isoformat(),
        str(invoice.subtotal),
        str(invoice.discount_amount),
        str(invoice.tax_rate),
        str(invoice.tax_amount),
        str(invoice.total),
        str(invoice.withholding_tax_amount),
        invoice.payment_terms or "",
        invoice.notes or "",
    ]
    for item in invoice.line_items:
        parts.extend([item.description, str(item.quantity), str(item.rate), str(item.amount)])

    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()[:16]


# ============================================================================
# PDF Service
# ============================================================================


class PDFService:
    """
    Service for rendering and storing invoice PDFs.

    HOW: render_invoice_pdf builds the document in memory;
    generate_invoice_pdf stores it and returns the download URL. Rendering
    and file access run in a worker thread so the event loop keeps serving
    requests.
    """

    def __init__(
        self,
        company_info: Optional[CompanyInfo] = None,
        storage_dir: Optional[str] = None,
    ):
        """
        Initialize PDF service.

        Args:
            company_info: Issuer details (defaults to settings)
            storage_dir: Root directory for stored PDFs (defaults to settings)
        """
        self.company = company_info or CompanyInfo.from_settings()
        self.storage_dir = Path(storage_dir or settings.PDF_STORAGE_DIR)
        self.styles = get_styles()

    def _build_header(self, invoice_number: str) -> List:
        elements = []

        elements.append(Paragraph(self.company.name, self.styles['DocumentTitle']))

        contact_text = f"{self.company.address}<br/>{self.company.phone} | {self.company.email}"
        if self.company.tin:
            contact_text += f"<br/>TIN: {self.company.tin}"
        elements.append(Paragraph(contact_text, self.styles['SmallText']))

        elements.append(Spacer(1, 20))

        header_table = Table([["INVOICE", invoice_number]], colWidths=[3 * inch, 4 * inch])
        header_table.setStyle(TableStyle([
            ('FONTNAME', (0, 0), (0, 0), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (0, 0), 18),
            ('TEXTCOLOR', (0, 0), (0, 0), colors.HexColor('#2563eb')),
            ('ALIGN', (0, 0), (0, 0), 'LEFT'),
            ('FONTNAME', (1, 0), (1, 0), 'Helvetica'),
            ('FONTSIZE', (1, 0), (1, 0), 12),
            ('ALIGN', (1, 0), (1, 0), 'RIGHT'),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ]))
        elements.append(header_table)
        elements.append(Spacer(1, 15))

        return elements

    def _build_client_info(self, invoice: Invoice) -> List:
        left_content = [
            Paragraph("<b>Bill To:</b>", self.styles['InvoiceBody']),
            Paragraph(invoice.client_name, self.styles['InvoiceBody']),
        ]
        if invoice.client_address:
            left_content.append(Paragraph(invoice.client_address, self.styles['InvoiceBody']))
        if invoice.client_email:
            left_content.append(Paragraph(invoice.client_email, self.styles['InvoiceBody']))

        dates = [
            ('Invoice Date', format_date(invoice.issue_date)),
            ('Due Date', format_date(invoice.due_date)),
        ]
        if invoice.paid_at:
            dates.append(('Paid Date', format_date(invoice.paid_at)))
        right_content = [
            Paragraph(f"<b>{label}:</b> {value}", self.styles['RightAlign'])
            for label, value in dates
        ]

        info_table = Table([[left_content, right_content]], colWidths=[3.5 * inch, 3.5 * inch])
        info_table.setStyle(TableStyle([
            ('VALIGN', (0, 0), (-1, -1), 'TOP'),
            ('ALIGN', (0, 0), (0, 0), 'LEFT'),
            ('ALIGN', (1, 0), (1, 0), 'RIGHT'),
        ]))

        return [info_table, Spacer(1, 20)]

    def _build_line_items_table(self, invoice: Invoice) -> Table:
        currency = invoice.currency.value
        data = [['Description', 'Qty', 'Rate', 'Amount']]

        for item in invoice.line_items:
            description = item.description
            if not item.is_taxable:
                description += " (non-taxable)"
            data.append([
                Paragraph(description, self.styles['InvoiceBody']),
                f"{item.quantity.normalize():f}",
                format_currency(item.rate, currency),
                format_currency(item.amount, currency),
            ])

        table = Table(data, colWidths=[3.5 * inch, 0.75 * inch, 1.25 * inch, 1.5 * inch])
        table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#f7fafc')),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.HexColor('#2d3748')),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, 0), 10),
            ('BOTTOMPADDING', (0, 0), (-1, 0), 12),
            ('TOPPADDING', (0, 0), (-1, 0), 12),
            ('FONTNAME', (0, 1), (-1, -1), 'Helvetica'),
            ('FONTSIZE', (0, 1), (-1, -1), 9),
            ('ALIGN', (0, 0), (0, -1), 'LEFT'),
            ('ALIGN', (1, 0), (-1, -1), 'RIGHT'),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
            ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#e2e8f0')),
            ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#f7fafc')]),
        ]))

        return table

    def _build_totals_table(self, invoice: Invoice) -> Table:
        currency = invoice.currency.value
        data = [['Subtotal', format_currency(invoice.subtotal, currency)]]

        if invoice.discount_amount and invoice.discount_amount > 0:
            data.append(['Discount', format_currency(-invoice.discount_amount, currency)])

        tax_label = "VAT (12%)" if invoice.is_vat_registered else f"Tax ({invoice.tax_rate}%)"
        if invoice.tax_amount and invoice.tax_amount > 0:
            data.append([tax_label, format_currency(invoice.tax_amount, currency)])

        data.append(['Total', format_currency(invoice.total, currency)])

        if invoice.withholding_tax_amount and invoice.withholding_tax_amount > 0:
            data.append(['Withholding Tax', format_currency(-invoice.withholding_tax_amount, currency)])
            data.append(['Net Amount Due', format_currency(invoice.net_amount_due, currency)])

        if invoice.total_paid and invoice.total_paid > 0:
            data.append(['Amount Paid', format_currency(-invoice.total_paid, currency)])
            data.append(['Balance Due', format_currency(invoice.remaining_balance, currency)])

        if invoice.total_php is not None and invoice.exchange_rate is not None:
            data.append([f'PHP @ {invoice.exchange_rate.normalize():f}', format_currency(invoice.total_php, "PHP")])

        table = Table(data, colWidths=[1.75 * inch, 1.5 * inch])

        style_commands = [
            ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
            ('FONTNAME', (0, 0), (-1, -1), 'Helvetica'),
            ('FONTSIZE', (0, 0), (-1, -1), 10),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
            ('TOPPADDING', (0, 0), (-1, -1), 6),
        ]
        for i, row in enumerate(data):
            if row[0] in ['Total', 'Net Amount Due', 'Balance Due']:
                style_commands.extend([
                    ('FONTNAME', (0, i), (1, i), 'Helvetica-Bold'),
                    ('TEXTCOLOR', (0, i), (1, i), colors.HexColor('#1a365d')),
                    ('LINEABOVE', (0, i), (1, i), 1, colors.HexColor('#2d3748')),
                ])

        table.setStyle(TableStyle(style_commands))
        return table

    def _build_footer(self, invoice: Invoice) -> List:
        elements = []

        if invoice.payment_terms:
            elements.append(Paragraph("Payment Terms", self.styles['SectionHeader']))
            elements.append(Paragraph(invoice.payment_terms, self.styles['InvoiceBody']))

        if invoice.notes:
            elements.append(Paragraph("Notes", self.styles['SectionHeader']))
            elements.append(Paragraph(invoice.notes, self.styles['InvoiceBody']))

        return elements

    # ========================================================================
    # Rendering and storage
    # ========================================================================

    def render_invoice_pdf(self, invoice: Invoice) -> bytes:
        """
        Render an invoice to PDF bytes.

        Args:
            invoice: Invoice with line items loaded

        Returns:
            PDF file as bytes
        """
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            rightMargin=0.75 * inch,
            leftMargin=0.75 * inch,
            topMargin=0.75 * inch,
            bottomMargin=0.75 * inch,
            title=invoice.invoice_number,
        )

        elements = []
        elements.extend(self._build_header(invoice.invoice_number))

        if invoice.status not in (InvoiceStatus.DRAFT, InvoiceStatus.SENT):
            elements.append(Paragraph(
                f"<b>STATUS: {invoice.effective_status.value.upper()}</b>",
                self.styles['InvoiceBody'],
            ))
            elements.append(Spacer(1, 10))

        elements.extend(self._build_client_info(invoice))
        elements.append(self._build_line_items_table(invoice))
        elements.append(Spacer(1, 20))

        totals = Table([['', self._build_totals_table(invoice)]], colWidths=[3.75 * inch, 3.25 * inch])
        elements.append(totals)
        elements.append(Spacer(1, 20))
        elements.extend(self._build_footer(invoice))

        doc.build(elements)
        pdf_bytes = buffer.getvalue()
        buffer.close()

        return pdf_bytes

    def _path_for(self, invoice: Invoice) -> Path:
        return self.storage_dir / invoice.user_id / f"{invoice.invoice_number}-{invoice_fingerprint(invoice)}.pdf"

    def _url_for(self, invoice: Invoice) -> str:
        return f"{settings.BACKEND_URL}{settings.API_V1_PREFIX}/invoices/{invoice.id}/pdf"

    def _write_pdf(self, invoice: Invoice, path: Path) -> None:
        pdf_bytes = self.render_invoice_pdf(invoice)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(pdf_bytes)

    def _read_or_render(self, invoice: Invoice, path: Path) -> bytes:
        if path.exists():
            return path.read_bytes()
        return self.render_invoice_pdf(invoice)

    async def generate_invoice_pdf(self, invoice: Invoice) -> str:
        """
        Render and store an invoice PDF, returning its download URL.

        Idempotent per content: an unchanged invoice reuses the stored file.

        Args:
            invoice: Invoice with line items loaded

        Returns:
            Download URL

        Raises:
            PDFGenerationError: If rendering or writing fails
        """
        path = self._path_for(invoice)
        if path.exists():
            return self._url_for(invoice)

        try:
            await asyncio.to_thread(self._write_pdf, invoice, path)
        except (OSError, ValueError) as e:
            logger.error(
                f"Failed to generate PDF for {invoice.invoice_number}: {e}",
                extra={"invoice_id": invoice.id},
            )
            raise PDFGenerationError(
                message="Failed to generate invoice PDF",
                invoice_id=invoice.id,
                error=str(e),
            ) from e

        logger.info(f"Generated invoice PDF: {invoice.invoice_number}", extra={"invoice_id": invoice.id})
        return self._url_for(invoice)

    async def get_invoice_pdf(self, invoice: Invoice) -> bytes:
        """
        PDF bytes for download, from storage when current.

        Raises:
            PDFGenerationError: If rendering fails
        """
        path = self._path_for(invoice)
        try:
            return await asyncio.to_thread(self._read_or_render, invoice, path)
        except (OSError, ValueError) as e:
            raise PDFGenerationError(
                message="Failed to render invoice PDF",
                invoice_id=invoice.id,
                error=str(e),
            ) from e


# ============================================================================
# Module-level convenience functions
# ============================================================================


_pdf_service: Optional[PDFService] = None


def get_pdf_service() -> PDFService:
    """
    Get or create the global PDF service instance.

    Returns:
        PDFService instance
    """
    global _pdf_service

    if _pdf_service is None:
        _pdf_service = PDFService()

    return _pdf_service
