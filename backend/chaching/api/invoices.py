"""
Invoice management API endpoints.

WHAT: RESTful API for the invoice lifecycle: CRUD, sending, reminders,
viewing, cancellation, PDF download and analytics.

WHY: Invoices are the billing record of the freelancer:
1. Billing clients in PHP, USD or EUR
2. Tracking status from draft to paid
3. Feeding income into the tax reports

HOW: FastAPI router with:
- Owner-scoped services (the token subject owns every invoice)
- Business rules in InvoiceService; handlers only translate
- Effective status (overdue) in every response
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from chaching.core.deps import get_invoice_service
from chaching.schemas.invoice import (
    InvoiceAnalytics,
    InvoiceCreate,
    InvoiceListResponse,
    InvoiceResponse,
    InvoiceUpdate,
    ReminderRequest,
    ReminderResponse,
    ReminderSentResponse,
    SendInvoiceResponse,
)
from chaching.services.invoice_service import InvoiceService


router = APIRouter(prefix="/invoices", tags=["invoices"])


# ============================================================================
# Invoice CRUD Endpoints
# ============================================================================


@router.post(
    "",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create invoice",
    description="Create a draft invoice; totals are computed from the line items",
)
async def create_invoice(
    data: InvoiceCreate,
    service: InvoiceService = Depends(get_invoice_service),
) -> InvoiceResponse:
    """
    Create a new invoice.

    WHAT: Creates an invoice in DRAFT status with a fresh INV-YYYY-MM-NNN
    number.

    Args:
        data: Invoice creation data
        service: Owner-scoped invoice service

    Returns:
        Created invoice data

    Raises:
        ValidationError (400): Invalid amounts or dates
        ClientNotFoundError (404): Client not found
        ConcurrencyConflictError (409): Number taken by a concurrent create
    """
    invoice = await service.create_invoice(data)
    return InvoiceResponse.from_invoice(invoice)


@router.get(
    "",
    response_model=InvoiceListResponse,
    summary="List invoices",
    description="List invoices, newest first, with optional filters",
)
async def list_invoices(
    skip: int = Query(default=0, ge=0, description="Records to skip"),
    limit: int = Query(default=100, ge=1, le=1000, description="Max records"),
    status_filter: Optional[str] = Query(
        default=None,
        alias="status",
        description="Effective status (overdue included) or 'all'",
    ),
    client_id: Optional[str] = Query(default=None),
    date_from: Optional[date] = Query(default=None, description="Issue date lower bound"),
    date_to: Optional[date] = Query(default=None, description="Issue date upper bound"),
    service: InvoiceService = Depends(get_invoice_service),
) -> InvoiceListResponse:
    """
    List invoices of the current user.

    Returns:
        Paginated list of invoices with the total matching count
    """
    invoices, total = await service.get_invoices(
        status=status_filter,
        client_id=client_id,
        date_from=date_from,
        date_to=date_to,
        skip=skip,
        limit=limit,
    )
    return InvoiceListResponse(
        items=[InvoiceResponse.from_invoice(inv) for inv in invoices],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get(
    "/analytics",
    response_model=InvoiceAnalytics,
    summary="Invoice analytics",
    description="Totals and status breakdown for invoices issued in a period",
)
async def get_invoice_analytics(
    date_from: Optional[date] = Query(default=None),
    date_to: Optional[date] = Query(default=None),
    service: InvoiceService = Depends(get_invoice_service),
) -> InvoiceAnalytics:
    """
    Get invoice analytics.

    WHY: Declared before /{invoice_id} so "analytics" is not read as an id.
    """
    result = await service.get_invoice_analytics(date_from=date_from, date_to=date_to)
    return InvoiceAnalytics.model_validate(result)


@router.get(
    "/{invoice_id}",
    response_model=InvoiceResponse,
    summary="Get invoice",
)
async def get_invoice(
    invoice_id: str,
    service: InvoiceService = Depends(get_invoice_service),
) -> InvoiceResponse:
    invoice = await service.get_invoice_by_id(invoice_id)
    return InvoiceResponse.from_invoice(invoice)


@router.patch(
    "/{invoice_id}",
    response_model=InvoiceResponse,
    summary="Update invoice",
    description="Amounts, notes, terms and due date are editable until paid or cancelled",
)
async def update_invoice(
    invoice_id: str,
    data: InvoiceUpdate,
    service: InvoiceService = Depends(get_invoice_service),
) -> InvoiceResponse:
    """
    Update an invoice.

    Raises:
        InvoiceNotFoundError (404): Invoice not found
        InvalidOperationError (422): Field not editable in the current status
        ValidationError (400): Invalid amounts or dates
    """
    invoice = await service.update_invoice(invoice_id, data)
    return InvoiceResponse.from_invoice(invoice)


@router.delete(
    "/{invoice_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete invoice",
    description="Delete a draft invoice",
)
async def delete_invoice(
    invoice_id: str,
    service: InvoiceService = Depends(get_invoice_service),
) -> Response:
    """
    Delete an invoice.

    WHY: Only drafts can be deleted; issued invoices are kept for the
    audit trail and cancelled instead.
    """
    await service.delete_invoice(invoice_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Lifecycle Endpoints
# ============================================================================


@router.post(
    "/{invoice_id}/send",
    response_model=SendInvoiceResponse,
    summary="Send invoice",
    description="Generate the PDF and email the invoice to the client",
)
async def send_invoice(
    invoice_id: str,
    service: InvoiceService = Depends(get_invoice_service),
) -> SendInvoiceResponse:
    """
    Send an invoice.

    WHAT: A draft becomes SENT only after the email was dispatched; an
    already sent invoice is re-sent without a status change.

    Raises:
        InvalidStateTransitionError (422): Invoice is paid or cancelled
        PDFGenerationError (502): PDF could not be produced
        EmailServiceError (502): Email could not be dispatched
    """
    result = await service.send_invoice(invoice_id)
    return SendInvoiceResponse(
        invoice=InvoiceResponse.from_invoice(result.invoice),
        email_id=result.email_id,
        pdf_url=result.pdf_url,
    )


@router.post(
    "/{invoice_id}/reminders",
    response_model=ReminderSentResponse,
    summary="Send payment reminder",
)
async def send_reminder(
    invoice_id: str,
    data: Optional[ReminderRequest] = None,
    service: InvoiceService = Depends(get_invoice_service),
) -> ReminderSentResponse:
    """
    Send a payment reminder.

    Raises:
        InvalidOperationError (422): Invoice is not sent, viewed or overdue
        EmailServiceError (502): Email could not be dispatched
    """
    data = data or ReminderRequest()
    invoice, reminder = await service.send_reminder_email(invoice_id, data.reminder_type)
    return ReminderSentResponse(
        invoice=InvoiceResponse.from_invoice(invoice),
        reminder=ReminderResponse.model_validate(reminder),
    )


@router.post(
    "/{invoice_id}/viewed",
    response_model=InvoiceResponse,
    summary="Mark invoice viewed",
)
async def mark_invoice_viewed(
    invoice_id: str,
    service: InvoiceService = Depends(get_invoice_service),
) -> InvoiceResponse:
    invoice = await service.mark_invoice_as_viewed(invoice_id)
    return InvoiceResponse.from_invoice(invoice)


@router.post(
    "/{invoice_id}/cancel",
    response_model=InvoiceResponse,
    summary="Cancel invoice",
)
async def cancel_invoice(
    invoice_id: str,
    service: InvoiceService = Depends(get_invoice_service),
) -> InvoiceResponse:
    """
    Cancel an invoice.

    Raises:
        InvalidStateTransitionError (422): Invoice is paid or already cancelled
        InvalidOperationError (422): Invoice has payments
    """
    invoice = await service.cancel_invoice(invoice_id)
    return InvoiceResponse.from_invoice(invoice)


@router.get(
    "/{invoice_id}/pdf",
    summary="Download invoice PDF",
    response_class=Response,
    responses={200: {"content": {"application/pdf": {}}}},
)
async def download_invoice_pdf(
    invoice_id: str,
    service: InvoiceService = Depends(get_invoice_service),
) -> Response:
    """
    Download the invoice as a PDF.

    Returns:
        PDF file as an attachment named after the invoice number
    """
    invoice, pdf_bytes = await service.get_invoice_pdf(invoice_id)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{invoice.invoice_number}.pdf"'},
    )
