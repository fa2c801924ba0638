"""
Payment API endpoints.

WHAT: Record payments against an invoice and read its payment history.

HOW: Nested under /invoices/{invoice_id}. PaymentService commits the
payment, the invoice totals and the ledger transaction together.
"""

from typing import List

from fastapi import APIRouter, Depends, status

from chaching.core.deps import get_payment_service
from chaching.schemas.invoice import InvoiceResponse
from chaching.schemas.payment import (
    PaymentCreate,
    PaymentResponse,
    PaymentResultResponse,
    PaymentSummaryResponse,
    TransactionResponse,
)
from chaching.services.payment_service import PaymentService


router = APIRouter(prefix="/invoices/{invoice_id}/payments", tags=["payments"])


@router.post(
    "",
    response_model=PaymentResultResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record payment",
    description="Record a completed payment; overpayment requires allow_overpayment",
)
async def record_payment(
    invoice_id: str,
    data: PaymentCreate,
    service: PaymentService = Depends(get_payment_service),
) -> PaymentResultResponse:
    """
    Record a payment.

    WHAT: Creates the payment and its income transaction, and updates the
    invoice totals (PAID once fully paid).

    Raises:
        InvoiceNotFoundError (404): Invoice not found
        InvalidOperationError (422): Cancelled, draft or fully paid invoice
        OverpaymentError (422): Amount above remaining balance
        ValidationError (400): Amount not positive
        ConcurrencyConflictError (409): Concurrent change; retry
    """
    result = await service.record_payment(
        invoice_id,
        amount=data.amount,
        payment_date=data.payment_date,
        payment_method=data.payment_method,
        reference=data.reference,
        notes=data.notes,
        allow_overpayment=data.allow_overpayment,
        send_confirmation_email=data.send_confirmation_email,
    )
    return PaymentResultResponse(
        payment=PaymentResponse.model_validate(result.payment),
        invoice=InvoiceResponse.from_invoice(result.invoice),
        transaction=TransactionResponse.model_validate(result.transaction),
        overpaid_amount=result.overpaid_amount,
        warnings=result.warnings,
    )


@router.get(
    "",
    response_model=List[PaymentResponse],
    summary="Payment history",
)
async def list_payments(
    invoice_id: str,
    service: PaymentService = Depends(get_payment_service),
) -> List[PaymentResponse]:
    payments = await service.get_payments(invoice_id)
    return [PaymentResponse.model_validate(p) for p in payments]


@router.get(
    "/summary",
    response_model=PaymentSummaryResponse,
    summary="Payment summary",
)
async def get_payment_summary(
    invoice_id: str,
    service: PaymentService = Depends(get_payment_service),
) -> PaymentSummaryResponse:
    summary = await service.calculate_payment_summary(invoice_id)
    return PaymentSummaryResponse.model_validate(summary)
