"""
FastAPI dependencies for authentication and service wiring.

WHY: Dependencies provide reusable authentication and construction logic
that can be injected into route handlers, ensuring every route reads the
owner id the same way and gets request-scoped services.
"""

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from chaching.core.auth import verify_token
from chaching.core.exceptions import (
    AuthenticationError,
    TokenExpiredError,
    TokenInvalidError,
)
from chaching.db.session import get_db
from chaching.services.email import EmailService, get_email_service
from chaching.services.exchange_rate_service import ExchangeRateService, get_exchange_rate_service
from chaching.services.invoice_service import InvoiceService
from chaching.services.payment_service import PaymentService
from chaching.services.pdf_service import PDFService, get_pdf_service
from chaching.services.tax_report_service import TaxReportService
from chaching.services.tax_service import PhilippineTaxService


# HTTP Bearer token security scheme
# Format: "Authorization: Bearer <token>"
# auto_error=False so a missing header goes through our 401 envelope
security = HTTPBearer(auto_error=False)


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> str:
    """
    Get the owner id from the bearer token.

    WHY: Identity is issued elsewhere; the "sub" claim is the owner id that
    scopes every invoice, payment and transaction.

    Args:
        credentials: JWT token from Authorization header

    Returns:
        Owner id

    Raises:
        AuthenticationError: Missing, invalid or expired token, or no subject
    """
    if credentials is None:
        raise AuthenticationError(message="Not authenticated")

    try:
        payload = verify_token(credentials.credentials)
    except (TokenExpiredError, TokenInvalidError) as e:
        raise AuthenticationError(
            message=e.message,
            status_code=e.status_code,
        )

    user_id = payload.get("sub")
    if not user_id or not isinstance(user_id, str):
        raise AuthenticationError(message="Invalid token: missing subject")

    return user_id


def get_exchange_rates() -> ExchangeRateService:
    return get_exchange_rate_service()


def get_pdf() -> PDFService:
    return get_pdf_service()


def get_email() -> EmailService:
    return get_email_service()


async def get_invoice_service(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    exchange_rates: ExchangeRateService = Depends(get_exchange_rates),
    pdf: PDFService = Depends(get_pdf),
    email: EmailService = Depends(get_email),
) -> InvoiceService:
    return InvoiceService(
        db,
        user_id,
        exchange_rate_service=exchange_rates,
        pdf_service=pdf,
        email_service=email,
    )


async def get_payment_service(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    exchange_rates: ExchangeRateService = Depends(get_exchange_rates),
    email: EmailService = Depends(get_email),
) -> PaymentService:
    return PaymentService(
        db,
        user_id,
        exchange_rate_service=exchange_rates,
        email_service=email,
    )


async def get_tax_service(
    exchange_rates: ExchangeRateService = Depends(get_exchange_rates),
) -> PhilippineTaxService:
    return PhilippineTaxService(exchange_rate_service=exchange_rates)


async def get_tax_report_service(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> TaxReportService:
    return TaxReportService(db, user_id)
