"""
Exchange rate API endpoints.

WHAT: Current and historical PHP rates, conversions and a manual refresh.

HOW: Backed by the process-wide ExchangeRateService cache. Stale rates
are served with is_stale=true rather than failing the request.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query

from chaching.core.deps import get_current_user_id, get_exchange_rates
from chaching.models.invoice import CurrencyCode
from chaching.schemas.exchange_rate import (
    ConversionResponse,
    ExchangeRateResponse,
    ExchangeRatesResponse,
)
from chaching.services.exchange_rate_service import ExchangeRateService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/exchange-rates", tags=["exchange-rates"])


@router.get(
    "",
    response_model=ExchangeRatesResponse,
    summary="Exchange rates",
    description="PHP per unit of every supported currency",
)
async def get_exchange_rates_for_date(
    on_date: Optional[date] = Query(default=None, description="Rate date (defaults to latest)"),
    user_id: str = Depends(get_current_user_id),
    service: ExchangeRateService = Depends(get_exchange_rates),
) -> ExchangeRatesResponse:
    rates = await service.get_all_exchange_rates(on_date)
    return ExchangeRatesResponse(
        on_date=on_date,
        rates={
            currency.value: ExchangeRateResponse.model_validate(result)
            for currency, result in rates.items()
        },
    )


@router.get(
    "/convert",
    response_model=ConversionResponse,
    summary="Convert amount",
)
async def convert_amount(
    amount: Decimal = Query(..., ge=0),
    from_currency: CurrencyCode = Query(...),
    to_currency: CurrencyCode = Query(default=CurrencyCode.PHP),
    on_date: Optional[date] = Query(default=None),
    user_id: str = Depends(get_current_user_id),
    service: ExchangeRateService = Depends(get_exchange_rates),
) -> ConversionResponse:
    """
    Convert an amount between supported currencies.

    Returns:
        Converted amount (2 dp) with the rate used and its source
    """
    conversion = await service.convert(amount, from_currency, to_currency, on_date=on_date)
    return ConversionResponse.model_validate(conversion)


@router.post(
    "/refresh",
    response_model=ExchangeRatesResponse,
    summary="Refresh exchange rates",
    description="Bypass the cache and fetch rates from the source",
)
async def refresh_exchange_rates(
    on_date: Optional[date] = Query(default=None),
    user_id: str = Depends(get_current_user_id),
    service: ExchangeRateService = Depends(get_exchange_rates),
) -> ExchangeRatesResponse:
    """
    Force a rate refresh.

    WHY: Lets the user pull fresh rates before issuing a foreign-currency
    invoice instead of waiting for the cache to expire.
    """
    snapshot = await service.refresh(on_date)
    logger.info(
        "Exchange rates refreshed on request",
        extra={"user_id": user_id, "source": snapshot.source, "is_stale": snapshot.is_stale},
    )
    return ExchangeRatesResponse(
        on_date=on_date,
        rates={
            currency.value: ExchangeRateResponse(
                currency=currency,
                rate=rate,
                source=snapshot.source,
                is_stale=snapshot.is_stale,
                fetched_at=snapshot.fetched_at,
                rate_date=snapshot.rate_date,
            )
            for currency, rate in snapshot.rates.items()
        },
    )
