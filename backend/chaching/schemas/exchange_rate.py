"""
Exchange rate schemas for API responses.

WHAT: Rates are PHP per unit of each currency; conversions report the
rate actually used and whether it was stale.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict

from chaching.models.invoice import CurrencyCode


class ExchangeRateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    currency: CurrencyCode
    rate: Decimal
    source: str
    is_stale: bool
    fetched_at: datetime
    rate_date: Optional[str] = None


class ExchangeRatesResponse(BaseModel):
    """Rates for every supported currency, PHP per unit."""

    base: CurrencyCode = CurrencyCode.PHP
    on_date: Optional[date] = None
    rates: Dict[str, ExchangeRateResponse]


class ConversionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    original_amount: Decimal
    converted_amount: Decimal
    rate: Decimal
    from_currency: CurrencyCode
    to_currency: CurrencyCode
    source: str
    is_stale: bool
    fetched_at: datetime
    rate_date: Optional[str] = None
