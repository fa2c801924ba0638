"""
Exchange Rate Service.

WHAT: Converts amounts between PHP, USD and EUR using live rates from the
fawazahmed0 currency API, with a process-wide cache and static fallback.

WHY: Invoices, payments and tax figures are reported in PHP regardless of
the currency they were issued in. The rate source is a free CDN that can be
slow or unavailable, so:
1. Rates are cached per rate date for 15 minutes
2. Concurrent refreshes of the same rate date share one in-flight fetch
3. Waiters give up after 5 seconds and get the last-known rates, or the
   static fallback, flagged as stale
4. Payments convert at their own payment date's rate ("latest" for today)

HOW: Uses an httpx async client to GET {base}.json for a version
("latest" or an ISO date). The API quotes 1 PHP in other currencies; the
service stores the inverse (PHP per unit of currency).
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Dict, Optional, Union

import httpx

from chaching.core.config import settings
from chaching.core.exceptions import ExchangeRateError
from chaching.core.money import round_money, round_rate, to_decimal
from chaching.models.invoice import CurrencyCode, utc_today

logger = logging.getLogger(__name__)


# ============================================================================
# Constants
# ============================================================================

BASE_CURRENCY = CurrencyCode.PHP
LATEST_VERSION = "latest"
API_RATE_QUANTUM = Decimal("0.000001")

SOURCE_API = "api"
SOURCE_CACHE = "cache"
SOURCE_FALLBACK = "fallback"

CURRENCY_SYMBOLS: Dict[CurrencyCode, str] = {
    CurrencyCode.PHP: "₱",
    CurrencyCode.USD: "$",
    CurrencyCode.EUR: "€",
}


def static_fallback_rates() -> Dict[CurrencyCode, Decimal]:
    """PHP per unit of each currency used when no live rate is available."""
    return {
        CurrencyCode.PHP: Decimal("1"),
        CurrencyCode.USD: settings.FALLBACK_RATE_USD,
        CurrencyCode.EUR: settings.FALLBACK_RATE_EUR,
    }


def is_valid_currency(code: str) -> bool:
    """Check whether a currency code is supported."""
    return code in {c.value for c in CurrencyCode}


def get_currency_symbol(currency: Union[CurrencyCode, str]) -> str:
    return CURRENCY_SYMBOLS[CurrencyCode(currency)]


# ============================================================================
# Result types
# ============================================================================


@dataclass
class RateSnapshot:
    """
    PHP-per-unit rates for one rate date.

    Attributes:
        rates: PHP per unit of each supported currency
        source: api, cache or fallback
        version: "latest" or the ISO rate date
        fetched_at: Wall-clock time the rates were obtained (naive UTC)
        rate_date: Date the API reports for the rates, if any
        is_stale: True when live rates could not be obtained in time
        loaded_at: Monotonic clock reading for TTL checks
    """

    rates: Dict[CurrencyCode, Decimal]
    source: str
    version: str
    fetched_at: datetime
    rate_date: Optional[str] = None
    is_stale: bool = False
    loaded_at: float = field(default=0.0, repr=False)


@dataclass
class ExchangeRateResult:
    """PHP per unit of a single currency."""

    currency: CurrencyCode
    rate: Decimal
    source: str
    is_stale: bool
    fetched_at: datetime
    rate_date: Optional[str] = None


@dataclass
class ConversionResult:
    """
    Outcome of a currency conversion.

    rate is `from_currency -> to_currency` (8 dp); converted_amount is
    round_money(original_amount * rate).
    """

    original_amount: Decimal
    converted_amount: Decimal
    rate: Decimal
    from_currency: CurrencyCode
    to_currency: CurrencyCode
    source: str
    is_stale: bool
    fetched_at: datetime
    rate_date: Optional[str] = None


# ============================================================================
# Service
# ============================================================================


class ExchangeRateService:
    """
    Cached, single-flight exchange rate lookups.

    WHAT: The only process-wide state in the billing engine.

    WHY: Every invoice create, payment and tax calculation needs a rate; a
    burst of requests must not turn into a burst of API calls, and an API
    outage must not block billing.

    HOW:
    - _cache maps version -> RateSnapshot; expired entries are evicted
      whenever a new snapshot is stored
    - _inflight maps version -> asyncio.Task performing the fetch
    - callers await the shared task through asyncio.shield so one caller
      timing out never cancels the fetch for everyone else

    Attributes:
        api_url: URL template with a {version} placeholder
        cache_ttl: Seconds a snapshot stays fresh
        timeout: Seconds a caller waits for an in-flight fetch
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        cache_ttl: Optional[float] = None,
        timeout: Optional[float] = None,
        fallback_rates: Optional[Dict[CurrencyCode, Decimal]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize ExchangeRateService.

        Args:
            api_url: API URL template (defaults to settings)
            cache_ttl: Cache TTL in seconds (defaults to settings)
            timeout: Fetch wait timeout in seconds (defaults to settings)
            fallback_rates: Static PHP-per-unit rates (defaults to settings)
            clock: Monotonic clock, injectable for tests
        """
        self.api_url = api_url or settings.EXCHANGE_RATE_API_URL
        self.cache_ttl = cache_ttl if cache_ttl is not None else settings.EXCHANGE_RATE_CACHE_TTL_SECONDS
        self.timeout = timeout if timeout is not None else settings.EXCHANGE_RATE_TIMEOUT_SECONDS
        self.fallback_rates = fallback_rates or static_fallback_rates()
        self._clock = clock
        self._cache: Dict[str, RateSnapshot] = {}
        self._inflight: Dict[str, "asyncio.Task[RateSnapshot]"] = {}
        self._last_good: Optional[RateSnapshot] = None

    # ------------------------------------------------------------------
    # Rate source
    # ------------------------------------------------------------------

    async def fetch_rates(
        self,
        base: CurrencyCode = BASE_CURRENCY,
        version: str = LATEST_VERSION,
    ) -> Dict[str, Any]:
        """
        Fetch raw quotes for a base currency from the API.

        Args:
            base: Base currency of the quote document
            version: "latest" or an ISO date

        Returns:
            The API document, e.g. {"date": "2024-03-01", "php": {"usd": 0.0178, ...}}
            with numbers parsed as Decimal

        Raises:
            ExchangeRateError: On non-200 responses, timeouts and malformed bodies
        """
        url = f"{self.api_url.format(version=version)}/{base.value.lower()}.json"

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url)
        except httpx.TimeoutException as e:
            raise ExchangeRateError(
                message="Exchange rate request timed out",
                version=version,
                timeout=self.timeout,
            ) from e
        except httpx.HTTPError as e:
            raise ExchangeRateError(
                message="Exchange rate request failed",
                version=version,
                error=str(e),
            ) from e

        if response.status_code != 200:
            raise ExchangeRateError(
                message="Exchange rate API returned an error",
                version=version,
                upstream_status=response.status_code,
            )

        try:
            return response.json(parse_float=Decimal)
        except ValueError as e:
            raise ExchangeRateError(
                message="Exchange rate API returned invalid JSON",
                version=version,
            ) from e

    def _parse_quotes(self, document: Dict[str, Any], version: str) -> RateSnapshot:
        """
        Turn "1 PHP = x unit" quotes into PHP-per-unit rates.

        Raises:
            ExchangeRateError: If a supported currency is missing or non-positive
        """
        quotes = document.get(BASE_CURRENCY.value.lower())
        if not isinstance(quotes, dict):
            raise ExchangeRateError(message="Exchange rate response has no PHP quotes", version=version)

        rates: Dict[CurrencyCode, Decimal] = {BASE_CURRENCY: Decimal("1")}
        for currency in CurrencyCode:
            if currency == BASE_CURRENCY:
                continue
            quote = quotes.get(currency.value.lower())
            if quote is None:
                raise ExchangeRateError(
                    message="Exchange rate response is missing a currency",
                    version=version,
                    currency=currency.value,
                )
            quote = to_decimal(quote)
            if quote <= 0:
                raise ExchangeRateError(
                    message="Exchange rate response has a non-positive quote",
                    version=version,
                    currency=currency.value,
                )
            rates[currency] = (Decimal("1") / quote).quantize(API_RATE_QUANTUM, rounding=ROUND_HALF_UP)

        return RateSnapshot(
            rates=rates,
            source=SOURCE_API,
            version=version,
            fetched_at=datetime.utcnow(),
            rate_date=document.get("date"),
            is_stale=False,
            loaded_at=self._clock(),
        )

    # ------------------------------------------------------------------
    # Cache and single-flight refresh
    # ------------------------------------------------------------------

    @staticmethod
    def version_for(on_date: Optional[date] = None) -> str:
        """Rate version for a date: today and later use "latest"."""
        if on_date is None or on_date >= utc_today():
            return LATEST_VERSION
        return on_date.isoformat()

    def _is_fresh(self, snapshot: RateSnapshot) -> bool:
        return (self._clock() - snapshot.loaded_at) < self.cache_ttl

    def _store(self, version: str, snapshot: RateSnapshot) -> None:
        """
        Cache a snapshot and drop expired ones.

        Every past payment date is its own version, so expired entries are
        evicted on write to keep the cache bounded by what one TTL sees.
        """
        expired = [v for v, cached in self._cache.items() if not self._is_fresh(cached)]
        for stale_version in expired:
            del self._cache[stale_version]
        self._cache[version] = snapshot

    def _stale_snapshot(self, version: str) -> RateSnapshot:
        """
        Best rates available without the API.

        Last-known rates for the same version, then last-known rates for any
        version, then the static fallback. Always flagged stale.
        """
        known = self._cache.get(version) or self._last_good
        if known is not None and known.source != SOURCE_FALLBACK:
            return replace(known, source=SOURCE_CACHE, is_stale=True)

        return RateSnapshot(
            rates=dict(self.fallback_rates),
            source=SOURCE_FALLBACK,
            version=version,
            fetched_at=datetime.utcnow(),
            is_stale=True,
            loaded_at=self._clock(),
        )

    async def _refresh(self, version: str) -> RateSnapshot:
        """Fetch, parse and cache one version; never raises for source failures."""
        try:
            document = await self.fetch_rates(BASE_CURRENCY, version)
            snapshot = self._parse_quotes(document, version)
        except ExchangeRateError as e:
            logger.warning(
                f"Exchange rate refresh failed, serving stale rates: {e.message}",
                extra={"version": version, "context": e.context},
            )
            snapshot = replace(self._stale_snapshot(version), loaded_at=self._clock())
            # Keep the stale snapshot until the TTL expires so an outage
            # doesn't cost every request a network timeout.
            self._store(version, snapshot)
            return snapshot

        self._store(version, snapshot)
        self._last_good = snapshot
        logger.info(
            "Exchange rates refreshed",
            extra={"version": version, "rates": {k.value: str(v) for k, v in snapshot.rates.items()}},
        )
        return snapshot

    def _start_refresh(self, version: str) -> "asyncio.Task[RateSnapshot]":
        task = self._inflight.get(version)
        if task is not None and not task.done():
            return task

        task = asyncio.get_running_loop().create_task(self._refresh(version))
        self._inflight[version] = task

        def _forget(finished: "asyncio.Task[RateSnapshot]") -> None:
            if self._inflight.get(version) is finished:
                del self._inflight[version]

        task.add_done_callback(_forget)
        return task

    async def get_rates(self, on_date: Optional[date] = None, force_refresh: bool = False) -> RateSnapshot:
        """
        Get PHP-per-unit rates for a date.

        Args:
            on_date: Rate date (None or today for the latest rates)
            force_refresh: Ignore a fresh cache entry

        Returns:
            RateSnapshot (source "cache" when served from a fresh cache entry)
        """
        version = self.version_for(on_date)

        cached = self._cache.get(version)
        if cached is not None and not force_refresh and self._is_fresh(cached):
            if cached.source == SOURCE_API:
                return replace(cached, source=SOURCE_CACHE)
            return cached

        task = self._start_refresh(version)
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Timed out waiting for exchange rates, serving stale rates",
                extra={"version": version, "timeout": self.timeout},
            )
            return self._stale_snapshot(version)

    async def refresh(self, on_date: Optional[date] = None) -> RateSnapshot:
        """Force a refresh of one rate date."""
        return await self.get_rates(on_date, force_refresh=True)

    def clear_cache(self) -> None:
        self._cache.clear()
        self._last_good = None

    # ------------------------------------------------------------------
    # Public lookups
    # ------------------------------------------------------------------

    async def get_exchange_rate(
        self,
        currency: CurrencyCode,
        on_date: Optional[date] = None,
    ) -> ExchangeRateResult:
        """
        PHP per unit of a currency.

        Args:
            currency: Currency to price
            on_date: Rate date

        Returns:
            ExchangeRateResult (PHP always 1 from source "api")
        """
        currency = CurrencyCode(currency)
        if currency == BASE_CURRENCY:
            return ExchangeRateResult(
                currency=currency,
                rate=Decimal("1"),
                source=SOURCE_API,
                is_stale=False,
                fetched_at=datetime.utcnow(),
            )

        snapshot = await self.get_rates(on_date)
        return ExchangeRateResult(
            currency=currency,
            rate=snapshot.rates[currency],
            source=snapshot.source,
            is_stale=snapshot.is_stale,
            fetched_at=snapshot.fetched_at,
            rate_date=snapshot.rate_date,
        )

    async def get_all_exchange_rates(
        self,
        on_date: Optional[date] = None,
    ) -> Dict[CurrencyCode, ExchangeRateResult]:
        """Rates for every supported currency from one snapshot."""
        return {currency: await self.get_exchange_rate(currency, on_date) for currency in CurrencyCode}

    async def convert(
        self,
        amount: Union[Decimal, int, str],
        from_currency: CurrencyCode,
        to_currency: CurrencyCode = BASE_CURRENCY,
        on_date: Optional[date] = None,
    ) -> ConversionResult:
        """
        Convert an amount between supported currencies.

        Conversion goes through PHP: rate = php_per(from) / php_per(to).

        Args:
            amount: Amount in from_currency
            from_currency: Source currency
            to_currency: Target currency (defaults to PHP)
            on_date: Rate date (None or today for the latest rates)

        Returns:
            ConversionResult with the amount rounded to cents
        """
        amount = to_decimal(amount)
        from_currency = CurrencyCode(from_currency)
        to_currency = CurrencyCode(to_currency)

        if from_currency == to_currency:
            return ConversionResult(
                original_amount=amount,
                converted_amount=round_money(amount),
                rate=Decimal("1"),
                from_currency=from_currency,
                to_currency=to_currency,
                source=SOURCE_API,
                is_stale=False,
                fetched_at=datetime.utcnow(),
            )

        snapshot = await self.get_rates(on_date)
        rate = round_rate(snapshot.rates[from_currency] / snapshot.rates[to_currency])

        return ConversionResult(
            original_amount=amount,
            converted_amount=round_money(amount * rate),
            rate=rate,
            from_currency=from_currency,
            to_currency=to_currency,
            source=snapshot.source,
            is_stale=snapshot.is_stale,
            fetched_at=snapshot.fetched_at,
            rate_date=snapshot.rate_date,
        )


# ============================================================================
# Module-level convenience functions
# ============================================================================


_exchange_rate_service: Optional[ExchangeRateService] = None


def get_exchange_rate_service() -> ExchangeRateService:
    """
    Get or create the process-wide exchange rate service.

    WHY: The rate cache and in-flight fetches must be shared by every
    request in the process.

    Returns:
        ExchangeRateService instance
    """
    global _exchange_rate_service

    if _exchange_rate_service is None:
        _exchange_rate_service = ExchangeRateService()

    return _exchange_rate_service
