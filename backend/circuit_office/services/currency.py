import httpx
import logging
from typing import Optional
from datetime import datetime, timedelta
from dataclasses import dataclass

from circuit_office.config import get_settings

logger = logging.getLogger(__name__)

# Units of each currency for 1 EUR
FALLBACK_RATES = {
    "EUR": 1.0,
    "USD": 1.09,
    "GBP": 0.86,
    "CHF": 0.96,
    "CAD": 1.47,
    "AUD": 1.65,
    "NZD": 1.79,
    "JPY": 162.0,
    "CNY": 7.85,
    "THB": 38.6,
    "VND": 26800.0,
    "KHR": 4420.0,
    "LAK": 23200.0,
    "MMK": 2290.0,
    "IDR": 17100.0,
    "MYR": 5.1,
    "SGD": 1.46,
    "INR": 90.5,
    "LKR": 330.0,
    "NPR": 145.0,
    "MAD": 10.9,
    "ZAR": 20.3,
}


@dataclass
class ExchangeRates:
    base: str
    rates: dict[str, float]
    updated_at: datetime


class CurrencyService:
    _cache: Optional[ExchangeRates] = None

    @classmethod
    def _cache_ttl(cls) -> timedelta:
        return timedelta(hours=get_settings().exchange_rate_cache_hours)

    @classmethod
    async def get_rates(cls, base: str = "EUR") -> dict[str, float]:
        base = base.upper()
        if cls._cache and cls._cache.base == base:
            if datetime.utcnow() - cls._cache.updated_at < cls._cache_ttl():
                return cls._cache.rates

        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.get(
                    f"{get_settings().exchange_rate_api_url}/{base}"
                )
                if response.status_code == 200:
                    data = response.json()
                    cls._cache = ExchangeRates(
                        base=base,
                        rates=data.get("rates", {}),
                        updated_at=datetime.utcnow(),
                    )
                    return cls._cache.rates
                logger.warning(f"Exchange rate API returned {response.status_code}, using fallback")
        except Exception as e:
            logger.warning(f"Failed to fetch exchange rates: {e}, using fallback")

        return cls.fallback_rates(base)

    @classmethod
    def fallback_rates(cls, base: str = "EUR") -> dict[str, float]:
        if base == "EUR":
            return dict(FALLBACK_RATES)

        eur_to_base = FALLBACK_RATES.get(base, 1.0)
        return {k: v / eur_to_base for k, v in FALLBACK_RATES.items()}

    @classmethod
    async def build_trip_rates(
        cls,
        currencies: list[str],
        selling_currency: str,
        existing: Optional[dict] = None,
    ) -> dict:
        """
        Build a trip's currency_rates_json for the given item currencies.

        Each rate is expressed as 1 unit of the item currency in the selling
        currency. Manually entered rates are kept as they are.
        """
        selling_currency = selling_currency.upper()
        rates = await cls.get_rates(selling_currency)
        kept = dict((existing or {}).get("rates", {}))

        for currency in sorted({c.upper() for c in currencies if c}):
            if currency == selling_currency:
                continue
            entry = kept.get(currency)
            if isinstance(entry, dict) and entry.get("source") == "manual":
                continue
            per_base = rates.get(currency)
            if not per_base:
                logger.warning(f"No exchange rate available for {currency}")
                continue
            kept[currency] = {
                "rate": round(1 / per_base, 6),
                "source": "api",
                "locked_at": datetime.utcnow().date().isoformat(),
            }

        return {"base_currency": selling_currency, "rates": kept}

    @classmethod
    def convert_sync(
        cls,
        amount: float,
        from_currency: str,
        to_currency: str,
    ) -> Optional[float]:
        if from_currency == to_currency:
            return amount

        from_rate = FALLBACK_RATES.get(from_currency.upper())
        to_rate = FALLBACK_RATES.get(to_currency.upper())

        if not from_rate or not to_rate:
            return None

        eur_amount = amount / from_rate
        return round(eur_amount * to_rate, 2)

    @classmethod
    def format_price(
        cls,
        amount: float,
        currency: str,
        show_symbol: bool = True,
    ) -> str:
        symbols = {
            "EUR": "€",
            "USD": "$",
            "GBP": "£",
            "CHF": "CHF ",
            "JPY": "¥",
            "CNY": "¥",
            "THB": "฿",
        }

        if currency in ("JPY", "VND", "KHR", "LAK", "MMK", "IDR"):
            formatted = f"{int(amount):,}"
        else:
            formatted = f"{amount:,.2f}"

        if show_symbol:
            symbol = symbols.get(currency, currency + " ")
            return f"{symbol}{formatted}"
        return formatted
