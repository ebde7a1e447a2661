"""Locale-aware formatting for rent amounts and billing periods.

Uses babel with the LOCALE env var (default: en_IN); the currency is derived
from the locale territory.

Example:
    >>> from pgportal.services.locale_service import format_amount, format_period_label
    >>> format_amount(5000)
    '₹5,000.00'
    >>> format_period_label("2025-11")
    'November 2025'
"""

import logging
import os
from decimal import Decimal

from babel import Locale, UnknownLocaleError
from babel.dates import format_date as babel_format_date
from babel.numbers import format_currency as babel_format_currency
from babel.numbers import format_decimal as babel_format_decimal
from babel.numbers import get_territory_currencies

from pgportal.services.period_service import period_start

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "en_IN"
DEFAULT_CURRENCY = "INR"


def _get_locale() -> str:
    """Get locale from environment with validation and fallback."""
    locale_str = os.getenv("LOCALE", DEFAULT_LOCALE)
    try:
        Locale.parse(locale_str)
        return locale_str
    except (UnknownLocaleError, ValueError) as e:
        logger.warning("Invalid LOCALE '%s': %s. Falling back to '%s'", locale_str, e, DEFAULT_LOCALE)
        return DEFAULT_LOCALE


def _get_currency_from_locale(locale_str: str) -> str:
    """Derive currency code from locale territory (e.g., 'en_IN' -> 'INR')."""
    try:
        territory = Locale.parse(locale_str).territory
        if territory:
            currencies = get_territory_currencies(territory)
            if currencies:
                return currencies[0]
    except (UnknownLocaleError, ValueError) as e:
        logger.warning("Could not derive currency from locale '%s': %s", locale_str, e)

    return DEFAULT_CURRENCY


# Module-level constants (computed once at import)
LOCALE = _get_locale()
CURRENCY = _get_currency_from_locale(LOCALE)


def format_amount(amount: float | Decimal | None, include_symbol: bool = True) -> str:
    """Format monetary amount according to locale.

    None (rent not yet assigned) is shown as zero.
    """
    value = Decimal(0) if amount is None else Decimal(amount)
    if include_symbol:
        return babel_format_currency(value, CURRENCY, locale=LOCALE)
    return babel_format_decimal(value, locale=LOCALE)


def format_period_label(period_key: str) -> str:
    """Human label for a billing period key, e.g. 'November 2025'."""
    return babel_format_date(period_start(period_key), format="MMMM yyyy", locale=LOCALE)


__all__ = [
    "LOCALE",
    "CURRENCY",
    "format_amount",
    "format_period_label",
]
