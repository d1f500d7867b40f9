"""Platform service fee calculation."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any

from settlement_service.errors import ConfigurationError, ValidationError
from settlement_service.services.money import MoneyFormatter

if TYPE_CHECKING:
    from settlement_service.config import FeesConfig

PERCENTAGE_APPLIED = "percentage_applied"
MINIMUM_FEE_APPLIED = "minimum_fee_applied"
MAXIMUM_FEE_CAPPED = "maximum_fee_capped"


def _round_minor(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class FeeQuote:
    """Outcome of a fee calculation. All amounts in minor units."""

    budget: int
    service_fee: int
    total_charge: int
    currency: str
    reason: str
    base_percentage: Decimal
    calculated_fee: int
    min_fee: int
    max_fee: int


class FeeCalculator:
    """
    Computes the platform fee charged on top of a budget.

    The fee is ``budget * base_percentage`` clamped to the configured
    minimum and maximum. The bounds are configured in the base currency and
    converted with a static rate table. Pure and deterministic.
    """

    def __init__(self, fees: FeesConfig) -> None:
        self._base_currency = fees.base_currency
        self._percentage = fees.base_percentage
        self._min_fee = fees.min_fee
        self._max_fee = fees.max_fee
        self._currencies = dict(fees.currencies)
        self._validate()
        self.money = MoneyFormatter(
            {code: currency.decimals for code, currency in self._currencies.items()}
        )

    def _validate(self) -> None:
        if not Decimal(0) < self._percentage < Decimal(1):
            msg = f"fees.base_percentage must be in (0, 1), got {self._percentage}"
            raise ConfigurationError(msg)
        if self._min_fee < 0 or self._min_fee > self._max_fee:
            msg = f"fees.min_fee ({self._min_fee}) must be >= 0 and <= max_fee ({self._max_fee})"
            raise ConfigurationError(msg)
        base = self._currencies.get(self._base_currency)
        if base is None or base.rate != 1:
            msg = f"Base currency {self._base_currency} must be configured with rate 1"
            raise ConfigurationError(msg)
        for code, currency in self._currencies.items():
            if currency.rate <= 0:
                msg = f"Exchange rate for {code} must be positive"
                raise ConfigurationError(msg)

    @property
    def supported_currencies(self) -> list[str]:
        return sorted(self._currencies)

    def fee_bounds(self, currency: str) -> tuple[int, int]:
        """Minimum and maximum fee in the currency's minor units."""
        rules = self._currencies.get(currency)
        if rules is None:
            msg = f"No exchange rate configured for currency {currency!r}"
            raise ConfigurationError(msg)
        scale = Decimal(10) ** rules.decimals
        return (
            _round_minor(self._min_fee * rules.rate * scale),
            _round_minor(self._max_fee * rules.rate * scale),
        )

    def quote(self, budget: int, currency: str) -> FeeQuote:
        """
        Calculate the service fee and total charge for a budget.

        Args:
            budget: Budget in minor units, must be >= 0
            currency: ISO currency code present in the rate table

        Raises:
            ValidationError: INVALID_AMOUNT for negative budgets
            ConfigurationError: currency has no configured rate
        """
        if budget < 0:
            raise ValidationError(
                "INVALID_AMOUNT",
                "Budget must not be negative",
                {"budget": budget},
            )
        min_fee, max_fee = self.fee_bounds(currency)
        calculated = _round_minor(Decimal(budget) * self._percentage)

        if calculated < min_fee:
            fee, reason = min_fee, MINIMUM_FEE_APPLIED
        elif calculated > max_fee:
            fee, reason = max_fee, MAXIMUM_FEE_CAPPED
        else:
            fee, reason = calculated, PERCENTAGE_APPLIED

        return FeeQuote(
            budget=budget,
            service_fee=fee,
            total_charge=budget + fee,
            currency=currency,
            reason=reason,
            base_percentage=self._percentage,
            calculated_fee=calculated,
            min_fee=min_fee,
            max_fee=max_fee,
        )

    def quote_view(self, quote: FeeQuote) -> dict[str, Any]:
        """Render a quote with decimal-string amounts."""
        fmt = self.money.format
        return {
            "budget": fmt(quote.budget, quote.currency),
            "service_fee": fmt(quote.service_fee, quote.currency),
            "total_charge": fmt(quote.total_charge, quote.currency),
            "currency": quote.currency,
            "breakdown": {
                "reason": quote.reason,
                "base_percentage": str(quote.base_percentage),
                "calculated_fee": fmt(quote.calculated_fee, quote.currency),
                "min_fee": fmt(quote.min_fee, quote.currency),
                "max_fee": fmt(quote.max_fee, quote.currency),
            },
        }

    def describe(self) -> dict[str, Any]:
        """Fee rules with the converted bounds for every configured currency."""
        currencies: dict[str, Any] = {}
        for code in self.supported_currencies:
            min_fee, max_fee = self.fee_bounds(code)
            currencies[code] = {
                "exchange_rate": str(self._currencies[code].rate),
                "min_fee": self.money.format(min_fee, code),
                "max_fee": self.money.format(max_fee, code),
            }
        return {
            "base_currency": self._base_currency,
            "base_percentage": str(self._percentage),
            "min_fee": str(self._min_fee),
            "max_fee": str(self._max_fee),
            "currencies": currencies,
        }
