"""Minor-unit money handling for amounts crossing the HTTP boundary."""

from __future__ import annotations

from decimal import Decimal, DecimalException, Inexact, Overflow, localcontext
from typing import TYPE_CHECKING

from settlement_service.errors import ConfigurationError, ValidationError

if TYPE_CHECKING:
    from collections.abc import Mapping

# Largest amount accepted in minor units. Fee arithmetic on top of it stays
# well inside the signed 64-bit range SQLite stores.
MAX_MINOR_UNITS = 10**15


class MoneyFormatter:
    """
    Converts between decimal amounts ("220.00", 220, 220.5) and integer
    minor units for each configured currency.
    """

    def __init__(self, decimals_by_currency: Mapping[str, int]) -> None:
        self._decimals = dict(decimals_by_currency)

    @property
    def currencies(self) -> list[str]:
        return sorted(self._decimals)

    def is_supported(self, currency: str) -> bool:
        return currency in self._decimals

    def decimals(self, currency: str) -> int:
        try:
            return self._decimals[currency]
        except KeyError:
            msg = f"No minor-unit configuration for currency {currency!r}"
            raise ConfigurationError(msg) from None

    def to_minor_units(self, value: object, currency: str, field_name: str) -> int:
        """
        Parse a JSON amount into minor units.

        Accepts integers, floats and numeric strings. Rejects booleans,
        non-finite values, amounts with more decimal places than the
        currency allows, and amounts above MAX_MINOR_UNITS.
        """
        if isinstance(value, bool) or not isinstance(value, int | float | str):
            raise ValidationError(
                "INVALID_AMOUNT",
                f"Field '{field_name}' must be a number or numeric string",
                {"field": field_name},
            )
        try:
            amount = Decimal(str(value).strip())
        except DecimalException as exc:
            raise ValidationError(
                "INVALID_AMOUNT",
                f"Field '{field_name}' is not a valid amount",
                {"field": field_name},
            ) from exc
        if not amount.is_finite():
            raise ValidationError(
                "INVALID_AMOUNT",
                f"Field '{field_name}' must be finite",
                {"field": field_name},
            )

        decimals = self.decimals(currency)
        with localcontext() as ctx:
            ctx.traps[Inexact] = True
            try:
                scaled = amount.scaleb(decimals)
            except Overflow as exc:
                raise _too_large(field_name) from exc
            except Inexact as exc:
                raise _too_precise(field_name, decimals, currency) from exc
        if abs(scaled) > MAX_MINOR_UNITS:
            raise _too_large(field_name)
        if scaled != scaled.to_integral_value():
            raise _too_precise(field_name, decimals, currency)
        return int(scaled)

    def format(self, minor_units: int, currency: str) -> str:
        """Render minor units as a fixed-point decimal string, e.g. 22000 -> '220.00'."""
        decimals = self.decimals(currency)
        value = Decimal(minor_units).scaleb(-decimals)
        return f"{value:.{decimals}f}"


def _too_precise(field_name: str, decimals: int, currency: str) -> ValidationError:
    return ValidationError(
        "INVALID_AMOUNT",
        f"Field '{field_name}' has more than {decimals} decimal places for {currency}",
        {"field": field_name, "currency": currency},
    )


def _too_large(field_name: str) -> ValidationError:
    return ValidationError(
        "INVALID_AMOUNT",
        f"Field '{field_name}' is too large",
        {"field": field_name, "max_minor_units": MAX_MINOR_UNITS},
    )
