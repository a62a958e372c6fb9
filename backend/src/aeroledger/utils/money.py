"""Decimal money helpers and the line-item amount calculator."""
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

ZERO = Decimal("0")
CENT = Decimal("0.01")
TENTH = Decimal("0.1")
UNIT_PRICE_PLACES = Decimal("0.0001")


def to_decimal(value: Decimal | int | float | str | None) -> Decimal:
    """Coerce a numeric value to Decimal without binary float artefacts."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def round2(value: Decimal | int | float | str) -> Decimal:
    """Round half-up to 2 decimal places."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def round1(value: Decimal | int | float | str) -> Decimal:
    """Round half-up to 1 decimal place."""
    return to_decimal(value).quantize(TENTH, rounding=ROUND_HALF_UP)


def exclusive_unit_price(inclusive_price: Decimal, tax_rate: Decimal) -> Decimal:
    """Strip tax from a tax-inclusive price, keeping four decimal places."""
    return (to_decimal(inclusive_price) / (1 + to_decimal(tax_rate))).quantize(UNIT_PRICE_PLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class LineAmounts:
    """
    Monetary fields of one line item.

    Only ``quantity``, ``unit_price`` and ``tax_rate`` are inputs; the derived
    fields are computed on access and cannot be assigned.

    ``amount`` and ``tax_amount`` are each rounded from the full-precision
    product, and ``line_total`` is their sum, so a stored line total always
    equals ``round2(amount + tax_amount)``.
    """

    quantity: Decimal
    unit_price: Decimal
    tax_rate: Decimal

    @classmethod
    def of(cls, quantity, unit_price, tax_rate) -> "LineAmounts":
        """Build from any numeric inputs."""
        return cls(to_decimal(quantity), to_decimal(unit_price), to_decimal(tax_rate))

    @property
    def amount(self) -> Decimal:
        return round2(self.quantity * self.unit_price)

    @property
    def tax_amount(self) -> Decimal:
        return round2(self.quantity * self.unit_price * self.tax_rate)

    @property
    def line_total(self) -> Decimal:
        return round2(self.amount + self.tax_amount)

    @property
    def rate_inclusive(self) -> Decimal:
        return round2(self.unit_price * (1 + self.tax_rate))

    def as_dict(self) -> dict[str, Decimal]:
        """All derived fields keyed by column name."""
        return {
            "amount": self.amount,
            "tax_amount": self.tax_amount,
            "line_total": self.line_total,
            "rate_inclusive": self.rate_inclusive,
        }


@dataclass(frozen=True)
class Totals:
    """Aggregate totals over a set of line items."""

    subtotal: Decimal = ZERO
    tax_total: Decimal = ZERO

    @property
    def total_amount(self) -> Decimal:
        return self.subtotal + self.tax_total

    @classmethod
    def from_lines(cls, lines: Iterable) -> "Totals":
        """Sum ``amount`` and ``tax_amount`` over objects exposing them."""
        subtotal = ZERO
        tax_total = ZERO
        for line in lines:
            subtotal += to_decimal(line.amount)
            tax_total += to_decimal(line.tax_amount)
        return cls(subtotal=round2(subtotal), tax_total=round2(tax_total))
