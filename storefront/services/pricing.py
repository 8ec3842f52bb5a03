from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, Tuple


CENT = Decimal("0.01")


def quantize(amount) -> Decimal:
    return Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class Totals:
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal

    @property
    def total(self) -> Decimal:
        return self.subtotal + self.tax + self.shipping - self.discount


@dataclass
class PricingRules:
    """Tax, shipping and discount rules applied when an order is assembled."""

    tax_rate: Decimal = Decimal("0")
    shipping_rates: Dict[str, Decimal] = field(default_factory=lambda: {"standard": Decimal("0")})

    @classmethod
    def from_config(cls, config) -> "PricingRules":
        return cls(tax_rate=config.tax_rate, shipping_rates=dict(config.shipping_rates))

    def knows_shipping_method(self, code: str) -> bool:
        return code in self.shipping_rates

    def line_tax(self, line_price: Decimal) -> Decimal:
        return quantize(line_price * self.tax_rate)

    def shipping_fee(self, code: str) -> Decimal:
        return quantize(self.shipping_rates.get(code, Decimal("0")))

    def discount_for(self, subtotal: Decimal) -> Decimal:
        # no promotion engine: discounts are always zero and never exceed the subtotal
        return min(Decimal("0.00"), subtotal)

    def totals(self, lines: Iterable[Tuple[Decimal, Decimal]], shipping_method: str) -> Totals:
        """``lines`` yields (line_price, line_tax) pairs."""
        subtotal = Decimal("0.00")
        tax = Decimal("0.00")
        for line_price, line_tax in lines:
            subtotal += line_price
            tax += line_tax
        subtotal = quantize(subtotal)
        return Totals(
            subtotal=subtotal,
            tax=quantize(tax),
            shipping=self.shipping_fee(shipping_method),
            discount=quantize(self.discount_for(subtotal)),
        )
