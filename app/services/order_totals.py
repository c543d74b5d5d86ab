from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from app.config import settings
from app.schemas.checkout_schemas import OrderTotals


@dataclass(frozen=True)
class TotalsConfig:
    free_shipping_threshold: float = 10000
    base_shipping_cost: float = 100
    tax_rate: float = 0.18

    @classmethod
    def from_settings(cls) -> "TotalsConfig":
        return cls(
            free_shipping_threshold=settings.FREE_SHIPPING_THRESHOLD,
            base_shipping_cost=settings.BASE_SHIPPING_COST,
            tax_rate=settings.TAX_RATE,
        )


def round_money(amount) -> float:
    return float(Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def calculate_order_totals(line_totals: Iterable[float], config: TotalsConfig = None) -> OrderTotals:
    """Subtotal, tax, shipping and total from per-line totals (unit_price * quantity)."""
    config = config or TotalsConfig()

    subtotal = round_money(sum(line_totals))
    tax = round_money(subtotal * config.tax_rate)
    shipping_cost = 0 if subtotal >= config.free_shipping_threshold else config.base_shipping_cost
    total = subtotal + tax + shipping_cost

    return OrderTotals(
        subtotal=subtotal,
        tax=tax,
        shipping_cost=shipping_cost,
        total=total,
    )
