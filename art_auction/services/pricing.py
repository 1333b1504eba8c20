"""
Pricing rules

- IncrementSchedule: minimum raise over a given price
- FeeCalculator: platform fee on a final sale amount

Both are pure; neither touches the database.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Sequence, Tuple

from art_auction.core.config import get_settings

CENTS = Decimal("0.01")
HUNDRED = Decimal("100")

Tier = Tuple[Decimal, Decimal]


def to_money(value) -> Decimal:
    """Coerce to a Decimal rounded to cents"""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def _pick_tier(amount: Decimal, tiers: Sequence[Tier], top: Decimal) -> Decimal:
    for upper_bound, value in tiers:
        if amount < upper_bound:
            return value
    return top


class IncrementSchedule:
    """Minimum increment as a function of the price being beaten"""

    def __init__(self, tiers: Optional[Iterable[Tier]] = None, top: Optional[Decimal] = None):
        settings = get_settings()
        self.tiers = sorted(
            ((Decimal(bound), Decimal(step)) for bound, step in (tiers if tiers is not None else settings.INCREMENT_TIERS)),
            key=lambda tier: tier[0],
        )
        self.top = Decimal(top if top is not None else settings.INCREMENT_TOP)

    def for_price(self, price: Decimal, fixed: Optional[Decimal] = None) -> Decimal:
        """Increment above `price`; an auction's fixed increment wins over the tiers"""
        if fixed is not None:
            return to_money(fixed)
        return to_money(_pick_tier(Decimal(price), self.tiers, self.top))

    def for_auction(self, auction, price: Decimal) -> Decimal:
        return self.for_price(price, auction.min_increment)


class FeeCalculator:
    """
    Sliding-scale platform fee with an absolute floor

    fee = max(fee_minimum, sale_amount * tier_percent(sale_amount) / 100)

    Tiers are (upper bound exclusive, percent) pairs; amounts at or above
    the last bound pay `top_percent`.
    """

    def __init__(
        self,
        tiers: Optional[Iterable[Tier]] = None,
        top_percent: Optional[Decimal] = None,
        fee_minimum: Optional[Decimal] = None,
    ):
        settings = get_settings()
        self.tiers = sorted(
            ((Decimal(bound), Decimal(pct)) for bound, pct in (tiers if tiers is not None else settings.FEE_TIERS)),
            key=lambda tier: tier[0],
        )
        self.top_percent = Decimal(top_percent if top_percent is not None else settings.FEE_TOP_PERCENT)
        self.fee_minimum = to_money(fee_minimum if fee_minimum is not None else settings.FEE_MINIMUM)

    @classmethod
    def for_auction(cls, auction, default: Optional["FeeCalculator"] = None) -> "FeeCalculator":
        """Calculator honoring an auction's flat percent override and fee floor"""
        default = default or cls()
        if auction.fee_percent is not None:
            return cls(tiers=[], top_percent=auction.fee_percent, fee_minimum=auction.fee_minimum)
        return cls(tiers=default.tiers, top_percent=default.top_percent, fee_minimum=auction.fee_minimum)

    def tier_percent(self, sale_amount: Decimal) -> Decimal:
        return _pick_tier(sale_amount, self.tiers, self.top_percent)

    def compute_fee(self, sale_amount) -> Decimal:
        sale_amount = Decimal(sale_amount)
        if sale_amount <= 0:
            raise ValueError(f"Sale amount must be positive, got {sale_amount}")

        percentage_fee = to_money(sale_amount * self.tier_percent(sale_amount) / HUNDRED)
        return max(self.fee_minimum, percentage_fee)
