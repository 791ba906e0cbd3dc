# brushquote/pricing/tiers.py
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict, Optional, Union

from brushquote.core.errors import ValidationError
from brushquote.pricing.markup import DEFAULT_DEPOSIT_PERCENT
from brushquote.pricing.types import Tier

TIER_MULTIPLIERS: Dict[Tier, float] = {
    Tier.GOOD: 0.85,
    Tier.BETTER: 1.00,
    Tier.BEST: 1.15,
}


@dataclass(frozen=True)
class TierPrice:
    tier: Tier
    multiplier: float
    total: float
    deposit_amount: float
    balance_amount: float

    def as_dict(self) -> Dict[str, object]:
        d = asdict(self)
        d["tier"] = self.tier.value
        return d


def parse_tier(value: Union[str, Tier, None]) -> Tier:
    if value is None or value == "":
        raise ValidationError("A tier must be selected", code="TIER_REQUIRED")
    try:
        return Tier(str(getattr(value, "value", value)).lower())
    except ValueError:
        raise ValidationError(
            f"Invalid tier: {value!r}",
            code="INVALID_TIER",
            details={"allowed": [t.value for t in Tier]},
        )


class TierPricer:
    """Scales a quote's base total by the tier multiplier and recomputes the deposit."""

    def __init__(self, deposit_percent: Optional[float] = None):
        self.deposit_percent = (
            DEFAULT_DEPOSIT_PERCENT if deposit_percent is None else float(deposit_percent)
        )

    def price(self, base_total: float, tier: Union[str, Tier]) -> TierPrice:
        t = parse_tier(tier)
        mult = TIER_MULTIPLIERS[t]
        total = round(float(base_total) * mult, 2)
        deposit = round(total * self.deposit_percent / 100.0, 2)
        return TierPrice(
            tier=t,
            multiplier=mult,
            total=total,
            deposit_amount=deposit,
            balance_amount=round(total - deposit, 2),
        )

    def preview(self, base_total: float) -> Dict[str, TierPrice]:
        return {t.value: self.price(base_total, t) for t in Tier}
