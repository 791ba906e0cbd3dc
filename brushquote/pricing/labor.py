# brushquote/pricing/labor.py
"""
Labor cost resolution.

Category rules resolve through a fixed chain: the item's own category rule,
then the ``walls`` rule, then the scheme-wide default. A missing attribute at
one level falls through to the next, so a scheme that only prices walls still
prices every other category.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

from brushquote.core.errors import PricingError
from brushquote.pricing.materials import (
    DEFAULT_COVERAGE_SQFT_PER_GALLON,
    DEFAULT_WASTE_FACTOR,
    ceil_to,
)
from brushquote.pricing.types import (
    CEILING_SHAPED,
    TRIM_SHAPED,
    WALL_SHAPED,
    Category,
    CategoryRule,
    HomeCondition,
    JobScope,
    LaborItem,
    PricingModel,
    resolve_model,
)

# -------------------------
# Defaults
# -------------------------
GLOBAL_DEFAULT_RATE = 0.55  # $/sqft
GLOBAL_DEFAULT_PRODUCTION_RATE = 300.0  # sqft/hour
GLOBAL_DEFAULT_UNIT_PRICE = 85.0  # $/unit
DEFAULT_TURNKEY_RATE = 3.50  # $/home sqft
DEFAULT_HOURLY_RATE = 50.0
DEFAULT_CREW_SIZE = 2
DEFAULT_ROOM_RATE = 450.0
HOURS_INCREMENT = 0.1

CONDITION_MULTIPLIERS: Dict[HomeCondition, float] = {
    HomeCondition.EXCELLENT: 0.90,
    HomeCondition.GOOD: 0.95,
    HomeCondition.AVERAGE: 1.00,
    HomeCondition.FAIR: 1.10,
    HomeCondition.POOR: 1.25,
}

_RULE_ATTRS = ("rate", "production_rate", "unit_price")


def _opt_float(v: Any) -> Optional[float]:
    if v is None or v == "":
        return None
    return float(v)


def _parse_rule(raw: Any) -> CategoryRule:
    if isinstance(raw, (int, float)):
        return CategoryRule(rate=float(raw))
    if not isinstance(raw, Mapping):
        raise PricingError(f"Invalid category rule: {raw!r}")
    return CategoryRule(
        rate=_opt_float(raw.get("rate")),
        production_rate=_opt_float(raw.get("production_rate")),
        unit_price=_opt_float(raw.get("unit_price")),
    )


@dataclass(frozen=True)
class PricingRules:
    """Typed view of a pricing scheme's rules map."""

    model: PricingModel
    categories: Dict[Category, CategoryRule] = field(default_factory=dict)
    room_flat_rate: bool = False
    default_rate: float = GLOBAL_DEFAULT_RATE
    default_production_rate: float = GLOBAL_DEFAULT_PRODUCTION_RATE
    default_unit_price: float = GLOBAL_DEFAULT_UNIT_PRICE
    turnkey_interior_rate: float = DEFAULT_TURNKEY_RATE
    turnkey_exterior_rate: float = DEFAULT_TURNKEY_RATE
    hourly_rate: float = DEFAULT_HOURLY_RATE
    crew_size: int = DEFAULT_CREW_SIZE
    room_rate: float = DEFAULT_ROOM_RATE
    coverage: float = DEFAULT_COVERAGE_SQFT_PER_GALLON
    waste_factor: float = DEFAULT_WASTE_FACTOR

    @classmethod
    def from_scheme(
        cls,
        scheme_type: str,
        rules: Optional[Mapping[str, Any]] = None,
        **overrides: Any,
    ) -> "PricingRules":
        """
        Build from a stored scheme (``type`` + JSON ``rules``).

        ``overrides`` carries contractor-level values (hourly rate, crew size,
        turnkey rates) and wins over the scheme's scalars when not None.
        """
        try:
            model, room_variant = resolve_model(scheme_type)
        except ValueError as e:
            raise PricingError(f"Unknown pricing model: {scheme_type!r}") from e

        rules = dict(rules or {})
        categories: Dict[Category, CategoryRule] = {}
        for name, raw in (rules.pop("categories", None) or {}).items():
            categories[Category.parse(name)] = _parse_rule(raw)

        kwargs: Dict[str, Any] = {}
        for fname in (
            "default_rate",
            "default_production_rate",
            "default_unit_price",
            "turnkey_interior_rate",
            "turnkey_exterior_rate",
            "hourly_rate",
            "room_rate",
            "coverage",
            "waste_factor",
        ):
            if rules.get(fname) is not None:
                kwargs[fname] = float(rules[fname])
        if rules.get("crew_size") is not None:
            kwargs["crew_size"] = int(rules["crew_size"])

        for k, v in overrides.items():
            if v is not None:
                kwargs[k] = v

        return cls(model=model, categories=categories, room_flat_rate=room_variant, **kwargs)


# -------------------------
# Quantity helpers
# -------------------------
def quantity_from_dimensions(category: Category, length: float, width: float, height: float) -> float:
    """Surface size from room dimensions, rounded up to a whole unit."""
    length, width, height = float(length or 0), float(width or 0), float(height or 0)
    if category in WALL_SHAPED:
        raw = 2 * (length + width) * height
    elif category in CEILING_SHAPED:
        raw = length * width
    elif category in TRIM_SHAPED:
        raw = 2 * (length + width)
    else:
        raw = length * width
    return float(math.ceil(raw - 1e-9)) if raw > 0 else 0.0


def item_quantity(item: LaborItem) -> float:
    if item.quantity is not None:
        qty = float(item.quantity)
        if qty < 0:
            raise PricingError(f"Negative quantity for {item.category_name!r}")
        return qty
    if item.dimensions is not None:
        d = item.dimensions
        return quantity_from_dimensions(item.category, d.length, d.width, d.height)
    return 0.0


# -------------------------
# Resolver
# -------------------------
class LaborCostResolver:
    def __init__(self, rules: PricingRules):
        self.rules = rules

    def rule_value(self, category: Category, attr: str) -> float:
        if attr not in _RULE_ATTRS:
            raise PricingError(f"Unknown rule attribute: {attr}")
        for cat in (category, Category.WALLS):
            rule = self.rules.categories.get(cat)
            if rule is not None and getattr(rule, attr) is not None:
                return float(getattr(rule, attr))
        return {
            "rate": self.rules.default_rate,
            "production_rate": self.rules.default_production_rate,
            "unit_price": self.rules.default_unit_price,
        }[attr]

    def rate_based(self, item: LaborItem, quantity: float) -> Tuple[float, float]:
        rate = self.rule_value(item.category, "rate")
        return quantity * rate, rate

    def production_based(self, item: LaborItem, quantity: float) -> Tuple[float, float]:
        productivity = self.rule_value(item.category, "production_rate")
        if productivity <= 0:
            raise PricingError(f"Production rate must be positive for {item.category_name!r}")
        hours = ceil_to(quantity / productivity, HOURS_INCREMENT)
        return hours * self.rules.hourly_rate * self.rules.crew_size, hours

    def flat_rate(self, item: LaborItem, quantity: float) -> Tuple[float, float]:
        unit_price = self.rule_value(item.category, "unit_price")
        return quantity * unit_price, unit_price

    def turnkey_rate(self, job_scope: JobScope, condition: Optional[HomeCondition]) -> float:
        base = (
            self.rules.turnkey_exterior_rate
            if job_scope == JobScope.EXTERIOR
            else self.rules.turnkey_interior_rate
        )
        mult = CONDITION_MULTIPLIERS.get(condition or HomeCondition.AVERAGE, 1.0)
        return base * mult
