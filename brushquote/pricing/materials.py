# brushquote/pricing/materials.py
from __future__ import annotations

import math
from typing import Dict, Optional

from brushquote.pricing.types import ApplicationMethod, Category, ProductSet, Tier

# -------------------------
# Defaults
# -------------------------
DEFAULT_COVERAGE_SQFT_PER_GALLON = 350.0
MIN_COVERAGE = 250.0
MAX_COVERAGE = 450.0
SPRAY_MAX_COVERAGE = 300.0
DEFAULT_WASTE_FACTOR = 1.10
DEFAULT_PRICE_PER_GALLON = 40.0
GALLON_INCREMENT = 0.25


def ceil_to(value: float, step: float) -> float:
    """Round up to the next multiple of ``step`` (float noise tolerant)."""
    if value <= 0:
        return 0.0
    return round(math.ceil(value / step - 1e-9) * step, 4)


def effective_coverage(
    coverage: Optional[float],
    method: ApplicationMethod = ApplicationMethod.ROLL,
) -> float:
    cov = float(coverage or DEFAULT_COVERAGE_SQFT_PER_GALLON)
    cov = min(max(cov, MIN_COVERAGE), MAX_COVERAGE)
    if method == ApplicationMethod.SPRAY:
        cov = min(cov, SPRAY_MAX_COVERAGE)
    return cov


def estimate_gallons(
    quantity: float,
    coats: int,
    coverage: Optional[float] = None,
    waste_factor: Optional[float] = None,
    method: ApplicationMethod = ApplicationMethod.ROLL,
) -> float:
    """
    Gallons needed for ``quantity`` sqft, rounded up to the quarter gallon.

    1000 sqft, 2 coats, 350 sqft/gal, 1.10 waste -> 6.2857 -> 6.50
    """
    if quantity <= 0 or coats <= 0:
        return 0.0
    waste = float(waste_factor) if waste_factor is not None else DEFAULT_WASTE_FACTOR
    raw = quantity * coats / effective_coverage(coverage, method) * waste
    return ceil_to(raw, GALLON_INCREMENT)


def price_per_gallon(
    category: Category,
    product_sets: Dict[Category, ProductSet],
    tier: Tier = Tier.BETTER,
) -> float:
    """Product price for the category's set at ``tier``; flat default otherwise."""
    ps = product_sets.get(category)
    if ps is not None:
        price = ps.price_for(tier)
        if price is not None:
            return price
    return DEFAULT_PRICE_PER_GALLON


def material_cost(gallons: float, unit_price: float) -> float:
    return gallons * unit_price
