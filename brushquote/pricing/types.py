from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


# -----------------------------
# Enums
# -----------------------------


class PricingModel(str, Enum):
    TURNKEY = "turnkey"
    RATE_BASED_SQFT = "rate_based_sqft"
    PRODUCTION_BASED = "production_based"
    FLAT_RATE_UNIT = "flat_rate_unit"


# Older scheme types still stored in tenant data
LEGACY_MODEL_ALIASES: Dict[str, PricingModel] = {
    "sqft_turnkey": PricingModel.TURNKEY,
    "sqft_labor_paint": PricingModel.RATE_BASED_SQFT,
    "hourly_time_materials": PricingModel.PRODUCTION_BASED,
    "unit_pricing": PricingModel.FLAT_RATE_UNIT,
    "room_flat_rate": PricingModel.FLAT_RATE_UNIT,
}

ROOM_FLAT_RATE_VARIANT = "room_flat_rate"


def resolve_model(raw: str) -> Tuple[PricingModel, bool]:
    """
    Map a stored scheme type to (model, is_room_flat_rate).
    Raises ValueError for anything outside the closed set.
    """
    key = (raw or "").strip().lower()
    if key == ROOM_FLAT_RATE_VARIANT:
        return PricingModel.FLAT_RATE_UNIT, True
    if key in LEGACY_MODEL_ALIASES:
        return LEGACY_MODEL_ALIASES[key], False
    return PricingModel(key), False


class Category(str, Enum):
    WALLS = "walls"
    CEILINGS = "ceilings"
    TRIM = "trim"
    DOORS = "doors"
    WINDOWS = "windows"
    CABINETS = "cabinets"
    ROOM_SMALL = "room_small"
    ROOM_MEDIUM = "room_medium"
    ROOM_LARGE = "room_large"
    EXTERIOR_WALLS = "exterior_walls"
    EXTERIOR_TRIM = "exterior_trim"
    EXTERIOR_DOORS = "exterior_doors"
    SOFFIT_FASCIA = "soffit_fascia"
    DECK = "deck"
    SHUTTERS = "shutters"
    OTHER = "other"

    @classmethod
    def parse(cls, name: Optional[str]) -> "Category":
        """Display names ("Soffit & Fascia", "Exterior Walls") -> enum. Unknown -> OTHER."""
        key = (name or "").strip().lower()
        key = key.replace("&", " ").replace("-", " ").replace("/", " ")
        key = "_".join(key.split())
        return _CATEGORY_KEYS.get(key, cls.OTHER)


_CATEGORY_KEYS: Dict[str, Category] = {c.value: c for c in Category}
_CATEGORY_KEYS.update(
    {
        "wall": Category.WALLS,
        "ceiling": Category.CEILINGS,
        "door": Category.DOORS,
        "window": Category.WINDOWS,
        "cabinet": Category.CABINETS,
        "shutter": Category.SHUTTERS,
        "decks_railings": Category.DECK,
        "decks": Category.DECK,
        "baseboards": Category.TRIM,
        "small_room": Category.ROOM_SMALL,
        "medium_room": Category.ROOM_MEDIUM,
        "large_room": Category.ROOM_LARGE,
        "room": Category.ROOM_MEDIUM,
    }
)

WALL_SHAPED = {Category.WALLS, Category.EXTERIOR_WALLS}
CEILING_SHAPED = {Category.CEILINGS}
TRIM_SHAPED = {Category.TRIM, Category.EXTERIOR_TRIM}


class MeasurementUnit(str, Enum):
    SQFT = "sqft"
    LINEAR_FOOT = "linear_foot"
    HOUR = "hour"
    UNIT = "unit"


class Tier(str, Enum):
    GOOD = "good"
    BETTER = "better"
    BEST = "best"


class JobScope(str, Enum):
    INTERIOR = "interior"
    EXTERIOR = "exterior"


class HomeCondition(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    AVERAGE = "average"
    FAIR = "fair"
    POOR = "poor"


class ApplicationMethod(str, Enum):
    ROLL = "roll"
    SPRAY = "spray"


# -----------------------------
# Input models
# -----------------------------


@dataclass
class Dimensions:
    length: float = 0.0
    width: float = 0.0
    height: float = 0.0


@dataclass
class LaborItem:
    category_name: str
    measurement_unit: MeasurementUnit = MeasurementUnit.SQFT
    quantity: Optional[float] = None
    dimensions: Optional[Dimensions] = None
    coats: int = 2
    labor_rate: float = 0.0
    selected: bool = True
    gallons: Optional[float] = None

    @property
    def category(self) -> Category:
        return Category.parse(self.category_name)


@dataclass
class Area:
    name: str
    items: List[LaborItem] = field(default_factory=list)
    id: Optional[int] = None

    @property
    def selected_items(self) -> List[LaborItem]:
        return [i for i in self.items if i.selected]


@dataclass(frozen=True)
class ProductChoice:
    product_id: Optional[str]
    name: str = ""
    price_per_gallon: Optional[float] = None


@dataclass
class ProductSet:
    category: Category
    products: Dict[Tier, ProductChoice] = field(default_factory=dict)

    def price_for(self, tier: Tier) -> Optional[float]:
        """Tier product price; falls back better -> good -> best like older quotes did."""
        order = [tier] + [t for t in (Tier.BETTER, Tier.GOOD, Tier.BEST) if t != tier]
        for t in order:
            choice = self.products.get(t)
            if choice and choice.price_per_gallon:
                return float(choice.price_per_gallon)
        return None


@dataclass(frozen=True)
class CategoryRule:
    rate: Optional[float] = None  # $/unit of measure (rate-based)
    production_rate: Optional[float] = None  # units per hour (production-based)
    unit_price: Optional[float] = None  # $/unit (flat-rate)


# -----------------------------
# Output models
# -----------------------------


@dataclass
class BreakdownLine:
    area_name: str
    category: str
    quantity: float
    unit: str
    labor_cost: float
    labor_rate: Optional[float] = None
    hours: Optional[float] = None
    unit_price: Optional[float] = None
    gallons: float = 0.0
    price_per_gallon: Optional[float] = None
    material_cost: float = 0.0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "area_name": self.area_name,
            "category": self.category,
            "quantity": self.quantity,
            "unit": self.unit,
            "labor_rate": self.labor_rate,
            "hours": self.hours,
            "unit_price": self.unit_price,
            "labor_cost": round(self.labor_cost, 2),
            "gallons": self.gallons,
            "price_per_gallon": self.price_per_gallon,
            "material_cost": round(self.material_cost, 2),
        }


@dataclass
class BasePricing:
    """Raw (pre-markup) totals."""

    model: str
    labor_total: float
    material_total: float
    total_sqft: float = 0.0
    total_hours: float = 0.0
    gallons: float = 0.0
    include_materials: bool = True
    breakdown: List[BreakdownLine] = field(default_factory=list)
    source: str = "unified"  # unified | legacy
