# brushquote/pricing/markup.py
"""
Markup cascade.

Order is fixed and every step applies to the running subtotal:

    labor markup -> material markup -> subtotal before overhead (+ add-ons)
    -> overhead -> subtotal before profit -> profit -> subtotal -> tax
    -> total -> deposit / balance

``subtotal`` is the post-profit, pre-tax amount that tax is charged on.

Intermediate values keep full precision; ``PricedQuote`` rounds to cents.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Optional

from brushquote.core.errors import ValidationError
from brushquote.pricing.types import BasePricing

DEFAULT_LABOR_MARKUP_PERCENT = 0.0
DEFAULT_MATERIAL_MARKUP_PERCENT = 25.0
DEFAULT_OVERHEAD_PERCENT = 0.0
DEFAULT_PROFIT_MARGIN_PERCENT = 0.0
DEFAULT_TAX_PERCENT = 8.25
DEFAULT_DEPOSIT_PERCENT = 50.0


@dataclass(frozen=True)
class PricingSettings:
    labor_markup_percent: float = DEFAULT_LABOR_MARKUP_PERCENT
    material_markup_percent: float = DEFAULT_MATERIAL_MARKUP_PERCENT
    overhead_percent: float = DEFAULT_OVERHEAD_PERCENT
    profit_margin_percent: float = DEFAULT_PROFIT_MARGIN_PERCENT
    tax_percent: float = DEFAULT_TAX_PERCENT
    deposit_percent: float = DEFAULT_DEPOSIT_PERCENT

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None or not (0.0 <= float(value) <= 100.0):
                raise ValidationError(
                    f"{f.name} must be between 0 and 100",
                    code="INVALID_PERCENTAGE",
                    details={"field": f.name, "value": value},
                )

    @classmethod
    def from_contractor(cls, row: Optional[Any]) -> "PricingSettings":
        """Build from a ContractorSettings row; missing row or columns -> defaults."""
        if row is None:
            return cls()
        kwargs = {}
        for f in fields(cls):
            value = getattr(row, f.name, None)
            if value is not None:
                kwargs[f.name] = float(value)
        return cls(**kwargs)


@dataclass(frozen=True)
class PricedQuote:
    labor_total: float
    material_total: float
    labor_markup_amount: float
    material_markup_amount: float
    add_ons: float
    subtotal_before_overhead: float
    overhead_amount: float
    subtotal_before_profit: float
    profit_amount: float
    subtotal: float
    tax_amount: float
    total: float
    deposit_amount: float
    balance_amount: float

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)


class MarkupEngine:
    def __init__(self, settings: Optional[PricingSettings] = None):
        self.settings = settings or PricingSettings()

    def apply(self, base: BasePricing, add_ons: float = 0.0) -> PricedQuote:
        s = self.settings

        labor = float(base.labor_total)
        material = float(base.material_total) if base.include_materials else 0.0

        labor_markup = labor * s.labor_markup_percent / 100.0
        material_markup = material * s.material_markup_percent / 100.0

        before_overhead = labor + labor_markup + material + material_markup + float(add_ons or 0)
        overhead = before_overhead * s.overhead_percent / 100.0
        before_profit = before_overhead + overhead
        profit = before_profit * s.profit_margin_percent / 100.0
        subtotal = before_profit + profit
        tax = subtotal * s.tax_percent / 100.0
        total = subtotal + tax

        deposit = round(total, 2) * s.deposit_percent / 100.0

        return PricedQuote(
            labor_total=round(labor, 2),
            material_total=round(material, 2),
            labor_markup_amount=round(labor_markup, 2),
            material_markup_amount=round(material_markup, 2),
            add_ons=round(float(add_ons or 0), 2),
            subtotal_before_overhead=round(before_overhead, 2),
            overhead_amount=round(overhead, 2),
            subtotal_before_profit=round(before_profit, 2),
            profit_amount=round(profit, 2),
            subtotal=round(subtotal, 2),
            tax_amount=round(tax, 2),
            total=round(total, 2),
            deposit_amount=round(deposit, 2),
            balance_amount=round(round(total, 2) - round(deposit, 2), 2),
        )
