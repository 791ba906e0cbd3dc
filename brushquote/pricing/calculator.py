# brushquote/pricing/calculator.py
"""
Single pricing entry point: ``price_quote``.

Produces raw labor and material totals for one of four pricing models. If no
scheme is attached to the quote, or the unified calculator fails for any
reason, the quote is priced with the legacy per-item formula instead and a
warning is logged. Callers never see a pricing exception.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from brushquote.core.errors import PricingError
from brushquote.core.logging_config import logger
from brushquote.observability.metrics import pricing_counter, pricing_fallback_counter
from brushquote.pricing.labor import LaborCostResolver, PricingRules, item_quantity
from brushquote.pricing.materials import (
    DEFAULT_COVERAGE_SQFT_PER_GALLON,
    estimate_gallons,
    price_per_gallon,
)
from brushquote.pricing.types import (
    ApplicationMethod,
    Area,
    BasePricing,
    BreakdownLine,
    Category,
    HomeCondition,
    JobScope,
    LaborItem,
    MeasurementUnit,
    PricingModel,
    ProductSet,
    Tier,
)

# Turnkey and flat-rate prices are all-in; this is how they split when
# materials are part of the job.
ALL_IN_LABOR_SHARE = 0.60
ALL_IN_MATERIAL_SHARE = 0.40


@dataclass
class PricingRequest:
    areas: List[Area] = field(default_factory=list)
    scheme_type: Optional[str] = None
    scheme_rules: Dict[str, Any] = field(default_factory=dict)
    rule_overrides: Dict[str, Any] = field(default_factory=dict)
    job_scope: JobScope = JobScope.INTERIOR
    home_sqft: float = 0.0
    condition: Optional[HomeCondition] = None
    include_materials: bool = True
    application_method: ApplicationMethod = ApplicationMethod.ROLL
    coverage: Optional[float] = None
    waste_factor: Optional[float] = None
    product_sets: Dict[Category, ProductSet] = field(default_factory=dict)


# -------------------------
# Entry point
# -------------------------
def price_quote(req: PricingRequest, *, quote_id: Optional[int] = None) -> BasePricing:
    log = logger.bind(quote_id=quote_id, scheme_type=req.scheme_type)

    if not req.scheme_type:
        log.warning("pricing_fallback", reason="no_scheme")
        pricing_fallback_counter.labels(reason="no_scheme").inc()
        result = legacy_price(req)
    else:
        try:
            rules = PricingRules.from_scheme(req.scheme_type, req.scheme_rules, **req.rule_overrides)
            result = calculate(rules, req)
        except Exception as e:
            log.warning("pricing_fallback", reason="calculator_error", error=str(e))
            pricing_fallback_counter.labels(reason="calculator_error").inc()
            result = legacy_price(req)

    pricing_counter.labels(source=result.source, model=result.model).inc()
    log.info(
        "quote_priced",
        source=result.source,
        model=result.model,
        labor_total=round(result.labor_total, 2),
        material_total=round(result.material_total, 2),
    )
    return result


def calculate(rules: PricingRules, req: PricingRequest) -> BasePricing:
    if rules.model == PricingModel.TURNKEY:
        return _turnkey(rules, req)
    if rules.model == PricingModel.FLAT_RATE_UNIT and rules.room_flat_rate:
        return _room_flat_rate(rules, req)
    return _per_item(rules, req)


# -------------------------
# Models
# -------------------------
def _split_all_in(amount: float, include_materials: bool):
    if include_materials:
        return amount * ALL_IN_LABOR_SHARE, amount * ALL_IN_MATERIAL_SHARE
    return amount, 0.0


def _turnkey(rules: PricingRules, req: PricingRequest) -> BasePricing:
    home_sqft = float(req.home_sqft or 0)
    if home_sqft <= 0:
        raise PricingError("Turnkey pricing requires home square footage")

    rate = LaborCostResolver(rules).turnkey_rate(req.job_scope, req.condition)
    base = home_sqft * rate
    labor, material = _split_all_in(base, req.include_materials)

    line = BreakdownLine(
        area_name="Whole home",
        category=req.job_scope.value,
        quantity=home_sqft,
        unit=MeasurementUnit.SQFT.value,
        labor_rate=round(rate, 4),
        labor_cost=labor,
        material_cost=material,
    )
    return BasePricing(
        model=PricingModel.TURNKEY.value,
        labor_total=labor,
        material_total=material,
        total_sqft=home_sqft,
        include_materials=req.include_materials,
        breakdown=[line],
    )


def _room_flat_rate(rules: PricingRules, req: PricingRequest) -> BasePricing:
    lines: List[BreakdownLine] = []
    labor_total = material_total = 0.0
    for area in req.areas:
        if not area.selected_items:
            continue
        labor, material = _split_all_in(rules.room_rate, req.include_materials)
        labor_total += labor
        material_total += material
        lines.append(
            BreakdownLine(
                area_name=area.name,
                category="room",
                quantity=1,
                unit=MeasurementUnit.UNIT.value,
                unit_price=rules.room_rate,
                labor_cost=labor,
                material_cost=material,
            )
        )
    return BasePricing(
        model=PricingModel.FLAT_RATE_UNIT.value,
        labor_total=labor_total,
        material_total=material_total,
        include_materials=req.include_materials,
        breakdown=lines,
    )


def _item_materials(item: LaborItem, qty: float, rules: PricingRules, req: PricingRequest):
    if not req.include_materials:
        return 0.0, None, 0.0
    if item.gallons is not None:
        gallons = float(item.gallons)
    elif item.measurement_unit == MeasurementUnit.SQFT:
        gallons = estimate_gallons(
            qty,
            item.coats,
            coverage=req.coverage or rules.coverage,
            waste_factor=req.waste_factor if req.waste_factor is not None else rules.waste_factor,
            method=req.application_method,
        )
    else:
        return 0.0, None, 0.0
    ppg = price_per_gallon(item.category, req.product_sets, Tier.BETTER)
    return gallons, ppg, gallons * ppg


def _per_item(rules: PricingRules, req: PricingRequest) -> BasePricing:
    resolver = LaborCostResolver(rules)
    lines: List[BreakdownLine] = []
    labor_total = material_total = total_sqft = total_hours = total_gallons = 0.0

    for area in req.areas:
        for item in area.selected_items:
            qty = item_quantity(item)
            line = BreakdownLine(
                area_name=area.name,
                category=item.category.value,
                quantity=qty,
                unit=item.measurement_unit.value,
                labor_cost=0.0,
            )

            if rules.model == PricingModel.RATE_BASED_SQFT:
                line.labor_cost, line.labor_rate = resolver.rate_based(item, qty)
            elif rules.model == PricingModel.PRODUCTION_BASED:
                line.labor_cost, line.hours = resolver.production_based(item, qty)
                total_hours += line.hours
            elif rules.model == PricingModel.FLAT_RATE_UNIT:
                price, line.unit_price = resolver.flat_rate(item, qty)
                line.labor_cost, line.material_cost = _split_all_in(price, req.include_materials)
            else:
                raise PricingError(f"Unsupported model for item pricing: {rules.model}")

            if rules.model != PricingModel.FLAT_RATE_UNIT:
                line.gallons, line.price_per_gallon, line.material_cost = _item_materials(
                    item, qty, rules, req
                )

            if item.measurement_unit == MeasurementUnit.SQFT:
                total_sqft += qty
            labor_total += line.labor_cost
            material_total += line.material_cost
            total_gallons += line.gallons
            lines.append(line)

    return BasePricing(
        model=rules.model.value,
        labor_total=labor_total,
        material_total=material_total,
        total_sqft=total_sqft,
        total_hours=round(total_hours, 2),
        gallons=round(total_gallons, 2),
        include_materials=req.include_materials,
        breakdown=lines,
    )


# -------------------------
# Legacy formula
# -------------------------
def legacy_price(req: PricingRequest) -> BasePricing:
    """
    Per item: labor = quantity x item labor rate x coats,
    materials = (gallons or quantity / 350) x better-product price x coats.
    """
    lines: List[BreakdownLine] = []
    labor_total = material_total = total_sqft = total_gallons = 0.0

    for area in req.areas:
        for item in area.selected_items:
            try:
                qty = max(item_quantity(item), 0.0)
            except PricingError:
                qty = 0.0
            coats = max(int(item.coats or 1), 1)
            labor = qty * float(item.labor_rate or 0) * coats

            gallons, ppg, material = 0.0, None, 0.0
            if req.include_materials:
                gallons = float(item.gallons) if item.gallons is not None else qty / DEFAULT_COVERAGE_SQFT_PER_GALLON
                ppg = price_per_gallon(item.category, req.product_sets, Tier.BETTER)
                material = gallons * ppg * coats

            if item.measurement_unit == MeasurementUnit.SQFT:
                total_sqft += qty
            labor_total += labor
            material_total += material
            total_gallons += gallons
            lines.append(
                BreakdownLine(
                    area_name=area.name,
                    category=item.category.value,
                    quantity=qty,
                    unit=item.measurement_unit.value,
                    labor_rate=float(item.labor_rate or 0),
                    labor_cost=labor,
                    gallons=round(gallons, 2),
                    price_per_gallon=ppg,
                    material_cost=material,
                )
            )

    return BasePricing(
        model="legacy",
        labor_total=labor_total,
        material_total=material_total,
        total_sqft=total_sqft,
        gallons=round(total_gallons, 2),
        include_materials=req.include_materials,
        breakdown=lines,
        source="legacy",
    )
