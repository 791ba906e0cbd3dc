# brushquote/services/quote_pricing.py
"""
Glue between stored quotes (JSON areas / product sets) and the pricing package.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from brushquote.core.errors import ValidationError
from brushquote.models.contractor_settings import ContractorSettings
from brushquote.models.pricing_scheme import PricingScheme
from brushquote.models.quote import Quote
from brushquote.pricing.calculator import PricingRequest, price_quote
from brushquote.pricing.markup import MarkupEngine, PricedQuote, PricingSettings
from brushquote.pricing.types import (
    ApplicationMethod,
    Area,
    BasePricing,
    Category,
    Dimensions,
    HomeCondition,
    JobScope,
    LaborItem,
    MeasurementUnit,
    ProductChoice,
    ProductSet,
    Tier,
)
from brushquote.repositories.quotes import get_contractor_settings, get_pricing_scheme


def _enum(enum_cls, raw, default, field_name: str):
    if raw is None or raw == "":
        return default
    try:
        return enum_cls(str(raw).lower())
    except ValueError:
        raise ValidationError(
            f"Invalid {field_name}: {raw!r}",
            details={"field": field_name, "allowed": [e.value for e in enum_cls]},
        )


def areas_from_json(raw_areas: List[Dict[str, Any]], default_coats: int = 2) -> List[Area]:
    """Items without their own ``coats`` inherit the quote-level value."""
    areas: List[Area] = []
    for a in raw_areas or []:
        items = []
        for it in a.get("labor_items") or []:
            dims = it.get("dimensions")
            items.append(
                LaborItem(
                    category_name=it.get("category") or "",
                    measurement_unit=_enum(
                        MeasurementUnit, it.get("measurement_unit"), MeasurementUnit.SQFT, "measurement_unit"
                    ),
                    quantity=it.get("quantity"),
                    dimensions=Dimensions(
                        length=float(dims.get("length") or 0),
                        width=float(dims.get("width") or 0),
                        height=float(dims.get("height") or 0),
                    )
                    if dims
                    else None,
                    coats=int(it.get("coats") or default_coats or 2),
                    labor_rate=float(it.get("labor_rate") or 0.0),
                    selected=bool(it.get("selected", True)),
                    gallons=it.get("gallons"),
                )
            )
        areas.append(Area(id=a.get("id"), name=a.get("name") or "", items=items))
    return areas


def product_sets_from_json(raw_sets: List[Dict[str, Any]]) -> Dict[Category, ProductSet]:
    out: Dict[Category, ProductSet] = {}
    for ps in raw_sets or []:
        category = Category.parse(ps.get("category"))
        products = {}
        for tier in Tier:
            p = ps.get(tier.value)
            if p:
                products[tier] = ProductChoice(
                    product_id=p.get("product_id"),
                    name=p.get("name") or "",
                    price_per_gallon=p.get("price_per_gallon"),
                )
        out[category] = ProductSet(category=category, products=products)
    return out


def build_pricing_request(
    quote: Quote,
    scheme: Optional[PricingScheme],
    contractor: Optional[ContractorSettings],
) -> PricingRequest:
    return PricingRequest(
        areas=areas_from_json(quote.areas, quote.coats),
        scheme_type=scheme.type if scheme else None,
        scheme_rules=dict(scheme.rules or {}) if scheme else {},
        rule_overrides=contractor.rule_overrides() if contractor else {},
        job_scope=_enum(JobScope, quote.job_scope, JobScope.INTERIOR, "job_scope"),
        home_sqft=float(quote.home_sqft or 0),
        condition=_enum(HomeCondition, quote.home_condition, None, "home_condition"),
        include_materials=bool(quote.include_materials),
        application_method=_enum(
            ApplicationMethod, quote.application_method, ApplicationMethod.ROLL, "application_method"
        ),
        coverage=quote.coverage,
        waste_factor=quote.waste_factor,
        product_sets=product_sets_from_json(quote.product_sets),
    )


def apply_pricing(quote: Quote, base: BasePricing, priced: PricedQuote) -> None:
    quote.labor_total = priced.labor_total
    quote.material_total = priced.material_total
    quote.labor_markup_amount = priced.labor_markup_amount
    quote.material_markup_amount = priced.material_markup_amount
    quote.subtotal_before_overhead = priced.subtotal_before_overhead
    quote.overhead_amount = priced.overhead_amount
    quote.subtotal_before_profit = priced.subtotal_before_profit
    quote.profit_amount = priced.profit_amount
    quote.subtotal = priced.subtotal
    quote.tax_amount = priced.tax_amount
    quote.base_total = priced.total
    quote.total = priced.total
    quote.deposit_amount = priced.deposit_amount
    quote.balance_amount = priced.balance_amount
    quote.pricing_source = base.source
    quote.pricing_breakdown = {
        "model": base.model,
        "total_sqft": base.total_sqft,
        "total_hours": base.total_hours,
        "gallons": base.gallons,
        "lines": [line.as_dict() for line in base.breakdown],
    }


def reprice_quote(db: Session, quote: Quote) -> PricedQuote:
    """Recalculate base pricing + markups and write totals onto the quote."""
    scheme = get_pricing_scheme(db, quote.tenant_id, quote.pricing_scheme_id)
    contractor = get_contractor_settings(db, quote.tenant_id)
    base = price_quote(build_pricing_request(quote, scheme, contractor), quote_id=quote.id)
    priced = MarkupEngine(PricingSettings.from_contractor(contractor)).apply(
        base, add_ons=quote.add_ons or 0.0
    )
    apply_pricing(quote, base, priced)
    return priced
