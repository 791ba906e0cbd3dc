from brushquote.pricing.calculator import PricingRequest, legacy_price, price_quote
from brushquote.pricing.markup import MarkupEngine, PricedQuote, PricingSettings
from brushquote.pricing.tiers import TIER_MULTIPLIERS, TierPricer

__all__ = [
    "PricingRequest",
    "price_quote",
    "legacy_price",
    "MarkupEngine",
    "PricedQuote",
    "PricingSettings",
    "TierPricer",
    "TIER_MULTIPLIERS",
]
