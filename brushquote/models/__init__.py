# Models package for brushquote

from .contractor_settings import ContractorSettings
from .notification import OutboxMessage
from .pricing_scheme import PricingScheme
from .quote import Quote

__all__ = [
    "ContractorSettings",
    "OutboxMessage",
    "PricingScheme",
    "Quote",
]
