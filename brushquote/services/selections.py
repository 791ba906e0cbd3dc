# brushquote/services/selections.py
from __future__ import annotations

import copy
from datetime import datetime
from typing import Any, Dict

from brushquote.core.errors import NotFoundError
from brushquote.core.logging_config import logger
from brushquote.models.quote import Quote

SELECTION_FIELDS = (
    "brand_id",
    "product_id",
    "color_id",
    "custom_color",
    "sheen",
    "is_custom",
    "is_other_brand",
)


def save_area_selection(quote: Quote, area_id: Any, values: Dict[str, Any], *, now: datetime) -> Dict[str, Any]:
    """
    Merge ``values`` into one area's selections. The portal gate runs before
    this is called.
    """
    areas = copy.deepcopy(quote.areas or [])
    for area in areas:
        if str(area.get("id")) == str(area_id):
            selections = dict(area.get("selections") or {})
            for key in SELECTION_FIELDS:
                if key in values and values[key] is not None:
                    selections[key] = values[key]
            selections["updated_at"] = now.isoformat()
            area["selections"] = selections
            # JSON column: assign a new list so the change is flushed
            quote.areas = areas
            logger.bind(tenant_id=quote.tenant_id, quote_id=quote.id).info(
                "area_selection_saved", area_id=area.get("id")
            )
            return selections
    raise NotFoundError("Area not found", details={"area_id": area_id})
