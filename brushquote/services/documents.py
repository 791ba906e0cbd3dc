# brushquote/services/documents.py
from __future__ import annotations

import io
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List

from jinja2 import Environment, FileSystemLoader, select_autoescape
from openpyxl import Workbook

from brushquote.core.errors import StateConflictError, ValidationError
from brushquote.core.logging_config import logger
from brushquote.models.quote import Quote

TEMPLATE_DIR = Path(__file__).resolve().parents[1] / "templates"

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html", "xml"]),
)

DOCUMENT_KINDS = ("work_order", "material_list", "store_order")
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@dataclass(frozen=True)
class RenderedDocument:
    content: bytes
    media_type: str
    filename: str


def project_scope(quote: Quote) -> str:
    """One-paragraph description of the job shown on the proposal."""
    scope = (quote.job_scope or "interior").lower()
    parts: List[str] = []
    for area in quote.areas or []:
        cats = [
            str(i.get("category") or "").lower()
            for i in (area.get("labor_items") or [])
            if i.get("selected", True)
        ]
        cats = [c for c in dict.fromkeys(cats) if c]
        name = area.get("name") or "Area"
        parts.append(f"{name} ({', '.join(cats)})" if cats else name)

    if parts:
        text = f"{scope.capitalize()} painting of {len(parts)} area(s): {'; '.join(parts)}."
    elif quote.home_sqft:
        text = f"{scope.capitalize()} painting of the whole home ({quote.home_sqft:g} sqft)."
    else:
        text = f"{scope.capitalize()} painting."
    if quote.include_materials:
        text += " Paint and materials included."
    else:
        text += " Labor only; materials supplied by the customer."
    return text


def material_rows(quote: Quote) -> List[Dict[str, Any]]:
    gallons_by_area: Dict[str, float] = {}
    for line in (quote.pricing_breakdown or {}).get("lines", []):
        name = line.get("area_name") or ""
        gallons_by_area[name] = gallons_by_area.get(name, 0.0) + float(line.get("gallons") or 0)

    rows = []
    for area in quote.areas or []:
        sel = area.get("selections") or {}
        rows.append(
            {
                "area": area.get("name") or "",
                "brand_id": sel.get("brand_id") or ("Other brand" if sel.get("is_other_brand") else ""),
                "product_id": sel.get("product_id") or "",
                "color": sel.get("custom_color") or sel.get("color_id") or "",
                "sheen": sel.get("sheen") or "",
                "gallons": round(gallons_by_area.get(area.get("name") or "", 0.0), 2),
            }
        )
    return rows


def _render_html(template: str, quote: Quote) -> bytes:
    html = _env.get_template(template).render(
        quote=quote,
        scope=project_scope(quote),
        areas=quote.areas or [],
        rows=material_rows(quote),
    )
    return html.encode("utf-8")


def _render_store_order(quote: Quote) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Store order"

    ws.append(["Quote", quote.quote_number])
    ws.append([])
    ws.append(["Area", "Brand", "Product", "Color", "Sheen", "Gallons"])
    total = 0.0
    for row in material_rows(quote):
        ws.append([row["area"], row["brand_id"], row["product_id"], row["color"], row["sheen"], row["gallons"]])
        total += row["gallons"]
    ws.append(["Total", "", "", "", "", round(total, 2)])

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def render_document(quote: Quote, kind: str) -> RenderedDocument:
    if kind not in DOCUMENT_KINDS:
        raise ValidationError(
            f"Unknown document kind: {kind}",
            code="INVALID_DOCUMENT_KIND",
            details={"allowed": list(DOCUMENT_KINDS)},
        )
    if not quote.selections_complete:
        raise StateConflictError(
            "Documents are available once selections are submitted",
            code="SELECTIONS_INCOMPLETE",
            details={"status": quote.status},
        )

    logger.bind(tenant_id=quote.tenant_id, quote_id=quote.id).info("document_rendered", kind=kind)
    base = f"{quote.quote_number}-{kind}"
    if kind == "store_order":
        return RenderedDocument(_render_store_order(quote), XLSX_MEDIA_TYPE, f"{base}.xlsx")
    return RenderedDocument(
        _render_html(f"documents/{kind}.html", quote), "text/html; charset=utf-8", f"{base}.html"
    )
