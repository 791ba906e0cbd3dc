import io

import pytest
from openpyxl import load_workbook

from brushquote.core.errors import StateConflictError, ValidationError
from brushquote.services.documents import XLSX_MEDIA_TYPE, project_scope, render_document

from conftest import complete_area


@pytest.fixture
def finished(make_quote):
    return make_quote(
        status="selections_complete",
        selected_tier="better",
        deposit_transaction_id="pi_paid",
        portal_lock_reason="selections_submitted",
        areas=[complete_area(1, "Kitchen"), complete_area(2, "Primary bath")],
        pricing_breakdown={
            "lines": [
                {"area_name": "Kitchen", "gallons": 1.5},
                {"area_name": "Primary bath", "gallons": 1.25},
            ]
        },
    )


def test_project_scope(make_quote):
    quote = make_quote(areas=[complete_area(1, "Kitchen")])
    assert project_scope(quote) == "Interior painting of 1 area(s): Kitchen (walls). Paint and materials included."

    whole_home = make_quote(areas=[], home_sqft=2400, include_materials=False, job_scope="exterior")
    assert project_scope(whole_home) == (
        "Exterior painting of the whole home (2400 sqft). Labor only; materials supplied by the customer."
    )


def test_documents_wait_for_selections(make_quote):
    quote = make_quote(status="deposit_paid", deposit_transaction_id="pi_paid")
    with pytest.raises(StateConflictError) as exc:
        render_document(quote, "work_order")
    assert exc.value.code == "SELECTIONS_INCOMPLETE"


def test_unknown_document_kind(finished):
    with pytest.raises(ValidationError) as exc:
        render_document(finished, "invoice")
    assert exc.value.code == "INVALID_DOCUMENT_KIND"


def test_work_order_html(finished):
    doc = render_document(finished, "work_order")
    html = doc.content.decode("utf-8")
    assert doc.filename == f"{finished.quote_number}-work_order.html"
    assert doc.media_type.startswith("text/html")
    assert "Primary bath" in html
    assert "SW7008" in html


def test_material_list_html(finished):
    html = render_document(finished, "material_list").content.decode("utf-8")
    assert "1.25" in html
    assert "eggshell" in html


def test_store_order_workbook(finished):
    doc = render_document(finished, "store_order")
    assert doc.media_type == XLSX_MEDIA_TYPE
    ws = load_workbook(io.BytesIO(doc.content)).active
    rows = list(ws.iter_rows(values_only=True))
    assert rows[0] == ("Quote", finished.quote_number, None, None, None, None)
    assert rows[2] == ("Area", "Brand", "Product", "Color", "Sheen", "Gallons")
    assert rows[3][0] == "Kitchen"
    assert rows[-1][0] == "Total"
    assert rows[-1][5] == 2.75
