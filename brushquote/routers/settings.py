# brushquote/routers/settings.py
"""Contractor settings and pricing schemes (staff)."""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from brushquote.auth.deps import StaffUser, get_current_staff
from brushquote.core.logging_config import logger
from brushquote.db import get_db, unit_of_work
from brushquote.models.pricing_scheme import PricingScheme
from brushquote.pricing.schemes import validate_scheme
from brushquote.repositories.quotes import (
    get_or_create_contractor_settings,
    list_pricing_schemes,
    seed_default_schemes,
)
from brushquote.schemas.settings import (
    ContractorSettingsIn,
    ContractorSettingsOut,
    PricingSchemeIn,
    PricingSchemeOut,
)

router = APIRouter(tags=["settings"])


@router.get("/settings", response_model=ContractorSettingsOut)
def get_settings_for_tenant(
    staff: StaffUser = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    with unit_of_work(db):
        row = get_or_create_contractor_settings(db, staff.tenant_id)
    return row


@router.put("/settings", response_model=ContractorSettingsOut)
def update_settings_for_tenant(
    body: ContractorSettingsIn,
    staff: StaffUser = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    data = body.model_dump(exclude_unset=True)
    with unit_of_work(db):
        row = get_or_create_contractor_settings(db, staff.tenant_id)
        for key, value in data.items():
            setattr(row, key, value)
    logger.bind(tenant_id=staff.tenant_id).info("contractor_settings_updated", fields=sorted(data))
    return row


@router.get("/pricing-schemes", response_model=List[PricingSchemeOut])
def get_pricing_schemes(
    staff: StaffUser = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    schemes = list_pricing_schemes(db, staff.tenant_id)
    if schemes:
        return schemes

    # first visit: seed the tenant with the stock schemes
    with unit_of_work(db):
        seed_default_schemes(db, staff.tenant_id)
    logger.bind(tenant_id=staff.tenant_id).info("pricing_schemes_seeded")
    return list_pricing_schemes(db, staff.tenant_id)


@router.post("/pricing-schemes", response_model=PricingSchemeOut, status_code=201)
def create_pricing_scheme(
    body: PricingSchemeIn,
    staff: StaffUser = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    validate_scheme(body.model_dump())
    with unit_of_work(db):
        if body.is_default:
            db.query(PricingScheme).filter(
                PricingScheme.tenant_id == staff.tenant_id, PricingScheme.is_default.is_(True)
            ).update({"is_default": False}, synchronize_session=False)
        scheme = PricingScheme(
            tenant_id=staff.tenant_id,
            name=body.name,
            type=body.type,
            rules=body.rules,
            is_default=body.is_default,
            is_active=True,
        )
        db.add(scheme)
    return scheme
