"""
Registry service — company and facility registration.

Owns the short codes the identifier allocator reads: a company's
short_name at registration time and each facility's 3-digit code.
"""

from __future__ import annotations

import logging

from portal.core.exceptions import NotFoundError, ValidationError
from portal.models import db
from portal.models.registry import Company, Facility
from portal.services import code_generator
from portal.services.application_service import check_company_scope
from portal.services.permission import Principal, require

logger = logging.getLogger(__name__)


def register_company(principal: Principal, name: str, is_contractor: bool = False) -> Company:
    require(principal, "record.create")
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "empty"})

    company = Company(
        name=name,
        short_name=code_generator.generate_short_name(name),
        is_contractor=bool(is_contractor),
    )
    db.session.add(company)
    db.session.commit()
    logger.info("Company %s registered as %s", company.id, company.short_name)
    return company


def register_facility(principal: Principal, company_id: int, name: str) -> Facility:
    """Register a facility; its code is the company's next registration number."""
    require(principal, "record.create")
    check_company_scope(principal, company_id, "record.create")

    company = db.session.get(Company, company_id)
    if company is None:
        raise NotFoundError("Company", company_id)
    if company.is_archived:
        raise ValidationError("Cannot register facilities for an archived company")
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "empty"})

    facility = Facility(
        company_id=company.id,
        name=name,
        code=code_generator.generate_facility_code(company.id),
    )
    db.session.add(facility)
    db.session.commit()
    logger.info("Facility %s registered for company %s as %s", facility.id, company.id, facility.code)
    return facility


def list_facilities(company_id: int, include_archived: bool = False) -> list[Facility]:
    query = Facility.query if include_archived else Facility.query_active()
    return query.filter_by(company_id=company_id).order_by(Facility.id).all()
