"""
Identifier Allocator — company short names, facility codes, application ids.

Generates:
  - Company short names:   ACME, ACMENE, ACENSE, ACME2, ACME12
  - Facility codes:        001, 002, ...          (company-scoped)
  - Application ids:       {COMPANY}-{FACILITY}-{ACTIVITY}{SEQ}
                           e.g. ACME-001-101 (first FRA), ACME-001-203 (third EAA)

Application ids are globally unique. A candidate is rejected when any
application row (archived or not) holds it or when the ghost ledger has it
open. This module only computes candidates; application_service inserts
them under the unique constraint and retries on collision.
"""

from __future__ import annotations

import logging
import re
import time

from sqlalchemy import select

from portal.core.exceptions import NotFoundError, ValidationError
from portal.models import db
from portal.models.application import ACTIVITY_DIGITS, Application
from portal.models.registry import Company, Facility
from portal.services import ghost_ledger

logger = logging.getLogger(__name__)

SHORT_NAME_LENGTH = 6
_NON_ALNUM = re.compile(r"[^a-zA-Z0-9\s]")


# ── Company short name ──────────────────────────────────────────────────────

def short_name(company_name: str) -> str:
    """
    Derive the base short name for a company.

      1 word   → first 6 characters              "Acme"                 → ACME
      2 words  → first 3 characters of each      "Acme Energy"          → ACMENE
      3+ words → first 2 characters of first 3   "Acme Energy Services" → ACENSE

    Raises:
        ValidationError: If the name has no letters or digits.
    """
    cleaned = _NON_ALNUM.sub("", company_name or "").strip().upper()
    words = cleaned.split()
    if not words:
        raise ValidationError(
            "Company name must contain letters or digits",
            details={"name": company_name},
        )

    if len(words) == 1:
        return words[0][:6]
    if len(words) == 2:
        return words[0][:3] + words[1][:3]
    return "".join(word[:2] for word in words[:3])


def _short_name_taken(candidate: str) -> bool:
    return db.session.execute(
        select(Company.id)
        .where(Company.short_name == candidate, Company.is_archived.is_(False))
        .limit(1)
    ).first() is not None


def unique_short_name(base: str) -> str:
    """
    Return ``base`` if no active company holds it, else the first free
    numbered variant.

    Suffixes 2..9 replace the 6th character (ACMEN2), 10..99 replace the
    last two (ACME10). Every candidate is re-checked against the active
    company set. If all 98 collide, the last two digits of the current
    time in milliseconds are used.
    """
    if not _short_name_taken(base):
        return base

    for counter in range(2, 100):
        if counter <= 9:
            candidate = f"{base[:5]}{counter}"
        else:
            candidate = f"{base[:4]}{counter}"
        if not _short_name_taken(candidate):
            logger.info("Short name %s taken, using %s", base, candidate)
            return candidate

    fallback = f"{base[:4]}{str(int(time.time() * 1000))[-2:]}"
    logger.warning("All numbered short names for %s are taken, using %s", base, fallback)
    return fallback


def generate_short_name(company_name: str) -> str:
    """Base short name made unique among active companies."""
    return unique_short_name(short_name(company_name))


# ── Facility code: 001, 002, ... ────────────────────────────────────────────

def generate_facility_code(company_id: int) -> str:
    """
    Next facility code for a company: one above the highest code any of its
    facilities (archived included) holds. Permanently deleted facilities
    leave gaps that are not refilled below the current maximum.
    """
    codes = db.session.execute(
        select(Facility.code).where(Facility.company_id == company_id)
    ).scalars().all()
    highest = max((int(code) for code in codes if code.isdigit()), default=0)
    return f"{highest + 1:03d}"


# ── Application id: {COMPANY}-{FACILITY}-{ACTIVITY}{SEQ:02d} ────────────────

def activity_digit(activity_type: str) -> str:
    try:
        return ACTIVITY_DIGITS[activity_type]
    except KeyError:
        raise ValidationError(
            f"Unknown activity_type '{activity_type}'",
            details={"activity_type": f"must be one of {', '.join(ACTIVITY_DIGITS)}"},
        ) from None


def compose_application_id(company_code: str, facility_code: str, activity_type: str, seq: int) -> str:
    return f"{company_code}-{facility_code}-{activity_digit(activity_type)}{seq:02d}"


def used_application_ids(prefix: str) -> set[str]:
    """Identifiers under ``prefix`` held by application rows or open ghosts."""
    held = db.session.execute(
        select(Application.application_id).where(Application.application_id.startswith(prefix))
    ).scalars().all()
    return set(held) | ghost_ledger.open_identifiers(prefix)


def generate_application_id(
    company_code: str,
    facility_code: str,
    activity_type: str,
    exclude: set[str] | None = None,
) -> str:
    """
    Smallest-sequence identifier not held by any application or open ghost.

    Args:
        exclude: Extra identifiers to skip. application_service passes the
                 candidates that already lost an insert race.
    """
    prefix = f"{company_code}-{facility_code}-{activity_digit(activity_type)}"
    used = used_application_ids(prefix) | (exclude or set())

    seq = 1
    while True:
        candidate = compose_application_id(company_code, facility_code, activity_type, seq)
        if candidate not in used:
            logger.debug("Allocated candidate %s after %d step(s)", candidate, seq)
            return candidate
        seq += 1


def generate_application_id_for(
    company_id: int,
    facility_id: int,
    activity_type: str,
    exclude: set[str] | None = None,
) -> str:
    """Resolve company / facility codes from their keys, then allocate."""
    company = db.session.get(Company, company_id)
    if company is None:
        raise NotFoundError("Company", company_id)
    facility = db.session.get(Facility, facility_id)
    if facility is None or facility.company_id != company.id:
        raise NotFoundError("Facility", facility_id)
    return generate_application_id(company.short_name, facility.code, activity_type, exclude)
