"""Manual lead entry: phone normalization, the duplicate-phone guard and save.

The guard is advisory; the unique constraint on leads.phone is what
actually prevents two leads sharing a number.
"""
import logging
import re
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config import CONTACTED_STATUS, INITIAL_MESSAGE_TAG, NEW_STATUS
from db.repositories import leads as leads_repo
from db.repositories import pipeline_stages as stages_repo
from errors import (
    AuthorizationError,
    DuplicateLeadError,
    LeadNotFoundError,
    LeadValidationError,
    StageNotFoundError,
)
from schemas.lead import DuplicateCheckResult, ExistingLead, LeadForm, SaveLeadResult
from services.tag_triggers import normalize_tags, trigger_for_added_tags

logger = logging.getLogger(__name__)

MANUAL_ENTRY_SOURCE = "manual_entry"


def normalize_phone(phone: str) -> str:
    """Normalize a North American number to E.164 (+1XXXXXXXXXX).

    "7785552345", "778-555-2345", "17785552345" and "+17785552345" all
    become "+17785552345". Anything that cannot be normalized is returned
    unchanged so that validation reports it.
    """
    cleaned = re.sub(r"[^\d+]", "", phone or "")
    if cleaned.startswith("+1") and len(cleaned) == 12:
        return cleaned
    if cleaned.startswith("+1"):
        return normalize_phone(cleaned[2:])
    if cleaned.startswith("1") and len(cleaned) == 11:
        return f"+{cleaned}"
    if len(cleaned) == 10:
        return f"+1{cleaned}"
    return phone


def validate_phone_number(phone: str) -> str:
    """Return an error message for the manual form, or "" if valid."""
    digits = re.sub(r"\D", "", phone or "")
    if not digits:
        return "Phone number is required"
    if len(digits) != 10:
        return "Phone number must be exactly 10 digits"
    return ""


async def check_duplicate_phone(session: AsyncSession, phone: str) -> DuplicateCheckResult:
    """Look up an existing lead by normalized phone.

    A failed lookup reports no duplicate; the insert itself is still
    guarded by the database constraint.
    """
    try:
        existing = await leads_repo.get_by_phone(session, phone)
    except SQLAlchemyError as exc:
        logger.warning("Duplicate phone check failed for %s: %s", phone, exc)
        return DuplicateCheckResult(is_duplicate=False)
    if existing is None:
        return DuplicateCheckResult(is_duplicate=False)
    return DuplicateCheckResult(
        is_duplicate=True, existing_lead=ExistingLead.model_validate(existing)
    )


def validate_form(form: LeadForm) -> dict[str, str]:
    errors = {}
    if not form.first_name.strip():
        errors["first_name"] = "First name is required"
    if not form.last_name.strip():
        errors["last_name"] = "Last name is required"
    phone_error = validate_phone_number(form.phone)
    if phone_error:
        errors["phone"] = phone_error
    if form.pipeline_stage_id is None:
        errors["pipeline_stage_id"] = "Pipeline stage is required"
    if not normalize_tags(form.tags):
        errors["tags"] = "At least one tag is required"
    return errors


async def save_lead(
    session: AsyncSession,
    form: LeadForm,
    user_id: Optional[UUID] = None,
    editing_lead_id: Optional[UUID] = None,
) -> SaveLeadResult:
    """Create or update a lead from the manual entry form.

    Raises LeadValidationError before any write, DuplicateLeadError when the
    normalized phone belongs to another lead. The write is committed before
    campaign webhooks fire for newly added tags.
    """
    errors = validate_form(form)
    if errors:
        raise LeadValidationError(errors)

    phone = normalize_phone(form.phone)
    tags = normalize_tags(form.tags)

    if await stages_repo.get(session, form.pipeline_stage_id) is None:
        raise StageNotFoundError(f"Stage {form.pipeline_stage_id} not found")

    lead = None
    previous_tags: list[str] = []
    if editing_lead_id is not None:
        lead = await leads_repo.get_by_id(session, editing_lead_id)
        if lead is None:
            raise LeadNotFoundError(f"Lead {editing_lead_id} not found")
        previous_tags = normalize_tags(lead.tags)
    else:
        duplicate = await check_duplicate_phone(session, phone)
        if duplicate.is_duplicate:
            raise DuplicateLeadError(duplicate.existing_lead)

    if INITIAL_MESSAGE_TAG in tags and INITIAL_MESSAGE_TAG not in previous_tags:
        status = CONTACTED_STATUS
    elif lead is not None:
        status = lead.status
    else:
        status = NEW_STATUS

    data = {
        "first_name": form.first_name.strip(),
        "last_name": form.last_name.strip(),
        "phone": phone,
        "email": form.email.strip() or None,
        "address": form.address.strip() or None,
        "city": form.city.strip() or None,
        "state": form.state.strip() or None,
        "zip": form.zip.strip() or None,
        "notes": form.notes.strip() or None,
        "tags": tags,
        "status": status,
        "pipeline_stage_id": form.pipeline_stage_id,
        "owner_id": None,
        "lead_source": MANUAL_ENTRY_SOURCE,
    }

    try:
        if lead is None:
            lead = await leads_repo.create(session, {**data, "user_id": user_id})
        else:
            lead = await leads_repo.apply_changes(session, lead, data)
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        existing = await leads_repo.get_by_phone(session, phone)
        if existing is not None:
            raise DuplicateLeadError(ExistingLead.model_validate(existing)) from exc
        raise

    trigger = await trigger_for_added_tags(session, lead, previous_tags)
    return SaveLeadResult(
        lead_id=lead.id,
        created=editing_lead_id is None,
        status=lead.status,
        added_tags=trigger.added_tags,
        webhooks_sent=trigger.webhooks_sent,
        webhooks_failed=trigger.webhooks_failed,
    )


async def delete_leads(
    session: AsyncSession, lead_ids: Sequence[UUID], actor_is_admin: bool
) -> int:
    """Hard-delete leads with their conversations, messages and enrollments."""
    if not actor_is_admin:
        raise AuthorizationError("Only admins can delete leads")
    count = await leads_repo.delete_many(session, lead_ids)
    await session.commit()
    return count
