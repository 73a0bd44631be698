"""Tests for manual lead entry: phone rules, duplicate guard and tag triggers."""
import uuid
from unittest.mock import patch

import pytest

from db.repositories import leads as leads_repo
from db.repositories import tag_campaigns as campaigns_repo
from errors import (
    AuthorizationError,
    DuplicateLeadError,
    LeadValidationError,
    StageNotFoundError,
)
from schemas.campaign import CampaignMessage
from schemas.lead import LeadForm
from services import campaign_templates
from services.lead_intake import (
    check_duplicate_phone,
    delete_leads,
    normalize_phone,
    save_lead,
    validate_form,
    validate_phone_number,
)
from services.tag_triggers import added_tags, normalize_tags

WEBHOOK = "integrations.webhooks.trigger_campaign_webhook"


def _form(stage_id, **overrides):
    data = {
        "first_name": "Sarah",
        "last_name": "Johnson",
        "phone": "778-555-2345",
        "pipeline_stage_id": stage_id,
        "tags": ["VIP"],
    }
    data.update(overrides)
    return LeadForm(**data)


async def _campaign(session, tag, is_active=True):
    campaign = await campaigns_repo.create_campaign(
        session,
        tag=tag,
        name=f"{tag} sequence",
        messages=[{"day_number": 1, "message_template": f"Hi from {tag}"}],
        is_active=is_active,
    )
    await session.commit()
    return campaign


class TestNormalizePhone:
    @pytest.mark.parametrize("raw", [
        "7785552345",
        "778-555-2345",
        "(778) 555-2345",
        "17785552345",
        "+17785552345",
        "+1 778 555 2345",
    ])
    def test_north_american_formats_become_e164(self, raw):
        assert normalize_phone(raw) == "+17785552345"

    def test_unnormalizable_input_is_returned_unchanged(self):
        assert normalize_phone("555-1234") == "555-1234"
        assert normalize_phone("") == ""


class TestValidatePhoneNumber:
    def test_requires_a_value(self):
        assert validate_phone_number("") == "Phone number is required"
        assert validate_phone_number("abc") == "Phone number is required"

    def test_requires_exactly_ten_digits(self):
        assert validate_phone_number("604555123") == "Phone number must be exactly 10 digits"
        assert validate_phone_number("16045551234") == "Phone number must be exactly 10 digits"

    def test_formatting_characters_are_ignored(self):
        assert validate_phone_number("(604) 555-1234") == ""


class TestTagHelpers:
    def test_normalize_tags_strips_and_dedupes_in_order(self):
        assert normalize_tags([" VIP", "Ghosted", "", "VIP", None]) == ["VIP", "Ghosted"]

    def test_added_tags_is_set_difference_in_new_order(self):
        assert added_tags(["VIP"], ["Ghosted", "VIP", "Rate_Issue"]) == ["Ghosted", "Rate_Issue"]
        assert added_tags(["VIP", "Ghosted"], ["VIP"]) == []
        assert added_tags(None, ["VIP"]) == ["VIP"]


def test_validate_form_reports_every_missing_field():
    errors = validate_form(LeadForm(phone="123"))
    assert set(errors) == {"first_name", "last_name", "phone", "pipeline_stage_id", "tags"}
    assert errors["tags"] == "At least one tag is required"
    assert errors["pipeline_stage_id"] == "Pipeline stage is required"


@pytest.mark.asyncio
async def test_create_lead_normalizes_phone_and_defaults(session, stage, agent):
    result = await save_lead(session, _form(stage.id), user_id=agent.id)

    lead = await leads_repo.get_by_id(session, result.lead_id)
    assert result.created is True
    assert lead.phone == "+17785552345"
    assert lead.status == "new"
    assert lead.lead_source == "manual_entry"
    assert lead.owner_id is None
    assert lead.user_id == agent.id
    assert result.summary() == "Lead created successfully"


@pytest.mark.asyncio
async def test_validation_failure_writes_nothing(session, stage):
    with pytest.raises(LeadValidationError) as exc_info:
        await save_lead(session, _form(stage.id, first_name="", tags=[]))
    assert set(exc_info.value.errors) == {"first_name", "tags"}
    leads, total = await leads_repo.search(session)
    assert total == 0


@pytest.mark.asyncio
async def test_unknown_stage_is_rejected(session, stage):
    with pytest.raises(StageNotFoundError):
        await save_lead(session, _form(uuid.uuid4()))


@pytest.mark.asyncio
async def test_duplicate_phone_in_any_format_is_refused(session, stage, make_lead):
    existing = await make_lead(phone="+17785552345", first_name="Michael", last_name="Williams")

    dup = await check_duplicate_phone(session, normalize_phone("(778) 555-2345"))
    assert dup.is_duplicate is True
    assert dup.existing_lead.id == existing.id

    with pytest.raises(DuplicateLeadError) as exc_info:
        await save_lead(session, _form(stage.id, phone="(778) 555-2345"))
    assert exc_info.value.existing_lead.first_name == "Michael"
    _, total = await leads_repo.search(session)
    assert total == 1


@pytest.mark.asyncio
async def test_check_duplicate_phone_for_unknown_number(session, stage):
    result = await check_duplicate_phone(session, "+16045559999")
    assert result.is_duplicate is False
    assert result.existing_lead is None


@pytest.mark.asyncio
async def test_editing_onto_another_leads_phone_raises_duplicate(session, stage, make_lead):
    await make_lead(phone="+16045551234", first_name="John")
    other = await make_lead(phone="+16045550001")

    with pytest.raises(DuplicateLeadError) as exc_info:
        await save_lead(
            session, _form(stage.id, phone="6045551234"), editing_lead_id=other.id
        )
    assert exc_info.value.existing_lead.first_name == "John"


@pytest.mark.asyncio
async def test_adding_a_tag_fires_only_the_new_campaign(session, stage):
    await _campaign(session, "VIP")
    await _campaign(session, "Ghosted")

    with patch(WEBHOOK, return_value={"sent": True}) as webhook:
        created = await save_lead(session, _form(stage.id, tags=["VIP"]))
        assert webhook.call_count == 1

        webhook.reset_mock()
        edited = await save_lead(
            session, _form(stage.id, tags=["VIP", "Ghosted"]), editing_lead_id=created.lead_id
        )

    assert webhook.call_count == 1
    args = webhook.call_args.args
    assert args[0] == str(created.lead_id)
    assert args[4] == "Ghosted"
    assert args[5] == ["VIP", "Ghosted"]
    assert args[6] == "tag_added"
    assert edited.added_tags == ["Ghosted"]
    assert edited.webhooks_sent == 1
    assert edited.summary() == "Lead updated! Triggering 1 campaign..."


@pytest.mark.asyncio
async def test_removing_a_tag_fires_nothing(session, stage, make_lead):
    await _campaign(session, "VIP")
    lead = await make_lead(phone="+16045551234", tags=["VIP", "Ghosted"])

    with patch(WEBHOOK, return_value={"sent": True}) as webhook:
        result = await save_lead(
            session, _form(stage.id, phone="6045551234", tags=["VIP"]), editing_lead_id=lead.id
        )
    webhook.assert_not_called()
    assert result.added_tags == []


@pytest.mark.asyncio
async def test_inactive_campaign_does_not_fire(session, stage):
    await _campaign(session, "Paused_Tag", is_active=False)
    with patch(WEBHOOK, return_value={"sent": True}) as webhook:
        result = await save_lead(session, _form(stage.id, tags=["Paused_Tag"]))
    webhook.assert_not_called()
    assert result.webhooks_sent == 0


@pytest.mark.asyncio
async def test_webhook_failure_keeps_the_lead(session, stage):
    await _campaign(session, "VIP")
    with patch(WEBHOOK, return_value={"sent": False, "error": "timeout"}):
        result = await save_lead(session, _form(stage.id))

    assert await leads_repo.get_by_id(session, result.lead_id) is not None
    assert result.webhooks_failed == 1
    assert "retried by the backup system" in result.summary()


@pytest.mark.asyncio
async def test_initial_message_tag_marks_lead_contacted(session, stage, make_lead):
    lead = await make_lead(phone="+16045551234", tags=["VIP"], status="qualified")

    result = await save_lead(
        session,
        _form(stage.id, phone="6045551234", tags=["VIP", "Initial_Message"]),
        editing_lead_id=lead.id,
    )
    assert result.status == "contacted"

    again = await save_lead(
        session,
        _form(stage.id, phone="6045551234", tags=["Initial_Message"]),
        editing_lead_id=lead.id,
    )
    assert again.status == "contacted"
    assert again.added_tags == []


@pytest.mark.asyncio
async def test_initial_message_tag_fires_its_webhook_once(session, stage, admin):
    await campaign_templates.save_initial_message(
        session, admin.id, [CampaignMessage(day=1, content="Hi {first_name}!")]
    )

    with patch(WEBHOOK, return_value={"sent": True}) as webhook:
        created = await save_lead(session, _form(stage.id, tags=["Initial_Message"]))
        assert webhook.call_count == 1
        args = webhook.call_args.args
        assert args[4] == "Initial_Message"
        assert args[6] == "tag_added"

        webhook.reset_mock()
        again = await save_lead(
            session, _form(stage.id, tags=["Initial_Message"]), editing_lead_id=created.lead_id
        )

    webhook.assert_not_called()
    assert created.status == "contacted"
    assert again.added_tags == []
    assert again.webhooks_sent == 0


@pytest.mark.asyncio
async def test_edit_keeps_existing_status(session, stage, make_lead):
    lead = await make_lead(phone="+16045551234", tags=["VIP"], status="qualified")
    result = await save_lead(
        session, _form(stage.id, phone="6045551234", notes="Call after 5"), editing_lead_id=lead.id
    )
    assert result.status == "qualified"
    refreshed = await leads_repo.get_by_id(session, lead.id)
    assert refreshed.notes == "Call after 5"


@pytest.mark.asyncio
async def test_only_admins_can_delete_leads(session, make_lead):
    lead = await make_lead()
    with pytest.raises(AuthorizationError):
        await delete_leads(session, [lead.id], actor_is_admin=False)
    assert await delete_leads(session, [lead.id], actor_is_admin=True) == 1
    assert await leads_repo.get_by_id(session, lead.id) is None
