"""Tests for roles, profiles, user removal and lead table preferences."""
from unittest.mock import patch

import pytest

from db.repositories import leads as leads_repo
from db.repositories import users as users_repo
from errors import AuthorizationError
from schemas.conversation import UserForm
from services import users as users_service


@pytest.mark.asyncio
async def test_missing_role_row_means_regular_user(session, make_user):
    nobody = await make_user(role=None)
    assert await users_service.get_role(session, nobody.id) == "user"


@pytest.mark.asyncio
async def test_set_role_keeps_a_single_row(session, agent):
    await users_repo.set_role(session, agent.id, "admin")
    await users_repo.set_role(session, agent.id, "user")
    assert await users_repo.get_role(session, agent.id) == "user"
    with pytest.raises(ValueError):
        await users_repo.set_role(session, agent.id, "owner")


@pytest.mark.asyncio
async def test_list_users_is_admin_only(session, admin, agent):
    with pytest.raises(AuthorizationError):
        await users_service.list_users(session, agent.id)

    records = await users_service.list_users(session, admin.id)
    assert {(r.full_name, r.role) for r in records} == {("Alex Admin", "admin"), ("Sam Sales", "user")}


@pytest.mark.asyncio
async def test_admin_updates_profile_and_role(session, admin, agent):
    record = await users_service.update_user(
        session, admin.id, agent.id,
        UserForm(full_name="Samantha Sales", phone_number=" ", role="admin"),
    )
    assert record.full_name == "Samantha Sales"
    assert record.phone_number is None
    assert record.role == "admin"
    assert await users_repo.is_admin(session, agent.id)


@pytest.mark.asyncio
async def test_own_profile_cannot_change_activation(session, agent):
    record = await users_service.update_own_profile(
        session, agent.id, {"designation": "Finance", "is_active": False}
    )
    user = await users_repo.get_by_id(session, agent.id)
    assert user.designation == "Finance"
    assert user.is_active is True
    assert record.role == "user"


@pytest.mark.asyncio
async def test_sms_notifications_self_or_admin(session, admin, agent, make_user):
    await users_service.set_sms_notifications(session, agent.id, agent.id, False)
    assert (await users_repo.get_by_id(session, agent.id)).receive_sms_notifications is False

    await users_service.set_sms_notifications(session, admin.id, agent.id, True)
    assert (await users_repo.get_by_id(session, agent.id)).receive_sms_notifications is True

    other = await make_user()
    with pytest.raises(AuthorizationError):
        await users_service.set_sms_notifications(session, other.id, agent.id, False)


@pytest.mark.asyncio
async def test_create_and_delete_go_through_admin_functions(session, admin, agent):
    with patch(
        "integrations.admin_functions.create_user", return_value={"success": True}
    ) as create:
        assert await users_service.create_user(session, admin.id, UserForm(email="n@dealer.test")) == {"success": True}
    create.assert_called_once()

    with patch(
        "integrations.admin_functions.delete_user", return_value={"success": True}
    ) as delete:
        assert await users_service.delete_user(session, admin.id, agent.id) == {"success": True}
    delete.assert_called_once_with(str(agent.id))

    with pytest.raises(AuthorizationError):
        await users_service.create_user(session, agent.id, UserForm())


@pytest.mark.asyncio
async def test_admin_cannot_delete_self(session, admin):
    result = await users_service.delete_user(session, admin.id, admin.id)
    assert result == {"success": False, "error": "You cannot delete your own account"}


@pytest.mark.asyncio
async def test_local_removal_returns_leads_to_pool(session, admin, agent, make_lead):
    lead = await make_lead(owner_id=agent.id)

    assert await users_service.remove_user_locally(session, admin.id, agent.id) is True

    assert await users_repo.get_by_id(session, agent.id) is None
    assert await users_repo.get_role(session, agent.id) is None
    refreshed = await leads_repo.get_by_id(session, lead.id)
    await session.refresh(refreshed)
    assert refreshed.owner_id is None


@pytest.mark.asyncio
async def test_unassign_leads(session, agent, make_lead):
    await make_lead(owner_id=agent.id)
    await make_lead(owner_id=agent.id)
    await make_lead()
    assert await users_service.unassign_leads(session, agent.id) == 2


class TestPreferences:
    @pytest.mark.asyncio
    async def test_defaults_created_on_first_read(self, session, agent):
        prefs = await users_service.get_preferences(session, agent.id)
        assert prefs.visible_columns == ["email", "status", "tags"]
        assert prefs.filters == {}

    @pytest.mark.asyncio
    async def test_columns_keep_canonical_order(self, session, agent):
        prefs = await users_service.set_visible_columns(session, agent.id, ["tags", "city", "email"])
        assert prefs.visible_columns == ["email", "city", "tags"]

    @pytest.mark.asyncio
    async def test_unknown_column_rejected(self, session, agent):
        with pytest.raises(ValueError):
            await users_service.set_visible_columns(session, agent.id, ["ssn"])

    @pytest.mark.asyncio
    async def test_toggle_show_and_hide_all(self, session, agent):
        prefs = await users_service.toggle_column(session, agent.id, "status")
        assert prefs.visible_columns == ["email", "tags"]
        prefs = await users_service.toggle_column(session, agent.id, "notes")
        assert prefs.visible_columns == ["email", "tags", "notes"]

        prefs = await users_service.show_all_columns(session, agent.id)
        assert len(prefs.visible_columns) == 11
        prefs = await users_service.hide_all_columns(session, agent.id)
        assert prefs.visible_columns == []

    @pytest.mark.asyncio
    async def test_saved_filters(self, session, agent):
        prefs = await users_service.save_filters(session, agent.id, {"status": "new", "tags": ["VIP"]})
        assert prefs.filters == {"status": "new", "tags": ["VIP"]}
