"""Tests for pipeline stages and the board."""
import uuid

import pytest

from db.realtime import QueryCache
from db.repositories import pipeline_stages as stages_repo
from errors import AuthorizationError, LeadNotFoundError, StageInUseError, StageNotFoundError
from services import pipeline_board


@pytest.mark.asyncio
async def test_new_stage_goes_after_the_highest_position(session, admin):
    first = await pipeline_board.create_stage(session, admin.id, "New Lead")
    second = await pipeline_board.create_stage(session, admin.id, "Contacted", "#22c55e")
    third = await pipeline_board.create_stage(session, admin.id, "Test Drive")
    assert [s.order_position for s in (first, second, third)] == [1, 2, 3]
    assert first.color == stages_repo.DEFAULT_COLOR
    assert second.color == "#22c55e"

    await pipeline_board.delete_stage(session, admin.id, second.id)
    fourth = await pipeline_board.create_stage(session, admin.id, "Closed")
    assert fourth.order_position == 4


@pytest.mark.asyncio
async def test_stage_management_is_admin_only(session, agent, stage):
    with pytest.raises(AuthorizationError):
        await pipeline_board.create_stage(session, agent.id, "Sneaky")
    with pytest.raises(AuthorizationError):
        await pipeline_board.delete_stage(session, agent.id, stage.id)


@pytest.mark.asyncio
async def test_stage_with_leads_cannot_be_deleted(session, admin, stage, make_lead):
    await make_lead()
    await make_lead()

    with pytest.raises(StageInUseError) as exc_info:
        await pipeline_board.delete_stage(session, admin.id, stage.id)

    assert exc_info.value.lead_count == 2
    assert await stages_repo.get(session, stage.id) is not None


@pytest.mark.asyncio
async def test_deleting_unknown_stage(session, admin):
    with pytest.raises(StageNotFoundError):
        await pipeline_board.delete_stage(session, admin.id, uuid.uuid4())


@pytest.mark.asyncio
async def test_reorder_rewrites_positions(session, admin):
    a = await pipeline_board.create_stage(session, admin.id, "A")
    b = await pipeline_board.create_stage(session, admin.id, "B")
    c = await pipeline_board.create_stage(session, admin.id, "C")

    cache = QueryCache()
    cache.set(pipeline_board.STAGES_QUERY_KEY, ["stale"])
    await pipeline_board.reorder_stages(session, admin.id, [c.id, a.id], cache=cache)

    stages = await stages_repo.list_stages(session)
    assert [s.name for s in stages] == ["C", "A", "B"]
    assert [s.order_position for s in stages] == [1, 2, 3]
    assert pipeline_board.STAGES_QUERY_KEY not in cache
    assert b.order_position == 3


@pytest.mark.asyncio
async def test_update_stage_renames_and_recolors(session, admin, stage):
    updated = await pipeline_board.update_stage(
        session, admin.id, stage.id, name="Fresh", color="#ef4444"
    )
    assert (updated.name, updated.color) == ("Fresh", "#ef4444")


@pytest.mark.asyncio
async def test_move_lead_between_columns(session, admin, stage, make_lead):
    won = await pipeline_board.create_stage(session, admin.id, "Won")
    lead = await make_lead()
    cache = QueryCache()
    cache.set(("leads", "board"), ["stale"])

    moved = await pipeline_board.move_lead(session, lead.id, won.id, cache=cache)

    assert moved.pipeline_stage_id == won.id
    assert ("leads", "board") not in cache
    counts = {s.name: n for s, n in await stages_repo.lead_counts(session)}
    assert counts == {"New Lead": 0, "Won": 1}


@pytest.mark.asyncio
async def test_move_lead_validates_both_ends(session, stage, make_lead):
    lead = await make_lead()
    with pytest.raises(StageNotFoundError):
        await pipeline_board.move_lead(session, lead.id, uuid.uuid4())
    with pytest.raises(LeadNotFoundError):
        await pipeline_board.move_lead(session, uuid.uuid4(), stage.id)


@pytest.mark.asyncio
async def test_update_notes(session, make_lead):
    lead = await make_lead()
    updated = await pipeline_board.update_notes(session, lead.id, "Wants a truck")
    assert updated.notes == "Wants a truck"


@pytest.mark.asyncio
async def test_board_scopes_leads_by_viewer(session, admin, agent, make_user, stage, make_lead):
    other = await make_user(full_name="Other Agent")
    mine = await make_lead(owner_id=agent.id, first_name="Mina")
    theirs = await make_lead(owner_id=other.id, first_name="Theo")
    await make_lead()  # unassigned leads live in the pool, not on the board

    agent_view = await pipeline_board.board(session, agent.id)
    assert [lead.id for lead in agent_view[0][1]] == [mine.id]

    admin_view = await pipeline_board.board(session, admin.id)
    assert {lead.id for lead in admin_view[0][1]} == {mine.id, theirs.id}

    filtered = await pipeline_board.board(session, admin.id, salesperson_id=other.id)
    assert [lead.id for lead in filtered[0][1]] == [theirs.id]

    searched = await pipeline_board.board(session, admin.id, search="min")
    assert [lead.id for lead in searched[0][1]] == [mine.id]
