import asyncio
from datetime import date
from itertools import product

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from api.cycles import db_manager
from db_models.academic_cycle import (
    AcademicCycle,
    CycleState,
    TRANSITIONS,
    allowed_targets,
    is_valid_transition,
)


# ---------- pure guards ----------

@pytest.mark.parametrize("state", list(CycleState))
def test_guards_follow_state(state):
    cycle = AcademicCycle(state=state.value)
    assert cycle.accepts_uploads() is (state in (CycleState.PREPARATION, CycleState.INITIALIZATION))
    assert cycle.is_under_verification() is (state == CycleState.VERIFICATION)
    assert cycle.can_activate() is (state == CycleState.PREPARATION)
    assert cycle.can_complete() is (state == CycleState.VERIFICATION)


def test_transition_table_has_every_state():
    assert set(TRANSITIONS) == set(CycleState)
    assert allowed_targets("ARCHIVED") == {CycleState.PREPARATION}
    assert is_valid_transition(CycleState.VERIFICATION, "ACTIVE")
    assert not is_valid_transition(CycleState.PREPARATION, CycleState.ACTIVE)


# ---------- transition ----------

@pytest.mark.anyio
@pytest.mark.parametrize("source,target", list(product(CycleState, CycleState)))
async def test_transition_follows_table(db_session, make_cycle, source, target):
    cycle_id = await make_cycle(db_session, source)

    if target in TRANSITIONS[source]:
        cycle = await db_manager.transition(db_session, cycle_id, target)
        assert cycle.state == target.value
    else:
        with pytest.raises(db_manager.InvalidTransitionError):
            await db_manager.transition(db_session, cycle_id, target)
        cycle = await db_manager.get_cycle_by_id(db_session, cycle_id)
        assert cycle.state == source.value


@pytest.mark.anyio
async def test_unknown_target_state_is_invalid_transition(db_session, make_cycle):
    cycle_id = await make_cycle(db_session)
    with pytest.raises(db_manager.InvalidTransitionError, match="Unknown cycle state"):
        await db_manager.transition(db_session, cycle_id, "FINISHED")


@pytest.mark.anyio
async def test_transition_missing_cycle(db_session):
    with pytest.raises(db_manager.CycleNotFoundError):
        await db_manager.transition(db_session, 987654, CycleState.INITIALIZATION)


@pytest.mark.anyio
async def test_second_active_cycle_is_refused(db_session, make_cycle):
    active_id = await make_cycle(db_session, CycleState.ACTIVE)
    other_id = await make_cycle(db_session, CycleState.INITIALIZATION)

    with pytest.raises(db_manager.SingletonViolationError, match=str(active_id)):
        await db_manager.transition(db_session, other_id, CycleState.ACTIVE)

    other = await db_manager.get_cycle_by_id(db_session, other_id)
    assert other.state == CycleState.INITIALIZATION.value


@pytest.mark.anyio
async def test_second_verification_cycle_is_refused(db_session, make_cycle):
    await make_cycle(db_session, CycleState.VERIFICATION)
    other_id = await make_cycle(db_session, CycleState.ACTIVE)

    with pytest.raises(db_manager.SingletonViolationError):
        await db_manager.transition(db_session, other_id, CycleState.VERIFICATION)


@pytest.mark.anyio
async def test_verification_back_to_active_when_no_other_active(db_session, make_cycle):
    cycle_id = await make_cycle(db_session, CycleState.VERIFICATION)
    cycle = await db_manager.transition(db_session, cycle_id, CycleState.ACTIVE)
    assert cycle.state == CycleState.ACTIVE.value


@pytest.mark.anyio
async def test_completion_stamps_close_time_and_closer(db_session, make_cycle, admin_id):
    cycle_id = await make_cycle(db_session, CycleState.VERIFICATION)

    cycle = await db_manager.transition(
        db_session, cycle_id, CycleState.COMPLETION, actor_id=admin_id
    )

    assert cycle.state == CycleState.COMPLETION.value
    assert cycle.real_close_at is not None
    assert cycle.closed_by == admin_id
    assert cycle.updated_at is not None


@pytest.mark.anyio
async def test_completion_without_actor_leaves_closer_empty(db_session, make_cycle):
    cycle_id = await make_cycle(db_session, CycleState.VERIFICATION)
    cycle = await db_manager.transition(db_session, cycle_id, CycleState.COMPLETION)
    assert cycle.real_close_at is not None
    assert cycle.closed_by is None


@pytest.mark.anyio
async def test_start_timestamps_stay_unset(db_session, make_cycle):
    cycle_id = await make_cycle(db_session, CycleState.PREPARATION)
    await db_manager.transition(db_session, cycle_id, CycleState.INITIALIZATION)
    await db_manager.transition(db_session, cycle_id, CycleState.ACTIVE)
    cycle = await db_manager.transition(db_session, cycle_id, CycleState.VERIFICATION)
    assert cycle.initialized_at is None
    assert cycle.activated_at is None
    assert cycle.verification_started_at is None


@pytest.mark.anyio
async def test_full_lifecycle_loop(db_session, admin_id):
    cycle = await db_manager.create_cycle(
        db_session,
        name="2025-I",
        start_date=date(2025, 3, 1),
        end_date=date(2025, 7, 31),
        semester="I",
        year=2025,
        created_by=admin_id,
    )
    cycle_id = cycle.id
    assert cycle.state == CycleState.PREPARATION.value
    assert cycle.state_configuration["ACTIVE"]["required_modules"]

    for target in (
        CycleState.INITIALIZATION,
        CycleState.ACTIVE,
        CycleState.VERIFICATION,
        CycleState.COMPLETION,
        CycleState.ARCHIVED,
        CycleState.PREPARATION,
    ):
        cycle = await db_manager.transition(db_session, cycle_id, target, actor_id=admin_id)
        assert cycle.state == target.value

    assert cycle.real_close_at is not None
    assert cycle.closed_by == admin_id


@pytest.mark.anyio
async def test_stale_copy_is_reloaded_before_transition(session_factory, make_cycle):
    async with session_factory() as setup:
        cycle_id = await make_cycle(setup, CycleState.PREPARATION)

    async with session_factory() as stale_session:
        stale = await db_manager.get_cycle_by_id(stale_session, cycle_id)
        assert stale.state == CycleState.PREPARATION.value
        await stale_session.commit()

        # Another actor moves the cycle on
        async with session_factory() as other:
            await db_manager.transition(other, cycle_id, CycleState.INITIALIZATION)

        # The stale copy still says PREPARATION, but INITIALIZATION -> ACTIVE is legal
        cycle = await db_manager.transition(stale_session, cycle_id, CycleState.ACTIVE)
        assert cycle.state == CycleState.ACTIVE.value


@pytest.mark.anyio
async def test_concurrent_activations_only_one_wins(session_factory, make_cycle):
    async with session_factory() as setup:
        first_id = await make_cycle(setup, CycleState.INITIALIZATION)
        second_id = await make_cycle(setup, CycleState.INITIALIZATION)

    async def activate(cycle_id: int) -> str:
        async with session_factory() as session:
            try:
                await db_manager.transition(session, cycle_id, CycleState.ACTIVE)
            except db_manager.SingletonViolationError:
                return "conflict"
            return "activated"

    results = await asyncio.gather(activate(first_id), activate(second_id))
    assert sorted(results) == ["activated", "conflict"]

    async with session_factory() as check:
        active = await db_manager.get_active_cycle(check)
        assert active is not None
        assert active.id in (first_id, second_id)


@pytest.mark.anyio
async def test_unique_index_rejects_lost_race(db_session, make_cycle, monkeypatch):
    active_id = await make_cycle(db_session, CycleState.ACTIVE)
    other_id = await make_cycle(db_session, CycleState.INITIALIZATION)

    real_lookup = db_manager.get_cycle_in_state
    calls = []

    async def blind_first_lookup(db, state, exclude_id=None):
        # The pre-write check misses the other writer, as under a race
        calls.append(state)
        if len(calls) == 1:
            return None
        return await real_lookup(db, state, exclude_id=exclude_id)

    monkeypatch.setattr(db_manager, "get_cycle_in_state", blind_first_lookup)

    with pytest.raises(db_manager.SingletonViolationError, match=str(active_id)):
        await db_manager.transition(db_session, other_id, CycleState.ACTIVE)

    monkeypatch.undo()
    other = await db_manager.get_cycle_by_id(db_session, other_id)
    assert other.state == CycleState.INITIALIZATION.value


@pytest.mark.anyio
async def test_store_failure_propagates_unchanged(db_session, make_cycle, monkeypatch):
    cycle_id = await make_cycle(db_session, CycleState.PREPARATION)
    failure = OperationalError("COMMIT", {}, Exception("disk I/O error"))

    async def failing_commit(self):
        # The write reaches the database before the commit itself fails
        await self.flush()
        raise failure

    monkeypatch.setattr(AsyncSession, "commit", failing_commit)

    with pytest.raises(OperationalError) as exc_info:
        await db_manager.transition(db_session, cycle_id, CycleState.INITIALIZATION)
    assert exc_info.value is failure

    # The write lock is released and nothing was persisted
    assert not db_session.in_transaction()
    cycle = await db_manager.get_cycle_by_id(db_session, cycle_id)
    assert cycle.state == CycleState.PREPARATION.value


@pytest.mark.anyio
async def test_store_failure_on_create_rolls_back(db_session, admin_id, monkeypatch):
    failure = OperationalError("COMMIT", {}, Exception("disk I/O error"))

    async def failing_commit(self):
        await self.flush()
        raise failure

    monkeypatch.setattr(AsyncSession, "commit", failing_commit)

    with pytest.raises(OperationalError):
        await db_manager.create_cycle(
            db_session,
            name="Never stored",
            start_date=date(2025, 3, 1),
            end_date=date(2025, 7, 31),
            semester="I",
            year=2025,
            created_by=admin_id,
        )

    assert not db_session.in_transaction()
    assert await db_manager.list_cycles(db_session) == []


# ---------- queries and creation ----------

@pytest.mark.anyio
async def test_query_helpers(db_session, make_cycle):
    assert await db_manager.get_active_cycle(db_session) is None
    assert await db_manager.get_verification_cycle(db_session) is None

    late = await make_cycle(db_session, CycleState.PREPARATION, start_date=date(2026, 3, 1))
    early = await make_cycle(db_session, CycleState.PREPARATION, start_date=date(2025, 8, 1))
    old = await make_cycle(db_session, CycleState.COMPLETION, end_date=date(2024, 7, 31))
    recent = await make_cycle(db_session, CycleState.COMPLETION, end_date=date(2025, 1, 31))
    active = await make_cycle(db_session, CycleState.ACTIVE)
    verifying = await make_cycle(db_session, CycleState.VERIFICATION)

    assert [c.id for c in await db_manager.list_preparation_cycles(db_session)] == [early, late]
    assert [c.id for c in await db_manager.list_completed_cycles(db_session)] == [recent, old]
    assert (await db_manager.get_active_cycle(db_session)).id == active
    assert (await db_manager.get_verification_cycle(db_session)).id == verifying
    assert len(await db_manager.list_cycles(db_session)) == 6


@pytest.mark.anyio
async def test_create_cycle_rejects_duplicate_name(db_session, admin_id):
    kwargs = dict(
        name="2025-II",
        start_date=date(2025, 8, 1),
        end_date=date(2025, 12, 15),
        semester="II",
        year=2025,
        created_by=admin_id,
    )
    await db_manager.create_cycle(db_session, **kwargs)
    with pytest.raises(db_manager.DuplicateNameError):
        await db_manager.create_cycle(db_session, **kwargs)


@pytest.mark.anyio
async def test_create_cycle_rejects_inverted_dates(db_session, admin_id):
    with pytest.raises(ValueError):
        await db_manager.create_cycle(
            db_session,
            name="Backwards",
            start_date=date(2025, 12, 1),
            end_date=date(2025, 1, 1),
            semester="I",
            year=2025,
            created_by=admin_id,
        )
