# api/cycles/db_manager.py
"""
Business logic for academic cycle management.

``transition`` is the only code path that changes a cycle's state. The
uniqueness check for ACTIVE/VERIFICATION and the write happen in the same
transaction; the partial unique indexes on ``academic_cycles.state`` reject
whichever concurrent writer commits second.
"""
import logging
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from db_models.academic_cycle import (
    AcademicCycle,
    CycleState,
    SINGLETON_STATES,
    is_valid_transition,
)
from . import queries

logger = logging.getLogger(__name__)


class CycleNotFoundError(Exception):
    """Raised when cycle doesn't exist."""
    pass


class CycleStatusError(Exception):
    """Base class for refused state changes."""
    pass


class InvalidTransitionError(CycleStatusError):
    """Raised when the requested state is not reachable from the current one."""
    pass


class SingletonViolationError(CycleStatusError):
    """Raised when another cycle already holds ACTIVE or VERIFICATION."""
    pass


class DuplicateNameError(Exception):
    """Raised when cycle name already exists."""
    pass


async def get_cycle_by_id(db: AsyncSession, cycle_id: int) -> AcademicCycle:
    """Get a cycle by ID. Raises CycleNotFoundError if not found."""
    stmt = queries.select_cycle_by_id(cycle_id)
    result = await db.execute(stmt)
    cycle = result.scalar_one_or_none()
    if cycle is None:
        raise CycleNotFoundError(f"Cycle {cycle_id} not found")
    return cycle


async def create_cycle(
    db: AsyncSession,
    name: str,
    start_date: date,
    end_date: date,
    semester: str,
    year: int,
    created_by: int,
    *,
    description: str | None = None,
    configuration: dict[str, Any] | None = None,
) -> AcademicCycle:
    """
    Create a new academic cycle in PREPARATION.

    Raises:
        DuplicateNameError: If name already exists
        ValueError: If start_date is after end_date
    """
    if start_date > end_date:
        raise ValueError(
            f"Invalid dates: start_date {start_date} is after end_date {end_date}"
        )

    # Best-effort check; the unique constraint is the final authority
    stmt = queries.select_cycle_by_name(name)
    result = await db.execute(stmt)
    if result.scalar_one_or_none() is not None:
        await db.rollback()
        raise DuplicateNameError(f"Cycle with name '{name}' already exists")

    cycle = AcademicCycle(
        name=name,
        description=description,
        state=CycleState.PREPARATION.value,
        start_date=start_date,
        end_date=end_date,
        semester=semester,
        year=year,
        configuration=configuration,
        created_by=created_by,
    )
    db.add(cycle)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise DuplicateNameError(f"Cycle with name '{name}' already exists") from exc
    except SQLAlchemyError:
        await db.rollback()
        raise
    await db.refresh(cycle)
    logger.info("Created cycle %s (%r) by user %s", cycle.id, name, created_by)
    return cycle


async def list_cycles(db: AsyncSession) -> list[AcademicCycle]:
    """Return all cycles ordered by created_at desc."""
    stmt = queries.select_all_cycles()
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_cycle_in_state(
    db: AsyncSession,
    state: CycleState,
    exclude_id: int | None = None,
) -> AcademicCycle | None:
    stmt = queries.select_cycle_in_state(state, exclude_id=exclude_id)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_active_cycle(db: AsyncSession) -> AcademicCycle | None:
    """Get the ACTIVE cycle, or None if none exists."""
    return await get_cycle_in_state(db, CycleState.ACTIVE)


async def get_verification_cycle(db: AsyncSession) -> AcademicCycle | None:
    """Get the cycle in VERIFICATION, or None if none exists."""
    return await get_cycle_in_state(db, CycleState.VERIFICATION)


async def list_preparation_cycles(db: AsyncSession) -> list[AcademicCycle]:
    stmt = queries.select_preparation_cycles()
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def list_completed_cycles(db: AsyncSession) -> list[AcademicCycle]:
    stmt = queries.select_completed_cycles()
    result = await db.execute(stmt)
    return list(result.scalars().all())


def _singleton_message(target: CycleState, holder_id: int) -> str:
    if target == CycleState.ACTIVE:
        return f"Only one cycle can be active at a time (cycle {holder_id} is active)"
    return f"Only one cycle can be in verification at a time (cycle {holder_id} is in verification)"


async def transition(
    db: AsyncSession,
    cycle_id: int,
    target_state: CycleState | str,
    actor_id: int | None = None,
) -> AcademicCycle:
    """
    Move a cycle to ``target_state``.

    The cycle is re-read with a row lock before any check, so a stale copy
    held by the caller is never the basis of the decision. Moving to
    COMPLETION stamps ``real_close_at`` and records ``actor_id`` as closer.

    Raises:
        CycleNotFoundError: If cycle doesn't exist
        InvalidTransitionError: If target is unknown or not reachable
        SingletonViolationError: If another cycle holds the target state
        SQLAlchemyError: Store failures are propagated unchanged
    """
    try:
        target = CycleState(target_state)
    except ValueError as exc:
        raise InvalidTransitionError(f"Unknown cycle state: {target_state!r}") from exc

    result = await db.execute(queries.select_cycle_for_update(cycle_id))
    cycle = result.scalar_one_or_none()
    if cycle is None:
        await db.rollback()
        raise CycleNotFoundError(f"Cycle {cycle_id} not found")

    current = CycleState(cycle.state)
    if not is_valid_transition(current, target):
        await db.rollback()
        logger.warning(
            "Refused transition of cycle %s from %s to %s",
            cycle_id, current.value, target.value,
        )
        raise InvalidTransitionError(
            f"Invalid transition from '{current.value}' to '{target.value}'"
        )

    if target in SINGLETON_STATES:
        holder = await get_cycle_in_state(db, target, exclude_id=cycle_id)
        if holder is not None:
            holder_id = holder.id
            await db.rollback()
            logger.warning(
                "Refused transition of cycle %s to %s: held by cycle %s",
                cycle_id, target.value, holder_id,
            )
            raise SingletonViolationError(_singleton_message(target, holder_id))

    now = datetime.now(timezone.utc)
    cycle.state = target.value
    if target == CycleState.COMPLETION:
        cycle.real_close_at = now
        if actor_id is not None:
            cycle.closed_by = actor_id
    cycle.updated_at = now

    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        if target not in SINGLETON_STATES:
            raise
        # Lost a race against a concurrent writer; report it as a conflict
        holder = await get_cycle_in_state(db, target, exclude_id=cycle_id)
        if holder is None:
            raise
        holder_id = holder.id
        await db.rollback()
        raise SingletonViolationError(_singleton_message(target, holder_id)) from exc
    except SQLAlchemyError:
        await db.rollback()
        raise

    await db.refresh(cycle)
    logger.info(
        "Cycle %s moved from %s to %s (actor=%s)",
        cycle_id, current.value, target.value, actor_id,
    )
    return cycle
