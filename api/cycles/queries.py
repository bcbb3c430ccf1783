# api/cycles/queries.py
"""
SQLAlchemy query builders for academic cycle operations.
"""
from sqlalchemy import select

from db_models.academic_cycle import AcademicCycle, CycleState


def select_cycle_by_id(cycle_id: int):
    """Select a cycle by its ID."""
    return select(AcademicCycle).where(AcademicCycle.id == cycle_id)


def select_cycle_for_update(cycle_id: int):
    """
    Select a cycle by ID, locking the row and overwriting any copy already
    held in the session identity map.
    """
    return (
        select(AcademicCycle)
        .where(AcademicCycle.id == cycle_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )


def select_cycle_by_name(name: str):
    """Select a cycle by its display name."""
    return select(AcademicCycle).where(AcademicCycle.name == name)


def select_all_cycles():
    """Select all cycles ordered by creation time (newest first)."""
    return select(AcademicCycle).order_by(
        AcademicCycle.created_at.desc(),
        AcademicCycle.id.desc(),
    )


def select_cycle_in_state(state: CycleState, exclude_id: int | None = None):
    """Select the cycle holding ``state``, optionally ignoring one cycle."""
    stmt = select(AcademicCycle).where(AcademicCycle.state == CycleState(state).value)
    if exclude_id is not None:
        stmt = stmt.where(AcademicCycle.id != exclude_id)
    return stmt.limit(1)


def select_preparation_cycles():
    """Select PREPARATION cycles, earliest start first."""
    return (
        select(AcademicCycle)
        .where(AcademicCycle.state == CycleState.PREPARATION.value)
        .order_by(AcademicCycle.start_date.asc())
    )


def select_completed_cycles():
    """Select COMPLETION cycles, latest end first."""
    return (
        select(AcademicCycle)
        .where(AcademicCycle.state == CycleState.COMPLETION.value)
        .order_by(AcademicCycle.end_date.desc())
    )
