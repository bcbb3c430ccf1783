# api/cycles/views.py
"""
Academic cycle management endpoints.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from coordination import CoordinatorStats, NotificationKind
from db import get_session
from core.deps import AdminUser, Coordinator, CurrentUser
from .models import CycleCreate, CycleRead, CycleTransition
from . import db_manager

router = APIRouter(prefix="/cycles", tags=["cycles"])


@router.post(
    "",
    response_model=CycleRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create an academic cycle",
)
async def create_cycle_endpoint(
    payload: CycleCreate,
    admin: AdminUser,  # Only admins can create cycles
    db: AsyncSession = Depends(get_session),
) -> CycleRead:
    """
    Create a new academic cycle in PREPARATION. Admin only.
    """
    try:
        cycle = await db_manager.create_cycle(
            db,
            name=payload.name,
            start_date=payload.start_date,
            end_date=payload.end_date,
            semester=payload.semester,
            year=payload.year,
            created_by=admin.id,
            description=payload.description,
            configuration=payload.configuration,
        )
    except db_manager.DuplicateNameError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc

    return CycleRead.model_validate(cycle)


@router.get(
    "",
    response_model=list[CycleRead],
    summary="List academic cycles",
)
async def list_cycles_endpoint(
    current_user: CurrentUser,  # Any authenticated user can list cycles
    db: AsyncSession = Depends(get_session),
) -> list[CycleRead]:
    """
    List all academic cycles, newest first.
    """
    cycles = await db_manager.list_cycles(db)
    return [CycleRead.model_validate(c) for c in cycles]


@router.get(
    "/active",
    response_model=CycleRead | None,
    summary="Get the active cycle",
)
async def get_active_cycle_endpoint(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> CycleRead | None:
    """
    Get the ACTIVE cycle, or null if none exists.
    """
    cycle = await db_manager.get_active_cycle(db)
    if cycle is None:
        return None
    return CycleRead.model_validate(cycle)


@router.get(
    "/verification",
    response_model=CycleRead | None,
    summary="Get the cycle under verification",
)
async def get_verification_cycle_endpoint(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> CycleRead | None:
    """
    Get the cycle in VERIFICATION, or null if none exists.
    """
    cycle = await db_manager.get_verification_cycle(db)
    if cycle is None:
        return None
    return CycleRead.model_validate(cycle)


@router.get(
    "/preparation",
    response_model=list[CycleRead],
    summary="List cycles in preparation",
)
async def list_preparation_cycles_endpoint(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> list[CycleRead]:
    cycles = await db_manager.list_preparation_cycles(db)
    return [CycleRead.model_validate(c) for c in cycles]


@router.get(
    "/completed",
    response_model=list[CycleRead],
    summary="List completed cycles",
)
async def list_completed_cycles_endpoint(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> list[CycleRead]:
    cycles = await db_manager.list_completed_cycles(db)
    return [CycleRead.model_validate(c) for c in cycles]


@router.get(
    "/events/stats",
    response_model=CoordinatorStats,
    summary="Cycle event coordinator diagnostics",
)
async def coordinator_stats_endpoint(
    admin: AdminUser,
    coordinator: Coordinator,
) -> CoordinatorStats:
    return coordinator.stats()


@router.get(
    "/{cycle_id}",
    response_model=CycleRead,
    summary="Get academic cycle by ID",
)
async def get_cycle_endpoint(
    cycle_id: int,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> CycleRead:
    """
    Get a specific academic cycle by ID.
    """
    try:
        cycle = await db_manager.get_cycle_by_id(db, cycle_id)
    except db_manager.CycleNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc

    return CycleRead.model_validate(cycle)


@router.post(
    "/{cycle_id}/transition",
    response_model=CycleRead,
    summary="Change the state of a cycle",
)
async def transition_cycle_endpoint(
    cycle_id: int,
    payload: CycleTransition,
    admin: AdminUser,  # Only admins can change cycle state
    coordinator: Coordinator,
    db: AsyncSession = Depends(get_session),
) -> CycleRead:
    """
    Move a cycle to another state. Admin only.

    On success a cycle-state-changed notification is handed to the event
    coordinator so every listener converges on the new state.
    """
    # Read before the transition: a refused transition rolls the session back
    actor_id = admin.id
    try:
        cycle = await db_manager.transition(
            db, cycle_id, payload.target_state, actor_id=actor_id
        )
    except db_manager.CycleNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except db_manager.CycleStatusError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc

    result = CycleRead.model_validate(cycle)
    coordinator.submit(
        NotificationKind.CYCLE_STATE_CHANGED,
        {"cycleId": result.id, "state": result.state},
    )
    return result
