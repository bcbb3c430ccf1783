# db_models/academic_cycle.py
"""
Academic cycle model and its lifecycle state machine.

A cycle moves PREPARATION -> INITIALIZATION -> ACTIVE -> VERIFICATION ->
COMPLETION -> ARCHIVED and back to PREPARATION, with a few back-edges.
At most one cycle may be ACTIVE and at most one may be in VERIFICATION;
both rules are enforced by partial unique indexes on ``state``.
"""
import copy
from datetime import date, datetime
from enum import Enum
from typing import Any

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from db_base import Base


class CycleState(str, Enum):
    """Lifecycle states of an academic cycle."""
    PREPARATION = "PREPARATION"
    INITIALIZATION = "INITIALIZATION"
    ACTIVE = "ACTIVE"
    VERIFICATION = "VERIFICATION"
    COMPLETION = "COMPLETION"
    ARCHIVED = "ARCHIVED"


TRANSITIONS: dict[CycleState, frozenset[CycleState]] = {
    CycleState.PREPARATION: frozenset({CycleState.INITIALIZATION}),
    CycleState.INITIALIZATION: frozenset({CycleState.ACTIVE, CycleState.PREPARATION}),
    CycleState.ACTIVE: frozenset({CycleState.VERIFICATION, CycleState.PREPARATION}),
    CycleState.VERIFICATION: frozenset({CycleState.COMPLETION, CycleState.ACTIVE}),
    CycleState.COMPLETION: frozenset({CycleState.ARCHIVED}),
    CycleState.ARCHIVED: frozenset({CycleState.PREPARATION}),
}

# States that at most one cycle may hold at a time
SINGLETON_STATES = frozenset({CycleState.ACTIVE, CycleState.VERIFICATION})

UPLOAD_STATES = frozenset({CycleState.PREPARATION, CycleState.INITIALIZATION})

# Modules and validations each state expects; copied onto new cycles.
DEFAULT_STATE_CONFIGURATION: dict[str, Any] = {
    "INITIALIZATION": {
        "description": "Initial setup of the academic cycle",
        "required_modules": ["data_upload"],
        "validations": ["portfolio_structure", "basic_configuration"],
    },
    "ACTIVE": {
        "description": "Cycle in normal operation",
        "required_modules": ["data_upload", "document_management"],
        "validations": ["complete_data", "validated_structure"],
    },
    "VERIFICATION": {
        "description": "Verification and validation process",
        "required_modules": ["verification"],
        "validations": ["complete_portfolios", "validated_documents"],
    },
    "COMPLETION": {
        "description": "Cycle finished and closed",
        "required_modules": ["reports"],
        "validations": ["verification_complete", "reports_generated"],
    },
}


def allowed_targets(state: CycleState | str) -> frozenset[CycleState]:
    """Return the states reachable in one step from ``state``."""
    return TRANSITIONS.get(CycleState(state), frozenset())


def is_valid_transition(source: CycleState | str, target: CycleState | str) -> bool:
    return CycleState(target) in allowed_targets(source)


def _singleton_index(name: str, state: CycleState) -> Index:
    predicate = text(f"state = '{state.value}'")
    return Index(
        name,
        "state",
        unique=True,
        postgresql_where=predicate,
        sqlite_where=predicate,
    )


class AcademicCycle(Base):
    __tablename__ = "academic_cycles"
    __table_args__ = (
        Index("ix_academic_cycles_semester_year", "semester", "year"),
        _singleton_index("uq_academic_cycles_single_active", CycleState.ACTIVE),
        _singleton_index("uq_academic_cycles_single_verification", CycleState.VERIFICATION),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    name: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        index=True,
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Only ever changed through api.cycles.db_manager.transition
    state: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        index=True,
        default=CycleState.PREPARATION.value,
        server_default=CycleState.PREPARATION.value,
    )

    start_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    semester: Mapped[str] = mapped_column(String(50), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)

    real_close_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    configuration: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    state_configuration: Mapped[dict[str, Any] | None] = mapped_column(
        JSON,
        nullable=True,
        default=lambda: copy.deepcopy(DEFAULT_STATE_CONFIGURATION),
    )

    created_by: Mapped[int] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
    )
    closed_by: Mapped[int | None] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
    )

    # Defined in the schema but not populated by transitions yet
    initialized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    activated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    verification_started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def accepts_uploads(self) -> bool:
        """Uploads are open while the cycle is being prepared or initialized."""
        return CycleState(self.state) in UPLOAD_STATES

    def is_under_verification(self) -> bool:
        return self.state == CycleState.VERIFICATION.value

    def can_activate(self) -> bool:
        return self.state == CycleState.PREPARATION.value

    def can_complete(self) -> bool:
        return self.state == CycleState.VERIFICATION.value
