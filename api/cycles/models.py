# api/cycles/models.py
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from db_models.academic_cycle import CycleState, UPLOAD_STATES


class CycleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Cycle name, e.g. '2025-I'")
    description: str | None = None
    start_date: date
    end_date: date
    semester: str = Field(..., min_length=1, max_length=50)
    year: int = Field(..., ge=1900, le=3000)
    configuration: dict[str, Any] | None = None

    @model_validator(mode="after")
    def check_dates(self) -> "CycleCreate":
        if self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


class CycleTransition(BaseModel):
    target_state: CycleState


class CycleRead(BaseModel):
    id: int
    name: str
    description: str | None = None
    state: str
    start_date: date
    end_date: date
    semester: str
    year: int
    real_close_at: datetime | None = None
    configuration: dict[str, Any] | None = None
    state_configuration: dict[str, Any] | None = None
    created_by: int
    closed_by: int | None = None
    initialized_at: datetime | None = None
    activated_at: datetime | None = None
    verification_started_at: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def accepts_uploads(self) -> bool:
        return CycleState(self.state) in UPLOAD_STATES

    @computed_field
    @property
    def under_verification(self) -> bool:
        return self.state == CycleState.VERIFICATION.value
