# db_models/__init__.py
# Importing the package registers every model on Base.metadata.
from db_models.user import User, UserRole
from db_models.academic_cycle import AcademicCycle, CycleState

__all__ = ["User", "UserRole", "AcademicCycle", "CycleState"]
