from typing import List, Optional

from models.schemas import ConflictInfo, WorkflowSession


class SchedulingError(Exception):
    """Base class for all scheduling engine exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ScheduleValidationError(SchedulingError):
    """Raised when a user action is missing a required selection or targets an invalid cell."""
    def __init__(self, message: str, field: str = "selection", details: dict = None):
        self.field = field
        super().__init__(message, status_code=422, details=details)


class BreakBlockError(ScheduleValidationError):
    """Raised when an assignment targets a break block."""
    def __init__(self, weekday: str, start_time: str):
        super().__init__(
            f"{start_time} on {weekday} is a break and cannot host a class",
            field="start_time",
        )


class ConflictError(SchedulingError):
    """Raised when a candidate assignment collides with existing ones."""
    def __init__(
        self,
        conflicts: List[ConflictInfo],
        message: Optional[str] = None,
        session: Optional[WorkflowSession] = None,
    ):
        self.conflicts = conflicts
        self.session = session
        super().__init__(
            message or f"Assignment collides with {len(conflicts)} existing assignment(s)",
            status_code=409,
        )


class NotFoundError(SchedulingError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id: str):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} with id {resource_id} not found", status_code=404)


class GenerationCancelled(SchedulingError):
    """Raised when a generation run is cancelled before committing."""
    def __init__(self, message: str = "Generation cancelled before commit"):
        super().__init__(message, status_code=409)
