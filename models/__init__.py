"""
Data models and Pydantic schemas for the timetable API.
"""
from .schemas import (
    TimeBlock,
    GridResponse,
    Subject,
    Teacher,
    Group,
    EntityRegistry,
    Assignment,
    AssignmentCreate,
    AssignmentPatch,
    ConflictInfo,
    ConflictCheckRequest,
    ConflictCheckResponse,
    SubjectQuota,
    TeacherGeneratorConfig,
    ShiftSelection,
    GeneratorConfigPayload,
    UnfulfilledQuota,
    GenerationResult,
    WorkflowSession,
    EntitySelection,
    SubjectSelection,
    CellSelection,
    CounterpartSelection,
    PersistenceWarning,
    Messages,
    WorkflowResponse,
    AssignmentResponse,
    AssignmentListResponse,
    ClearResponse,
    GenerationResponse
)

__all__ = [
    "TimeBlock",
    "GridResponse",
    "Subject",
    "Teacher",
    "Group",
    "EntityRegistry",
    "Assignment",
    "AssignmentCreate",
    "AssignmentPatch",
    "ConflictInfo",
    "ConflictCheckRequest",
    "ConflictCheckResponse",
    "SubjectQuota",
    "TeacherGeneratorConfig",
    "ShiftSelection",
    "GeneratorConfigPayload",
    "UnfulfilledQuota",
    "GenerationResult",
    "WorkflowSession",
    "EntitySelection",
    "SubjectSelection",
    "CellSelection",
    "CounterpartSelection",
    "PersistenceWarning",
    "Messages",
    "WorkflowResponse",
    "AssignmentResponse",
    "AssignmentListResponse",
    "ClearResponse",
    "GenerationResponse"
]
