import re
from pydantic import BaseModel, ConfigDict, field_validator
from typing import List, Optional, Literal


TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

Weekday = Literal["monday", "tuesday", "wednesday", "thursday", "friday", "saturday"]
Shift = Literal["morning", "afternoon"]


def _validate_time(value: str) -> str:
    if not TIME_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM 24-hour format")
    return value


# ===========================
# Time Grid Models
# ===========================

class TimeBlock(BaseModel):
    """One row of the weekly grid, identical for every weekday."""
    model_config = ConfigDict(frozen=True)

    start_time: str  # HH:MM format, e.g., "07:00"
    end_time: str
    is_break: bool = False


class GridResponse(BaseModel):
    weekdays: List[str]
    blocks: List[TimeBlock]


# ===========================
# Entity Registry Models
# ===========================

class Subject(BaseModel):
    id: str
    name: str
    abbreviation: str = ""


class Teacher(BaseModel):
    id: str
    name: str
    subjects: List[Subject] = []


class Group(BaseModel):
    id: str
    name: str
    shift: Optional[Shift] = None


class EntityRegistry(BaseModel):
    """Teachers, subjects and groups supplied by the entity management side."""
    teachers: List[Teacher] = []
    subjects: List[Subject] = []
    groups: List[Group] = []


# ===========================
# Assignment Models
# ===========================

class Assignment(BaseModel):
    """A subject taught by a teacher to a group in one weekly cell."""
    id: Optional[str] = None
    weekday: Weekday
    start_time: str
    end_time: str
    subject_id: str
    teacher_id: str = ""  # empty while a group-first assignment has no teacher
    group_id: str

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, value: str) -> str:
        return _validate_time(value)


class AssignmentCreate(BaseModel):
    weekday: Weekday
    start_time: str
    end_time: Optional[str] = None  # defaults to the grid block's end
    subject_id: str
    teacher_id: str = ""
    group_id: str

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return _validate_time(value)


class AssignmentPatch(BaseModel):
    subject_id: Optional[str] = None
    teacher_id: Optional[str] = None
    group_id: Optional[str] = None


# ===========================
# Conflict Models
# ===========================

class ConflictInfo(BaseModel):
    """An existing assignment that collides with a candidate."""
    assignment_id: str
    weekday: str
    start_time: str
    end_time: str
    subject_id: str
    subject_name: str
    teacher_id: str
    teacher_name: str
    group_id: str
    group_name: str
    entity_kind: Literal["teacher", "group"]  # which side of the candidate collided
    counterpart_name: str
    message: str


class ConflictCheckRequest(BaseModel):
    weekday: Weekday
    start_time: str
    end_time: Optional[str] = None
    teacher_id: str = ""
    group_id: str
    ignore_id: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return _validate_time(value)


class ConflictCheckResponse(BaseModel):
    has_conflict: bool
    conflicts: List[ConflictInfo] = []


# ===========================
# Generator Models
# ===========================

class SubjectQuota(BaseModel):
    """Weekly hours of one subject for each of its target groups."""
    model_config = ConfigDict(frozen=True)

    subject_id: str
    group_ids: List[str] = []
    hours: int = 0


class TeacherGeneratorConfig(BaseModel):
    teacher_id: str
    subjects: List[SubjectQuota] = []


class ShiftSelection(BaseModel):
    teacher_id: str
    subject_id: str
    group_id: str
    shift: Shift


class GeneratorConfigPayload(BaseModel):
    """Wire form of the generator configuration."""
    teachers: List[TeacherGeneratorConfig] = []
    shifts: List[ShiftSelection] = []


class UnfulfilledQuota(BaseModel):
    teacher_id: str
    subject_id: str
    group_id: str
    shift: Shift
    required: int
    placed: int
    missing: int


class GenerationResult(BaseModel):
    assignments: List[Assignment]
    unfulfilled: List[UnfulfilledQuota] = []
    replaced_count: int = 0


# ===========================
# Workflow Models
# ===========================

WorkflowState = Literal[
    "idle",
    "entity_selected",
    "subject_selected",
    "cell_chosen",
    "counterpart_selection",
]


class WorkflowSession(BaseModel):
    """Selections of one user walking through a manual assignment."""
    model_config = ConfigDict(frozen=True)

    id: str
    state: WorkflowState = "idle"
    anchor_id: Optional[str] = None
    anchor_is_teacher: bool = True
    subject_id: Optional[str] = None
    pending_weekday: Optional[str] = None
    pending_start_time: Optional[str] = None
    conflicts: List[ConflictInfo] = []
    last_assignment: Optional[Assignment] = None


class EntitySelection(BaseModel):
    entity_id: str
    is_teacher: bool = True


class SubjectSelection(BaseModel):
    subject_id: str


class CellSelection(BaseModel):
    weekday: Weekday
    start_time: str

    @field_validator("start_time")
    @classmethod
    def validate_time(cls, value: str) -> str:
        return _validate_time(value)


class CounterpartSelection(BaseModel):
    group_id: str


# ===========================
# Response Envelopes
# ===========================

class PersistenceWarning(BaseModel):
    """A backing-store write that failed after the in-memory change succeeded."""
    key: str
    message: str


class Messages(BaseModel):
    """Collection of warnings attached to a response"""
    warnings: List[PersistenceWarning] = []


class WorkflowResponse(BaseModel):
    session: WorkflowSession
    messages: Messages = Messages()


class AssignmentResponse(BaseModel):
    assignment: Optional[Assignment] = None
    messages: Messages = Messages()


class AssignmentListResponse(BaseModel):
    assignments: List[Assignment]
    messages: Messages = Messages()


class ClearResponse(BaseModel):
    removed: int
    messages: Messages = Messages()


class GenerationResponse(BaseModel):
    result: GenerationResult
    messages: Messages = Messages()
