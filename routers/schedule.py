from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from config import settings
from models.schemas import (
    AssignmentCreate, AssignmentListResponse, AssignmentPatch, AssignmentResponse,
    CellSelection, ClearResponse, ConflictCheckRequest, ConflictCheckResponse, ConflictInfo,
    CounterpartSelection, EntityRegistry, EntitySelection, GenerationResponse,
    GeneratorConfigPayload, GridResponse, Messages, Shift, Subject, SubjectSelection,
    TimeBlock, Weekday, WorkflowResponse
)
from service.engine import SchedulingEngine

# Create a router instance
router = APIRouter()

_engine: Optional[SchedulingEngine] = None


def get_engine() -> SchedulingEngine:
    """Process-wide engine, created and loaded on first use."""
    global _engine
    if _engine is None:
        _engine = SchedulingEngine(settings).load()
    return _engine


def _messages(engine: SchedulingEngine) -> Messages:
    return Messages(warnings=engine.drain_warnings())


# ===========================
# Time grid
# ===========================

@router.get("/grid", response_model=GridResponse)
async def get_grid(engine: SchedulingEngine = Depends(get_engine)):
    """Weekdays and the block list shared by every weekday."""
    return GridResponse(weekdays=engine.grid.weekdays, blocks=engine.grid.blocks)


@router.get("/grid/{shift}", response_model=List[TimeBlock])
async def get_shift_blocks(shift: Shift, engine: SchedulingEngine = Depends(get_engine)):
    return engine.grid.blocks_for_shift(shift)


# ===========================
# Entity registry
# ===========================

@router.get("/registry", response_model=EntityRegistry)
async def get_registry(engine: SchedulingEngine = Depends(get_engine)):
    return engine.registry.registry


@router.put("/registry", response_model=EntityRegistry)
async def put_registry(registry: EntityRegistry, engine: SchedulingEngine = Depends(get_engine)):
    """Replace the teachers, subjects and groups the engine schedules."""
    engine.set_registry(registry)
    return registry


# ===========================
# Assignments
# ===========================

@router.get("/assignments", response_model=AssignmentListResponse)
async def list_assignments(
    teacher_id: Optional[str] = None,
    group_id: Optional[str] = None,
    weekday: Optional[Weekday] = None,
    engine: SchedulingEngine = Depends(get_engine),
):
    assignments = engine.store.find(
        lambda a: (teacher_id is None or a.teacher_id == teacher_id)
        and (group_id is None or a.group_id == group_id)
        and (weekday is None or a.weekday == weekday)
    )
    return AssignmentListResponse(assignments=assignments, messages=_messages(engine))


@router.post("/assignments", response_model=AssignmentResponse, status_code=201)
async def create_assignment(request: AssignmentCreate, engine: SchedulingEngine = Depends(get_engine)):
    """Create one assignment; rejected with 409 if the teacher or group is busy."""
    assignment = engine.create_assignment(request)
    return AssignmentResponse(assignment=assignment, messages=_messages(engine))


@router.patch("/assignments/{assignment_id}", response_model=AssignmentResponse)
async def update_assignment(
    assignment_id: str,
    patch: AssignmentPatch,
    engine: SchedulingEngine = Depends(get_engine),
):
    assignment = engine.update_assignment(assignment_id, patch)
    return AssignmentResponse(assignment=assignment, messages=_messages(engine))


@router.delete("/assignments/{assignment_id}", response_model=AssignmentResponse)
async def delete_assignment(assignment_id: str, engine: SchedulingEngine = Depends(get_engine)):
    removed = engine.store.remove(assignment_id)
    return AssignmentResponse(assignment=removed, messages=_messages(engine))


@router.delete("/assignments", response_model=ClearResponse)
async def clear_assignments_for_entity(
    entity_id: str = Query(..., min_length=1),
    is_teacher: bool = True,
    engine: SchedulingEngine = Depends(get_engine),
):
    """Remove every assignment of a teacher or a group."""
    removed = engine.store.remove_all_for(entity_id, is_teacher)
    return ClearResponse(removed=removed, messages=_messages(engine))


@router.post("/conflicts/check", response_model=ConflictCheckResponse)
async def check_conflicts(request: ConflictCheckRequest, engine: SchedulingEngine = Depends(get_engine)):
    detector = engine.detector
    has_conflict = detector.has_conflict(
        request.weekday,
        request.start_time,
        request.teacher_id,
        request.group_id,
        end_time=request.end_time,
        ignore_id=request.ignore_id,
    )
    # one entry per colliding assignment, teacher side first
    conflicts: Dict[str, ConflictInfo] = {}
    if has_conflict:
        for entity_id, is_teacher in ((request.teacher_id, True), (request.group_id, False)):
            for info in detector.conflict_details(
                request.weekday, request.start_time, request.end_time,
                entity_id, is_teacher, ignore_id=request.ignore_id,
            ):
                conflicts.setdefault(info.assignment_id, info)
    return ConflictCheckResponse(has_conflict=has_conflict, conflicts=list(conflicts.values()))


# ===========================
# Manual workflow
# ===========================

@router.post("/workflow/sessions", response_model=WorkflowResponse, status_code=201)
async def open_session(engine: SchedulingEngine = Depends(get_engine)):
    return WorkflowResponse(session=engine.open_session())


@router.get("/workflow/sessions/{session_id}", response_model=WorkflowResponse)
async def get_session(session_id: str, engine: SchedulingEngine = Depends(get_engine)):
    return WorkflowResponse(session=engine.get_session(session_id))


@router.delete("/workflow/sessions/{session_id}", response_model=WorkflowResponse)
async def close_session(session_id: str, engine: SchedulingEngine = Depends(get_engine)):
    """Forget a workflow session; its committed assignments stay."""
    return WorkflowResponse(session=engine.close_session(session_id))


@router.post("/workflow/sessions/{session_id}/entity", response_model=WorkflowResponse)
async def select_entity(
    session_id: str,
    selection: EntitySelection,
    engine: SchedulingEngine = Depends(get_engine),
):
    session = engine.advance(
        session_id, lambda wf, s: wf.select_entity(s, selection.entity_id, selection.is_teacher)
    )
    return WorkflowResponse(session=session)


@router.get("/workflow/sessions/{session_id}/subjects", response_model=List[Subject])
async def eligible_subjects(session_id: str, engine: SchedulingEngine = Depends(get_engine)):
    return engine.workflow.eligible_subjects(engine.get_session(session_id))


@router.post("/workflow/sessions/{session_id}/subject", response_model=WorkflowResponse)
async def select_subject(
    session_id: str,
    selection: SubjectSelection,
    engine: SchedulingEngine = Depends(get_engine),
):
    session = engine.advance(session_id, lambda wf, s: wf.select_subject(s, selection.subject_id))
    return WorkflowResponse(session=session)


@router.post("/workflow/sessions/{session_id}/cell", response_model=WorkflowResponse)
async def choose_cell(
    session_id: str,
    cell: CellSelection,
    engine: SchedulingEngine = Depends(get_engine),
):
    """Tap a cell. Teacher-anchored sessions then need a group via /counterpart."""
    session = engine.advance(session_id, lambda wf, s: wf.choose_cell(s, cell.weekday, cell.start_time))
    return WorkflowResponse(session=session, messages=_messages(engine))


@router.post("/workflow/sessions/{session_id}/counterpart", response_model=WorkflowResponse)
async def select_counterpart(
    session_id: str,
    selection: CounterpartSelection,
    engine: SchedulingEngine = Depends(get_engine),
):
    session = engine.advance(session_id, lambda wf, s: wf.select_counterpart(s, selection.group_id))
    return WorkflowResponse(session=session, messages=_messages(engine))


@router.delete("/workflow/sessions/{session_id}/counterpart", response_model=WorkflowResponse)
async def cancel_counterpart(session_id: str, engine: SchedulingEngine = Depends(get_engine)):
    session = engine.advance(session_id, lambda wf, s: wf.cancel_cell(s))
    return WorkflowResponse(session=session)


@router.get("/workflow/sessions/{session_id}/cell", response_model=AssignmentResponse)
async def get_cell(
    session_id: str,
    weekday: Weekday,
    start_time: str,
    engine: SchedulingEngine = Depends(get_engine),
):
    """The assignment a delete would remove, for the confirmation prompt."""
    assignment = engine.workflow.assignment_at(engine.get_session(session_id), weekday, start_time)
    return AssignmentResponse(assignment=assignment)


@router.delete("/workflow/sessions/{session_id}/cell", response_model=AssignmentResponse)
async def delete_cell(
    session_id: str,
    weekday: Weekday,
    start_time: str,
    engine: SchedulingEngine = Depends(get_engine),
):
    removed = engine.workflow.delete_cell(engine.get_session(session_id), weekday, start_time)
    return AssignmentResponse(assignment=removed, messages=_messages(engine))


@router.delete("/workflow/sessions/{session_id}/assignments", response_model=ClearResponse)
async def clear_anchor(session_id: str, engine: SchedulingEngine = Depends(get_engine)):
    removed = engine.workflow.clear_anchor(engine.get_session(session_id))
    return ClearResponse(removed=removed, messages=_messages(engine))


# ===========================
# Generator
# ===========================

@router.get("/generator/config", response_model=GeneratorConfigPayload)
async def get_generator_config(engine: SchedulingEngine = Depends(get_engine)):
    return engine.generator_config.to_payload()


@router.put("/generator/config", response_model=GeneratorConfigPayload)
async def put_generator_config(payload: GeneratorConfigPayload, engine: SchedulingEngine = Depends(get_engine)):
    return engine.set_generator_config(payload).to_payload()


@router.post("/generator/run", response_model=GenerationResponse)
async def run_generator(engine: SchedulingEngine = Depends(get_engine)):
    """
    Generate the whole timetable from the generator configuration.

    This replaces every existing assignment. Quotas that could not be fully
    placed are listed in ``result.unfulfilled``.
    """
    result = engine.generate()
    return GenerationResponse(result=result, messages=_messages(engine))
