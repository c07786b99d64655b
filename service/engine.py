"""
Composition of the scheduling components behind the API.
"""
import logging
from typing import Callable, Dict, List, Optional

from config.settings import Settings
from models.schemas import (
    Assignment, AssignmentCreate, AssignmentPatch, EntityRegistry, GenerationResult,
    GeneratorConfigPayload, PersistenceWarning, WorkflowSession
)
from service.conflicts import ConflictDetector
from service.exceptions import ConflictError, NotFoundError, ScheduleValidationError
from service.generator import GeneratorConfig, ScheduleGenerator
from service.persistence import JsonKeyValueStore, SchedulePersistence
from service.registry import RegistryIndex
from service.schedule_store import ScheduleStore
from service.time_grid import TimeGrid
from service.workflow import ManualWorkflow, new_session

logger = logging.getLogger(__name__)


class SchedulingEngine:
    """
    Owns the grid, the store, the registry snapshot, the generator
    configuration and the open workflow sessions.
    """

    def __init__(self, settings: Settings, grid: Optional[TimeGrid] = None):
        self.settings = settings
        self.grid = grid or TimeGrid(
            shift_cutoff=settings.shift_cutoff,
            include_saturday=settings.include_saturday,
        )
        self.store = ScheduleStore()
        self.registry = RegistryIndex()
        self.generator_config = GeneratorConfig()
        self.sessions: Dict[str, WorkflowSession] = {}
        self.persistence = SchedulePersistence(
            JsonKeyValueStore(settings.storage_path),
            assignments_key=settings.assignments_key,
            config_key=settings.generator_config_key,
            shifts_key=settings.generator_shifts_key,
        )

    def load(self) -> "SchedulingEngine":
        """Restore saved state and start saving on every store change."""
        self.store.replace_all(self.persistence.load_assignments())
        self.generator_config = GeneratorConfig.from_payload(self.persistence.load_generator_config())
        self.store.subscribe(lambda store: self.persistence.save_assignments(store.all()))
        logger.info(f"Loaded {len(self.store)} assignment(s) from storage")
        return self

    def drain_warnings(self) -> List[PersistenceWarning]:
        return self.persistence.drain_warnings()

    @property
    def detector(self) -> ConflictDetector:
        return ConflictDetector(self.store.all, self.grid, self.registry)

    @property
    def workflow(self) -> ManualWorkflow:
        return ManualWorkflow(self.store, self.grid, self.registry)

    def set_registry(self, registry: EntityRegistry):
        self.registry = RegistryIndex(registry)
        logger.info(
            f"Registry loaded: {len(registry.teachers)} teacher(s), "
            f"{len(registry.subjects)} subject(s), {len(registry.groups)} group(s)"
        )

    # ------------------------------------------------------------------
    # Direct assignment edits
    # ------------------------------------------------------------------

    def create_assignment(self, request: AssignmentCreate) -> Assignment:
        block = self.grid.assignable_block(request.weekday, request.start_time, request.end_time)
        candidate = Assignment(
            weekday=request.weekday,
            start_time=block.start_time,
            end_time=block.end_time,
            subject_id=request.subject_id,
            teacher_id=request.teacher_id,
            group_id=request.group_id,
        )
        self._check_entities(candidate)
        conflicts = self.detector.check(candidate)
        if conflicts:
            raise ConflictError(conflicts)
        return self.store.add(candidate)

    def update_assignment(self, assignment_id: str, patch: AssignmentPatch) -> Assignment:
        current = self.store.get(assignment_id)
        if current is None:
            logger.warning(f"Update skipped: assignment {assignment_id} does not exist")
            raise NotFoundError("Assignment", assignment_id)
        candidate = current.model_copy(update=patch.model_dump(exclude_none=True))
        self._check_entities(candidate)
        conflicts = self.detector.check(candidate, ignore_id=assignment_id)
        if conflicts:
            raise ConflictError(conflicts)
        return self.store.update(assignment_id, patch)

    def _check_entities(self, candidate: Assignment):
        """Referenced ids must exist and the teacher must teach the subject."""
        if self.registry.group(candidate.group_id) is None:
            raise NotFoundError("Group", candidate.group_id)
        if candidate.teacher_id:
            if self.registry.teacher(candidate.teacher_id) is None:
                raise NotFoundError("Teacher", candidate.teacher_id)
            if not self.registry.teaches(candidate.teacher_id, candidate.subject_id):
                raise ScheduleValidationError(
                    f"Teacher {candidate.teacher_id} does not teach subject {candidate.subject_id}",
                    field="subject_id",
                )
        elif not self.registry.has_subject(candidate.subject_id):
            raise NotFoundError("Subject", candidate.subject_id)

    # ------------------------------------------------------------------
    # Workflow sessions
    # ------------------------------------------------------------------

    def open_session(self) -> WorkflowSession:
        session = new_session()
        self.sessions[session.id] = session
        return session

    def get_session(self, session_id: str) -> WorkflowSession:
        session = self.sessions.get(session_id)
        if session is None:
            raise NotFoundError("Workflow session", session_id)
        return session

    def close_session(self, session_id: str) -> WorkflowSession:
        session = self.sessions.pop(session_id, None)
        if session is None:
            raise NotFoundError("Workflow session", session_id)
        return session

    def advance(
        self,
        session_id: str,
        step: Callable[[ManualWorkflow, WorkflowSession], WorkflowSession],
    ) -> WorkflowSession:
        """Apply one workflow step and keep the resulting session."""
        session = self.get_session(session_id)
        try:
            session = step(self.workflow, session)
        except ConflictError as e:
            if e.session is not None:
                self.sessions[session_id] = e.session
            raise
        self.sessions[session_id] = session
        return session

    # ------------------------------------------------------------------
    # Generator
    # ------------------------------------------------------------------

    def set_generator_config(self, payload: GeneratorConfigPayload) -> GeneratorConfig:
        self.generator_config = GeneratorConfig.from_payload(payload)
        self.persistence.save_generator_config(self.generator_config.to_payload())
        return self.generator_config

    def generate(self, should_cancel: Optional[Callable[[], bool]] = None) -> GenerationResult:
        generator = ScheduleGenerator(
            self.grid,
            self.registry,
            self.generator_config,
            default_shift=self.settings.default_shift,
            should_cancel=should_cancel,
        )
        return generator.run(self.store)
