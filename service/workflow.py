"""
Manual assignment workflow.

A user anchors the grid on a teacher or a group, picks a subject, then taps
cells. Each step takes the current WorkflowSession and returns a new one;
nothing about the selection lives outside the session value.

    idle -> entity_selected -> subject_selected -> cell_chosen
         -> counterpart_selection (teacher anchor only) -> commit

After a commit the session goes back to subject_selected so consecutive
cells can be filled with the same subject.
"""
import logging
import uuid
from typing import List, Optional

from models.schemas import Assignment, AssignmentPatch, Subject, WorkflowSession
from service.conflicts import ConflictDetector
from service.exceptions import ConflictError, NotFoundError, ScheduleValidationError
from service.registry import RegistryIndex
from service.schedule_store import ScheduleStore
from service.time_grid import TimeGrid

logger = logging.getLogger(__name__)


def new_session() -> WorkflowSession:
    return WorkflowSession(id=f"session_{uuid.uuid4().hex[:12]}")


class ManualWorkflow:
    """State transitions of the manual workflow over the live store."""

    def __init__(self, store: ScheduleStore, grid: TimeGrid, registry: RegistryIndex):
        self.store = store
        self.grid = grid
        self.registry = registry
        self.detector = ConflictDetector(store.all, grid, registry)

    # ------------------------------------------------------------------
    # Selection steps
    # ------------------------------------------------------------------

    def select_entity(self, session: WorkflowSession, entity_id: str, is_teacher: bool) -> WorkflowSession:
        found = self.registry.teacher(entity_id) if is_teacher else self.registry.group(entity_id)
        if found is None:
            raise NotFoundError("Teacher" if is_teacher else "Group", entity_id)
        return session.model_copy(update={
            "state": "entity_selected",
            "anchor_id": entity_id,
            "anchor_is_teacher": is_teacher,
            "subject_id": None,
            "pending_weekday": None,
            "pending_start_time": None,
            "conflicts": [],
        })

    def eligible_subjects(self, session: WorkflowSession) -> List[Subject]:
        if session.anchor_id is None:
            return []
        if session.anchor_is_teacher:
            teacher = self.registry.teacher(session.anchor_id)
            return list(teacher.subjects) if teacher else []
        return list(self.registry.subjects)

    def select_subject(self, session: WorkflowSession, subject_id: str) -> WorkflowSession:
        if session.anchor_id is None:
            raise ScheduleValidationError("Select a teacher or group first", field="entity_id")
        if subject_id not in {s.id for s in self.eligible_subjects(session)}:
            raise ScheduleValidationError(
                f"Subject {subject_id} is not available for {session.anchor_id}", field="subject_id"
            )
        return session.model_copy(update={
            "state": "subject_selected",
            "subject_id": subject_id,
            "pending_weekday": None,
            "pending_start_time": None,
            "conflicts": [],
        })

    def choose_cell(self, session: WorkflowSession, weekday: str, start_time: str) -> WorkflowSession:
        """
        Handle a tap on a grid cell.

        A teacher anchor still needs to know the group, so the session moves
        to counterpart_selection. A group anchor commits right away: the
        subject of an occupied cell is replaced in place, a free cell gets a
        new assignment with no teacher yet.
        """
        if session.anchor_id is None or session.subject_id is None:
            raise ScheduleValidationError("Select a subject first", field="subject_id")
        block = self.grid.assignable_block(weekday, start_time)

        if session.anchor_is_teacher:
            return session.model_copy(update={
                "state": "counterpart_selection",
                "pending_weekday": weekday,
                "pending_start_time": block.start_time,
                "conflicts": [],
            })

        existing = self._occupant(session, weekday, block.start_time, block.end_time)
        if existing is not None:
            stored = self.store.update(existing.id, AssignmentPatch(subject_id=session.subject_id))
            return self._committed(session, stored)

        conflicts = self.detector.conflict_details(
            weekday, block.start_time, block.end_time, session.anchor_id, is_teacher=False
        )
        if conflicts:
            raise ConflictError(conflicts, session=session.model_copy(update={
                "state": "subject_selected",
                "conflicts": conflicts,
            }))
        stored = self.store.add(Assignment(
            weekday=weekday,
            start_time=block.start_time,
            end_time=block.end_time,
            subject_id=session.subject_id,
            teacher_id="",
            group_id=session.anchor_id,
        ))
        return self._committed(session, stored)

    def select_counterpart(self, session: WorkflowSession, group_id: str) -> WorkflowSession:
        """Pick the group for a teacher-anchored cell and commit if both are free."""
        if session.state not in ("counterpart_selection", "cell_chosen") or session.pending_weekday is None:
            raise ScheduleValidationError("Choose a cell first", field="start_time")
        if self.registry.group(group_id) is None:
            raise NotFoundError("Group", group_id)

        weekday = session.pending_weekday
        block = self.grid.assignable_block(weekday, session.pending_start_time)
        existing = self._occupant(session, weekday, block.start_time, block.end_time)
        if existing is None:
            # a class booked from the group side without a teacher is taken over
            existing = self._unstaffed(group_id, weekday, block.start_time, block.end_time)
        candidate = Assignment(
            weekday=weekday,
            start_time=block.start_time,
            end_time=block.end_time,
            subject_id=session.subject_id,
            teacher_id=session.anchor_id,
            group_id=group_id,
        )

        conflicts = self.detector.check(candidate, ignore_id=existing.id if existing else None)
        if conflicts:
            logger.info(
                f"Rejected {session.anchor_id}/{group_id} on {weekday} {block.start_time}: "
                f"{len(conflicts)} conflict(s)"
            )
            raise ConflictError(conflicts, session=session.model_copy(update={
                "state": "cell_chosen",
                "conflicts": conflicts,
            }))

        if existing is not None:
            stored = self.store.update(
                existing.id,
                AssignmentPatch(subject_id=session.subject_id, teacher_id=session.anchor_id, group_id=group_id),
            )
        else:
            stored = self.store.add(candidate)
        return self._committed(session, stored)

    def cancel_cell(self, session: WorkflowSession) -> WorkflowSession:
        if session.subject_id is None:
            return session
        return session.model_copy(update={
            "state": "subject_selected",
            "pending_weekday": None,
            "pending_start_time": None,
            "conflicts": [],
        })

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    def assignment_at(self, session: WorkflowSession, weekday: str, start_time: str) -> Optional[Assignment]:
        """The anchor's assignment in a cell; break cells are always empty."""
        if session.anchor_id is None:
            return None
        block = self.grid.find_block(start_time)
        if block is None or self.grid.is_break(block):
            return None
        return self._occupant(session, weekday, block.start_time, block.end_time)

    def delete_cell(self, session: WorkflowSession, weekday: str, start_time: str) -> Assignment:
        existing = self.assignment_at(session, weekday, start_time)
        if existing is None:
            logger.warning(f"Nothing to delete for {session.anchor_id} on {weekday} {start_time}")
            raise NotFoundError("Assignment", f"{session.anchor_id}@{weekday} {start_time}")
        return self.store.remove(existing.id)

    def clear_anchor(self, session: WorkflowSession) -> int:
        if session.anchor_id is None:
            raise ScheduleValidationError("Select a teacher or group first", field="entity_id")
        return self.store.remove_all_for(session.anchor_id, session.anchor_is_teacher)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _occupant(self, session: WorkflowSession, weekday: str, start_time: str, end_time: str) -> Optional[Assignment]:
        field = "teacher_id" if session.anchor_is_teacher else "group_id"
        matches = self.store.find(
            lambda a: a.weekday == weekday
            and a.start_time == start_time
            and a.end_time == end_time
            and getattr(a, field) == session.anchor_id
        )
        return matches[0] if matches else None

    def _unstaffed(self, group_id: str, weekday: str, start_time: str, end_time: str) -> Optional[Assignment]:
        matches = self.store.find(
            lambda a: a.weekday == weekday
            and a.start_time == start_time
            and a.end_time == end_time
            and a.group_id == group_id
            and not a.teacher_id
        )
        return matches[0] if matches else None

    def _committed(self, session: WorkflowSession, stored: Assignment) -> WorkflowSession:
        logger.info(f"Committed {stored.id}: {stored.subject_id} on {stored.weekday} {stored.start_time}")
        return session.model_copy(update={
            "state": "subject_selected",
            "pending_weekday": None,
            "pending_start_time": None,
            "conflicts": [],
            "last_assignment": stored,
        })
