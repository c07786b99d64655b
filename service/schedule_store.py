"""
In-memory store of assignments, the single source of truth for the timetable.
"""
import logging
import threading
import uuid
from contextlib import contextmanager
from typing import Callable, Dict, Iterable, Iterator, List, Optional

from models.schemas import Assignment, AssignmentPatch
from service.exceptions import NotFoundError

logger = logging.getLogger(__name__)

Listener = Callable[["ScheduleStore"], None]


def new_assignment_id() -> str:
    return f"assignment_{uuid.uuid4().hex[:12]}"


class ScheduleStore:
    """
    Ordered collection of assignments.

    The store does not check invariants itself: callers run the conflict
    detector first and only then write. Every successful mutation notifies
    the subscribers, which re-read the full state.
    """

    def __init__(self, assignments: Optional[Iterable[Assignment]] = None):
        self._assignments: Dict[str, Assignment] = {}
        self._listeners: List[Listener] = []
        self._lock = threading.RLock()
        for assignment in assignments or []:
            self._insert(assignment)

    def __len__(self) -> int:
        return len(self._assignments)

    @contextmanager
    def exclusive(self) -> Iterator["ScheduleStore"]:
        """Hold exclusive ownership of the store for the duration of the block."""
        with self._lock:
            yield self

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self):
        for listener in list(self._listeners):
            listener(self)

    def _insert(self, assignment: Assignment) -> Assignment:
        if not assignment.id:
            assignment = assignment.model_copy(update={"id": new_assignment_id()})
        self._assignments[assignment.id] = assignment
        return assignment

    def all(self) -> List[Assignment]:
        with self._lock:
            return list(self._assignments.values())

    def get(self, assignment_id: str) -> Optional[Assignment]:
        return self._assignments.get(assignment_id)

    def find(self, predicate: Callable[[Assignment], bool]) -> List[Assignment]:
        with self._lock:
            return [a for a in self._assignments.values() if predicate(a)]

    def add(self, assignment: Assignment) -> Assignment:
        with self._lock:
            stored = self._insert(assignment)
        logger.debug(f"Added assignment {stored.id} ({stored.weekday} {stored.start_time})")
        self._notify()
        return stored

    def update(self, assignment_id: str, patch: AssignmentPatch) -> Assignment:
        with self._lock:
            current = self._assignments.get(assignment_id)
            if current is None:
                logger.warning(f"Update skipped: assignment {assignment_id} does not exist")
                raise NotFoundError("Assignment", assignment_id)
            changes = patch.model_dump(exclude_none=True)
            updated = current.model_copy(update=changes)
            if updated == current:
                return current
            self._assignments[assignment_id] = updated
        self._notify()
        return updated

    def remove(self, assignment_id: str) -> Assignment:
        with self._lock:
            removed = self._assignments.pop(assignment_id, None)
            if removed is None:
                logger.warning(f"Delete skipped: assignment {assignment_id} does not exist")
                raise NotFoundError("Assignment", assignment_id)
        self._notify()
        return removed

    def remove_all_for(self, entity_id: str, is_teacher: bool) -> int:
        """Delete every assignment that references the teacher or group."""
        field = "teacher_id" if is_teacher else "group_id"
        with self._lock:
            doomed = [
                a.id for a in self._assignments.values()
                if getattr(a, field) == entity_id
            ]
            for assignment_id in doomed:
                del self._assignments[assignment_id]
        logger.info(
            f"Removed {len(doomed)} assignment(s) for "
            f"{'teacher' if is_teacher else 'group'} {entity_id}"
        )
        if doomed:
            self._notify()
        return len(doomed)

    def replace_all(self, assignments: Iterable[Assignment]) -> None:
        """Swap the whole collection in one step."""
        with self._lock:
            replacement: Dict[str, Assignment] = {}
            for assignment in assignments:
                if not assignment.id:
                    assignment = assignment.model_copy(update={"id": new_assignment_id()})
                replacement[assignment.id] = assignment
            self._assignments = replacement
        self._notify()
