"""
Conflict detection between a candidate assignment and existing ones.

Two assignments collide when they fall on the same weekday, their
[start, end) intervals overlap, and they share the teacher or the group.
Interval overlap is the only predicate used, so blocks of different
length (17:20-18:10 next to 18:00-19:00) are still caught.
"""
import logging
from typing import Callable, Dict, Iterable, List, Optional

from models.schemas import Assignment, ConflictInfo
from service.registry import RegistryIndex
from service.time_grid import TimeGrid, overlaps

logger = logging.getLogger(__name__)

AssignmentSource = Callable[[], Iterable[Assignment]]


class ConflictDetector:
    """
    Pure queries over an assignment source.

    The source is re-read on every call: pass ``store.all`` to check the
    persisted timetable, or a closure over a list to check a batch that is
    still being built.
    """

    def __init__(
        self,
        source: AssignmentSource,
        grid: TimeGrid,
        registry: Optional[RegistryIndex] = None,
    ):
        self.source = source
        self.grid = grid
        self.registry = registry or RegistryIndex()

    def _resolve_end(self, start_time: str, end_time: Optional[str]) -> str:
        if end_time:
            return end_time
        block = self.grid.find_block(start_time)
        # an off-grid start still matches anything starting at the same minute
        return block.end_time if block else start_time

    def _overlapping(
        self,
        weekday: str,
        start_time: str,
        end_time: str,
        ignore_id: Optional[str],
    ) -> List[Assignment]:
        if start_time == end_time:
            return [
                a for a in self.source()
                if a.weekday == weekday and a.start_time == start_time and a.id != ignore_id
            ]
        return [
            a for a in self.source()
            if a.weekday == weekday
            and a.id != ignore_id
            and overlaps(start_time, end_time, a.start_time, a.end_time)
        ]

    def has_conflict(
        self,
        weekday: str,
        start_time: str,
        teacher_id: str,
        group_id: str,
        end_time: Optional[str] = None,
        ignore_id: Optional[str] = None,
    ) -> bool:
        """
        True if the teacher or the group is already busy during the interval.

        An empty ``teacher_id`` means the teacher is not yet known and is
        never considered busy.
        """
        end_time = self._resolve_end(start_time, end_time)
        for existing in self._overlapping(weekday, start_time, end_time, ignore_id):
            if teacher_id and existing.teacher_id == teacher_id:
                return True
            if group_id and existing.group_id == group_id:
                return True
        return False

    def conflict_details(
        self,
        weekday: str,
        start_time: str,
        end_time: Optional[str],
        entity_id: str,
        is_teacher: bool,
        ignore_id: Optional[str] = None,
    ) -> List[ConflictInfo]:
        """List every assignment of the entity that overlaps the interval."""
        if not entity_id:
            return []
        end_time = self._resolve_end(start_time, end_time)
        field = "teacher_id" if is_teacher else "group_id"
        return [
            self._describe(existing, is_teacher)
            for existing in self._overlapping(weekday, start_time, end_time, ignore_id)
            if getattr(existing, field) == entity_id
        ]

    def check(self, candidate: Assignment, ignore_id: Optional[str] = None) -> List[ConflictInfo]:
        """Teacher-side and group-side conflicts of a full candidate, without duplicates."""
        found: Dict[str, ConflictInfo] = {}
        for entity_id, is_teacher in ((candidate.teacher_id, True), (candidate.group_id, False)):
            for info in self.conflict_details(
                candidate.weekday,
                candidate.start_time,
                candidate.end_time,
                entity_id,
                is_teacher,
                ignore_id=ignore_id,
            ):
                found.setdefault(info.assignment_id, info)
        if found:
            logger.debug(
                f"Candidate {candidate.weekday} {candidate.start_time} collides with {list(found)}"
            )
        return list(found.values())

    def _describe(self, existing: Assignment, is_teacher: bool) -> ConflictInfo:
        subject_name = self.registry.subject_name(existing.subject_id)
        teacher_name = self.registry.teacher_name(existing.teacher_id)
        group_name = self.registry.group_name(existing.group_id)
        # the teacher view names the group, the group view names the teacher
        counterpart = group_name if is_teacher else teacher_name
        return ConflictInfo(
            assignment_id=existing.id or "",
            weekday=existing.weekday,
            start_time=existing.start_time,
            end_time=existing.end_time,
            subject_id=existing.subject_id,
            subject_name=subject_name,
            teacher_id=existing.teacher_id,
            teacher_name=teacher_name,
            group_id=existing.group_id,
            group_name=group_name,
            entity_kind="teacher" if is_teacher else "group",
            counterpart_name=counterpart,
            message=(
                f"{subject_name} with {counterpart} on {existing.weekday} "
                f"({existing.start_time}-{existing.end_time})"
            ),
        )
