"""
Greedy first-fit timetable generator.

Walks teachers in registry order, their configured subjects in configuration
order and each subject's groups in configuration order, filling the earliest
free cells of the group's shift until the weekly hour quota is met. There is
no backtracking: quotas that do not fit are reported, not retried.
"""
import logging
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional, Set, Tuple

from models.schemas import (
    Assignment, GenerationResult, GeneratorConfigPayload, ShiftSelection,
    SubjectQuota, TeacherGeneratorConfig, TimeBlock, UnfulfilledQuota
)
from service.conflicts import ConflictDetector
from service.exceptions import GenerationCancelled
from service.registry import RegistryIndex
from service.schedule_store import ScheduleStore, new_assignment_id
from service.time_grid import TimeGrid

logger = logging.getLogger(__name__)

QuotaKey = Tuple[str, str]        # (teacher_id, subject_id)
ShiftKey = Tuple[str, str, str]   # (teacher_id, subject_id, group_id)


class GeneratorConfig:
    """
    Immutable generator configuration.

    Quotas are keyed by (teacher, subject) and shift choices by
    (teacher, subject, group). Insertion order is the configuration order.
    Every edit returns a new instance.
    """

    def __init__(
        self,
        quotas: Optional[Mapping[QuotaKey, SubjectQuota]] = None,
        shifts: Optional[Mapping[ShiftKey, str]] = None,
    ):
        self.quotas: Mapping[QuotaKey, SubjectQuota] = MappingProxyType(dict(quotas or {}))
        self.shifts: Mapping[ShiftKey, str] = MappingProxyType(dict(shifts or {}))

    def __eq__(self, other) -> bool:
        if not isinstance(other, GeneratorConfig):
            return NotImplemented
        return (
            list(self.quotas.items()) == list(other.quotas.items())
            and dict(self.shifts) == dict(other.shifts)
        )

    @classmethod
    def from_payload(cls, payload: GeneratorConfigPayload) -> "GeneratorConfig":
        quotas: Dict[QuotaKey, SubjectQuota] = {}
        for teacher_config in payload.teachers:
            for quota in teacher_config.subjects:
                quotas[(teacher_config.teacher_id, quota.subject_id)] = quota
        shifts = {
            (s.teacher_id, s.subject_id, s.group_id): s.shift
            for s in payload.shifts
        }
        return cls(quotas, shifts)

    def to_payload(self) -> GeneratorConfigPayload:
        teachers: Dict[str, List[SubjectQuota]] = {}
        for (teacher_id, _), quota in self.quotas.items():
            teachers.setdefault(teacher_id, []).append(quota)
        return GeneratorConfigPayload(
            teachers=[
                TeacherGeneratorConfig(teacher_id=teacher_id, subjects=subjects)
                for teacher_id, subjects in teachers.items()
            ],
            shifts=[
                ShiftSelection(teacher_id=t, subject_id=s, group_id=g, shift=shift)
                for (t, s, g), shift in self.shifts.items()
            ],
        )

    def quotas_for(self, teacher_id: str) -> List[SubjectQuota]:
        return [quota for (t, _), quota in self.quotas.items() if t == teacher_id]

    def shift_for(self, teacher_id: str, subject_id: str, group_id: str) -> Optional[str]:
        return self.shifts.get((teacher_id, subject_id, group_id))

    def with_quota(self, teacher_id: str, quota: SubjectQuota) -> "GeneratorConfig":
        quotas = dict(self.quotas)
        quotas[(teacher_id, quota.subject_id)] = quota
        return GeneratorConfig(quotas, self.shifts)

    def with_shift(self, teacher_id: str, subject_id: str, group_id: str, shift: str) -> "GeneratorConfig":
        shifts = dict(self.shifts)
        shifts[(teacher_id, subject_id, group_id)] = shift
        return GeneratorConfig(self.quotas, shifts)

    def without_teacher(self, teacher_id: str) -> "GeneratorConfig":
        return GeneratorConfig(
            {k: v for k, v in self.quotas.items() if k[0] != teacher_id},
            {k: v for k, v in self.shifts.items() if k[0] != teacher_id},
        )


class ScheduleGenerator:
    """
    Builds a complete timetable from scratch.

    Existing assignments are ignored while generating; ``run`` replaces the
    store's content with the generated batch in a single step.
    """

    def __init__(
        self,
        grid: TimeGrid,
        registry: RegistryIndex,
        config: GeneratorConfig,
        default_shift: str = "morning",
        should_cancel: Optional[Callable[[], bool]] = None,
    ):
        self.grid = grid
        self.registry = registry
        self.config = config
        self.default_shift = default_shift
        self.should_cancel = should_cancel

        # Per-run working set
        self.batch: List[Assignment] = []
        self.occupied: Dict[Tuple[str, str], Set[str]] = {}
        self.unfulfilled: List[UnfulfilledQuota] = []

    def run(self, store: ScheduleStore) -> GenerationResult:
        """Generate and commit, holding the store exclusively throughout."""
        with store.exclusive():
            result = self.generate()
            result.replaced_count = len(store)
            store.replace_all(result.assignments)
        logger.info(
            f"Generation committed {len(result.assignments)} assignment(s), "
            f"replaced {result.replaced_count}, {len(result.unfulfilled)} quota(s) short"
        )
        return result

    def generate(self) -> GenerationResult:
        self.batch = []
        self.occupied = {}
        self.unfulfilled = []
        detector = ConflictDetector(lambda: self.batch, self.grid, self.registry)

        for teacher in self.registry.teachers:
            quotas = self.config.quotas_for(teacher.id)
            if not quotas:
                continue

            for quota in quotas:
                if self.should_cancel is not None and self.should_cancel():
                    logger.info("Generation cancelled, nothing committed")
                    raise GenerationCancelled()

                if not self.registry.teaches(teacher.id, quota.subject_id):
                    logger.warning(
                        f"Teacher {teacher.id} is not qualified for subject {quota.subject_id}, skipping"
                    )
                    continue
                if quota.hours <= 0:
                    continue

                for group_id in quota.group_ids:
                    group = self.registry.group(group_id)
                    if group is None:
                        logger.warning(f"Unknown group {group_id} in config of teacher {teacher.id}, skipping")
                        continue

                    shift = (
                        self.config.shift_for(teacher.id, quota.subject_id, group_id)
                        or group.shift
                        or self.default_shift
                    )
                    placed = self._place(teacher.id, quota.subject_id, group_id, shift, quota.hours, detector)
                    if placed < quota.hours:
                        self.unfulfilled.append(UnfulfilledQuota(
                            teacher_id=teacher.id,
                            subject_id=quota.subject_id,
                            group_id=group_id,
                            shift=shift,
                            required=quota.hours,
                            placed=placed,
                            missing=quota.hours - placed,
                        ))

        return GenerationResult(assignments=list(self.batch), unfulfilled=list(self.unfulfilled))

    def _place(
        self,
        teacher_id: str,
        subject_id: str,
        group_id: str,
        shift: str,
        hours: int,
        detector: ConflictDetector,
    ) -> int:
        blocks = [b for b in self.grid.blocks_for_shift(shift) if not self.grid.is_break(b)]
        remaining = hours

        for weekday in self.grid.weekdays:
            for block in blocks:
                if remaining == 0:
                    return hours
                if not self._is_free(weekday, block, teacher_id, group_id):
                    continue
                if detector.has_conflict(weekday, block.start_time, teacher_id, group_id, end_time=block.end_time):
                    continue

                self._mark(weekday, block, teacher_id, group_id)
                self.batch.append(Assignment(
                    id=new_assignment_id(),
                    weekday=weekday,
                    start_time=block.start_time,
                    end_time=block.end_time,
                    subject_id=subject_id,
                    teacher_id=teacher_id,
                    group_id=group_id,
                ))
                remaining -= 1
                logger.debug(f"Placed {subject_id} for {group_id} with {teacher_id} on {weekday} {block.start_time}")

        return hours - remaining

    def _is_free(self, weekday: str, block: TimeBlock, teacher_id: str, group_id: str) -> bool:
        occupants = self.occupied.get((weekday, block.start_time), set())
        return f"teacher:{teacher_id}" not in occupants and f"group:{group_id}" not in occupants

    def _mark(self, weekday: str, block: TimeBlock, teacher_id: str, group_id: str):
        occupants = self.occupied.setdefault((weekday, block.start_time), set())
        occupants.add(f"teacher:{teacher_id}")
        occupants.add(f"group:{group_id}")
