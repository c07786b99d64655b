from typing import Dict, List, Optional

from models.schemas import EntityRegistry, Group, Subject, Teacher


class RegistryIndex:
    """Id lookups over an entity registry snapshot."""

    def __init__(self, registry: Optional[EntityRegistry] = None):
        self.registry = registry or EntityRegistry()
        self._teachers: Dict[str, Teacher] = {t.id: t for t in self.registry.teachers}
        self._groups: Dict[str, Group] = {g.id: g for g in self.registry.groups}
        self._subjects: Dict[str, Subject] = {s.id: s for s in self.registry.subjects}
        # teachers may carry subjects missing from the global list
        for teacher in self.registry.teachers:
            for subject in teacher.subjects:
                self._subjects.setdefault(subject.id, subject)

    @property
    def teachers(self) -> List[Teacher]:
        return self.registry.teachers

    @property
    def subjects(self) -> List[Subject]:
        return self.registry.subjects

    def teacher(self, teacher_id: str) -> Optional[Teacher]:
        return self._teachers.get(teacher_id)

    def group(self, group_id: str) -> Optional[Group]:
        return self._groups.get(group_id)

    def has_subject(self, subject_id: str) -> bool:
        return subject_id in self._subjects

    def teacher_name(self, teacher_id: str) -> str:
        if not teacher_id:
            return "Unassigned"
        teacher = self._teachers.get(teacher_id)
        return teacher.name if teacher else teacher_id

    def group_name(self, group_id: str) -> str:
        group = self._groups.get(group_id)
        return group.name if group else group_id

    def subject_name(self, subject_id: str) -> str:
        subject = self._subjects.get(subject_id)
        return subject.name if subject else subject_id

    def teaches(self, teacher_id: str, subject_id: str) -> bool:
        teacher = self._teachers.get(teacher_id)
        return teacher is not None and any(s.id == subject_id for s in teacher.subjects)
