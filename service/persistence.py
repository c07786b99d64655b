"""
Key-value persistence for the timetable and the generator configuration.

Writes happen after the in-memory change has already succeeded. A failed
write is logged and reported as a PersistenceWarning; it never rolls back
the in-memory state.
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from models.schemas import Assignment, GeneratorConfigPayload, PersistenceWarning, ShiftSelection

logger = logging.getLogger(__name__)


class JsonKeyValueStore:
    """A flat JSON document on disk addressed by top-level keys."""

    def __init__(self, path: Optional[str]):
        self.path = Path(path) if path else None

    @property
    def enabled(self) -> bool:
        return self.path is not None

    def _read(self) -> Dict[str, Any]:
        if self.path is None or not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
        return data if isinstance(data, dict) else {}

    def get(self, key: str, default: Any = None) -> Any:
        return self._read().get(key, default)

    def set(self, key: str, value: Any) -> None:
        if self.path is None:
            return
        data = self._read()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as fh:
            json.dump(data, fh, ensure_ascii=False, indent=2)
        tmp_path.replace(self.path)


class SchedulePersistence:
    """Loads and saves engine state under the configured key names."""

    def __init__(
        self,
        store: JsonKeyValueStore,
        assignments_key: str = "assignments",
        config_key: str = "generator_config",
        shifts_key: str = "generator_shifts",
    ):
        self.store = store
        self.assignments_key = assignments_key
        self.config_key = config_key
        self.shifts_key = shifts_key
        self.warnings: List[PersistenceWarning] = []

    def drain_warnings(self) -> List[PersistenceWarning]:
        warnings, self.warnings = self.warnings, []
        return warnings

    def _save(self, key: str, value: Any) -> bool:
        try:
            self.store.set(key, value)
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"Could not persist '{key}': {str(e)}")
            self.warnings.append(PersistenceWarning(
                key=key,
                message=f"Changes were applied but may not survive a restart: {str(e)}",
            ))
            return False

    def _load(self, key: str, default: Any) -> Any:
        try:
            return self.store.get(key, default)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not load '{key}': {str(e)}")
            self.warnings.append(PersistenceWarning(key=key, message=f"Saved data could not be read: {str(e)}"))
            return default

    def _load_list(self, key: str) -> List[Any]:
        value = self._load(key, [])
        if not isinstance(value, list):
            logger.warning(f"Ignoring stored '{key}': expected a list, got {type(value).__name__}")
            self.warnings.append(PersistenceWarning(
                key=key,
                message=f"Saved data has the wrong shape and was ignored: expected a list, got {type(value).__name__}",
            ))
            return []
        return value

    def save_assignments(self, assignments: List[Assignment]) -> bool:
        return self._save(self.assignments_key, [a.model_dump() for a in assignments])

    def load_assignments(self) -> List[Assignment]:
        loaded = []
        for raw in self._load_list(self.assignments_key):
            try:
                loaded.append(Assignment.model_validate(raw))
            except ValidationError as e:
                logger.warning(f"Dropping unreadable stored assignment {raw!r}: {e.error_count()} error(s)")
        return loaded

    def save_generator_config(self, payload: GeneratorConfigPayload) -> bool:
        quotas_ok = self._save(self.config_key, [t.model_dump() for t in payload.teachers])
        shifts_ok = self._save(self.shifts_key, [s.model_dump() for s in payload.shifts])
        return quotas_ok and shifts_ok

    def load_generator_config(self) -> GeneratorConfigPayload:
        try:
            return GeneratorConfigPayload(
                teachers=self._load_list(self.config_key),
                shifts=[ShiftSelection.model_validate(s) for s in self._load_list(self.shifts_key)],
            )
        except ValidationError as e:
            logger.warning(f"Stored generator configuration is invalid, starting empty: {e.error_count()} error(s)")
            return GeneratorConfigPayload()
