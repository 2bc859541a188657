"""In-memory application store."""
import logging
import threading
import uuid
from dataclasses import replace
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .date_range import parse_day
from .errors import InvalidField, InvalidStage, NotFound
from .models import EDITABLE_FIELDS, Application, ApplicationDraft, ApplicationFilter, AuditEntry
from .workflow import WorkflowStore

logger = logging.getLogger(__name__)


class ApplicationStore:
    """Owns tracked applications and their audit logs.

    Stored applications are frozen; every mutation swaps in a new instance and
    bumps `version`, so `get_all()` hands out a consistent snapshot without
    locking. Writers for the same application serialise on `lock_for(id)`;
    writes that put a stage name on an application also hold `workflow.lock`
    so the stage cannot be removed between the check and the write.
    """

    def __init__(self, workflow: WorkflowStore):
        self.workflow = workflow
        self._apps: Dict[str, Application] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._lock = threading.Lock()
        self.version = 0

    def lock_for(self, app_id: str) -> threading.RLock:
        with self._lock:
            if app_id not in self._apps:
                raise NotFound(f"Application not found: {app_id}")
            return self._locks.setdefault(app_id, threading.RLock())

    # -- reads --

    def get_all(self) -> Tuple[Application, ...]:
        return tuple(self._apps.values())

    def get_by_id(self, app_id: str) -> Optional[Application]:
        return self._apps.get(app_id)

    def require(self, app_id: str) -> Application:
        app = self._apps.get(app_id)
        if app is None:
            raise NotFound(f"Application not found: {app_id}")
        return app

    def filter(self, flt: Optional[ApplicationFilter] = None) -> List[Application]:
        apps = self.get_all()
        if flt is None:
            return list(apps)
        return [a for a in apps if flt.matches(a)]

    def in_stage(self, stage_name: str, flt: Optional[ApplicationFilter] = None) -> List[Application]:
        return [a for a in self.filter(flt) if a.stage == stage_name]

    def __len__(self) -> int:
        return len(self._apps)

    # -- writes --

    def _check_stage(self, name: str) -> None:
        if not self.workflow.has_stage(name):
            raise InvalidStage(f"Unknown stage: {name}")

    def _put(self, app: Application) -> Application:
        with self._lock:
            self._apps[app.id] = app
            self.version += 1
        return app

    def add(self, draft: ApplicationDraft, today: Optional[date] = None) -> Application:
        today = today or date.today()
        applied = today if draft.date_applied is None else parse_day(draft.date_applied, today)
        if applied is None:
            raise InvalidField(f"Could not parse date applied: {draft.date_applied!r}")

        created = AuditEntry(
            id=str(uuid.uuid4()),
            date=applied,
            from_stage=None,
            to_stage=draft.stage,
            message=f"Application created in {draft.stage}",
            source="manual",
        )
        app = Application(
            id=str(uuid.uuid4()),
            company=draft.company,
            position=draft.position,
            date_applied=applied,
            stage=draft.stage,
            type=draft.type or "",
            tags=frozenset(draft.tags or ()),
            last_updated=created.date,
            description=draft.description or "",
            salary=draft.salary or "",
            location=draft.location or "",
            notes=draft.notes or "",
            logs=(created,),
        )
        with self.workflow.lock:
            self._check_stage(draft.stage)
            self._put(app)
        logger.info(f"Added application {app.id}: {app.position} at {app.company} ({app.stage})")
        return app

    def update_fields(self, app_id: str, **changes: Any) -> Application:
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise InvalidField(f"Fields cannot be edited directly: {', '.join(sorted(unknown))}")

        if "tags" in changes:
            changes["tags"] = frozenset(changes["tags"] or ())
        if "date_applied" in changes:
            applied = parse_day(changes["date_applied"])
            if applied is None:
                raise InvalidField(f"Could not parse date applied: {changes['date_applied']!r}")
            changes["date_applied"] = applied

        with self.lock_for(app_id):
            app = replace(self.require(app_id), **changes)
            self._put(app)
        logger.info(f"Updated application {app_id}: {', '.join(sorted(changes))}")
        return app

    def commit(self, app: Application) -> Application:
        """Replace a stored application with an updated copy of itself."""
        with self._lock:
            if app.id not in self._apps:
                raise NotFound(f"Application not found: {app.id}")
            self._apps[app.id] = app
            self.version += 1
        return app

    def delete(self, app_id: str) -> Application:
        with self.lock_for(app_id):
            with self._lock:
                app = self._apps.pop(app_id, None)
                if app is None:
                    raise NotFound(f"Application not found: {app_id}")
                self._locks.pop(app_id, None)
                self.version += 1
        logger.info(f"Deleted application {app_id} with {len(app.logs)} log entries")
        return app

    def load(self, applications: Iterable[Application]) -> int:
        """Replace the collection with already-resolved data from persistence."""
        apps = list(applications)
        with self.workflow.lock:
            for app in apps:
                self._check_stage(app.stage)
            with self._lock:
                self._apps = {a.id: a for a in apps}
                self._locks = {}
                self.version += 1
        logger.info(f"Loaded {len(apps)} applications")
        return len(apps)

    def rename_stage_references(self, old_name: str, new_name: str) -> int:
        """Point applications at a renamed stage. Audit entries keep the old name."""
        renamed = 0
        for app in self.get_all():
            if app.stage != old_name:
                continue
            try:
                lock = self.lock_for(app.id)
            except NotFound:
                continue
            with lock:
                current = self.get_by_id(app.id)
                if current is not None and current.stage == old_name:
                    self._put(replace(current, stage=new_name))
                    renamed += 1
        if renamed:
            logger.info(f"Moved {renamed} application(s) from '{old_name}' to '{new_name}'")
        return renamed
