"""Tracker - wires the stores, transition engine and analytics together."""

import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional

from .analytics import AnalyticsAggregator
from .date_range import DateRangeResolver
from .errors import InvalidPolicy, InvalidStage, Outcome, capture
from .models import (ActivityItem, AnalyticsSnapshot, Application, ApplicationDraft,
                     ApplicationFilter, DateRange, Stage, TransitionMeta)
from .settings import REMOVAL_POLICIES, Settings
from .store import ApplicationStore
from .transitions import TransitionEngine
from .workflow import WorkflowStore

logger = logging.getLogger(__name__)


class Tracker:
    """Boundary used by UI and import collaborators.

    Every state owner is created here (or injected), never global, so tests
    and callers can run isolated trackers side by side. Operations that can
    fail return an `Outcome` instead of raising `TrackerError`.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        workflow: Optional[WorkflowStore] = None,
        store: Optional[ApplicationStore] = None,
        clock: Optional[Callable[[], date]] = None,
    ):
        self.settings = settings or Settings()
        tz = self.settings.timezone
        self.clock = clock or (lambda: datetime.now(tz).date())

        self.workflow = workflow or WorkflowStore.from_config(self.settings.workflow.get("stages") or [])
        self.store = store or ApplicationStore(self.workflow)
        self.engine = TransitionEngine(self.workflow, self.store, self.clock)
        self.resolver = DateRangeResolver(self.clock)
        self.aggregator = AnalyticsAggregator(self.workflow, self.store, self.settings.classification)
        self.fallback_stage = self.settings.fallback_stage

        logger.info(f"Tracker initialized with {len(self.workflow.get_stages())} stages")

    # -- applications --

    def add_application(self, draft: ApplicationDraft) -> Outcome[Application]:
        return capture(self.store.add, draft, self.clock())

    def update_application(self, application_id: str, **changes: Any) -> Outcome[Application]:
        """Edit non-stage fields. Never touches the audit log."""
        return capture(self.store.update_fields, application_id, **changes)

    def delete_application(self, application_id: str) -> Outcome[Application]:
        return capture(self.store.delete, application_id)

    def get_application(self, application_id: str) -> Outcome[Application]:
        return capture(self.store.require, application_id)

    def transition(
        self,
        application_id: str,
        to_stage: str,
        source: str = "manual",
        meta: Optional[TransitionMeta] = None,
    ) -> Outcome[Application]:
        """Move an application to another stage.

        Args:
            application_id: Application to move
            to_stage: Target stage name, hidden stages included
            source: Origin of the request ("manual", "import", ...)
            meta: Optional message and email evidence

        Returns:
            Outcome holding the updated application; an unchanged application
            when the request duplicated the previous transition
        """
        return capture(self.engine.transition, application_id, to_stage, source, meta)

    # -- workflow --

    def stages(self, visible_only: bool = False) -> List[Stage]:
        return self.workflow.visible_stages() if visible_only else self.workflow.get_stages()

    def add_stage(self, name: str, color: Optional[str] = None, visible: bool = True) -> Outcome[Stage]:
        return capture(self.workflow.add_stage, name, color, visible)

    def reorder_stage(self, stage_id: str, new_order: int) -> Outcome[List[Stage]]:
        return capture(self.workflow.reorder_stage, stage_id, new_order)

    def set_stage_visibility(self, stage_id: str, visible: bool) -> Outcome[Stage]:
        return capture(self.workflow.set_visibility, stage_id, visible)

    def rename_stage(self, stage_id: str, new_name: str) -> Outcome[Stage]:
        """Rename a stage and every reference to it held by name.

        Applications, the interview/offer classification and the fallback
        stage follow the new name. Audit entries keep the old one.
        """
        def _rename() -> Stage:
            with self.workflow.lock:
                old_name, stage = self.workflow.rename_stage(stage_id, new_name)
                self.store.rename_stage_references(old_name, stage.name)
                self.aggregator.classification = self.aggregator.classification.renamed(old_name, stage.name)
                if self.fallback_stage == old_name:
                    self.fallback_stage = stage.name
            return stage
        return capture(_rename)

    def remove_stage(
        self,
        stage_id: str,
        policy: Optional[str] = None,
        fallback: Optional[str] = None,
    ) -> Outcome[Stage]:
        """Remove a stage.

        Args:
            stage_id: Stage to remove
            policy: "block" refuses while applications use the stage,
                "reassign" first moves them to the fallback stage.
                Defaults to the configured policy.
            fallback: Target stage name for "reassign" (defaults to config)

        Returns:
            Outcome holding the removed stage, or StageInUse / InvalidStage /
            InvalidPolicy
        """
        policy = policy or self.settings.removal_policy
        fallback = fallback or self.fallback_stage

        def _remove() -> Stage:
            if policy not in REMOVAL_POLICIES:
                raise InvalidPolicy(f"Unknown stage removal policy: {policy}")
            # no add or transition can land in the stage until it is gone
            with self.workflow.lock:
                if policy == "reassign":
                    self._reassign_from(stage_id, fallback)
                return self.workflow.remove_stage(stage_id, self.store.get_all())
        return capture(_remove)

    def _reassign_from(self, stage_id: str, fallback: Optional[str]) -> None:
        stage = self.workflow.get_stage(stage_id)
        if stage is None:
            raise InvalidStage(f"Unknown stage id: {stage_id}")
        if not fallback or fallback == stage.name or not self.workflow.has_stage(fallback):
            raise InvalidStage(f"No usable fallback stage to replace '{stage.name}': {fallback!r}")

        moved = self.store.in_stage(stage.name)
        meta = TransitionMeta(message=f"Stage {stage.name} removed, moved to {fallback}")
        for app in moved:
            self.engine.transition(app.id, fallback, source="workflow", meta=meta)
        logger.info(f"Reassigned {len(moved)} application(s) from '{stage.name}' to '{fallback}'")

    # -- views --

    def board(self, flt: Optional[ApplicationFilter] = None) -> Dict[str, List[Application]]:
        """Kanban columns: visible stages in order, each with its filtered applications."""
        apps = self.store.filter(flt)
        columns: Dict[str, List[Application]] = {s.name: [] for s in self.workflow.visible_stages()}
        for app in apps:
            if app.stage in columns:
                columns[app.stage].append(app)
        return columns

    def activity(self, date_range: Optional[DateRange] = None,
                 limit: Optional[int] = None) -> List[ActivityItem]:
        """Audit entries across all applications, newest first."""
        items = []
        for app in self.store.get_all():
            for entry in reversed(app.logs):
                if date_range is None or date_range.contains(entry.date):
                    items.append(ActivityItem(app.id, app.company, app.position, entry))
        items.sort(key=lambda item: item.entry.date, reverse=True)
        return items[:limit] if limit is not None else items

    def resolve_range(self, selection: str, custom_from: Any = None,
                      custom_to: Any = None) -> Outcome[DateRange]:
        return capture(self.resolver.resolve, selection, custom_from, custom_to, self.store.get_all())

    def analytics(self, selection: str = "all", custom_from: Any = None,
                  custom_to: Any = None) -> Outcome[AnalyticsSnapshot]:
        resolved = self.resolve_range(selection, custom_from, custom_to)
        if not resolved.ok:
            return Outcome(error=resolved.error)
        return Outcome(value=self.aggregator.snapshot(resolved.value))
