"""Stage transition engine: the only way an application's stage changes."""
import logging
import uuid
from dataclasses import replace
from datetime import date
from typing import Callable, Optional

from .errors import InvalidStage
from .models import EMAIL_SOURCES, Application, AuditEntry, TransitionMeta
from .store import ApplicationStore
from .workflow import WorkflowStore

logger = logging.getLogger(__name__)


def describe(from_stage: str, to_stage: str, meta: TransitionMeta) -> str:
    if meta.message:
        return meta.message
    if from_stage == to_stage:
        title = f": {meta.email_title}" if meta.email_title else ""
        return f"New email for {to_stage}{title}"
    return f"Status updated from {from_stage} to {to_stage}"


class TransitionEngine:
    """Applies stage transitions and appends the matching audit entry.

    Any stage may move to any other, backwards included. Validation runs
    before anything is built, and the updated application replaces the old
    one in a single commit under the workflow lock and the per-application
    lock, always taken in that order.
    """

    def __init__(self, workflow: WorkflowStore, store: ApplicationStore, clock: Callable[[], date]):
        self.workflow = workflow
        self.store = store
        self.clock = clock

    def transition(
        self,
        application_id: str,
        to_stage: str,
        source: str = "manual",
        meta: Optional[TransitionMeta] = None,
    ) -> Application:
        meta = self._clean_meta(source, meta or TransitionMeta())

        with self.workflow.lock, self.store.lock_for(application_id):
            app = self.store.require(application_id)
            if not self.workflow.has_stage(to_stage):
                raise InvalidStage(f"Unknown stage: {to_stage}")

            if to_stage == app.stage and not meta.has_email:
                logger.debug(f"Application {app.id} already in '{to_stage}', nothing to do")
                return app

            last = app.last_entry
            # log dates never go backwards, even for a future-dated application
            today = max(self.clock(), last.date) if last is not None else self.clock()
            entry = AuditEntry(
                id=str(uuid.uuid4()),
                date=today,
                from_stage=app.stage,
                to_stage=to_stage,
                message=describe(app.stage, to_stage, meta),
                source=source,
                email_id=meta.email_id,
                email_title=meta.email_title,
                email_body=meta.email_body,
            )
            if last is not None and last.dedup_key == entry.dedup_key:
                logger.debug(f"Skipping duplicate transition for {app.id}: {entry.dedup_key}")
                return app

            updated = replace(app, stage=to_stage, last_updated=entry.date, logs=app.logs + (entry,))
            self.store.commit(updated)

        logger.info(f"Application {app.id}: {app.stage} -> {to_stage} ({source})")
        return updated

    @staticmethod
    def _clean_meta(source: str, meta: TransitionMeta) -> TransitionMeta:
        if source in EMAIL_SOURCES or not meta.has_email:
            return meta
        logger.warning(f"Dropping email fields from '{source}' transition (email id {meta.email_id})")
        return TransitionMeta(message=meta.message)
