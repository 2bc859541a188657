"""Workflow definition: the ordered, user-editable set of stages."""
import logging
import threading
import uuid
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .errors import InvalidStage, StageInUse
from .models import Application, Stage

logger = logging.getLogger(__name__)

PALETTE = ["#3B82F6", "#8B5CF6", "#F59E0B", "#10B981", "#EF4444", "#EC4899", "#14B8A6", "#6B7280"]
DEFAULT_COLOR = "#6B7280"


class WorkflowStore:
    """Owns the stages of one workflow.

    `order` values are unique; every reorder renormalises them to 0..n-1.
    Hidden stages stay valid transition targets, they are only left out of
    `visible_stages()`.
    """

    def __init__(self, stages: Iterable[Stage] = ()):
        self._lock = threading.RLock()
        self._stages: Dict[str, Stage] = {}
        self.version = 0

        names, orders = set(), set()
        for stage in stages:
            if stage.id in self._stages:
                raise InvalidStage(f"Duplicate stage id: {stage.id}")
            if stage.name in names:
                raise InvalidStage(f"Duplicate stage name: {stage.name}")
            if stage.order in orders:
                raise InvalidStage(f"Duplicate stage order {stage.order} for {stage.name}")
            names.add(stage.name)
            orders.add(stage.order)
            self._stages[stage.id] = stage

    @classmethod
    def from_config(cls, stage_configs: Iterable[Dict[str, Any]]) -> "WorkflowStore":
        stages = []
        for i, cfg in enumerate(stage_configs):
            stages.append(Stage(
                id=str(cfg.get("id") or uuid.uuid4()),
                name=cfg["name"],
                order=i,
                color=cfg.get("color") or PALETTE[i % len(PALETTE)],
                visible=bool(cfg.get("visible", True)),
            ))
        return cls(stages)

    # -- reads --

    def get_stages(self) -> List[Stage]:
        return sorted(self._stages.values(), key=lambda s: s.order)

    def visible_stages(self) -> List[Stage]:
        return [s for s in self.get_stages() if s.visible]

    def get_stage(self, stage_id: str) -> Optional[Stage]:
        return self._stages.get(stage_id)

    def get_stage_by_name(self, name: str) -> Optional[Stage]:
        for stage in self._stages.values():
            if stage.name == name:
                return stage
        return None

    def has_stage(self, name: str) -> bool:
        return self.get_stage_by_name(name) is not None

    @property
    def initial_stage(self) -> Optional[Stage]:
        stages = self.get_stages()
        return stages[0] if stages else None

    def color_for(self, name: str) -> str:
        stage = self.get_stage_by_name(name)
        return stage.color if stage else DEFAULT_COLOR

    # -- edits --

    def _require(self, stage_id: str) -> Stage:
        stage = self._stages.get(stage_id)
        if stage is None:
            raise InvalidStage(f"Unknown stage id: {stage_id}")
        return stage

    def _check_name(self, name: str, ignore_id: Optional[str] = None) -> str:
        name = (name or "").strip()
        if not name:
            raise InvalidStage("Stage name must not be blank")
        existing = self.get_stage_by_name(name)
        if existing is not None and existing.id != ignore_id:
            raise InvalidStage(f"Stage name already exists: {name}")
        return name

    @property
    def lock(self) -> threading.RLock:
        """Held by anyone who checks a stage name and then writes it to an application."""
        return self._lock

    def _commit(self, stages: Iterable[Stage]) -> None:
        self._stages = {s.id: s for s in stages}
        self.version += 1

    def reorder_stage(self, stage_id: str, new_order: int) -> List[Stage]:
        with self._lock:
            stage = self._require(stage_id)
            ordered = [s for s in self.get_stages() if s.id != stage_id]
            index = max(0, min(int(new_order), len(ordered)))
            ordered.insert(index, stage)
            self._commit(replace(s, order=i) for i, s in enumerate(ordered))
            logger.info(f"Moved stage '{stage.name}' to position {index}")
            return self.get_stages()

    def set_visibility(self, stage_id: str, visible: bool) -> Stage:
        with self._lock:
            stage = replace(self._require(stage_id), visible=bool(visible))
            self._commit([*(s for s in self._stages.values() if s.id != stage_id), stage])
            logger.info(f"Stage '{stage.name}' visible={stage.visible}")
            return stage

    def add_stage(self, name: str, color: Optional[str] = None, visible: bool = True) -> Stage:
        with self._lock:
            name = self._check_name(name)
            orders = [s.order for s in self._stages.values()]
            stage = Stage(
                id=str(uuid.uuid4()),
                name=name,
                order=max(orders) + 1 if orders else 0,
                color=color or PALETTE[len(orders) % len(PALETTE)],
                visible=visible,
            )
            self._commit([*self._stages.values(), stage])
            logger.info(f"Added stage '{name}'")
            return stage

    def rename_stage(self, stage_id: str, new_name: str) -> Tuple[str, Stage]:
        """Rename a stage. Returns the old name alongside the updated stage."""
        with self._lock:
            stage = self._require(stage_id)
            new_name = self._check_name(new_name, ignore_id=stage_id)
            renamed = replace(stage, name=new_name)
            self._commit([*(s for s in self._stages.values() if s.id != stage_id), renamed])
            logger.info(f"Renamed stage '{stage.name}' to '{new_name}'")
            return stage.name, renamed

    def remove_stage(self, stage_id: str, referenced_by: Iterable[Application] = ()) -> Stage:
        with self._lock:
            stage = self._require(stage_id)
            in_use = [a.id for a in referenced_by if a.stage == stage.name]
            if in_use:
                raise StageInUse(f"Stage '{stage.name}' is used by {len(in_use)} application(s)")
            self._commit(s for s in self._stages.values() if s.id != stage_id)
            logger.info(f"Removed stage '{stage.name}'")
            return stage
