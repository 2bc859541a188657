import os, copy, yaml
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import pytz
from dotenv import load_dotenv

from .models import StageClassification

load_dotenv()

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(os.path.dirname(__file__)), "..", "config.yaml")

DEFAULTS: Dict[str, Dict[str, Any]] = {
    "app": {"timezone": "UTC", "log_level": "INFO"},
    "workflow": {
        "stages": [
            {"name": "Applied", "color": "#3B82F6"},
            {"name": "Screening", "color": "#8B5CF6"},
            {"name": "Interview", "color": "#F59E0B"},
            {"name": "Offer", "color": "#10B981"},
            {"name": "Rejected", "color": "#EF4444"},
        ],
        "removal_policy": "block",      # block | reassign
        "fallback_stage": None,
    },
    "analytics": {
        "interview_stages": ["Interview"],
        "offer_stages": ["Offer"],
    },
}

REMOVAL_POLICIES = ("block", "reassign")


@dataclass
class Settings:
    app: Dict[str, Any] = field(default_factory=lambda: copy.deepcopy(DEFAULTS["app"]))
    workflow: Dict[str, Any] = field(default_factory=lambda: copy.deepcopy(DEFAULTS["workflow"]))
    analytics: Dict[str, Any] = field(default_factory=lambda: copy.deepcopy(DEFAULTS["analytics"]))

    def __post_init__(self):
        policy = self.workflow.get("removal_policy", "block")
        if policy not in REMOVAL_POLICIES:
            raise ValueError(f"Unknown stage removal policy: {policy}")

    @property
    def timezone(self):
        return pytz.timezone(self.app.get("timezone", "UTC"))

    @property
    def removal_policy(self) -> str:
        return self.workflow.get("removal_policy", "block")

    @property
    def fallback_stage(self) -> Optional[str]:
        return self.workflow.get("fallback_stage")

    @property
    def classification(self) -> StageClassification:
        return StageClassification(
            interview=frozenset(self.analytics.get("interview_stages") or []),
            offer=frozenset(self.analytics.get("offer_stages") or []),
        )


def load_settings(path: Optional[str] = None) -> Settings:
    path = path or os.environ.get("JOB_TRACKER_CONFIG", DEFAULT_CONFIG_PATH)
    if not os.path.exists(path):
        return Settings()
    with open(path, "r", encoding="utf-8") as f:
        cfg = yaml.safe_load(f) or {}
    # missing blocks fall back to defaults, present blocks are merged key by key
    merged = {}
    for block, defaults in DEFAULTS.items():
        merged[block] = {**copy.deepcopy(defaults), **(cfg.get(block) or {})}
    return Settings(**merged)
