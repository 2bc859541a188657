import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

from .analytics import format_days, format_percent
from .date_range import SELECTIONS
from .errors import TrackerError
from .logging_setup import setup_logging
from .models import AnalyticsSnapshot, Application, Stage
from .settings import Settings, load_settings
from .tracker import Tracker
from .workflow import WorkflowStore


def load_tracker(data_path: str, settings: Optional[Settings] = None) -> Tracker:
    """Build a tracker from a JSON export: {"stages": [...], "applications": [...]}."""
    cfg = settings or load_settings()
    with open(data_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    workflow = None
    if data.get("stages"):
        workflow = WorkflowStore(Stage.from_dict(s) for s in data["stages"])
    tracker = Tracker(settings=cfg, workflow=workflow)
    tracker.store.load(Application.from_dict(a) for a in data.get("applications") or [])
    return tracker


def render(snap: AnalyticsSnapshot) -> str:
    lines = [
        f"Range: {snap.date_range.start} .. {snap.date_range.end} ({snap.total} applications)",
        f"Response rate:  {format_percent(snap.response_rate)}",
        f"Interview rate: {format_percent(snap.interview_rate)}",
        f"Offer rate:     {format_percent(snap.offer_rate)}",
        f"Time to offer:  {format_days(snap.time_to_offer)}",
        "",
        "By stage:",
    ]
    lines += [f"  {p.name:<16} {p.value}" for p in snap.stage_distribution]
    lines += ["", "By type:"]
    lines += [f"  {p.name:<16} {p.value}" for p in snap.type_distribution]
    lines += ["", "Timeline (applications / interviews / offers):"]
    lines += [f"  {b.month}  {b.applications} / {b.interviews} / {b.offers}" for b in snap.timeline]
    return "\n".join(lines)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Job application tracker analytics")
    parser.add_argument("--data", required=True, help="JSON export with stages and applications")
    parser.add_argument("--range", dest="selection", default="all", choices=SELECTIONS, help="Date range preset")
    parser.add_argument("--from", dest="custom_from", help="Custom range start (with --range custom)")
    parser.add_argument("--to", dest="custom_to", help="Custom range end (with --range custom)")
    parser.add_argument("--config", help="Path to config.yaml")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR")
    args = parser.parse_args(argv)

    cfg = load_settings(args.config)
    setup_logging(args.log_level or cfg.app.get("log_level", "WARNING"))

    if not Path(args.data).exists():
        print(f"[ERROR] Data file not found: {args.data}", file=sys.stderr)
        return 1

    try:
        tracker = load_tracker(args.data, cfg)
    except TrackerError as e:
        print(f"[ERROR] {e.code}: {e}", file=sys.stderr)
        return 1

    outcome = tracker.analytics(args.selection, args.custom_from, args.custom_to)
    if not outcome.ok:
        print(f"[ERROR] {outcome.code}: {outcome.message}", file=sys.stderr)
        return 1

    print(render(outcome.value))
    return 0


if __name__ == "__main__":
    sys.exit(main())
