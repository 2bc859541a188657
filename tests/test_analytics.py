from datetime import date, timedelta

import pytest

from job_tracker.analytics import AnalyticsAggregator, compute_snapshot, format_percent, iter_months
from job_tracker.models import Application, AuditEntry, DateRange, StageClassification
from job_tracker.workflow import WorkflowStore

TODAY = date(2024, 3, 15)
STAGES = WorkflowStore.from_config(
    [{"name": n} for n in ["Applied", "Screening", "Interview", "Offer", "Rejected"]]
).get_stages()
CLASSES = StageClassification(interview=frozenset({"Interview"}), offer=frozenset({"Offer"}))


def make_app(app_id, applied, moves=(), seed="Applied", type="Full-time"):
    """Application applied on `applied` that then moved through (day, stage) pairs."""
    logs = [AuditEntry(f"{app_id}-0", applied, None, seed, "created", "manual")]
    stage = seed
    for i, (day, to_stage) in enumerate(moves, start=1):
        logs.append(AuditEntry(f"{app_id}-{i}", day, stage, to_stage, "moved", "manual"))
        stage = to_stage
    return Application(id=app_id, company=app_id.upper(), position="Engineer", date_applied=applied,
                       stage=stage, type=type, last_updated=logs[-1].date, logs=tuple(logs))


def snapshot(apps, date_range):
    return compute_snapshot(apps, STAGES, date_range, CLASSES)


def last_week():
    return DateRange(TODAY - timedelta(days=7), TODAY)


def test_three_applications_in_the_last_week():
    applied = TODAY - timedelta(days=2)
    apps = [
        make_app("a", applied),
        make_app("b", applied, [(TODAY, "Interview")]),
        make_app("c", applied, [(TODAY, "Offer")]),
    ]
    snap = snapshot(apps, last_week())

    assert snap.total == 3
    assert snap.response_rate == pytest.approx(200 / 3)
    assert snap.interview_rate == pytest.approx(200 / 3)
    assert snap.offer_rate == pytest.approx(100 / 3)
    assert format_percent(snap.response_rate) == "66%"
    assert format_percent(snap.interview_rate) == "66%"
    assert snap.time_to_offer == 2.0
    assert [(p.name, p.value) for p in snap.success_metrics] == [
        ("Response Rate", snap.response_rate),
        ("Interview Rate", snap.interview_rate),
        ("Offer Rate", snap.offer_rate),
    ]


def test_application_created_past_the_initial_stage_counts_as_responded():
    snap = snapshot([make_app("a", TODAY, seed="Interview")], last_week())
    assert snap.response_rate == 100.0
    assert snap.interview_rate == 100.0


def test_rejection_is_a_response_but_not_an_interview():
    snap = snapshot([make_app("a", TODAY - timedelta(days=3), [(TODAY, "Rejected")])], last_week())
    assert snap.response_rate == 100.0
    assert snap.interview_rate == 0.0


def test_empty_population():
    snap = snapshot([make_app("old", date(2023, 1, 1), [(date(2023, 2, 1), "Offer")])], last_week())
    assert snap.total == 0
    assert snap.response_rate == snap.interview_rate == snap.offer_rate == 0.0
    assert snap.time_to_offer is None
    assert all(p.value == 0 for p in snap.stage_distribution)
    assert snap.type_distribution == []


def test_rates_stay_within_bounds():
    base = date(2024, 1, 1)
    apps = []
    for i in range(12):
        moves = [(base + timedelta(days=i + 1), "Interview")] if i % 2 else []
        if i % 3 == 0:
            moves.append((base + timedelta(days=i + 5), "Offer"))
        apps.append(make_app(f"x{i}", base + timedelta(days=i), moves))

    for dr in [DateRange(base, base), DateRange(base, TODAY), DateRange(TODAY, TODAY),
               DateRange(base + timedelta(days=4), base + timedelta(days=8))]:
        snap = snapshot(apps, dr)
        for rate in (snap.response_rate, snap.interview_rate, snap.offer_rate):
            assert 0.0 <= rate <= 100.0


def test_range_bounds_are_inclusive():
    dr = DateRange(date(2024, 3, 1), date(2024, 3, 10))
    apps = [
        make_app("start", date(2024, 3, 1)),
        make_app("end", date(2024, 3, 10)),
        make_app("before", date(2024, 2, 29)),
        make_app("after", date(2024, 3, 11)),
    ]
    assert snapshot(apps, dr).total == 2


def test_stage_distribution_reflects_current_stage():
    # moved to Interview after the range closed: counted in its current stage,
    # but the interview itself falls outside the range
    dr = DateRange(date(2024, 3, 1), date(2024, 3, 10))
    apps = [make_app("a", date(2024, 3, 2), [(date(2024, 3, 12), "Interview")])]
    snap = snapshot(apps, dr)

    assert [(p.name, p.value) for p in snap.stage_distribution] == [
        ("Applied", 0), ("Screening", 0), ("Interview", 1), ("Offer", 0), ("Rejected", 0),
    ]
    assert snap.interview_rate == 0.0


def test_type_distribution_sorted_by_count_then_name():
    apps = [
        make_app("a", TODAY, type="Internship"),
        make_app("b", TODAY, type="Full-time"),
        make_app("c", TODAY, type="Internship"),
        make_app("d", TODAY, type="Contract"),
        make_app("e", TODAY, type=""),
    ]
    snap = snapshot(apps, last_week())
    assert [(p.name, p.value) for p in snap.type_distribution] == [
        ("Internship", 2), ("Contract", 1), ("Full-time", 1), ("Unspecified", 1),
    ]


def test_timeline_emits_empty_months():
    dr = DateRange(date(2024, 1, 1), date(2024, 3, 31))
    apps = [
        make_app("a", date(2024, 1, 10), [(date(2024, 3, 2), "Interview"), (date(2024, 3, 20), "Offer")]),
        make_app("b", date(2024, 3, 5)),
    ]
    timeline = snapshot(apps, dr).timeline

    assert [b.month for b in timeline] == ["2024-01", "2024-02", "2024-03"]
    assert [(b.applications, b.interviews, b.offers) for b in timeline] == [
        (1, 0, 0), (0, 0, 0), (1, 1, 1),
    ]


def test_iter_months_crosses_year_boundary():
    assert iter_months(date(2023, 11, 30), date(2024, 2, 1)) == ["2023-11", "2023-12", "2024-01", "2024-02"]


def test_funnel_counts_stages_reached():
    apps = [
        make_app("a", TODAY - timedelta(days=5), [(TODAY - timedelta(days=3), "Interview"), (TODAY, "Offer")]),
        make_app("b", TODAY - timedelta(days=5), [(TODAY, "Rejected")]),
        make_app("c", TODAY - timedelta(days=5)),
    ]
    funnel = {p.name: p.value for p in snapshot(apps, last_week()).funnel}
    assert funnel == {"Applied": 3, "Screening": 0, "Interview": 1, "Offer": 1, "Rejected": 1}


def test_stage_durations_average_completed_stints():
    apps = [
        make_app("a", date(2024, 3, 1), [(date(2024, 3, 5), "Interview"), (date(2024, 3, 12), "Offer")]),
        make_app("b", date(2024, 3, 1), [(date(2024, 3, 3), "Interview")]),
    ]
    snap = snapshot(apps, DateRange(date(2024, 3, 1), TODAY))
    durations = {p.name: p.value for p in snap.stage_durations}
    assert durations["Applied"] == 3.0     # (4 + 2) / 2
    assert durations["Interview"] == 7.0   # only a's stint is finished
    assert durations["Offer"] == 0.0


def test_percentages_are_not_rounded_internally():
    apps = [make_app(f"a{i}", TODAY, [(TODAY, "Interview")] if i == 0 else []) for i in range(3)]
    snap = snapshot(apps, last_week())
    assert snap.interview_rate == pytest.approx(33.333333, rel=1e-6)
    assert format_percent(snap.interview_rate) == "33%"


def test_aggregator_memoises_until_the_store_changes(tracker, add):
    agg = tracker.aggregator
    app = add()
    dr = last_week()

    first = agg.snapshot(dr)
    assert agg.snapshot(dr) is first

    tracker.transition(app.id, "Interview")
    second = agg.snapshot(dr)
    assert second is not first
    assert second.interview_rate == 100.0
    assert isinstance(agg, AnalyticsAggregator)
