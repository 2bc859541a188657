"""Shared fixtures: an isolated tracker driven by a controllable clock."""
from datetime import date, timedelta

import pytest

from job_tracker.models import ApplicationDraft
from job_tracker.settings import Settings
from job_tracker.tracker import Tracker

TODAY = date(2024, 3, 15)


class FixedClock:
    def __init__(self, day: date):
        self.day = day

    def __call__(self) -> date:
        return self.day

    def advance(self, days: int = 1) -> date:
        self.day += timedelta(days=days)
        return self.day


@pytest.fixture
def clock():
    return FixedClock(TODAY)


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def tracker(settings, clock):
    return Tracker(settings=settings, clock=clock)


@pytest.fixture
def add(tracker):
    def _add(company="Acme", position="Software Engineer", stage="Applied", **kwargs):
        draft = ApplicationDraft(company=company, position=position, stage=stage, **kwargs)
        return tracker.add_application(draft).unwrap()
    return _add
