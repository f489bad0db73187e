"""
Tests for staff day selection: load counting, daily cap, LVN spacing
"""

import dataclasses
import sys
from datetime import date, timedelta
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from hospice_scheduler.dates import week_dates
from hospice_scheduler.models import Discipline, Patient, Visit, VisitStatus, VisitTag
from hospice_scheduler.slots import (
    best_day_for_distribution,
    best_lvn_day,
    daily_visit_count,
    has_reached_daily_limit,
    least_loaded_day,
)

WEEK = week_dates(date(2026, 3, 2))
MON, TUE, WED, THU, FRI = WEEK[:5]


def booked(day, staff="Rachelle RN", n=1, status=VisitStatus.CONFIRMED, patient="other", tags=frozenset()):
    return [
        Visit(
            id=f"{staff}-{day}-{i}-{status.value}",
            patient_id=f"{patient}-{i}",
            date=day,
            discipline=Discipline.RN,
            staff=staff,
            status=status,
            tags=tags,
        )
        for i in range(n)
    ]


@pytest.fixture
def patient():
    return Patient(
        id="p1",
        name="Nguyen, Rosalyn",
        start_of_care_date=date(2025, 11, 1),
        frequency="2x/week",
        assigned_rn="Rachelle RN",
        assigned_lvn="Tej LVN",
    )


class TestLoadCounting:

    def test_only_confirmed_existing_visits_count(self):
        visits = booked(MON, n=2) + booked(MON, n=3, status=VisitStatus.SUGGESTED)
        assert daily_visit_count("Rachelle RN", MON, visits) == 2

    def test_pending_proposals_count(self):
        pending = booked(MON, n=2, status=VisitStatus.SUGGESTED)
        assert daily_visit_count("Rachelle RN", MON, [], pending) == 2

    def test_over_limit_proposals_do_not_count(self):
        pending = booked(MON, status=VisitStatus.SUGGESTED, tags=frozenset({VisitTag.OVER_LIMIT}))
        assert daily_visit_count("Rachelle RN", MON, [], pending) == 0

    def test_other_staff_and_days_ignored(self):
        visits = booked(MON, staff="George RN", n=3) + booked(TUE, n=3)
        assert daily_visit_count("Rachelle RN", MON, visits) == 0

    def test_limit_reached_at_cap(self):
        assert has_reached_daily_limit("Rachelle RN", MON, booked(MON, n=5))
        assert not has_reached_daily_limit("Rachelle RN", MON, booked(MON, n=4))


class TestDistribution:

    def test_empty_week_picks_monday(self):
        assert best_day_for_distribution("Rachelle RN", WEEK, [], Discipline.RN) == MON

    def test_least_loaded_wins(self):
        visits = booked(MON, n=2) + booked(TUE, n=1)
        day = best_day_for_distribution("Rachelle RN", WEEK, visits, Discipline.RN)
        assert day == WED

    def test_weekends_never_chosen(self):
        visits = []
        for d in (MON, TUE, WED, THU, FRI):
            visits += booked(d, n=3)
        day = best_day_for_distribution("Rachelle RN", WEEK, visits, Discipline.RN)
        assert day.weekday() < 5

    def test_full_week_returns_none(self):
        visits = []
        for d in (MON, TUE, WED, THU, FRI):
            visits += booked(d, n=5)
        assert best_day_for_distribution("Rachelle RN", WEEK, visits, Discipline.RN) is None

    def test_least_loaded_ignores_cap(self):
        visits = []
        for d, n in ((MON, 7), (TUE, 6), (WED, 5), (THU, 6), (FRI, 8)):
            visits += booked(d, n=n)
        assert least_loaded_day("Rachelle RN", WEEK, visits) == WED

    def test_excluded_days_skipped(self):
        day = best_day_for_distribution("Rachelle RN", WEEK, [], Discipline.RN, exclude=[MON, TUE])
        assert day == WED


class TestLvnDay:

    def test_two_per_week_spreads_out(self, patient):
        first = best_lvn_day(patient, WEEK, [], 2)
        assert first == MON
        placed = [Visit(id="lvn-1", patient_id="p1", date=first, discipline=Discipline.LVN, staff="Tej LVN")]
        assert best_lvn_day(patient, WEEK, [], 2, pending=placed) == FRI

    def test_two_per_week_avoids_rn_day(self, patient):
        rn = [Visit(id="rn-1", patient_id="p1", date=MON, discipline=Discipline.RN, staff="Rachelle RN")]
        assert best_lvn_day(patient, WEEK, [], 2, pending=rn) == FRI

    def test_preferred_days_first(self, patient):
        patient = dataclasses.replace(patient, preferred_visit_days=frozenset({"Thursday"}))
        assert best_lvn_day(patient, WEEK, [], 2) == THU
        assert best_lvn_day(patient, WEEK, [], 3) == THU

    def test_three_per_week_follows_load(self, patient):
        visits = booked(MON, staff="Tej LVN", n=2)
        assert best_lvn_day(patient, WEEK, visits, 3) == TUE

    def test_no_free_weekday(self, patient):
        mine = [
            Visit(id=f"l{i}", patient_id="p1", date=d, discipline=Discipline.LVN, staff="Tej LVN")
            for i, d in enumerate((MON, TUE, WED, THU, FRI))
        ]
        assert best_lvn_day(patient, WEEK, [], 3, pending=mine) is None

    def test_full_staff_falls_back_to_least_loaded(self, patient):
        visits = []
        for d, n in ((MON, 6), (TUE, 5), (WED, 7), (THU, 5), (FRI, 6)):
            visits += booked(d, staff="Tej LVN", n=n)
        assert best_lvn_day(patient, WEEK, visits, 3) == TUE

    def test_dates_outside_week_do_not_block(self, patient):
        last_week = [
            Visit(id="old", patient_id="p1", date=MON - timedelta(days=7), discipline=Discipline.LVN, staff="Tej LVN")
        ]
        assert best_lvn_day(patient, WEEK, last_week, 3) == MON
