"""
Tests for the weekly engine (generators, merge precedence, idempotence,
error isolation, multi-week roll-forward)
"""

import itertools
import sys
from datetime import date
from pathlib import Path

import pytest

# Add project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from hospice_scheduler.clock import FixedClock
from hospice_scheduler.constraints import ConstraintChecker
from hospice_scheduler.engine import plan_week, schedule_week, schedule_weeks
from hospice_scheduler.merge import (
    merge_with_existing_visits,
    partition_week,
    same_visit_set,
    visit_key,
)
from hospice_scheduler.models import (
    Discipline,
    Patient,
    PatientStatus,
    Priority,
    Staff,
    StaffRole,
    Visit,
    VisitStatus,
    VisitTag,
)

WEEK_START = date(2026, 3, 2)
MON, TUE, WED, THU, FRI = (date(2026, 3, d) for d in range(2, 7))
CLOCK = FixedClock(WEEK_START)


@pytest.fixture
def ids():
    counter = itertools.count(1)
    return lambda: f"t-{next(counter)}"


@pytest.fixture
def roster():
    return [
        Staff(id="s1", name="Rachelle RN", role=StaffRole.RN),
        Staff(id="s2", name="George RN", role=StaffRole.RN),
        Staff(id="s3", name="Tej LVN", role=StaffRole.LVN),
        Staff(id="s4", name="Tiffani LVN", role=StaffRole.LVN),
        Staff(id="s5", name="Dr. Wilson NP", role=StaffRole.NP),
    ]


def patient(pid="p1", **kw):
    defaults = dict(
        id=pid,
        name=f"Patient {pid}",
        start_of_care_date=date(2025, 12, 1),
        frequency="2x/week",
        assigned_rn="Rachelle RN",
        assigned_lvn="Tej LVN",
    )
    defaults.update(kw)
    return Patient(**defaults)


def visit(vid, pid, day, discipline=Discipline.RN, staff="Rachelle RN",
          status=VisitStatus.CONFIRMED, completed=False, tags=frozenset({VisitTag.ROUTINE}), notes=""):
    return Visit(
        id=vid, patient_id=pid, date=day, discipline=discipline, staff=staff,
        status=status, completed=completed, tags=tags, notes=notes,
    )


def of(visits, pid, discipline=None, day=None):
    return [
        v for v in visits
        if v.patient_id == pid
        and (discipline is None or v.discipline is discipline)
        and (day is None or v.date == day)
    ]


# ---------------------------------------------------------------------------
# Generators through the engine
# ---------------------------------------------------------------------------

class TestNewAdmission:
    """SOC 6 days ago, 2x/week, no visit history"""

    @pytest.fixture
    def plan(self, ids, roster):
        p = patient(start_of_care_date=date(2026, 2, 24))
        return plan_week([p], [], WEEK_START, CLOCK, staff=roster, id_factory=ids)

    def test_rn_on_monday_carries_hope(self, plan):
        rn = of(plan.visits, "p1", Discipline.RN)
        assert len(rn) == 1
        assert rn[0].date == MON
        assert rn[0].tags == {VisitTag.ROUTINE, VisitTag.HOPE, VisitTag.HUV1}
        assert rn[0].priority is Priority.HIGH
        assert rn[0].notes.endswith("(HOPE) (HUV1)")
        assert rn[0].status is VisitStatus.SUGGESTED

    def test_lvn_spaced_to_friday(self, plan):
        lvn = of(plan.visits, "p1", Discipline.LVN)
        assert [v.date for v in lvn] == [FRI]
        assert lvn[0].staff == "Tej LVN"

    def test_frequency_met_without_np(self, plan):
        assert len(plan.visits) == 2
        assert not of(plan.visits, "p1", Discipline.NP)

    def test_hope_replaces_rn_proposal(self, plan):
        """HOPE upserts onto the RN proposal rather than adding a visit"""
        assert len(plan.proposals) == 2
        actions = [(d.discipline, d.action) for d in plan.decisions_for("p1")]
        assert ("HOPE", "attached") in actions


    def test_hope_added_once_sixth_day_is_reached(self, ids, roster):
        p = patient(start_of_care_date=MON, assigned_lvn=None)
        first = schedule_week([p], [], WEEK_START, CLOCK, staff=roster, id_factory=ids)
        assert len(first) == 1
        assert first[0].discipline is Discipline.RN
        assert first[0].date == MON
        assert first[0].status is VisitStatus.SUGGESTED
        assert VisitTag.HOPE not in first[0].tags

        second = schedule_week([p], first, WEEK_START, CLOCK.advance(6), staff=roster, id_factory=ids)
        assert len(second) == 1
        assert second[0].discipline is Discipline.RN
        assert second[0].date == MON
        assert {VisitTag.HOPE, VisitTag.HUV1} <= second[0].tags


class TestRnRules:

    def test_recert_window_visit(self, ids, roster):
        p = patient(benefit_period_end=date(2026, 3, 10), assigned_lvn=None)
        history = [visit("h1", "p1", date(2026, 2, 25), completed=True)]
        visits = schedule_week([p], history, WEEK_START, CLOCK, staff=roster, id_factory=ids)
        rn = of(visits, "p1", Discipline.RN, MON)
        assert len(rn) == 1
        assert VisitTag.RECERT in rn[0].tags
        assert rn[0].notes == "Recertification visit – verify eligibility"

    def test_not_due_is_skipped_with_reason(self, ids, roster):
        p = patient(assigned_lvn=None)
        history = [visit("h1", "p1", date(2026, 2, 23), completed=True)]
        plan = plan_week([p], history, WEEK_START, CLOCK, staff=roster, id_factory=ids)
        assert plan.proposals == []
        rn_decisions = [d for d in plan.decisions_for("p1") if d.discipline == "RN"]
        assert rn_decisions[-1].action == "skipped"
        assert rn_decisions[-1].reason == "RN visit due in 7 days"

    def test_inactive_rn_gets_no_visit(self, ids, roster):
        roster[0] = Staff(id="s1", name="Rachelle RN", role=StaffRole.RN, active=False)
        plan = plan_week([patient()], [], WEEK_START, CLOCK, staff=roster, id_factory=ids)
        assert not of(plan.visits, "p1", Discipline.RN)
        assert [v.date for v in of(plan.visits, "p1", Discipline.LVN)] == [MON, FRI]
        assert any("inactive" in d.reason for d in plan.decisions_for("p1"))

    def test_over_limit_when_staff_full_all_week(self, ids, roster):
        busy = [
            visit(f"b-{d}-{i}", f"other-{i}", d)
            for d in (MON, TUE, WED, THU, FRI) for i in range(5)
        ]
        p = patient(assigned_lvn=None)
        visits = schedule_week([p], busy, WEEK_START, CLOCK, staff=roster, id_factory=ids)
        rn = of(visits, "p1", Discipline.RN)
        assert len(rn) == 1
        assert rn[0].date == MON
        assert VisitTag.OVER_LIMIT in rn[0].tags

    def test_pending_proposals_spread_shared_staff(self, ids, roster):
        patients = [patient("p1", assigned_lvn=None), patient("p2", assigned_lvn=None)]
        visits = schedule_week(patients, [], WEEK_START, CLOCK, staff=roster, id_factory=ids)
        assert of(visits, "p1", Discipline.RN)[0].date == MON
        assert of(visits, "p2", Discipline.RN)[0].date == TUE


class TestHopeRules:

    def test_confirmed_rn_visit_absorbs_assessment(self, ids, roster):
        p = patient(start_of_care_date=date(2026, 2, 22), assigned_lvn=None)
        booked = visit("c1", "p1", WED)
        plan = plan_week([p], [booked], WEEK_START, CLOCK, staff=roster, id_factory=ids)
        assert plan.proposals == []
        assert plan.visits == [booked]

    def test_standalone_visit_when_rn_not_due(self, ids, roster):
        p = patient(start_of_care_date=date(2026, 2, 20), assigned_lvn=None)
        history = [visit("h1", "p1", date(2026, 2, 23), completed=True)]
        plan = plan_week([p], history, WEEK_START, CLOCK, staff=roster, id_factory=ids)
        assert len(plan.proposals) == 1
        hope = plan.proposals[0]
        assert hope.discipline is Discipline.RN
        assert hope.staff == "Rachelle RN"
        assert hope.date == MON
        assert hope.tags == {VisitTag.HOPE, VisitTag.HUV1}
        assert hope.notes == "Auto-assigned HOPE visit (HOPE) (HUV1)"

    def test_standalone_visit_avoids_completed_rn_day(self, ids, roster):
        p = patient(start_of_care_date=date(2026, 2, 24), assigned_lvn=None)
        done = visit("c1", "p1", MON, staff="George RN", completed=True)
        plan = plan_week([p], [done], WEEK_START, FixedClock(WED), staff=roster, id_factory=ids)
        assert len(plan.proposals) == 1
        hope = plan.proposals[0]
        assert hope.date == TUE
        assert hope.tags == {VisitTag.HOPE, VisitTag.HUV1}
        hard, _soft = ConstraintChecker([p], roster).check_all(plan.visits, week_dates=plan.week_dates)
        assert hard == []


class TestLvnAndNp:

    def test_confirmed_lvn_counts_toward_frequency(self, ids, roster):
        history = [visit("h1", "p1", date(2026, 2, 10), completed=True)]
        lvn = visit("c1", "p1", WED, Discipline.LVN, "Tej LVN")
        existing = history + [lvn]
        plan = plan_week([patient()], existing, WEEK_START, CLOCK, staff=roster, id_factory=ids)
        assert [v.discipline for v in plan.proposals] == [Discipline.RN]
        assert lvn in plan.visits
        assert len(plan.visits) == 3

    def test_prn_does_not_count(self, ids, roster):
        prn = visit("prn", "p1", WED, Discipline.LVN, "Tej LVN", tags=frozenset({VisitTag.PRN}))
        history = [visit("h1", "p1", date(2026, 2, 23), completed=True)]
        plan = plan_week([patient()], history + [prn], WEEK_START, CLOCK, staff=roster, id_factory=ids)
        new_lvn = [v for v in plan.proposals if v.discipline is Discipline.LVN]
        assert len(new_lvn) == 2
        assert WED not in {v.date for v in new_lvn}

    @pytest.mark.parametrize("bp,expected", [(1, 0), (2, 1), (3, 1)])
    def test_np_from_second_benefit_period(self, ids, roster, bp, expected):
        p = patient(benefit_period_number=bp, assigned_lvn=None, assigned_np="Dr. Wilson NP")
        history = [visit("h1", "p1", date(2026, 2, 23), completed=True)]
        visits = schedule_week([p], history, WEEK_START, CLOCK, staff=roster, id_factory=ids)
        assert len(of(visits, "p1", Discipline.NP)) == expected


class TestPatientStates:

    def test_no_team_gets_unassigned_placeholder(self, ids, roster):
        p = patient(assigned_rn=None, assigned_lvn=None, visit_status=PatientStatus.PENDING)
        visits = schedule_week([p], [], WEEK_START, CLOCK, staff=roster, id_factory=ids)
        assert len(visits) == 1
        v = visits[0]
        assert v.discipline is Discipline.UNASSIGNED
        assert v.tags == {VisitTag.UNASSIGNED}
        assert v.priority is Priority.URGENT
        assert v.date == MON
        assert v.staff is None
        assert v.notes == "Patient needs team assignment"

    def test_unassigned_placeholder_is_idempotent(self, ids, roster):
        p = patient(assigned_rn=None, assigned_lvn=None)
        first = schedule_week([p], [], WEEK_START, CLOCK, staff=roster, id_factory=ids)
        second = schedule_week([p], first, WEEK_START, CLOCK, staff=roster, id_factory=ids)
        assert len(second) == 1
        assert same_visit_set(first, second)

    def test_discharged_patient_skipped(self, ids, roster):
        p = patient(visit_status=PatientStatus.COMPLETE)
        plan = plan_week([p], [], WEEK_START, CLOCK, staff=roster, id_factory=ids)
        assert plan.visits == []
        assert "discharged" in plan.decisions_for("p1")[-1].reason


class TestErrorIsolation:

    @pytest.mark.parametrize("bad", [
        {"frequency": "often"},
        {"start_of_care_date": None},
    ])
    def test_bad_patient_does_not_stop_others(self, ids, roster, bad):
        patients = [patient("bad", **bad), patient("good")]
        plan = plan_week(patients, [], WEEK_START, CLOCK, staff=roster, id_factory=ids)
        assert plan.decisions_for("bad")[-1].action == "error"
        assert not of(plan.visits, "bad")
        assert of(plan.visits, "good", Discipline.RN)

    def test_date_strings_are_accepted(self, ids, roster):
        plan = plan_week([patient("late", start_of_care_date="2026-02-01")], [], WEEK_START, CLOCK,
                         staff=roster, id_factory=ids)
        assert of(plan.visits, "late", Discipline.RN)
        assert not [d for d in plan.decisions_for("late") if d.action == "error"]

    def test_type_error_is_isolated(self, ids, roster):
        patients = [patient("bad", preferred_visit_days=5), patient("good")]
        plan = plan_week(patients, [], WEEK_START, CLOCK, staff=roster, id_factory=ids)
        assert plan.decisions_for("bad")[-1].action == "error"
        assert [d.action for d in plan.decisions_for("bad")] == ["error"]
        assert not of(plan.visits, "bad")
        assert of(plan.visits, "good", Discipline.LVN)


# ---------------------------------------------------------------------------
# Merge / idempotence
# ---------------------------------------------------------------------------

class TestMerge:

    def test_partition(self):
        out = visit("o", "p1", date(2026, 2, 25))
        conf = visit("c", "p1", MON)
        done = visit("d", "p1", TUE, status=VisitStatus.SUGGESTED, completed=True)
        sugg = visit("s", "p1", WED, status=VisitStatus.SUGGESTED)
        outside, protected, suggested = partition_week([out, conf, done, sugg], [MON, TUE, WED, THU, FRI])
        assert outside == [out]
        assert protected == [conf, done]
        assert suggested == [sugg]

    def test_stale_slot_replaced_other_kept(self):
        week = [MON, TUE, WED, THU, FRI]
        stale_rn = visit("stale-rn", "p1", MON, status=VisitStatus.SUGGESTED, notes="old")
        stale_np = visit("stale-np", "p1", THU, Discipline.NP, "Dr. Wilson NP", status=VisitStatus.SUGGESTED)
        new_rn = visit("new-rn", "p1", MON, status=VisitStatus.SUGGESTED)
        merged = merge_with_existing_visits([new_rn], [stale_rn, stale_np], week)
        assert [v.id for v in merged] == ["stale-np", "new-rn"]

    def test_visit_key_ignores_id(self):
        a = visit("a", "p1", MON)
        b = visit("b", "p1", MON)
        assert visit_key(a) == visit_key(b)
        assert visit_key(a) != visit_key(visit("c", "p1", TUE))

    def test_engine_replaces_stale_suggestion(self, ids, roster):
        stale = visit("stale-rn", "p1", MON, status=VisitStatus.SUGGESTED, notes="old")
        stale_np = visit("stale-np", "p1", THU, Discipline.NP, "Dr. Wilson NP", status=VisitStatus.SUGGESTED)
        p = patient(assigned_lvn=None)
        visits = schedule_week([p], [stale, stale_np], WEEK_START, CLOCK, staff=roster, id_factory=ids)
        ids_out = {v.id for v in visits}
        assert "stale-rn" not in ids_out
        assert "stale-np" in ids_out
        assert len(of(visits, "p1", Discipline.RN)) == 1

    def test_second_run_is_idempotent(self, roster):
        patients = [
            patient("p1", start_of_care_date=date(2026, 2, 24)),
            patient("p2", frequency="3x/week", assigned_rn="George RN", assigned_lvn="Tiffani LVN"),
            patient("p3", assigned_rn=None, assigned_lvn=None),
        ]
        first = schedule_week(patients, [], WEEK_START, CLOCK, staff=roster)
        second = schedule_week(patients, first, WEEK_START, CLOCK, staff=roster)
        assert same_visit_set(first, second)

    def test_same_ids_give_identical_output(self, roster):
        def run():
            counter = itertools.count(1)
            return schedule_week(
                [patient("p1"), patient("p2")], [], WEEK_START, CLOCK,
                staff=roster, id_factory=lambda: f"t-{next(counter)}",
            )
        assert run() == run()

    def test_inputs_not_mutated(self, ids, roster):
        existing = [visit("h1", "p1", date(2026, 2, 10), completed=True),
                    visit("s1", "p1", MON, status=VisitStatus.SUGGESTED)]
        snapshot = list(existing)
        schedule_week([patient()], existing, WEEK_START, CLOCK, staff=roster, id_factory=ids)
        assert existing == snapshot


class TestScheduleWeeks:

    def test_rolls_forward(self, ids, roster):
        plans = schedule_weeks([patient()], [], WEEK_START, CLOCK, weeks=2, staff=roster, id_factory=ids)
        assert len(plans) == 2
        assert plans[0].week_dates[0] == MON
        assert plans[1].week_dates[0] == date(2026, 3, 9)
        # no completed RN yet, so the second week is due again
        second_rn = of(plans[1].proposals, "p1", Discipline.RN)
        assert [v.date for v in second_rn] == [date(2026, 3, 9)]
        assert set(plans[0].visits) <= set(plans[1].visits)

    def test_rejects_zero_weeks(self):
        with pytest.raises(ValueError):
            schedule_weeks([], [], WEEK_START, CLOCK, weeks=0)
