"""Unit tests for traveler.workflow.progress: work progress and binder totals."""

import pytest

from traveler.documents.models import Binder, ProgressSnapshot, Traveler, WorkItem, WorkRefType
from traveler.workflow.progress import initial_work, recompute_binder_totals, update_work_progress


def _traveler_work(**kwargs):
    return WorkItem(id="t1", ref_type=WorkRefType.TRAVELER, **kwargs)


def _binder_work(**kwargs):
    return WorkItem(id="b1", ref_type=WorkRefType.BINDER, **kwargs)


class TestUpdateWorkProgress:

    def test_completed_child(self):
        work = _traveler_work(status=1.5, in_progress=0.5)
        snapshot = ProgressSnapshot(id="t1", ref_type=WorkRefType.TRAVELER, status=2,
                                    total_input=4, finished_input=2)
        assert update_work_progress(work, snapshot) is True
        assert (work.status, work.finished, work.in_progress) == (2, 1, 0)

    def test_not_started_child(self):
        work = _binder_work(status=1, finished=0.2, in_progress=0.3)
        snapshot = ProgressSnapshot(id="b1", ref_type=WorkRefType.BINDER, status=0,
                                    total_value=10, finished_value=5)
        update_work_progress(work, snapshot)
        assert (work.status, work.finished, work.in_progress) == (0, 0, 0)

    def test_traveler_ratio(self):
        work = _traveler_work()
        snapshot = ProgressSnapshot(id="t1", ref_type=WorkRefType.TRAVELER, status=1,
                                    total_input=4, finished_input=1)
        update_work_progress(work, snapshot)
        assert work.finished == 0
        assert work.in_progress == pytest.approx(0.25)

    def test_traveler_without_inputs_is_fully_in_progress(self):
        work = _traveler_work()
        snapshot = ProgressSnapshot(id="t1", ref_type=WorkRefType.TRAVELER, status=1,
                                    total_input=0, finished_input=0)
        update_work_progress(work, snapshot)
        assert work.finished == 0
        assert work.in_progress == 1

    def test_submitted_traveler_still_in_progress(self):
        work = _traveler_work()
        snapshot = ProgressSnapshot(id="t1", ref_type=WorkRefType.TRAVELER, status=1.5,
                                    total_input=2, finished_input=2)
        update_work_progress(work, snapshot)
        assert (work.finished, work.in_progress) == (0, 1)

    def test_binder_ratios(self):
        work = _binder_work()
        snapshot = ProgressSnapshot(id="b1", ref_type=WorkRefType.BINDER, status=1,
                                    total_value=40, finished_value=10, in_progress_value=20)
        update_work_progress(work, snapshot)
        assert work.finished == pytest.approx(0.25)
        assert work.in_progress == pytest.approx(0.5)

    def test_empty_binder_is_fully_in_progress(self):
        work = _binder_work()
        snapshot = ProgressSnapshot(id="b1", ref_type=WorkRefType.BINDER, status=1, total_value=0)
        update_work_progress(work, snapshot)
        assert (work.finished, work.in_progress) == (0, 1)

    def test_fractions_stay_within_bounds(self):
        work = _traveler_work()
        snapshot = ProgressSnapshot(id="t1", ref_type=WorkRefType.TRAVELER, status=1,
                                    total_input=3, finished_input=5)
        update_work_progress(work, snapshot)
        assert work.in_progress == 1

    def test_unchanged_returns_false(self):
        work = _traveler_work(status=1, in_progress=0.5)
        snapshot = ProgressSnapshot(id="t1", ref_type=WorkRefType.TRAVELER, status=1,
                                    total_input=2, finished_input=1)
        assert update_work_progress(work, snapshot) is False


class TestRecomputeBinderTotals:

    def test_weighted_sums(self):
        binder = Binder(works=[
            WorkItem(id="a", ref_type="traveler", value=10, finished=1, in_progress=0),
            WorkItem(id="b", ref_type="traveler", value=10, finished=0, in_progress=0.5),
        ])
        assert recompute_binder_totals(binder) is True
        assert binder.total_value == 20
        assert binder.finished_value == 10
        assert binder.in_progress_value == 5

    def test_second_run_reports_no_change(self):
        binder = Binder(works=[WorkItem(id="a", ref_type="binder", value=7, in_progress=1)])
        recompute_binder_totals(binder)
        assert recompute_binder_totals(binder) is False

    def test_empty_binder(self):
        binder = Binder(total_value=10, finished_value=5)
        assert recompute_binder_totals(binder) is True
        assert (binder.total_value, binder.finished_value, binder.in_progress_value) == (0, 0, 0)

    def test_finished_plus_in_progress_within_total(self):
        binder = Binder(works=[
            WorkItem(id="a", ref_type="binder", value=3, finished=0.3, in_progress=0.7),
            WorkItem(id="b", ref_type="traveler", value=9, in_progress=1),
        ])
        recompute_binder_totals(binder)
        assert binder.finished_value + binder.in_progress_value <= binder.total_value + 1e-9


class TestBinderWorkLookup:

    def test_binder_updates_matching_work(self):
        traveler = Traveler(status=1, total_input=0)
        binder = Binder(works=[WorkItem(id=traveler.id, ref_type="traveler")])
        assert binder.update_work_progress(ProgressSnapshot.from_document(traveler)) is True
        assert binder.works[0].in_progress == 1

    def test_unknown_work_is_ignored(self):
        binder = Binder()
        snapshot = ProgressSnapshot(id="missing", ref_type=WorkRefType.TRAVELER, status=2)
        assert binder.update_work_progress(snapshot) is False

    def test_initial_work_from_nested_binder(self):
        child = Binder(status=1, total_value=20, finished_value=5, in_progress_value=10)
        work = initial_work(ProgressSnapshot.from_document(child), added_by="alice")
        assert work.ref_type is WorkRefType.BINDER
        assert work.value == 10
        assert work.added_by == "alice"
        assert work.finished == pytest.approx(0.25)
        assert work.in_progress == pytest.approx(0.5)
