"""Tests for worktrack.status — stage derivation and badges."""

import pytest

from worktrack.status import (
    COARSE_BADGES,
    STAGE_BADGES,
    STAGES,
    coarse_badge,
    coarse_stage,
    derive_status,
    stage_badge,
    task_progress,
)


class TestDeriveStatus:
    def test_no_record_is_pending(self):
        assert derive_status(None) == "pending"

    def test_no_record_but_planned(self):
        assert derive_status(None, is_planned=True) == "planned"

    def test_empty_record_is_planned(self):
        assert derive_status({}) == "planned"

    def test_lifecycle_progression(self):
        record = {"progress": 100, "final_check_status": "pending", "billed": False}
        assert derive_status(record) == "final_check"
        record["final_check_status"] = "approved"
        assert derive_status(record) == "for_billing"
        record["billed"] = True
        assert derive_status(record) == "billed"

    @pytest.mark.parametrize("progress,expected", [
        (0, "planned"),
        (1, "work_in_progress"),
        (99.5, "work_in_progress"),
        (100, "final_check"),
    ])
    def test_progress_thresholds(self, progress, expected):
        assert derive_status({"progress": progress}) == expected

    @pytest.mark.parametrize("record", [
        {"billed": True},
        {"billed": True, "progress": 80},
        {"billed": True, "progress": 0, "final_check_status": "pending"},
        {"billed": True, "progress": 100, "final_check_status": "rejected"},
    ])
    def test_billed_flag_always_wins(self, record):
        assert derive_status(record) == "billed"

    def test_truthy_non_bool_billed_is_not_billed(self):
        assert derive_status({"billed": "yes", "progress": 100}) == "final_check"

    def test_approved_without_full_progress_is_for_billing(self):
        assert derive_status({"progress": 30, "final_check_status": "approved"}) == "for_billing"

    def test_rejected_treated_as_pending_check(self):
        assert derive_status({"progress": 50, "final_check_status": "rejected"}) == "work_in_progress"
        assert derive_status({"progress": 100, "final_check_status": "rejected"}) == "final_check"

    def test_idempotent(self):
        record = {"progress": 60, "final_check_status": "pending"}
        assert derive_status(record) == derive_status(record)
        assert record == {"progress": 60, "final_check_status": "pending"}

    def test_non_numeric_progress_raises(self):
        with pytest.raises(ValueError):
            derive_status({"progress": "lots"})


class TestTaskProgress:
    def test_clamped(self):
        assert task_progress({"progress": 140}) == 100
        assert task_progress({"progress": -5}) == 0

    def test_whole_floats_become_int(self):
        assert task_progress({"progress": 50.0}) == 50
        assert isinstance(task_progress({"progress": 50.0}), int)

    def test_missing(self):
        assert task_progress(None) == 0
        assert task_progress({"progress": None}) == 0


class TestBadges:
    def test_every_stage_has_a_badge(self):
        assert set(STAGE_BADGES) == set(STAGES)
        for stage in STAGES:
            assert set(stage_badge(stage)) == {"label", "style"}

    def test_badge_is_a_copy(self):
        badge = stage_badge("billed")
        badge["label"] = "changed"
        assert STAGE_BADGES["billed"]["label"] == "Billed"

    def test_unknown_stage_falls_back_to_pending(self):
        assert stage_badge("bogus") == STAGE_BADGES["pending"]
        assert coarse_badge("bogus") == COARSE_BADGES["pending"]

    def test_coarse_labels(self):
        assert coarse_badge("in_progress")["label"] == "In Progress"
        assert coarse_badge("completed")["label"] == "Completed"


@pytest.mark.parametrize("stage,expected", [
    ("pending", "pending"),
    ("planned", "planned"),
    ("work_in_progress", "in_progress"),
    ("final_check", "completed"),
    ("for_billing", "completed"),
    ("billed", "completed"),
])
def test_coarse_stage(stage, expected):
    assert coarse_stage(stage) == expected
