"""Tests for smd.prd.models."""

import pytest

from smd.prd.models import Document, Story, normalize_status


class TestNormalizeStatus:

    @pytest.mark.parametrize("status,passes,expected", [
        (None, False, "pending"),
        (None, True, "completed"),
        ("pending", False, "pending"),
        ("pending", True, "completed"),
        ("in_progress", False, "in_progress"),
        ("in_progress", True, "in_progress"),
        ("failed", False, "failed"),
        ("completed", False, "completed"),
    ])
    def test_table(self, status, passes, expected):
        assert normalize_status(status, passes) == expected


class TestStory:

    def test_from_dict_fills_defaults(self):
        s = Story.from_dict({"id": "US-001"})
        assert s.title == ""
        assert s.dependencies == []
        assert s.status == "pending"
        assert s.passes is False

    def test_null_fields_tolerated(self):
        s = Story.from_dict({"id": "US-001", "dependencies": None, "passes": None, "status": None, "notes": None})
        assert s.dependencies == []
        assert s.is_pending

    def test_in_progress_with_passes_is_complete(self):
        s = Story.from_dict({"id": "US-001", "status": "in_progress", "passes": True})
        assert s.is_running
        assert s.is_complete

    def test_completed_writes_passes(self):
        s = Story(id="US-001", status="completed", passes=False)
        assert s.to_dict()["passes"] is True

    def test_unknown_keys_survive_round_trip(self):
        data = {"id": "US-001", "priority": 2, "acceptanceCriteria": ["works"]}
        out = Story.from_dict(data).to_dict()
        assert out["priority"] == 2
        assert out["acceptanceCriteria"] == ["works"]


class TestDocument:

    def test_from_dict_camel_case(self):
        doc = Document.from_dict({
            "description": "Feature",
            "branchName": "smd/feature",
            "userStories": [{"id": "A"}, {"id": "B", "passes": True}],
        })
        assert doc.branch_name == "smd/feature"
        assert doc.total == 2
        assert doc.completed_count == 1
        assert not doc.all_complete

    def test_to_dict_keeps_extra_and_order(self):
        doc = Document.from_dict({"userStories": [{"id": "B"}, {"id": "A"}], "project": "x"})
        out = doc.to_dict()
        assert out["project"] == "x"
        assert [s["id"] for s in out["userStories"]] == ["B", "A"]

    def test_get_returns_first_match(self):
        doc = Document.from_dict({"userStories": [{"id": "A", "title": "one"}, {"id": "A", "title": "two"}]})
        assert doc.get("A").title == "one"
        assert doc.get("missing") is None

    def test_empty_document_is_not_complete(self):
        assert not Document().all_complete

    def test_all_complete(self):
        doc = Document.from_dict({"userStories": [{"id": "A", "status": "completed"}, {"id": "B", "passes": True}]})
        assert doc.all_complete

    def test_count_by_status(self):
        doc = Document.from_dict({"userStories": [
            {"id": "A", "status": "failed"},
            {"id": "B", "status": "failed"},
            {"id": "C", "status": "in_progress"},
        ]})
        assert doc.count("failed") == 2
        assert doc.count("in_progress") == 1
