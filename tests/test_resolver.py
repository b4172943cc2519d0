"""Tests for smd.runner.resolver."""

from smd.prd.models import Document
from smd.runner.resolver import blocked, is_ready, ready


def doc_of(*stories):
    return Document.from_dict({"userStories": list(stories)})


def s(story_id, deps=(), status="pending", passes=False):
    return {"id": story_id, "dependencies": list(deps), "status": status, "passes": passes}


class TestReady:

    def test_no_dependencies(self):
        assert ready(doc_of(s("A"), s("B"))) == ["A", "B"]

    def test_document_order_not_priority(self):
        doc = Document.from_dict({"userStories": [
            {"id": "B", "priority": 2},
            {"id": "A", "priority": 1},
        ]})
        assert ready(doc) == ["B", "A"]

    def test_waits_for_dependency(self):
        assert ready(doc_of(s("A"), s("B", ["A"]))) == ["A"]

    def test_dependency_completed_by_status(self):
        assert ready(doc_of(s("A", status="completed"), s("B", ["A"]))) == ["B"]

    def test_dependency_completed_by_passes_only(self):
        assert ready(doc_of(s("A", status="in_progress", passes=True), s("B", ["A"]))) == ["B"]

    def test_non_pending_never_ready(self):
        doc = doc_of(s("A", status="in_progress"), s("B", status="failed"), s("C", status="completed"))
        assert ready(doc) == []

    def test_failed_dependency_blocks(self):
        assert ready(doc_of(s("A", status="failed"), s("B", ["A"]))) == []

    def test_unknown_dependency_never_resolves(self):
        assert ready(doc_of(s("A", ["GHOST"]))) == []

    def test_cycle_never_ready(self):
        assert ready(doc_of(s("A", ["B"]), s("B", ["A"]))) == []

    def test_diamond(self):
        doc = doc_of(s("A"), s("B", ["A"]), s("C", ["A"]), s("D", ["B", "C"]))
        assert ready(doc) == ["A"]
        doc.get("A").status = "completed"
        assert ready(doc) == ["B", "C"]
        doc.get("B").status = "completed"
        assert ready(doc) == ["C"]
        doc.get("C").status = "completed"
        assert ready(doc) == ["D"]

    def test_monotonic_as_dependencies_complete(self):
        """Completing a story never makes another pending story unready."""
        doc = doc_of(s("A"), s("B", ["A"]), s("C", ["A", "B"]), s("D"))
        before = set(ready(doc))
        for story_id in ("A", "B"):
            doc.get(story_id).status = "completed"
            after = set(ready(doc))
            still_pending = {x for x in before if doc.get(x).is_pending}
            assert still_pending <= after
            before = after

    def test_is_ready_single(self):
        doc = doc_of(s("A"), s("B", ["A"]))
        assert is_ready(doc, doc.get("A"))
        assert not is_ready(doc, doc.get("B"))


class TestBlocked:

    def test_reports_unmet_and_unknown(self):
        doc = doc_of(s("A", status="failed"), s("B", ["A", "GHOST"]))
        (entry,) = blocked(doc)
        assert entry.story_id == "B"
        assert entry.unmet == ["A"]
        assert entry.unknown == ["GHOST"]

    def test_ready_stories_not_blocked(self):
        assert [b.story_id for b in blocked(doc_of(s("A"), s("B", ["A"])))] == ["B"]

    def test_non_pending_not_blocked(self):
        assert blocked(doc_of(s("A", status="failed"), s("B", status="completed"))) == []
