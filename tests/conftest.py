"""Shared fixtures for smd tests."""

import json

import pytest

from smd.prd.store import StateStore
from smd.runner.supervisor import Supervisor, WorkerOutcome, read_log


def story(story_id, deps=None, status="pending", passes=False, title=None, **extra):
    data = {
        "id": story_id,
        "title": title or f"Story {story_id}",
        "description": "",
        "dependencies": list(deps or []),
        "status": status,
        "passes": passes,
        "notes": "",
    }
    data.update(extra)
    return data


@pytest.fixture
def smd_dir(tmp_path):
    path = tmp_path / ".smd"
    path.mkdir()
    return path


@pytest.fixture
def make_store(smd_dir):
    """Write a state document with the given story dicts and return its store."""
    def _make(stories, description="Test run", branch_name="smd/test"):
        path = smd_dir / "smd-prd.json"
        path.write_text(json.dumps({
            "description": description,
            "branchName": branch_name,
            "userStories": stories,
        }, indent=2))
        return StateStore(path)
    return _make


class FakeSupervisor(Supervisor):
    """Supervisor whose workers finish the moment they start.

    behaviour maps story id -> one of:
      complete         worker sets its story's passes flag
      complete_marker  same, and prints the campaign completion marker
      fail             log contains a failure keyword
      ambiguous        worker exits without doing anything visible
      hang             worker never finishes
    """

    LOGS = {
        "complete": "Implemented story, all checks green\n",
        "complete_marker": "All stories done\n<promise>COMPLETE</promise>\n",
        "fail": "Error: tests failed\n",
        "ambiguous": "Looked around, ran out of time\n",
        "hang": "",
    }

    def __init__(self, store, work_dir, behaviour=None, default="complete"):
        super().__init__(store, work_dir)
        self.behaviour = behaviour or {}
        self.default = default
        self.started = []
        self.stopped = []
        self.running = set()
        self.max_concurrent = 0

    def _launch(self, story, handle):
        self.started.append((story.id, handle.slot_id))
        self.running.add(story.id)
        self.max_concurrent = max(self.max_concurrent, len(self.running))

        action = self.behaviour.get(story.id, self.default)
        handle.log_path.write_text(self.LOGS[action])
        if action == "hang":
            return
        if action in ("complete", "complete_marker"):
            def mark(doc):
                doc.get(story.id).passes = True
            self.store.mutate(mark)
        handle.sentinel_path.touch()

    def is_done(self, handle):
        return handle.sentinel_path.exists()

    def outcome(self, handle):
        return WorkerOutcome(log=read_log(handle.log_path), process_exit_observed=True, exit_code=0)

    def stop(self, handle):
        self.stopped.append(handle.story_id)

    def cleanup(self, handle):
        super().cleanup(handle)
        self.running.discard(handle.story_id)
