from __future__ import annotations

import pytest

import nurture.tasks.nurture_tasks as tasks_module
from nurture.tasks.nurture_tasks import dead_letter_queue, execute_task


@pytest.fixture(autouse=True)
def _clear_dead_letters():
    dead_letter_queue.clear()
    yield
    dead_letter_queue.clear()


def test_task_retries_then_succeeds():
    state = {"calls": 0}

    def flaky_runner():
        state["calls"] += 1
        if state["calls"] == 1:
            raise RuntimeError("transient failure")
        return {"processed": 3}

    result = execute_task("test.flaky", flaky_runner, max_retries=1, base_backoff_seconds=0.0)

    assert result["status"] == "succeeded"
    assert result["retry_count"] == 1
    assert result["result"] == {"processed": 3}
    assert dead_letter_queue == []


def test_task_exhausting_retries_dead_letters():
    def broken_runner():
        raise ValueError("store unavailable")

    result = execute_task(
        "test.broken",
        broken_runner,
        context={"lead_id": 9, "trigger": "reactive"},
        max_retries=2,
        base_backoff_seconds=0.0,
    )

    assert result["status"] == "failed"
    assert result["dead_lettered"] is True
    assert result["retry_count"] == 2
    assert result["error_payload"] == {"type": "ValueError", "message": "store unavailable"}
    [entry] = dead_letter_queue
    assert entry["task_name"] == "test.broken"
    assert entry["context"]["lead_id"] == 9
    assert entry["context"]["trace_id"]


class _StubScheduler:
    async def check_overdue(self, now=None):
        return [4, 8]


def test_health_check_task_reports_overdue(monkeypatch):
    monkeypatch.setattr(tasks_module, "build_scheduler", lambda: _StubScheduler())

    result = tasks_module.health_check_task.run()

    assert result["status"] == "succeeded"
    assert result["result"] == {"overdue_count": 2, "overdue_lead_ids": [4, 8]}
