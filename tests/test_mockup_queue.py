"""
Tests for the mockup generation queue: ordering, rate limiting, throttle
handling and the database mirror.
"""
import pytest

from constants import (
    TASK_STATUS_PENDING,
    TASK_STATUS_PROCESSING,
    TASK_STATUS_COMPLETED,
    TASK_STATUS_ERROR,
    TASK_STATUS_RATE_LIMITED,
)
from factories import FakeClock, FakePrintfulClient, FakeRepository, ManualScheduler
from services.mockup_queue import MockupQueue, parse_job_throttle, placement_for_view
from services.observability import RecordingReporter
from services.printful_client import PrintfulApiError
from services.rate_limiter import RateLimiter


@pytest.fixture
def parts():
    clock = FakeClock()
    client = FakePrintfulClient()
    repository = FakeRepository(clock)
    scheduler = ManualScheduler(clock)
    reporter = RecordingReporter()
    queue = MockupQueue(
        client,
        RateLimiter(limit=2, window=60, clock=clock),
        repository=repository,
        scheduler=scheduler,
        clock=clock,
        reporter=reporter,
    )
    return queue, client, repository, scheduler, clock, reporter


def enqueue(queue, view, variant_id="v-1", start=True):
    return queue.enqueue(variant_id, 71, 4011, view, start=start)


class TestThrottleParsing:
    def test_explicit_seconds(self):
        assert parse_job_throttle("Too Many Requests. Please try again after 30 seconds") == 31

    def test_marker_without_seconds_falls_back(self):
        assert parse_job_throttle("Too many requests") == 61

    def test_seconds_without_marker(self):
        assert parse_job_throttle("Generator busy, try again after 5 seconds") == 6

    def test_other_errors_are_not_throttles(self):
        assert parse_job_throttle("Invalid variant") is None
        assert parse_job_throttle("") is None
        assert parse_job_throttle(None) is None

    def test_view_placements(self):
        assert placement_for_view("front") == "front"
        assert placement_for_view("left_front") == "left"
        assert placement_for_view("something-new") == "front"


class TestQueueProcessing:
    def test_third_task_waits_for_rate_window(self, parts):
        """Two calls per minute: front and back run, left_front waits about a minute."""
        queue, client, repository, scheduler, clock, _ = parts
        t0 = clock()

        front = enqueue(queue, "front", start=False)
        back = enqueue(queue, "back", start=False)
        left = enqueue(queue, "left_front", start=False)
        queue.process_queue()
        scheduler.advance_and_run(1)

        assert queue.get_task(front).status == TASK_STATUS_COMPLETED
        assert queue.get_task(back).status == TASK_STATUS_COMPLETED
        third = queue.get_task(left)
        assert third.status == TASK_STATUS_RATE_LIMITED
        assert 54 <= third.retry_after - t0 <= 66
        assert len(client.mockup_calls) == 2
        assert [c["files"][0]["placement"] for c in client.mockup_calls] == ["front", "back"]

        scheduler.advance_and_run(70)

        assert queue.get_task(left).status == TASK_STATUS_COMPLETED
        assert queue.get_task(left).retry_after is None
        assert len(client.mockup_calls) == 3
        assert client.mockup_calls[2]["files"][0]["placement"] == "left"

    def test_never_more_than_limit_calls_per_window(self, parts):
        queue, client, _, scheduler, clock, _ = parts
        t0 = clock()
        call_times = []
        original = client.create_mockup_task

        def timed(*args, **kwargs):
            call_times.append(clock() - t0)
            return original(*args, **kwargs)

        client.create_mockup_task = timed
        for i in range(5):
            enqueue(queue, "front", variant_id=f"v-{i}", start=False)
        queue.process_queue()
        scheduler.advance_and_run(300)

        assert len(call_times) == 5
        for i, start in enumerate(call_times):
            in_window = [t for t in call_times if start <= t < start + 60]
            assert len(in_window) <= 2, f"call {i} saw {in_window}"

    def test_oldest_pending_runs_first(self, parts):
        queue, client, _, _, clock, _ = parts
        first = enqueue(queue, "front", start=False)
        clock.advance(1)
        second = enqueue(queue, "back", start=False)

        queue.process_queue()

        assert queue.get_task(first).status == TASK_STATUS_COMPLETED
        assert queue.get_task(second).status == TASK_STATUS_PENDING

    def test_duplicate_active_task_is_reused(self, parts):
        queue, _, _, _, _, _ = parts
        first = enqueue(queue, "front", start=False)
        again = enqueue(queue, "front", start=False)

        assert first == again
        assert len(queue.tasks("v-1")) == 1

    def test_completed_task_can_be_requested_again(self, parts):
        queue, _, _, _, _, _ = parts
        first = enqueue(queue, "front")
        second = enqueue(queue, "front", start=False)

        assert first != second

    def test_worker_does_not_reenter(self, parts):
        queue, client, _, _, _, _ = parts
        enqueue(queue, "front", start=False)
        observed = []
        original = client.create_mockup_task

        def reentrant(*args, **kwargs):
            observed.append(queue.process_queue())
            return original(*args, **kwargs)

        client.create_mockup_task = reentrant
        assert queue.process_queue() is True
        assert observed == [False]

    def test_enqueue_while_worker_busy_is_not_lost(self, parts):
        """A task that arrives as an idle step is finishing still gets worked."""
        queue, client, _, scheduler, _, _ = parts
        late = []
        original_step = queue._step

        def step_then_enqueue():
            result = original_step()
            if not late:
                late.append(enqueue(queue, "front"))
            return result

        queue._step = step_then_enqueue

        assert queue.process_queue() is False
        assert queue.get_task(late[0]).status == TASK_STATUS_PENDING
        assert scheduler.pending

        scheduler.advance_and_run(1)

        assert queue.get_task(late[0]).status == TASK_STATUS_COMPLETED
        assert len(client.mockup_calls) == 1

    def test_wake_survives_wall_clock_stepping_back(self, parts):
        queue, client, _, scheduler, clock, _ = parts
        enqueue(queue, "front", start=False)
        enqueue(queue, "back", start=False)
        queue.process_queue()
        scheduler.advance_and_run(0.15)
        assert len(client.mockup_calls) == 2

        # The timer fires on schedule while the wall clock has jumped back.
        clock.now -= 5
        fired, scheduler.pending = scheduler.pending, []
        for _, _, callback in fired:
            callback()

        left = enqueue(queue, "left_front")

        assert queue.get_task(left).status == TASK_STATUS_RATE_LIMITED
        assert len(scheduler.pending) == 1

        scheduler.advance_and_run(80)

        assert queue.get_task(left).status == TASK_STATUS_COMPLETED

    def test_result_is_stored_with_placement(self, parts):
        queue, _, _, _, _, _ = parts
        task_id = enqueue(queue, "back")

        task = queue.get_task(task_id)
        assert task.result["task_key"] == "gt-1"
        assert task.result["placement"] == "back"


class TestFailures:
    def test_job_throttle_sets_retry_after(self, parts):
        queue, client, _, scheduler, clock, reporter = parts
        client.mockup_responses.append({
            "code": 200,
            "result": {"error": "Too Many Requests, try again after 20 seconds"},
        })
        t0 = clock()

        task_id = enqueue(queue, "front")

        task = queue.get_task(task_id)
        assert task.status == TASK_STATUS_RATE_LIMITED
        assert task.retry_after == pytest.approx(t0 + 21)
        assert reporter.events == []

        scheduler.advance_and_run(25)

        assert queue.get_task(task_id).status == TASK_STATUS_COMPLETED

    def test_throttle_raised_as_api_error(self, parts):
        queue, client, _, _, _, _ = parts
        client.mockup_responses.append(PrintfulApiError(429, "Too Many Requests", "api_error"))

        task_id = enqueue(queue, "front")

        assert queue.get_task(task_id).status == TASK_STATUS_RATE_LIMITED

    def test_other_errors_are_terminal_and_reported(self, parts):
        queue, client, _, _, _, reporter = parts
        client.mockup_responses.append(PrintfulApiError(400, "Invalid variant id", "BadRequest"))

        task_id = enqueue(queue, "front")

        task = queue.get_task(task_id)
        assert task.status == TASK_STATUS_ERROR
        assert task.error == "Invalid variant id"
        assert reporter.events[0]["operation"] == "mockup_generation"
        assert reporter.events[0]["tags"]["task_id"] == task_id

    def test_mirror_failure_does_not_stop_queue(self, parts):
        queue, _, repository, _, _, _ = parts
        repository.fail_on.add("upsert_mockup_task")

        task_id = enqueue(queue, "front")

        assert queue.get_task(task_id).status == TASK_STATUS_COMPLETED
        assert repository.mockup_tasks == {}


class TestQueueAdmin:
    def test_status_counts(self, parts):
        queue, _, _, _, _, _ = parts
        enqueue(queue, "front")
        enqueue(queue, "back", start=False)

        status = queue.get_queue_status("v-1")

        assert status["total"] == 2
        assert status["counts"][TASK_STATUS_COMPLETED] == 1
        assert status["counts"][TASK_STATUS_PENDING] == 1
        assert status["current_task"] is None

    def test_remove_pending_only(self, parts):
        queue, _, repository, _, _, _ = parts
        done = enqueue(queue, "front")
        waiting = enqueue(queue, "back", start=False)

        assert queue.remove_pending(done) is False
        assert queue.remove_pending(waiting) is True
        assert queue.get_task(waiting) is None
        assert waiting not in repository.mockup_tasks
        assert queue.remove_pending("missing") is False

    def test_mirror_tracks_state(self, parts):
        queue, _, repository, _, _, _ = parts
        task_id = enqueue(queue, "front")

        row = repository.mockup_tasks[task_id]
        assert row["status"] == TASK_STATUS_COMPLETED
        assert row["view"] == "front"
        assert row["created_at"] is not None

    def test_restore_resets_processing(self, parts):
        queue, client, repository, scheduler, clock, reporter = parts
        stuck = enqueue(queue, "front", start=False)
        queue.get_task(stuck).set_status(TASK_STATUS_PROCESSING, clock())
        queue._mirror(queue.get_task(stuck))
        enqueue(queue, "back", start=False)

        fresh = MockupQueue(
            client,
            RateLimiter(limit=2, window=60, clock=clock),
            repository=repository,
            scheduler=scheduler,
            clock=clock,
            reporter=reporter,
        )
        assert fresh.restore() == 2
        assert fresh.get_task(stuck).status == TASK_STATUS_PENDING

        fresh.process_queue()
        scheduler.advance_and_run(1)
        assert {t.status for t in fresh.tasks()} == {TASK_STATUS_COMPLETED}


class TestResultPolling:
    def test_completed_jobs_get_mockup_urls(self, parts):
        queue, client, repository, _, _, _ = parts
        task_id = enqueue(queue, "front")
        client.mockup_tasks["gt-1"] = {
            "task_key": "gt-1",
            "status": "completed",
            "mockups": [{
                "placement": "front",
                "mockup_url": "https://cdn.example.com/m1.jpg",
                "extra": [{"url": "https://cdn.example.com/m1-alt.jpg"}],
            }],
        }

        assert queue.poll_generation_results() == 1

        mockups = queue.get_task(task_id).result["mockups"]
        assert mockups[0]["mockup_url"] == "https://cdn.example.com/m1.jpg"
        assert mockups[0]["extra"] == ["https://cdn.example.com/m1-alt.jpg"]
        assert repository.mockup_tasks[task_id]["result"]["mockups"] == mockups
        # Already has mockups; nothing left to poll.
        assert queue.poll_generation_results() == 0

    def test_failed_generation_records_error(self, parts):
        queue, client, _, _, _, _ = parts
        task_id = enqueue(queue, "front")
        client.mockup_tasks["gt-1"] = {"task_key": "gt-1", "status": "failed", "error": "Bad print file"}

        assert queue.poll_generation_results() == 0
        assert queue.get_task(task_id).error == "Bad print file"
