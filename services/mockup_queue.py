"""
Rate-limited queue for Printful mockup-generation jobs.

Printful's mockup generator allows very few calls per minute, so tasks are
worked one at a time:

    pending -> processing -> completed | error | rate_limited
    rate_limited -> pending  (once retry_after has passed)

The queue lives in memory. Every state change is also written to the
`printful_mockup_tasks` mirror table so admins can see progress and a
restart can pick up unfinished work; mirror failures never stop the queue.
"""
import functools
import logging
import re
import threading
import time

from constants import (
    TASK_STATUS_PENDING,
    TASK_STATUS_PROCESSING,
    TASK_STATUS_COMPLETED,
    TASK_STATUS_ERROR,
    TASK_STATUS_RATE_LIMITED,
    TASK_STATUSES,
    ACTIVE_TASK_STATUSES,
    MOCKUP_VIEW_PLACEMENTS,
    DEFAULT_MOCKUP_PLACEMENT,
)
from models import MockupTask
from services.observability import ErrorReporter
from services.printful_client import PrintfulApiError

logger = logging.getLogger(__name__)

DEFAULT_FILE_URL = "https://files.cdn.printful.com/upload/generator/a7g2-mockup-generator-4d0f4.png"

# Delay between consecutive tasks.
NEXT_TASK_DELAY_SECONDS = 0.1

# Job throttle message contract. Printful reports a throttled generator job as
# "Too Many Requests ... try again after N seconds". If the wording changes we
# fall back to waiting a full minute.
THROTTLE_MARKER = "too many requests"
THROTTLE_RETRY_PATTERN = re.compile(r"try again after (\d+) seconds", re.IGNORECASE)
DEFAULT_THROTTLE_SECONDS = 60
THROTTLE_MARGIN_SECONDS = 1


def parse_job_throttle(message):
    """
    Return seconds to wait if `message` is a job-throttle notice, else None.
    """
    if not message:
        return None
    text = str(message)
    match = THROTTLE_RETRY_PATTERN.search(text)
    if THROTTLE_MARKER not in text.lower() and not match:
        return None
    seconds = int(match.group(1)) if match else DEFAULT_THROTTLE_SECONDS
    return seconds + THROTTLE_MARGIN_SECONDS


def placement_for_view(view):
    return MOCKUP_VIEW_PLACEMENTS.get(view, DEFAULT_MOCKUP_PLACEMENT)


class TimerScheduler:
    """Runs callbacks on daemon timers, inside an app context when given one."""

    def __init__(self, app=None):
        self.app = app

    def call_later(self, delay, callback):
        timer = threading.Timer(max(0.0, delay), self._run, args=(callback,))
        timer.daemon = True
        timer.start()
        return timer

    def _run(self, callback):
        try:
            if self.app is not None:
                with self.app.app_context():
                    callback()
            else:
                callback()
        except Exception:
            logger.exception("[Mockups] Scheduled queue run crashed")


class MockupQueue:
    def __init__(
        self,
        client,
        limiter,
        repository=None,
        scheduler=None,
        clock=time.time,
        default_file_url=DEFAULT_FILE_URL,
        reporter=None,
    ):
        self.client = client
        self.limiter = limiter
        self.repository = repository
        self.scheduler = scheduler or TimerScheduler()
        self._clock = clock
        self.default_file_url = default_file_url or DEFAULT_FILE_URL
        self.reporter = reporter or ErrorReporter()

        self._tasks = []
        self._lock = threading.Lock()
        self._running = False
        self._next_wake_at = None
        self._rerun_requested = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def enqueue(self, variant_id, printful_product_id, printful_variant_id, view,
                printful_external_id=None, start=True):
        """
        Add a task and kick the worker. Returns the task id.

        An active task for the same (variant, view) is reused instead of
        queueing a duplicate Printful job.
        """
        now = self._clock()
        with self._lock:
            for existing in self._tasks:
                if (existing.variant_id == str(variant_id) and existing.view == view
                        and existing.status in ACTIVE_TASK_STATUSES):
                    logger.info(f"[Mockups] Reusing active task {existing.id} for variant {variant_id} ({view})")
                    return existing.id

            task = MockupTask(
                variant_id=str(variant_id),
                printful_product_id=int(printful_product_id),
                printful_variant_id=int(printful_variant_id),
                printful_external_id=printful_external_id,
                view=view,
                created_at=now,
                updated_at=now,
            )
            self._tasks.append(task)

        logger.info(f"[Mockups] Enqueued task {task.id} for variant {variant_id} ({view})")
        self._mirror(task)
        if start:
            self.process_queue()
        return task.id

    def get_task(self, task_id):
        with self._lock:
            for task in self._tasks:
                if task.id == task_id:
                    return task
        return None

    def tasks(self, variant_id=None):
        with self._lock:
            if variant_id is None:
                return list(self._tasks)
            return [t for t in self._tasks if t.variant_id == str(variant_id)]

    def get_queue_status(self, variant_id):
        """Counts per status for one variant, plus the task in flight."""
        tasks = self.tasks(variant_id)
        counts = {status: 0 for status in TASK_STATUSES}
        for task in tasks:
            counts[task.status] = counts.get(task.status, 0) + 1
        current = next((t for t in tasks if t.status == TASK_STATUS_PROCESSING), None)
        return {
            "variant_id": str(variant_id),
            "total": len(tasks),
            "counts": counts,
            "current_task": current.to_dict() if current else None,
        }

    def remove_pending(self, task_id) -> bool:
        """Drop a task that has not started. Anything else is left alone."""
        with self._lock:
            for i, task in enumerate(self._tasks):
                if task.id == task_id:
                    if task.status != TASK_STATUS_PENDING:
                        return False
                    del self._tasks[i]
                    break
            else:
                return False
        if self.repository is not None:
            try:
                self.repository.delete_mockup_task(task_id)
            except Exception as e:
                logger.warning(f"[Mockups] Mirror delete failed for task {task_id}: {e}")
        logger.info(f"[Mockups] Removed pending task {task_id}")
        return True

    def restore(self):
        """
        Reload unfinished tasks from the mirror table.

        A task that was `processing` when the process died never got its
        answer, so it goes back to `pending`.
        """
        if self.repository is None:
            return 0
        rows = self.repository.list_active_mockup_tasks()
        now = self._clock()
        restored = 0
        with self._lock:
            known = {t.id for t in self._tasks}
            for row in rows:
                task = MockupTask.from_row(row)
                if task.id in known:
                    continue
                if task.status == TASK_STATUS_PROCESSING:
                    task.set_status(TASK_STATUS_PENDING, now)
                self._tasks.append(task)
                restored += 1
            self._tasks.sort(key=lambda t: t.created_at)
        logger.info(f"[Mockups] Restored {restored} task(s) from mirror")
        return restored

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------
    def process_queue(self) -> bool:
        """
        Work one task, then schedule the next step. Returns False when the
        worker was already running or there was nothing eligible.

        A call that finds the worker busy leaves a rerun request behind, so a
        task enqueued during another thread's step is still picked up.
        """
        with self._lock:
            if self._running:
                self._rerun_requested = True
                return False
            self._running = True
            self._rerun_requested = False

        try:
            return self._step()
        finally:
            with self._lock:
                self._running = False
                rerun = self._rerun_requested
                self._rerun_requested = False
            if rerun:
                self._schedule(NEXT_TASK_DELAY_SECONDS)

    def _next_candidate(self, now):
        pending = [t for t in self._tasks if t.status == TASK_STATUS_PENDING]
        if pending:
            return min(pending, key=lambda t: t.created_at)
        eligible = [
            t for t in self._tasks
            if t.status == TASK_STATUS_RATE_LIMITED and (t.retry_after is None or t.retry_after <= now)
        ]
        if eligible:
            return min(eligible, key=lambda t: (t.retry_after or 0, t.created_at))
        return None

    def _earliest_retry(self):
        waits = [t.retry_after for t in self._tasks if t.status == TASK_STATUS_RATE_LIMITED and t.retry_after]
        return min(waits) if waits else None

    def _step(self):
        now = self._clock()
        with self._lock:
            task = self._next_candidate(now)
            if task is None:
                retry_at = self._earliest_retry()
            elif task.status == TASK_STATUS_RATE_LIMITED:
                task.set_status(TASK_STATUS_PENDING, now)

        if task is None:
            if retry_at is not None:
                self._schedule(max(0.0, retry_at - now))
            return False

        if not self.limiter.try_acquire():
            wait = self.limiter.time_until_next_slot()
            task.set_status(TASK_STATUS_RATE_LIMITED, now, retry_after=now + wait)
            logger.info(f"[Mockups] Rate limit reached; task {task.id} waits {wait:.1f}s")
            self._mirror(task)
            self._schedule(wait)
            return False

        task.set_status(TASK_STATUS_PROCESSING, now)
        task.error = None
        self._mirror(task)

        self._run_task(task)
        self._schedule(NEXT_TASK_DELAY_SECONDS)
        return True

    def _run_task(self, task):
        placement = placement_for_view(task.view)
        files = [{"placement": placement, "image_url": self.default_file_url}]
        logger.info(f"[Mockups] Creating mockup job for variant {task.printful_variant_id} ({task.view} -> {placement})")

        try:
            envelope = self.client.create_mockup_task(
                task.printful_product_id,
                [task.printful_variant_id],
                files,
            )
        except PrintfulApiError as e:
            self._handle_failure(task, e.message, e)
            return

        result = envelope.get("result") if isinstance(envelope, dict) else None
        job_error = result.get("error") if isinstance(result, dict) else None
        if job_error:
            self._handle_failure(task, str(job_error), None)
            return

        now = self._clock()
        task.result = dict(result) if isinstance(result, dict) else {"result": result}
        task.result.setdefault("placement", placement)
        task.set_status(TASK_STATUS_COMPLETED, now)
        logger.info(f"[Mockups] Task {task.id} completed (task_key={task.result.get('task_key')})")
        self._mirror(task)

    def _handle_failure(self, task, message, error):
        now = self._clock()
        wait = parse_job_throttle(message)
        task.error = message
        if wait is not None:
            task.set_status(TASK_STATUS_RATE_LIMITED, now, retry_after=now + wait)
            logger.warning(f"[Mockups] Printful throttled task {task.id}; retrying in {wait}s")
        else:
            task.set_status(TASK_STATUS_ERROR, now)
            logger.error(f"[Mockups] Task {task.id} failed: {message}")
            self.reporter.capture(
                error or RuntimeError(message),
                "mockup_generation",
                task_id=task.id,
                variant_id=task.variant_id,
                view=task.view,
            )
        self._mirror(task)

    def _schedule(self, delay):
        target = self._clock() + delay
        with self._lock:
            if self._next_wake_at is not None and self._next_wake_at <= target:
                return
            self._next_wake_at = target
        self.scheduler.call_later(delay, functools.partial(self._wake, target))

    def _wake(self, target):
        # Timers wait on the monotonic clock; match the armed target, not wall time.
        with self._lock:
            if self._next_wake_at == target:
                self._next_wake_at = None
        self.process_queue()

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------
    def poll_generation_results(self):
        """
        Ask Printful for the output of completed jobs that have no mockups yet.
        Returns the number of tasks that received mockup URLs.
        """
        updated = 0
        for task in self.tasks():
            if task.status != TASK_STATUS_COMPLETED or not task.result:
                continue
            task_key = task.result.get("task_key")
            if not task_key or task.result.get("mockups"):
                continue
            try:
                remote = self.client.get_mockup_task(task_key)
            except PrintfulApiError as e:
                logger.warning(f"[Mockups] Could not poll job {task_key}: {e.message}")
                continue

            remote_status = (remote or {}).get("status")
            task.result["generation_status"] = remote_status
            if remote_status == "completed":
                task.result["mockups"] = [
                    {
                        "placement": m.get("placement"),
                        "mockup_url": m.get("mockup_url"),
                        "extra": [x.get("url") for x in (m.get("extra") or []) if x.get("url")],
                    }
                    for m in remote.get("mockups") or []
                ]
                updated += 1
            elif remote_status == "failed":
                task.error = remote.get("error") or "Mockup generation failed"
            task.updated_at = self._clock()
            self._mirror(task)
        return updated

    # ------------------------------------------------------------------
    # Mirror
    # ------------------------------------------------------------------
    def _mirror(self, task):
        if self.repository is None:
            return
        try:
            self.repository.upsert_mockup_task(task.to_row())
        except Exception as e:
            logger.warning(f"[Mockups] Mirror write failed for task {task.id}: {e}")
