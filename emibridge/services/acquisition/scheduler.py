"""
Per-Data-Load Polling Scheduler

Tracks, for every configured data load, when it is next due and picks
the due subset on each tick. Purely a time gate: it knows nothing about
reads, decoding or publishing.

Timing rule: after every attempt (success or failure) a task is
rescheduled to `now + interval`. Late execution never queues up
catch-up runs.

Usage:
    scheduler = PollingScheduler(config.data_loads, now=time.monotonic())

    for task in scheduler.due_tasks(time.monotonic()):
        ...
        scheduler.reschedule(task, now)
"""

from dataclasses import dataclass

from emibridge.common.config import DataLoadConfig


@dataclass
class PollingTask:
    """Polling state for one data load"""
    descriptor: DataLoadConfig
    next_run_at: float

    # Observability
    attempts: int = 0
    failures: int = 0
    consecutive_failures: int = 0
    last_error: str = ""
    last_payload: str | None = None
    last_attempt_at: float | None = None

    @property
    def name(self) -> str:
        return self.descriptor.name

    def record_success(self, payload: str) -> None:
        self.attempts += 1
        self.consecutive_failures = 0
        self.last_error = ""
        self.last_payload = payload

    def record_failure(self, error: str) -> None:
        self.attempts += 1
        self.failures += 1
        self.consecutive_failures += 1
        self.last_error = error


class PollingScheduler:
    """
    Ordered set of polling tasks, one per data load.

    Tasks are created once, in configuration order, all due at `now`.
    No task is added or removed afterwards.
    """

    def __init__(self, data_loads: list[DataLoadConfig], now: float):
        self._tasks: tuple[PollingTask, ...] = tuple(
            PollingTask(descriptor=load, next_run_at=now) for load in data_loads
        )

    @property
    def tasks(self) -> tuple[PollingTask, ...]:
        return self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def due_tasks(self, now: float) -> list[PollingTask]:
        """Every task with next_run_at <= now, in configuration order"""
        return [task for task in self._tasks if task.next_run_at <= now]

    def reschedule(self, task: PollingTask, now: float) -> None:
        """Push a task one interval past the attempt time"""
        task.next_run_at = now + task.descriptor.polling_interval_s
        task.last_attempt_at = now

    def next_due_in(self, now: float) -> float | None:
        """Seconds until the earliest task is due (0 if one is due already)"""
        if not self._tasks:
            return None
        earliest = min(task.next_run_at for task in self._tasks)
        return max(0.0, earliest - now)

    def get_stats(self) -> dict:
        """Per-task statistics for observability"""
        return {
            task.name: {
                "interval_s": task.descriptor.polling_interval_s,
                "attempts": task.attempts,
                "failures": task.failures,
                "consecutive_failures": task.consecutive_failures,
                "last_error": task.last_error,
                "last_payload": task.last_payload,
            }
            for task in self._tasks
        }
