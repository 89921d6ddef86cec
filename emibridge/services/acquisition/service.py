"""
Acquisition Loop

Process-wide driver: ticks the polling scheduler and, for every due
data load, runs read -> decode -> publish under one broker session per
batch.

Failure containment:
- A read, decode or publish failure is logged against the data load and
  the batch moves on; the load is rescheduled either way.
- A broker connection failure (BrokerConnectionError) aborts the batch
  and propagates out of run().
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from emibridge.common.config import PayloadFormat
from emibridge.common.exceptions import EmiBridgeError
from emibridge.common.logging_setup import (
    get_service_logger,
    log_data_load_read,
    log_publish,
)
from emibridge.services.device.decoder import (
    RegisterTransport,
    build_message,
    decode_data_load,
)
from emibridge.services.publish.session import PublishSession
from .scheduler import PollingScheduler, PollingTask

logger = get_service_logger("acquisition")

STAGE_READ = "read"
STAGE_PUBLISH = "publish"


@dataclass
class PollResult:
    """Outcome of one data load attempt"""
    success: bool
    payload: str | None = None
    error: str | None = None
    stage: str | None = None


@dataclass
class BatchReport:
    """Summary of one batch of due data loads"""
    started_at: float
    attempted: list[str] = field(default_factory=list)
    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    duration_s: float = 0.0


class AcquisitionLoop:
    """
    Sequential polling loop.

    One control flow, strict configuration order inside a batch, and the
    idle sleep as the only voluntary suspension point.
    """

    IDLE_INTERVAL_S = 0.5
    FAILURE_REPORT_THRESHOLD = 10  # Consecutive failures between escalated log lines

    def __init__(
        self,
        transport: RegisterTransport,
        scheduler: PollingScheduler,
        session_factory: Callable[[], PublishSession],
        payload_format: PayloadFormat = PayloadFormat.PLAIN,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.transport = transport
        self.scheduler = scheduler
        self.payload_format = payload_format
        self._session_factory = session_factory
        self._clock = clock
        self._sleep = sleep

        self._running = False
        self._batch_count = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def batch_count(self) -> int:
        return self._batch_count

    async def run(self) -> None:
        """Run batches until stop() is called"""
        self._running = True
        logger.info(
            f"Acquisition loop started ({len(self.scheduler)} data loads)",
            extra={"data_load_count": len(self.scheduler)},
        )

        try:
            while self._running:
                await self.run_once()
        finally:
            self._running = False
            logger.info(f"Acquisition loop stopped after {self._batch_count} batches")

    def stop(self) -> None:
        """Stop after the current batch"""
        self._running = False

    async def run_once(self) -> BatchReport | None:
        """
        Run one iteration.

        Returns:
            BatchReport for the batch, or None if nothing was due (the
            idle interval, cut short when a load falls due sooner, has
            been slept in that case)

        Raises:
            BrokerConnectionError: The broker session could not be opened
        """
        now = self._clock()
        due = self.scheduler.due_tasks(now)

        if not due:
            wait = self.scheduler.next_due_in(now)
            await self._sleep(self.IDLE_INTERVAL_S if wait is None else min(self.IDLE_INTERVAL_S, wait))
            return None

        report = BatchReport(started_at=now)

        async with self._session_factory() as session:
            for task in due:
                result = await self._poll_task(task, session)
                self._record_result(task, result, report)
                self.scheduler.reschedule(task, now)

        report.duration_s = self._clock() - now
        self._batch_count += 1

        if report.failed:
            logger.info(
                f"Batch: {len(report.succeeded)}/{len(report.attempted)} data loads published "
                f"in {report.duration_s:.3f}s, failed: {', '.join(report.failed)}"
            )
        else:
            logger.debug(
                f"Batch: {len(report.attempted)} data loads published in {report.duration_s:.3f}s"
            )

        return report

    async def _poll_task(self, task: PollingTask, session: PublishSession) -> PollResult:
        """Read, decode and publish one data load; never raises"""
        load = task.descriptor

        try:
            decoded = await decode_data_load(load, self.transport)
        except EmiBridgeError as e:
            log_data_load_read(logger, load.name, load.address, None, success=False, error=str(e))
            return PollResult(success=False, error=str(e), stage=STAGE_READ)
        except Exception as e:
            logger.exception(f"Unexpected error reading {load.name}: {e}")
            return PollResult(success=False, error=f"Unexpected error: {e}", stage=STAGE_READ)

        log_data_load_read(logger, load.name, load.address, decoded.payload)

        message = build_message(load, decoded, self.payload_format)

        try:
            await session.publish(load.topic, message)
        except EmiBridgeError as e:
            log_publish(logger, load.name, load.topic, decoded.payload, success=False, error=str(e))
            return PollResult(success=False, payload=decoded.payload, error=str(e), stage=STAGE_PUBLISH)
        except Exception as e:
            logger.exception(f"Unexpected error publishing {load.name}: {e}")
            return PollResult(
                success=False,
                payload=decoded.payload,
                error=f"Unexpected error: {e}",
                stage=STAGE_PUBLISH,
            )

        log_publish(logger, load.name, load.topic, decoded.payload)
        return PollResult(success=True, payload=decoded.payload)

    def _record_result(
        self,
        task: PollingTask,
        result: PollResult,
        report: BatchReport,
    ) -> None:
        report.attempted.append(task.name)

        if result.success:
            task.record_success(result.payload)
            report.succeeded.append(task.name)
            return

        task.record_failure(result.error or "unknown error")
        report.failed.append(task.name)

        if task.consecutive_failures % self.FAILURE_REPORT_THRESHOLD == 0:
            logger.error(
                f"Data load {task.name} failed {task.consecutive_failures} consecutive times "
                f"(last {result.stage} error: {task.last_error})",
                extra={
                    "data_load": task.name,
                    "consecutive_failures": task.consecutive_failures,
                },
            )

    def get_stats(self) -> dict:
        """Loop and per-task statistics"""
        return {
            "batch_count": self._batch_count,
            "running": self._running,
            "data_loads": self.scheduler.get_stats(),
        }
