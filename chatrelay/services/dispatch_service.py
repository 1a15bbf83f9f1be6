"""Paced delivery of scheduled backlog messages.

A poll loop runs one cycle every interval. Each cycle only sends inside the
allowed hour window, never exceeds the daily cap, and waits a random delay
between consecutive sends so the transport does not see burst traffic.
"""

import asyncio
import random
from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from typing import Awaitable, Callable, Optional

from chatrelay.errors import DeliveryError, TransientCollaboratorError
from chatrelay.logging_config import get_logger
from chatrelay.services.alert_service import alert_warning
from chatrelay.services.backlog_service import BacklogStore, DueMessage, ScheduledStatus
from chatrelay.services.chatflow_service import Deliver
from chatrelay.services.phone import normalize_phone

logger = get_logger("dispatch_service")



@dataclass
class DispatchConfig:
    poll_interval_seconds: float = 60.0
    min_delay_ms: int = 5000
    max_delay_ms: int = 15000
    max_daily_messages: int = 50
    start_hour: int = 6
    end_hour: int = 22


@dataclass
class DispatchWindowState:
    window_date: date
    daily_sent_count: int = 0
    in_flight: bool = False


@dataclass
class CycleReport:
    status: str
    due: int = 0
    sent: int = 0
    failed: int = 0
    details: list[dict] = field(default_factory=list)


class ScheduledDispatcher:
    def __init__(
        self,
        backlog: BacklogStore,
        deliver: Deliver,
        tz: tzinfo,
        config: Optional[DispatchConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        self._backlog = backlog
        self._deliver = deliver
        self._tz = tz
        self.config = config or DispatchConfig()
        self._clock = clock or (lambda: datetime.now(self._tz))
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._lock = asyncio.Lock()
        self.state = DispatchWindowState(window_date=self._clock().date())
        self._task: Optional[asyncio.Task] = None

    def is_within_allowed_hours(self, now: Optional[datetime] = None) -> bool:
        hour = (now or self._clock()).hour
        return self.config.start_hour <= hour < self.config.end_hour

    def random_delay_seconds(self) -> float:
        low = min(self.config.min_delay_ms, self.config.max_delay_ms)
        high = max(self.config.min_delay_ms, self.config.max_delay_ms)
        return self._rng.uniform(low, high) / 1000.0

    def _roll_window(self, today: date) -> None:
        if today != self.state.window_date:
            self.state.daily_sent_count = 0
            self.state.window_date = today
            logger.info("Daily send counter reset", extra={"context": {"date": today.isoformat()}})

    def _cap_reached(self) -> bool:
        return self.state.daily_sent_count >= self.config.max_daily_messages

    async def run_cycle(self) -> CycleReport:
        """Run one dispatch cycle. An overlapping call returns immediately."""
        if self._lock.locked():
            return CycleReport(status="in_flight")

        async with self._lock:
            self.state.in_flight = True
            try:
                return await self._run_cycle()
            finally:
                self.state.in_flight = False

    async def _run_cycle(self) -> CycleReport:
        now = self._clock()
        if not self.is_within_allowed_hours(now):
            return CycleReport(status="outside_hours")

        self._roll_window(now.date())
        if self._cap_reached():
            logger.warning(
                "Daily message limit reached",
                extra={"context": {"sent": self.state.daily_sent_count, "limit": self.config.max_daily_messages}},
            )
            return CycleReport(status="daily_limit")

        try:
            due = self._backlog.list_due(now)
        except TransientCollaboratorError as exc:
            logger.error("Scheduled backlog fetch failed", extra={"context": {"error": str(exc)}})
            await alert_warning("Scheduled dispatch cycle aborted", {"error": str(exc)})
            return CycleReport(status="fetch_failed")

        report = CycleReport(status="ok", due=len(due))
        if not due:
            return report

        logger.info(f"{len(due)} scheduled message(s) due")
        attempted = 0
        for message in due:
            if self._cap_reached():
                logger.warning("Daily message limit reached during cycle")
                report.status = "daily_limit"
                break
            if attempted:
                delay = self.random_delay_seconds()
                logger.info(f"Waiting {delay:.1f}s before next scheduled send")
                await self._sleep(delay)
            attempted += 1
            await self._send_one(message, report)

        return report

    async def _send_one(self, message: DueMessage, report: CycleReport) -> None:
        recipient = normalize_phone(message.recipient)
        try:
            await self._deliver(recipient, message.body, message.media_url)
        except DeliveryError as exc:
            logger.error(
                "Scheduled message failed",
                extra={"context": {"id": message.id, "phone": recipient, "error": str(exc)}},
            )
            report.failed += 1
            report.details.append({"id": message.id, "status": ScheduledStatus.FAILED.value, "error": exc.reason})
            self._record_status(message, ScheduledStatus.FAILED, exc.reason)
            return
        except Exception as exc:
            logger.error(
                "Scheduled message crashed during send",
                extra={"context": {"id": message.id, "phone": recipient, "error": str(exc)}},
                exc_info=True,
            )
            reason = f"unexpected_error: {exc}"
            report.failed += 1
            report.details.append({"id": message.id, "status": ScheduledStatus.FAILED.value, "error": reason})
            self._record_status(message, ScheduledStatus.FAILED, reason)
            return

        self.state.daily_sent_count += 1
        report.sent += 1
        report.details.append({"id": message.id, "status": ScheduledStatus.SENT.value})
        logger.info(
            f"Scheduled message sent ({self.state.daily_sent_count}/{self.config.max_daily_messages})",
            extra={"context": {"id": message.id, "phone": recipient}},
        )
        self._record_status(message, ScheduledStatus.SENT)

    def _record_status(self, message: DueMessage, status: ScheduledStatus, error: Optional[str] = None) -> None:
        try:
            self._backlog.update_status(message.id, status, error)
        except TransientCollaboratorError as exc:
            logger.error(
                "Scheduled message status not saved",
                extra={"context": {"id": message.id, "status": status.value, "error": str(exc)}},
            )

    async def run_forever(self) -> None:
        logger.info(
            "Scheduled dispatcher started",
            extra={
                "context": {
                    "interval_seconds": self.config.poll_interval_seconds,
                    "window": f"{self.config.start_hour}:00-{self.config.end_hour}:00",
                    "daily_limit": self.config.max_daily_messages,
                }
            },
        )
        while True:
            try:
                report = await self.run_cycle()
                if report.sent or report.failed:
                    logger.info("Dispatch cycle processed", extra={"context": report.__dict__})
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("Dispatch cycle crashed", extra={"context": {"error": str(exc)}}, exc_info=True)
            await self._sleep(self.config.poll_interval_seconds)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run_forever())
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    def stats(self) -> dict:
        return {
            "daily_sent_count": self.state.daily_sent_count,
            "max_daily_messages": self.config.max_daily_messages,
            "window_date": self.state.window_date.isoformat(),
            "in_flight": self.state.in_flight,
            "is_within_hours": self.is_within_allowed_hours(),
        }
