"""BLE activity watchdog: warns when advertisements stop arriving."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from .broadcast import STATUS_EVENT, Broadcaster
from .dispatcher import ReadingDispatcher, utcnow
from .intervals import IntervalSettingsStore

logger = logging.getLogger(__name__)

CHECK_INTERVAL_SECONDS = 30.0


@dataclass(frozen=True)
class BleActivityStatus:
    """Liveness of the advertisement pipeline."""
    warning: bool
    message: str
    last_received_at: Optional[datetime] = None
    last_processed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON/MQTT."""
        return {
            "warning": self.warning,
            "message": self.message,
            "last_received_at": self.last_received_at.isoformat() if self.last_received_at else None,
            "last_processed_at": self.last_processed_at.isoformat() if self.last_processed_at else None,
        }


def _format_last_seen(timestamp: Optional[datetime]) -> str:
    if timestamp is None:
        return "never"
    return timestamp.astimezone().strftime("%H:%M:%S")


def build_status(
    now: datetime,
    last_received_at: Optional[datetime],
    last_processed_at: Optional[datetime],
    threshold: timedelta,
) -> BleActivityStatus:
    """Evaluate both activity timestamps against the warning threshold.

    A timestamp is OK if it exists and is no older than the threshold.
    """
    received_ok = last_received_at is not None and now - last_received_at <= threshold
    processed_ok = last_processed_at is not None and now - last_processed_at <= threshold

    if received_ok and processed_ok:
        return BleActivityStatus(False, "", last_received_at, last_processed_at)

    minutes = max(1, round(threshold.total_seconds() / 60))
    issues = []
    if not received_ok:
        issues.append(
            f"no BLE signal received for {minutes} min (last: {_format_last_seen(last_received_at)})"
        )
    if not processed_ok:
        issues.append(
            f"no BLE signal processed for {minutes} min (last: {_format_last_seen(last_processed_at)})"
        )

    message = f"BLE WARNING: {' | '.join(issues)}"
    return BleActivityStatus(True, message, last_received_at, last_processed_at)


class LivenessMonitor:
    """Periodically checks the dispatcher's activity timestamps and
    broadcasts a status event whenever the warning state changes."""

    def __init__(
        self,
        dispatcher: ReadingDispatcher,
        intervals: IntervalSettingsStore,
        broadcaster: Broadcaster,
        check_interval: float = CHECK_INTERVAL_SECONDS,
        sink_timeout: float = 5.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.dispatcher = dispatcher
        self.intervals = intervals
        self.broadcaster = broadcaster
        self.check_interval = check_interval
        self.sink_timeout = sink_timeout
        self.clock = clock

        self._warning_active = False
        self._warning_message = ""

    @property
    def warning_active(self) -> bool:
        return self._warning_active

    def current_status(self, now: Optional[datetime] = None) -> BleActivityStatus:
        """Status as of now, without emitting anything."""
        return build_status(
            now or self.clock(),
            self.dispatcher.last_received_at,
            self.dispatcher.last_processed_at,
            self.intervals.get().warning_threshold,
        )

    async def check(self, now: Optional[datetime] = None) -> Optional[BleActivityStatus]:
        """Run one check.

        Returns:
            The new status if it changed (and was broadcast), else None.
        """
        status = self.current_status(now)
        if status.warning == self._warning_active and status.message == self._warning_message:
            return None

        if status.warning and not self._warning_active:
            logger.warning(f"####### {status.message} #######")
        elif status.warning:
            logger.info(f"BLE warning changed: {status.message}")
        else:
            logger.info("BLE activity back to normal")

        self._warning_active = status.warning
        self._warning_message = status.message

        try:
            await asyncio.wait_for(
                self.broadcaster.broadcast(STATUS_EVENT, status.to_dict()),
                timeout=self.sink_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Broadcast of BLE status timed out")
        except Exception as e:
            logger.warning(f"Failed to broadcast BLE status: {e}")
        return status

    async def run(self):
        """Check on a fixed tick until cancelled."""
        logger.info(f"Liveness monitor started (every {self.check_interval:.0f}s)")
        while True:
            await asyncio.sleep(self.check_interval)
            await self.check()
