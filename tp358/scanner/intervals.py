"""Runtime-adjustable throttle and liveness intervals."""

import logging
import threading
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

logger = logging.getLogger(__name__)

MIN_SECONDS = 30
MAX_SECONDS = 15 * 60
STEP_SECONDS = 30


def normalize_seconds(value: int) -> int:
    """Clamp to [MIN_SECONDS, MAX_SECONDS] and round to a STEP_SECONDS multiple.

    Ties round to the even multiple (45 -> 60, 75 -> 60).
    """
    clamped = min(max(int(value), MIN_SECONDS), MAX_SECONDS)
    stepped = round(clamped / STEP_SECONDS) * STEP_SECONDS
    return min(max(stepped, MIN_SECONDS), MAX_SECONDS)


@dataclass(frozen=True)
class IntervalSettings:
    """A consistent snapshot of all intervals."""
    broadcast_seconds: int
    storage_seconds: int
    warning_threshold_seconds: int

    @property
    def broadcast_interval(self) -> timedelta:
        return timedelta(seconds=self.broadcast_seconds)

    @property
    def storage_interval(self) -> timedelta:
        return timedelta(seconds=self.storage_seconds)

    @property
    def warning_threshold(self) -> timedelta:
        return timedelta(seconds=self.warning_threshold_seconds)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON."""
        return {
            "broadcast_seconds": self.broadcast_seconds,
            "storage_seconds": self.storage_seconds,
            "warning_threshold_seconds": self.warning_threshold_seconds,
            "min_seconds": MIN_SECONDS,
            "max_seconds": MAX_SECONDS,
            "step_seconds": STEP_SECONDS,
        }


class IntervalSettingsStore:
    """Process-wide interval settings guarded by a single lock.

    Readers always get a whole snapshot, so the three values are never
    torn. Updates apply to the next evaluation and are written back to the
    YAML config file on a best-effort basis.
    """

    def __init__(
        self,
        broadcast_seconds: int = 60,
        storage_seconds: int = 180,
        warning_threshold_seconds: int = 300,
        settings_path: Optional[Union[str, Path]] = None,
    ):
        """Initialize the store.

        Args:
            broadcast_seconds: Minimum spacing of live broadcasts per device.
            storage_seconds: Minimum spacing of database writes per device.
            warning_threshold_seconds: Inactivity before a liveness warning.
            settings_path: YAML file to persist updates to, or None.
        """
        self._lock = threading.Lock()
        # Serializes file writes; held without _lock
        self._persist_lock = threading.Lock()
        self._settings = IntervalSettings(
            broadcast_seconds=normalize_seconds(broadcast_seconds),
            storage_seconds=normalize_seconds(storage_seconds),
            warning_threshold_seconds=normalize_seconds(warning_threshold_seconds),
        )
        self.settings_path = Path(settings_path) if settings_path else None

        logger.info(
            f"Intervals initialized: broadcast={self._settings.broadcast_seconds}s, "
            f"storage={self._settings.storage_seconds}s, "
            f"warning={self._settings.warning_threshold_seconds}s"
        )

    def get(self) -> IntervalSettings:
        """Return the current settings snapshot."""
        with self._lock:
            return self._settings

    @property
    def broadcast_interval(self) -> timedelta:
        return self.get().broadcast_interval

    @property
    def storage_interval(self) -> timedelta:
        return self.get().storage_interval

    @property
    def warning_threshold(self) -> timedelta:
        return self.get().warning_threshold

    def update(
        self,
        broadcast_seconds: Optional[int] = None,
        storage_seconds: Optional[int] = None,
        warning_threshold_seconds: Optional[int] = None,
    ) -> IntervalSettings:
        """Apply new interval values.

        Values are normalized; omitted values are left unchanged. Blocking
        file I/O happens after the lock is released, so call this from an
        executor when running inside the event loop.

        Returns:
            The new settings snapshot.
        """
        with self._lock:
            current = self._settings
            self._settings = IntervalSettings(
                broadcast_seconds=(
                    normalize_seconds(broadcast_seconds)
                    if broadcast_seconds is not None else current.broadcast_seconds
                ),
                storage_seconds=(
                    normalize_seconds(storage_seconds)
                    if storage_seconds is not None else current.storage_seconds
                ),
                warning_threshold_seconds=(
                    normalize_seconds(warning_threshold_seconds)
                    if warning_threshold_seconds is not None
                    else current.warning_threshold_seconds
                ),
            )
            updated = self._settings

        logger.info(
            f"Intervals updated: broadcast={updated.broadcast_seconds}s, "
            f"storage={updated.storage_seconds}s, "
            f"warning={updated.warning_threshold_seconds}s"
        )
        self._try_persist()
        return updated

    def _try_persist(self) -> bool:
        """Write the current intervals back to the YAML config file.

        Writers are serialized and each one writes the snapshot current when
        it gets its turn, so the last write always matches memory. Other keys
        in the file are preserved. Failures are logged only; the in-memory
        settings stay authoritative.

        Returns:
            True if the file was written.
        """
        if self.settings_path is None:
            return False

        with self._persist_lock:
            settings = self.get()
            try:
                if not self.settings_path.exists():
                    logger.warning(f"Config file not found, intervals not saved: {self.settings_path}")
                    return False

                with open(self.settings_path, "r") as f:
                    data = yaml.safe_load(f) or {}

                intervals = data.get("intervals") or {}
                intervals.update({
                    "broadcast_seconds": settings.broadcast_seconds,
                    "storage_seconds": settings.storage_seconds,
                    "warning_threshold_seconds": settings.warning_threshold_seconds,
                })
                data["intervals"] = intervals

                with open(self.settings_path, "w") as f:
                    yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
                return True
            except (OSError, yaml.YAMLError, AttributeError) as e:
                logger.warning(f"Could not save intervals to {self.settings_path}: {e}")
                return False
