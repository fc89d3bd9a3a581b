"""TP358 scanner service - main orchestrator."""

import asyncio
import logging
import signal
import sys
from typing import Optional

import pymysql
from aiohttp import web

from tp358.shared.database import MeasurementStorage
from tp358.shared.logging import setup_logging
from tp358.sources import AdvertisementSource, select_source
from .api import create_app
from .broadcast import BroadcastGroup, MQTTBroadcaster, WebSocketHub
from .config import Config, load_config
from .dispatcher import ReadingDispatcher
from .intervals import IntervalSettingsStore
from .liveness import LivenessMonitor

logger = logging.getLogger(__name__)

SHUTDOWN_DELAY_SECONDS = 0.15


class ScannerService:
    """Wires the advertisement source to the dispatcher, sinks, liveness
    monitor and HTTP surface, and runs them until stopped."""

    def __init__(self, config: Config, source: Optional[AdvertisementSource] = None):
        """Initialize the service.

        Args:
            config: Configuration object.
            source: Advertisement source; selected from config if None.
        """
        self.config = config
        self.source = source or select_source(
            config.source,
            scanning_mode=config.ble.scan_mode,
            fake_interval=config.ble.fake_interval,
        )
        self.intervals = IntervalSettingsStore(
            broadcast_seconds=config.intervals.broadcast_seconds,
            storage_seconds=config.intervals.storage_seconds,
            warning_threshold_seconds=config.intervals.warning_threshold_seconds,
            settings_path=config.config_path,
        )
        self.hub = WebSocketHub()
        self.broadcaster = BroadcastGroup([self.hub])
        self.mqtt_broadcaster: Optional[MQTTBroadcaster] = None
        self.storage: Optional[MeasurementStorage] = None

        self.dispatcher = ReadingDispatcher(
            source=self.source,
            broadcaster=self.broadcaster,
            intervals=self.intervals,
            sink_timeout=config.sink_timeout,
        )
        self.monitor = LivenessMonitor(
            dispatcher=self.dispatcher,
            intervals=self.intervals,
            broadcaster=self.broadcaster,
            sink_timeout=config.sink_timeout,
        )
        self._stop_event: Optional[asyncio.Event] = None

    def _setup_mqtt(self):
        """Connect the MQTT broadcaster if enabled; run without it otherwise."""
        if not self.config.mqtt.enabled:
            logger.info("MQTT disabled")
            return

        self.mqtt_broadcaster = MQTTBroadcaster(self.config.mqtt)
        if not self.mqtt_broadcaster.connect():
            logger.warning("MQTT broker not reachable yet; readings will be dropped until it is")
        self.broadcaster.add(self.mqtt_broadcaster)

    def _setup_storage(self):
        """Initialize the database; run without storage if it fails."""
        if not self.config.database_enabled:
            logger.info("Database disabled")
            return

        storage = MeasurementStorage(self.config.db)
        try:
            storage.initialize()
        except pymysql.MySQLError as e:
            logger.warning(f"Database could not be initialized, running without storage: {e}")
            storage.close()
            return

        self.storage = storage
        self.dispatcher.storage = storage

    def request_stop(self):
        """Ask the service to shut down gracefully."""
        if self._stop_event is not None:
            self._stop_event.set()

    def _schedule_stop(self):
        # Let the HTTP response go out before shutting down
        asyncio.get_running_loop().call_later(SHUTDOWN_DELAY_SECONDS, self.request_stop)

    def _setup_signal_handlers(self, loop: asyncio.AbstractEventLoop):
        """Set up signal handlers for graceful shutdown."""
        for signum in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(signum, self._on_signal, signum)
            except NotImplementedError:
                # Windows event loops have no signal handler support
                signal.signal(signum, lambda s, f: loop.call_soon_threadsafe(self._on_signal, s))

    def _remove_signal_handlers(self, loop: asyncio.AbstractEventLoop):
        for signum in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.remove_signal_handler(signum)
            except NotImplementedError:
                signal.signal(signum, signal.SIG_DFL)

    def _on_signal(self, signum: int):
        logger.info(f"Received {signal.Signals(signum).name}, shutting down...")
        self.request_stop()

    async def run(self):
        """Run the service until stopped or the source fails.

        Raises:
            Exception: Whatever the advertisement source raised.
        """
        self._stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        self._setup_signal_handlers(loop)

        await asyncio.to_thread(self._setup_storage)
        await asyncio.to_thread(self._setup_mqtt)

        app = create_app(
            dispatcher=self.dispatcher,
            monitor=self.monitor,
            intervals=self.intervals,
            hub=self.hub,
            device_names=self.config.device_names,
            on_shutdown=self._schedule_stop,
        )
        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, self.config.http.host, self.config.http.port)
        await site.start()
        logger.info(
            f"HTTP server listening on http://{self.config.http.host}:{self.config.http.port}"
        )

        dispatch_task = asyncio.create_task(self.dispatcher.run(), name="dispatcher")
        monitor_task = asyncio.create_task(self.monitor.run(), name="liveness-monitor")
        stop_task = asyncio.create_task(self._stop_event.wait(), name="stop")

        logger.info("TP358 scanner is running. Press Ctrl+C to stop.")
        try:
            await asyncio.wait({dispatch_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            logger.info("Shutting down TP358 scanner...")
            for task in (dispatch_task, monitor_task, stop_task):
                task.cancel()
            await asyncio.gather(dispatch_task, monitor_task, stop_task, return_exceptions=True)

            await self.hub.close()
            await runner.cleanup()
            if self.mqtt_broadcaster:
                self.mqtt_broadcaster.disconnect()
            if self.storage:
                self.storage.close()
            self._remove_signal_handlers(loop)
            logger.info("TP358 scanner stopped.")

        # Surface a source failure; a clean stop returns normally
        if dispatch_task.done() and not dispatch_task.cancelled() and dispatch_task.exception():
            raise dispatch_task.exception()


def run_scanner(config_path: Optional[str] = None):
    """Run the TP358 scanner service.

    Args:
        config_path: Optional path to config file.
    """
    config = load_config(config_path)
    setup_logging(config.log_level)

    logger.info("Starting TP358 scanner...")

    service = ScannerService(config)

    try:
        asyncio.run(service.run())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Error: {e}")
        sys.exit(1)
