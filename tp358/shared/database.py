"""Database configuration and measurement storage."""

import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import pymysql
from pymysql.cursors import DictCursor

logger = logging.getLogger(__name__)

QUERY_TIMEOUT_SECONDS = 10

CREATE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS measurements (
        id INT AUTO_INCREMENT PRIMARY KEY,
        device_mac VARCHAR(17) NOT NULL,
        temperature DECIMAL(5,2),
        humidity INT,
        measured_at DATETIME NOT NULL,
        INDEX idx_device_mac (device_mac),
        INDEX idx_measured_at (measured_at)
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
"""

INSERT_SQL = """
    INSERT INTO measurements (device_mac, temperature, humidity, measured_at)
    VALUES (%s, %s, %s, %s)
"""


@dataclass
class DBConfig:
    """Database connection configuration."""
    host: str
    user: str
    password: str
    database: str
    port: int = 3306

    @classmethod
    def from_env(cls) -> "DBConfig":
        """Create config from environment variables."""
        return cls(
            host=os.getenv("DB_HOST", "localhost"),
            user=os.getenv("DB_USER", ""),
            password=os.getenv("DB_PASSWORD", ""),
            database=os.getenv("DB_DATABASE", "tp358"),
            port=int(os.getenv("DB_PORT", "3306")),
        )


class MeasurementStorage:
    """Stores decoded TP358 measurements in MySQL/MariaDB.

    The storage starts out unavailable; ``initialize()`` creates the table
    and enables inserts. While unavailable, inserts are skipped so the
    scanner keeps running without a database.

    Calls arrive from worker threads. A caller that stops waiting does not
    stop its thread, so every use of the connection holds ``_lock``.
    """

    def __init__(self, db_config: DBConfig):
        """Initialize storage with database configuration.

        Args:
            db_config: Database connection configuration.
        """
        self.db_config = db_config
        self._connection: Optional[pymysql.Connection] = None
        self._available = False
        self._lock = threading.Lock()

    @property
    def is_available(self) -> bool:
        """Whether the measurements table was initialized successfully."""
        return self._available

    def _get_connection(self) -> pymysql.Connection:
        """Get or create database connection."""
        if self._connection is None or not self._connection.open:
            self._connection = pymysql.connect(
                host=self.db_config.host,
                port=self.db_config.port,
                user=self.db_config.user,
                password=self.db_config.password,
                database=self.db_config.database,
                cursorclass=DictCursor,
                connect_timeout=5,
                read_timeout=QUERY_TIMEOUT_SECONDS,
                write_timeout=QUERY_TIMEOUT_SECONDS,
            )
        return self._connection

    def initialize(self) -> None:
        """Create the measurements table if needed.

        Raises:
            pymysql.MySQLError: If the database cannot be reached.
        """
        try:
            with self._lock:
                conn = self._get_connection()
                with conn.cursor() as cursor:
                    cursor.execute(CREATE_TABLE_SQL)
                conn.commit()
        except pymysql.MySQLError as e:
            self._available = False
            logger.error(f"Error initializing database: {e}")
            raise

        self._available = True
        logger.info("Database initialized, table 'measurements' is ready")

    def insert_measurement(
        self,
        device_mac: str,
        temperature_c: Optional[float],
        humidity_percent: Optional[int],
        measured_at: datetime,
    ) -> bool:
        """Store a single measurement.

        Args:
            device_mac: Canonical device MAC address.
            temperature_c: Temperature in Celsius, if decoded.
            humidity_percent: Relative humidity, if decoded.
            measured_at: Timestamp of the advertisement.

        Returns:
            True if stored, False if skipped or failed.
        """
        if not self._available:
            return False

        with self._lock:
            try:
                conn = self._get_connection()
                with conn.cursor() as cursor:
                    cursor.execute(
                        INSERT_SQL,
                        (device_mac, temperature_c, humidity_percent, measured_at.replace(tzinfo=None)),
                    )
                conn.commit()
            except pymysql.MySQLError as e:
                logger.error(f"Error storing measurement for {device_mac}: {e}")
                self._reset_connection()
                return False

        logger.debug(
            f"Stored measurement: {device_mac} | Temp={temperature_c}°C, Humidity={humidity_percent}%"
        )
        return True

    def _reset_connection(self):
        """Drop the current connection so the next call reconnects.

        Must be called with ``_lock`` held.
        """
        if self._connection:
            try:
                self._connection.close()
            except pymysql.MySQLError:
                pass
            self._connection = None

    def close(self):
        """Close the database connection."""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None
