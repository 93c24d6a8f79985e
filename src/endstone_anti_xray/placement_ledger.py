"""
Placement ledger for Anti-Xray
Remembers which coordinates were placed by players, with persistent storage.
"""

from typing import Any, Dict, Set, Tuple
import os
import re
import threading
import yaml

from endstone_anti_xray.settings import LedgerSettings

try:
    import mysql.connector as mysql_connector
except Exception:  # pragma: no cover - optional dependency
    mysql_connector = None


Coordinate = Tuple[str, int, int, int]


class PlacementLedger:
    """In-memory placement cache synced to YAML or MySQL"""

    LOG_TAG = "[Ledger] "
    FILE_NAME = "placed_blocks.yml"
    DEFAULT_CONNECT_TIMEOUT = 5
    MAX_TABLE_PREFIX_LENGTH = 32

    @staticmethod
    def _as_int(value, default: int = 0) -> int:
        """Best-effort integer conversion."""
        try:
            return int(value)
        except Exception:
            return default

    def __init__(self, settings: LedgerSettings, data_folder: str, logger):
        self.data_folder = str(data_folder)
        self.logger = logger
        self._lock = threading.RLock()
        self._flush_lock = threading.Lock()
        self._placed: Dict[Coordinate, str] = {}
        self._pending_adds: Set[Coordinate] = set()
        self._pending_removes: Set[Coordinate] = set()
        self.needs_save = False

        self.mysql_connection = None
        self.mysql_settings: Dict[str, Any] = {}
        self.mysql_table_prefix = "antixray_"
        self.mysql_config = settings.mysql
        self.storage = settings.storage

        self.persistence_enabled = False
        if settings.enabled:
            if self.storage == "mysql":
                self.persistence_enabled = self.initialize_mysql_backend()
                if not self.persistence_enabled:
                    self.storage = "yaml"
                    self.persistence_enabled = True
                    self.logger.warning(
                        f"{self.LOG_TAG}Falling back to YAML ledger backend due to MySQL initialization failure."
                    )
            else:
                self.persistence_enabled = True

        if self.persistence_enabled:
            self.load()

    @property
    def file_path(self) -> str:
        return os.path.join(self.data_folder, self.FILE_NAME)

    def initialize_mysql_backend(self) -> bool:
        """Initialize MySQL backend and create the table if needed."""
        if mysql_connector is None:
            self.logger.error(f"{self.LOG_TAG}MySQL storage selected but mysql-connector-python is not installed.")
            return False

        host = str(self.mysql_config.get("host", "127.0.0.1"))
        port = self._as_int(self.mysql_config.get("port", 3306), 3306)
        if port < 1 or port > 65535:
            port = 3306

        database = str(self.mysql_config.get("database", "")).strip()
        user = str(self.mysql_config.get("user", "")).strip()
        password = str(self.mysql_config.get("password", ""))
        connect_timeout = self._as_int(
            self.mysql_config.get("connect-timeout", self.DEFAULT_CONNECT_TIMEOUT),
            self.DEFAULT_CONNECT_TIMEOUT,
        )
        if connect_timeout < 1:
            connect_timeout = self.DEFAULT_CONNECT_TIMEOUT

        table_prefix = re.sub(r"[^a-zA-Z0-9_]", "", str(self.mysql_config.get("table-prefix", "antixray_")))
        table_prefix = table_prefix[: self.MAX_TABLE_PREFIX_LENGTH] or "antixray_"
        self.mysql_table_prefix = table_prefix

        if not database or not user:
            self.logger.error(f"{self.LOG_TAG}MySQL storage requires ledger.mysql.database and ledger.mysql.user.")
            return False

        self.mysql_settings = {
            "host": host,
            "port": port,
            "database": database,
            "user": user,
            "password": password,
            "connection_timeout": connect_timeout,
            "autocommit": False,
        }

        try:
            conn = self.get_mysql_connection()
            self.ensure_mysql_table(conn)
            self.logger.info(f"{self.LOG_TAG}MySQL ledger backend initialized ({host}:{port}/{database})")
            return True
        except Exception as e:
            self.logger.error(f"{self.LOG_TAG}Failed to initialize MySQL backend: {str(e)}")
            self.close_connection()
            return False

    def get_mysql_connection(self):
        """Return a live MySQL connection, reconnecting if necessary."""
        if mysql_connector is None:
            raise RuntimeError("mysql-connector-python is not available")

        if self.mysql_connection is not None:
            try:
                if self.mysql_connection.is_connected():
                    self.mysql_connection.ping(reconnect=True, attempts=1, delay=0)
                    return self.mysql_connection
            except Exception:
                self.close_connection()

        self.mysql_connection = mysql_connector.connect(**self.mysql_settings)
        return self.mysql_connection

    @property
    def table(self) -> str:
        return f"{self.mysql_table_prefix}placed_blocks"

    def ensure_mysql_table(self, conn) -> None:
        cursor = conn.cursor()
        try:
            cursor.execute(
                f"""
                CREATE TABLE IF NOT EXISTS `{self.table}` (
                    `world` VARCHAR(64) NOT NULL,
                    `x` INT NOT NULL,
                    `y` INT NOT NULL,
                    `z` INT NOT NULL,
                    `block_id` VARCHAR(128) NOT NULL,
                    `placed_at` TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (`world`, `x`, `y`, `z`)
                ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
                """
            )
            conn.commit()
        finally:
            cursor.close()

    def is_player_placed(self, world: str, x: int, y: int, z: int) -> bool:
        with self._lock:
            return (world, x, y, z) in self._placed

    def record_placement(self, world: str, x: int, y: int, z: int, block_id: str) -> None:
        key = (world, x, y, z)
        with self._lock:
            self._placed[key] = block_id
            self._pending_removes.discard(key)
            self._pending_adds.add(key)
            self.needs_save = True

    def forget(self, world: str, x: int, y: int, z: int) -> None:
        key = (world, x, y, z)
        with self._lock:
            if self._placed.pop(key, None) is None:
                return
            self._pending_adds.discard(key)
            if self.persistence_enabled:
                self._pending_removes.add(key)
            self.needs_save = True

    def __len__(self) -> int:
        with self._lock:
            return len(self._placed)

    def flush_to_durable_storage(self) -> None:
        """Write pending placement changes to the configured backend."""
        # cleanup thread, /antixray sync and close() share the connection and the tmp file
        with self._flush_lock:
            self._flush_pending()

    def _flush_pending(self) -> None:
        if not self.persistence_enabled or not self.needs_save:
            return
        if self.storage == "mysql":
            self.save_to_mysql()
        else:
            self.save_to_yaml()

    def save_to_yaml(self) -> None:
        with self._lock:
            data: Dict[str, Dict[str, str]] = {}
            for (world, x, y, z), block_id in self._placed.items():
                data.setdefault(world, {})[f"{x},{y},{z}"] = block_id
            count = len(self._placed)
            self.needs_save = False
            self._pending_adds.clear()
            self._pending_removes.clear()

        try:
            os.makedirs(self.data_folder, exist_ok=True)
            tmp_path = self.file_path + ".tmp"
            with open(tmp_path, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=True)
            os.replace(tmp_path, self.file_path)
            self.logger.info(f"{self.LOG_TAG}Saved {count} placed blocks")
        except Exception as e:
            with self._lock:
                self.needs_save = True
            self.logger.error(f"{self.LOG_TAG}Error saving YAML ledger: {str(e)}")

    def save_to_mysql(self) -> None:
        with self._lock:
            adds = {key: self._placed[key] for key in self._pending_adds if key in self._placed}
            removes = set(self._pending_removes)
            self._pending_adds.clear()
            self._pending_removes.clear()
            self.needs_save = False

        try:
            conn = self.get_mysql_connection()
            cursor = conn.cursor()
            try:
                if adds:
                    cursor.executemany(
                        f"INSERT INTO `{self.table}` (world, x, y, z, block_id) VALUES (%s, %s, %s, %s, %s) "
                        "ON DUPLICATE KEY UPDATE block_id = VALUES(block_id)",
                        [(world, x, y, z, block_id) for (world, x, y, z), block_id in adds.items()],
                    )
                if removes:
                    cursor.executemany(
                        f"DELETE FROM `{self.table}` WHERE world = %s AND x = %s AND y = %s AND z = %s",
                        list(removes),
                    )
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                cursor.close()
            self.logger.info(f"{self.LOG_TAG}MySQL ledger synced ({len(adds)} added, {len(removes)} removed)")
        except Exception as e:
            with self._lock:
                # keep changes that were not superseded while we were writing
                self._pending_adds.update(key for key in adds if key in self._placed)
                self._pending_removes.update(key for key in removes if key not in self._placed)
                self.needs_save = True
            self.logger.error(f"{self.LOG_TAG}Error saving MySQL ledger: {str(e)}")

    def load(self) -> None:
        with self._lock:
            self._placed.clear()
        if self.storage == "mysql":
            self.load_from_mysql()
        else:
            self.load_from_yaml()

    def load_from_yaml(self) -> None:
        try:
            if not os.path.exists(self.file_path):
                return
            with open(self.file_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
            if not data:
                return

            loaded: Dict[Coordinate, str] = {}
            for world, entries in data.items():
                if not isinstance(entries, dict):
                    continue
                for coords, block_id in entries.items():
                    parts = str(coords).split(",")
                    if len(parts) != 3:
                        continue
                    try:
                        x, y, z = (int(part) for part in parts)
                    except ValueError:
                        continue
                    loaded[(str(world), x, y, z)] = str(block_id)

            with self._lock:
                self._placed.update(loaded)
            self.logger.info(f"{self.LOG_TAG}Loaded {len(loaded)} placed blocks")
        except Exception as e:
            self.logger.error(f"{self.LOG_TAG}Error loading YAML ledger: {str(e)}")

    def load_from_mysql(self) -> None:
        try:
            conn = self.get_mysql_connection()
            cursor = conn.cursor()
            try:
                cursor.execute(f"SELECT world, x, y, z, block_id FROM `{self.table}`")
                rows = cursor.fetchall()
            finally:
                cursor.close()
            with self._lock:
                for row in rows:
                    self._placed[(str(row[0]), int(row[1]), int(row[2]), int(row[3]))] = str(row[4])
            self.logger.info(f"{self.LOG_TAG}Loaded {len(rows)} placed blocks from MySQL")
        except Exception as e:
            self.logger.error(f"{self.LOG_TAG}Error loading MySQL ledger: {str(e)}")

    def close_connection(self) -> None:
        if self.mysql_connection is not None:
            try:
                self.mysql_connection.close()
            except Exception:
                pass
            self.mysql_connection = None

    def close(self) -> None:
        """Flush pending changes and release backend resources."""
        with self._flush_lock:
            self._flush_pending()
            self.close_connection()
