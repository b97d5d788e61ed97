"""
SLA Configuration File
======================

Loads ``sla_config.yaml`` and hot-reloads it with watchdog, so SLA hours
can change without a restart. A reload only affects tickets created after
it; stored deadlines are never recomputed.
"""

import threading
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from campusdesk.core import ConfigurationException
from campusdesk.shared.infrastructure.logging import get_logger
from campusdesk.tickets.application.services import ISLAConfigProvider
from campusdesk.tickets.domain.value_objects import SLAConfig

logger = get_logger(__name__)


class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for SLA config file changes."""

    def __init__(self, config_manager: "SLAConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def _matches(self, path: str) -> bool:
        return Path(path).resolve() == self.config_path.resolve()

    def on_modified(self, event):
        if event.is_directory or not self._matches(event.src_path):
            return
        logger.info("SLA config file changed", extra={"path": event.src_path})
        self.config_manager.reload()

    def on_created(self, event):
        self.on_modified(event)

    def on_moved(self, event):
        # Editors that save via rename-into-place
        if not event.is_directory and self._matches(event.dest_path):
            logger.info("SLA config file replaced", extra={"path": event.dest_path})
            self.config_manager.reload()


class SLAConfigManager(ISLAConfigProvider):
    """
    Thread-safe SLA configuration manager with hot-reload support.

    The watchdog observer calls ``reload`` from its own thread; readers on
    the event loop always see either the old or the new config object.
    A file that fails to parse on reload leaves the previous config active.
    """

    def __init__(self):
        self._config: Optional[SLAConfig] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> SLAConfig:
        """
        Initial configuration load.

        Raises:
            ConfigurationException: the file exists but is invalid
        """
        self._path = Path(path)
        try:
            config = self._load_from_file(self._path)
        except (yaml.YAMLError, ValidationError, TypeError) as e:
            raise ConfigurationException(
                f"Invalid SLA config file {self._path}: {e}",
                {"path": str(self._path)}
            )
        with self._lock:
            self._config = config
        return config

    def _load_from_file(self, path: Path) -> SLAConfig:
        """Load and parse YAML config file."""
        if not path.exists():
            logger.warning("SLA config file not found, using defaults", extra={"path": str(path)})
            return SLAConfig()

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        return SLAConfig(**data)

    def reload(self) -> bool:
        """Reload configuration from file."""
        if self._path is None:
            return False

        try:
            new_config = self._load_from_file(self._path)
        except (yaml.YAMLError, ValidationError, TypeError, OSError) as e:
            logger.error("Failed to reload SLA config, keeping previous", extra={"error": str(e)})
            return False

        with self._lock:
            self._config = new_config
        logger.info("SLA configuration reloaded successfully")
        return True

    def start_watching(self) -> None:
        """
        Start watching configuration file for changes.

        Skips watching if:
        - File doesn't exist (serverless deployments ship no config file)
        - The platform does not support inotify/FSEvents
        """
        if self._path is None:
            raise RuntimeError("Config not loaded. Call load() first.")

        if not self._path.exists():
            logger.info(
                "SLA config file doesn't exist, skipping file watch",
                extra={"path": str(self._path)}
            )
            return

        try:
            self._observer = Observer()
            handler = ConfigFileHandler(self, self._path)
            self._observer.schedule(handler, str(self._path.parent), recursive=False)
            self._observer.start()
            logger.info("Started watching SLA config file", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning("File watching not available, using static config", extra={"error": str(e)})
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching configuration file (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def config(self) -> SLAConfig:
        """Get current configuration."""
        with self._lock:
            if self._config is None:
                raise RuntimeError("SLA configuration not loaded")
            return self._config

    def get_config(self) -> SLAConfig:
        return self.config
