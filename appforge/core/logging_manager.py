from __future__ import annotations

import logging
import logging.handlers
import os
import pathlib
import sys
from typing import Any, Dict, List, Optional, Union

import structlog
from pythonjsonlogger import jsonlogger

from appforge.core.base import AppForgeManager
from appforge.utils.exceptions import ManagerInitializationError, ManagerShutdownError


class LoggingManager(AppForgeManager):
    """Manages logging configuration and access.

    Configures Python's logging module with console and file handlers based on
    the ``logging`` configuration section, and hands out loggers to the build
    components. With the ``json`` format, records are rendered by
    python-json-logger and structlog is wired on top of the stdlib loggers.
    """

    # Mapping from string log levels to logging module constants
    LOG_LEVELS = {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
        "critical": logging.CRITICAL,
    }

    def __init__(self, config_manager: Any) -> None:
        """Initialize the Logging Manager.

        Args:
            config_manager: The Configuration Manager to use for logging settings.
        """
        super().__init__(name="logging_manager")
        self._config_manager = config_manager
        self._root_logger: Optional[logging.Logger] = None
        self._file_handler: Optional[logging.Handler] = None
        self._console_handler: Optional[logging.Handler] = None
        self._log_directory: Optional[pathlib.Path] = None
        self._enable_json = False
        self._handlers: List[logging.Handler] = []

    def initialize(self) -> None:
        """Initialize the Logging Manager.

        Raises:
            ManagerInitializationError: If initialization fails.
        """
        try:
            logging_config = self._config_manager.get("logging", {})
            log_level_str = logging_config.get("level", "INFO").lower()
            log_level = self.LOG_LEVELS.get(log_level_str, logging.INFO)
            log_format = logging_config.get("format", "text").lower()
            file_config = logging_config.get("file", {})
            console_config = logging_config.get("console", {})

            if file_config.get("enabled", False):
                log_file_path = file_config.get("path", "logs/appforge.log")
                self._log_directory = pathlib.Path(log_file_path).parent
                os.makedirs(self._log_directory, exist_ok=True)

            self._root_logger = logging.getLogger()
            self._root_logger.setLevel(log_level)

            for handler in list(self._root_logger.handlers):
                self._root_logger.removeHandler(handler)

            if log_format == "json":
                self._enable_json = True
                formatter = self._create_json_formatter()
            else:
                formatter = logging.Formatter(
                    "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
                )

            if console_config.get("enabled", True):
                console_level_str = console_config.get("level", "INFO").lower()
                console_level = self.LOG_LEVELS.get(console_level_str, logging.INFO)
                self._console_handler = logging.StreamHandler(sys.stdout)
                self._console_handler.setLevel(console_level)
                self._console_handler.setFormatter(formatter)
                self._root_logger.addHandler(self._console_handler)
                self._handlers.append(self._console_handler)

            if file_config.get("enabled", False):
                file_path = file_config.get("path", "logs/appforge.log")
                rotation = file_config.get("rotation", "10 MB")
                retention = file_config.get("retention", "30 days")

                # Parse rotation (e.g., "10 MB")
                if isinstance(rotation, str) and "MB" in rotation:
                    max_bytes = int(rotation.split()[0]) * 1024 * 1024
                else:
                    max_bytes = 10 * 1024 * 1024

                # Parse retention (e.g., "30 days")
                if isinstance(retention, str) and "days" in retention:
                    backup_count = int(retention.split()[0])
                else:
                    backup_count = 30

                self._file_handler = logging.handlers.RotatingFileHandler(
                    file_path,
                    maxBytes=max_bytes,
                    backupCount=backup_count,
                )
                self._file_handler.setLevel(log_level)
                self._file_handler.setFormatter(formatter)
                self._root_logger.addHandler(self._file_handler)
                self._handlers.append(self._file_handler)

            self._configure_structlog()

            self._root_logger.info(
                "Logging Manager initialized",
                extra={"manager": "LoggingManager", "event": "initialization"},
            )

            self._initialized = True
            self._healthy = True

        except Exception as e:
            raise ManagerInitializationError(
                f"Failed to initialize LoggingManager: {str(e)}",
                manager_name=self.name,
            ) from e

    def _create_json_formatter(self) -> logging.Formatter:
        """Create a JSON formatter for log records.

        Returns:
            logging.Formatter: A formatter that outputs logs in JSON format.
        """
        return jsonlogger.JsonFormatter(
            fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
            json_ensure_ascii=False,
        )

    def _configure_structlog(self) -> None:
        """Route structlog through the stdlib handlers configured above."""
        renderer: Any
        if self._enable_json:
            renderer = structlog.processors.JSONRenderer()
        else:
            renderer = structlog.processors.KeyValueRenderer(
                key_order=["event"], drop_missing=True
            )

        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.UnicodeDecoder(),
                renderer,
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=False,
        )

    def get_logger(self, name: str) -> Union[logging.Logger, Any]:
        """Get a logger for a specific component.

        Args:
            name: The name of the component requesting a logger.

        Returns:
            A structlog logger bound to the stdlib logger ``name``.
        """
        if not self._initialized:
            return logging.getLogger(name)

        return structlog.get_logger(name)

    def shutdown(self) -> None:
        """Shut down the Logging Manager.

        Raises:
            ManagerShutdownError: If shutdown fails.
        """
        if not self._initialized:
            return

        try:
            if self._root_logger:
                self._root_logger.info(
                    "Shutting down Logging Manager",
                    extra={"manager": "LoggingManager", "event": "shutdown"},
                )

            for handler in self._handlers:
                if self._root_logger:
                    self._root_logger.removeHandler(handler)
                handler.flush()
                handler.close()
            self._handlers = []

            self._initialized = False
            self._healthy = False

        except Exception as e:
            raise ManagerShutdownError(
                f"Failed to shut down LoggingManager: {str(e)}",
                manager_name=self.name,
            ) from e

    def status(self) -> Dict[str, Any]:
        """Get the status of the Logging Manager.

        Returns:
            Dict[str, Any]: Status information about the Logging Manager.
        """
        status = super().status()

        if self._initialized:
            status.update(
                {
                    "log_directory": str(self._log_directory)
                    if self._log_directory
                    else None,
                    "handlers": {
                        "console": self._console_handler is not None,
                        "file": self._file_handler is not None,
                    },
                    "structured_logging": self._enable_json,
                }
            )

        return status
