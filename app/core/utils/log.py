import logging
import logging.config
import queue
from logging.handlers import QueueHandler, QueueListener
from pathlib import Path
from typing import Any, NamedTuple

import uvicorn

from app.core.utils.config import Settings

LOG_DIRECTORY = Path("logs/")
DATE_FORMAT = "%d-%b-%y %H:%M:%S"

# https://talyian.github.io/ansicolors/
LEVEL_COLORS = {
    logging.DEBUG: "\033[38;5;12m",
    logging.INFO: "\033[38;5;10m",
    logging.WARNING: "\033[38;5;11m",
    logging.ERROR: "\033[38;5;9m",
    logging.CRITICAL: "\033[38;5;1m",
}
BOLD = "\033[1m"
END = "\033[0m"


class ColoredConsoleFormatter(uvicorn.logging.DefaultFormatter):
    """
    Console formatter writing the level name in bold and the message in the color of its level
    """

    def __init__(self, *args, **kwargs):
        super().__init__(datefmt=DATE_FORMAT)

        self.formatters = {
            level: logging.Formatter(
                f"%(asctime)s - %(name)s - {BOLD}%(levelname)s{END} - {color}%(message)s{END}",
                self.datefmt,
            )
            for level, color in LEVEL_COLORS.items()
        }

    def format(self, record: logging.LogRecord) -> str:
        formatter = self.formatters.get(record.levelno, self.formatters[logging.ERROR])
        return formatter.format(record)


class LogFile(NamedTuple):
    handler_name: str
    filename: str
    max_megabytes: int
    backup_count: int


# errors.log receives every error, even the ones already written to another file
ERRORS_LOG_FILE = LogFile("file_errors", "errors.log", 10, 20)
# access.log receives incoming requests and the steps of the authorization flows
ACCESS_LOG_FILE = LogFile("file_access", "access.log", 40, 50)
# security.log receives logins, client authentication failures, refused codes,
# refresh token revocations and client administration
SECURITY_LOG_FILE = LogFile("file_security", "security.log", 40, 50)


class LogConfig:
    """
    Logging configuration of the server, converted to a dict for `logging.config.dictConfig`.

    Call `LogConfig().initialize_loggers(settings)` to configure the logging ecosystem.

    Each studio logger writes to the console and to its own rotating file:
     - `studio.access`: incoming requests and authorization flow steps
     - `studio.security`: authentication events
     - `studio.error`: startup and unexpected errors
    """

    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @staticmethod
    def get_file_handler(log_file: LogFile) -> dict[str, Any]:
        return {
            "formatter": "default",
            "class": "logging.handlers.RotatingFileHandler",
            "filename": str(LOG_DIRECTORY / log_file.filename),
            "maxBytes": 1024 * 1024 * log_file.max_megabytes,
            "backupCount": log_file.backup_count,
            "level": "INFO",
        }

    # See https://docs.python.org/3/library/logging.config.html#logging-config-dictschema
    def get_config_dict(self, settings: Settings) -> dict[str, Any]:
        minimum_log_level = "DEBUG" if settings.LOG_DEBUG_MESSAGES else "INFO"

        def logger_config(*handlers: str, propagate: bool | None = None):
            config: dict[str, Any] = {
                "handlers": [*handlers, "console"],
                "level": minimum_log_level,
            }
            if propagate is not None:
                config["propagate"] = propagate
            return config

        return {
            "version": 1,
            # Debug mode keeps the loggers created before, including the database ones
            "disable_existing_loggers": not settings.LOG_DEBUG_MESSAGES,
            "formatters": {
                "default": {
                    "format": self.LOG_FORMAT,
                    "datefmt": DATE_FORMAT,
                },
                "console_formatter": {
                    "()": "app.core.utils.log.ColoredConsoleFormatter",
                },
            },
            "handlers": {
                "console": {
                    "formatter": "console_formatter",
                    "class": "logging.StreamHandler",
                    "level": minimum_log_level,
                },
                **{
                    log_file.handler_name: self.get_file_handler(log_file)
                    for log_file in (ERRORS_LOG_FILE, ACCESS_LOG_FILE, SECURITY_LOG_FILE)
                },
            },
            "loggers": {
                "root": {
                    "level": "DEBUG",
                    "handlers": ["console"],
                },
                "studio": {
                    "propagate": False,
                },
                "studio.access": logger_config(ACCESS_LOG_FILE.handler_name),
                "studio.security": logger_config(SECURITY_LOG_FILE.handler_name),
                "studio.error": logger_config(ERRORS_LOG_FILE.handler_name),
                "scheduler": logger_config(),
                # Requests are logged by studio.access with their request id
                "uvicorn.access": {"handlers": []},
                "uvicorn.error": logger_config(
                    ERRORS_LOG_FILE.handler_name,
                    propagate=False,
                ),
                "arq.worker": logger_config(
                    ERRORS_LOG_FILE.handler_name,
                    propagate=False,
                ),
            },
        }

    def initialize_loggers(self, settings: Settings) -> None:
        """
        Configure the loggers, then move the handlers of each logger behind a QueueHandler.

        Endpoints are asynchronous: records are only put in a queue by the event loop
        and a QueueListener thread runs the real handlers.
        """
        # https://rob-blackbourn.medium.com/how-to-use-python-logging-queuehandler-with-dictconfig-1e8b1284e27a

        # File handlers can not create the folder
        LOG_DIRECTORY.mkdir(parents=True, exist_ok=True)

        config_dict = self.get_config_dict(settings=settings)
        logging.config.dictConfig(config_dict)

        for name in config_dict["loggers"]:
            logger = logging.getLogger(name)
            if not logger.handlers:
                continue

            log_queue: queue.Queue[Any] = queue.Queue(-1)
            listener = QueueListener(
                log_queue,
                *logger.handlers,
                respect_handler_level=True,
            )
            listener.start()

            logger.handlers = [QueueHandler(log_queue)]
