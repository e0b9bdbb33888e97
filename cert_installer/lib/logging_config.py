"""JSON logging configuration for the certificate installer."""

import logging
import logging.handlers
import os

from pythonjsonlogger import jsonlogger

NOTICE = 25
logging.addLevelName(NOTICE, "NOTICE")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with focused field set.

    Includes only 6 fields: timestamp, level, message, exc_info, funcName, lineno.
    Drops verbose fields like module, process, thread, processName, threadName, name.
    """

    def add_fields(self, log_record, record, message_dict):
        """Override to include only specified fields.

        Args:
            log_record: Dict to be logged as JSON
            record: LogRecord object from logging framework
            message_dict: Dict containing message and args
        """
        super().add_fields(log_record, record, message_dict)

        if "levelname" in log_record:
            log_record["level"] = log_record.pop("levelname")

        allowed_fields = {
            "timestamp",
            "level",
            "message",
            "exc_info",
            "funcName",
            "lineno",
        }

        keys_to_remove = [key for key in log_record if key not in allowed_fields]
        for key in keys_to_remove:
            log_record.pop(key)


class NoticeSysLogHandler(logging.handlers.SysLogHandler):
    """SysLogHandler that maps the NOTICE level to syslog ``notice``."""

    def mapPriority(self, levelName):
        if levelName == "NOTICE":
            return "notice"
        return super().mapPriority(levelName)


def _setup_logger() -> logging.Logger:
    """Initialize and configure singleton logger.

    Returns:
        Configured logger with CustomJsonFormatter
    """
    logger = logging.getLogger("cert_installer")

    # Prevent duplicate handlers if module reloaded
    if logger.handlers:
        return logger

    handler = logging.StreamHandler()
    formatter = CustomJsonFormatter(
        fmt="%(timestamp)s %(levelname)s %(funcName)s %(lineno)d %(message)s",
        timestamp=True,
    )
    handler.setFormatter(formatter)

    logger.setLevel(logging.INFO)
    logger.addHandler(handler)
    logger.propagate = False

    return logger


def configure_logging(
    level: str = "INFO",
    syslog_facility: str | None = None,
    syslog_address: str = "/dev/log",
) -> logging.Logger:
    """Apply runtime log level and optional syslog output to LOGGER.

    Args:
        level: Level name (DEBUG, INFO, NOTICE, WARNING, ERROR)
        syslog_facility: Syslog facility name (e.g. "daemon", "local0"), None for stderr only
        syslog_address: Unix socket path of the local syslog daemon

    Returns:
        The configured LOGGER

    Raises:
        ValueError: If the level or facility name is unknown
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"unknown log level: {level}")
    LOGGER.setLevel(numeric_level)

    for handler in [h for h in LOGGER.handlers if isinstance(h, NoticeSysLogHandler)]:
        LOGGER.removeHandler(handler)
        handler.close()

    if syslog_facility:
        facility = NoticeSysLogHandler.facility_names.get(syslog_facility.lower())
        if facility is None:
            raise ValueError(f"unknown syslog facility: {syslog_facility}")
        if os.path.exists(syslog_address):
            syslog_handler = NoticeSysLogHandler(address=syslog_address, facility=facility)
            syslog_handler.setFormatter(logging.Formatter("install_certificates: %(message)s"))
            LOGGER.addHandler(syslog_handler)
        else:
            LOGGER.warning("Syslog socket %s not found, logging to stderr only", syslog_address)

    return LOGGER


# Singleton logger instance - import this in other modules
LOGGER = _setup_logger()
