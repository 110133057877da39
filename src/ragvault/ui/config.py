"""UI configuration constants.

Centralizes magic numbers and configuration values for the UI module.
"""

import logging


class LogLevel:
    """Log level thresholds for the log panel.

    Values match the standard ``logging`` levels so records can be
    compared directly: DEBUG < INFO < WARNING < ERROR.
    """

    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR

    _names = {
        DEBUG: "DEBUG",
        INFO: "INFO",
        WARNING: "WARN",
        ERROR: "ERROR",
    }

    _from_string = {
        "debug": DEBUG,
        "info": INFO,
        "warning": WARNING,
        "error": ERROR,
    }

    @classmethod
    def name(cls, level: int) -> str:
        """Short name for a level; CRITICAL and above read as ERROR."""
        if level >= cls.ERROR:
            return cls._names[cls.ERROR]
        return cls._names.get(level, "DEBUG")

    @classmethod
    def from_string(cls, level_str: str) -> int:
        """Convert string to log level. Returns DEBUG if invalid."""
        return cls._from_string.get(level_str.lower(), cls.DEBUG)


# Input history configuration
INPUT_HISTORY_MAX_SIZE = 100

# Chat display configuration
REFERENCE_PREVIEW_LENGTH = 100  # Characters of a reference shown under a reply
TIMESTAMP_FORMAT = "%H:%M:%S"
STREAM_BUFFER_THRESHOLD = 50  # Characters before a streaming reply is re-rendered
STREAM_FLUSH_DELAY = 0.1  # Seconds before a smaller tail is rendered anyway

# Log panel configuration
LOG_TIMESTAMP_FORMAT = "%H:%M:%S"
LOG_MAX_MESSAGE_LENGTH = 500

# Connection test status shown in the settings screen
STATUS_TESTING = "Testing connection..."
STATUS_CONNECTED = "Connected"
STATUS_FAILED = "Connection failed"
