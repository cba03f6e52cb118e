"""
overwatch.py

Centralized/standardized logger for fxcal, built on Rich.
"""
import logging
import logging.config
import os
import time
from contextlib import contextmanager
from logging import LoggerAdapter
from typing import Any, ClassVar, Dict, MutableMapping, Tuple

# Overwatch Default Format String
RICH_FORMATTER, DATEFMT = "| >> %(message)s", "%m/%d [%H:%M:%S]"

# Set Logging Configuration
LOG_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {"simple-console": {"format": RICH_FORMATTER, "datefmt": DATEFMT}},
    "handlers": {
        "console": {
            "class": "rich.logging.RichHandler",
            "formatter": "simple-console",
            "markup": True,
            "rich_tracebacks": True,
            "show_level": True,
            "show_path": True,
            "show_time": True,
        }
    },
    "root": {"level": "INFO", "handlers": ["console"]},
}
logging.config.dictConfig(LOG_CONFIG)


# === Custom Contextual Logging Logic ===
class ContextAdapter(LoggerAdapter):
    CTX_PREFIXES: ClassVar[Dict[int, str]] = {**{0: "[*] "}, **{idx: "|=> ".rjust(4 + (idx * 4)) for idx in [1, 2, 3]}}

    def process(self, msg: str, kwargs: MutableMapping[str, Any]) -> Tuple[str, MutableMapping[str, Any]]:
        ctx_level = kwargs.pop("ctx_level", 0)
        return f"{self.CTX_PREFIXES[ctx_level]}{msg}", kwargs


class Overwatch:
    def __init__(self, name: str, level: int = logging.INFO) -> None:
        """Wraps a named logger with context prefixes and timed scopes."""
        self.logger = ContextAdapter(logging.getLogger(name), extra={})
        self._scope_depth = 0

        # Logger Delegation
        self.debug = self.logger.debug
        self.info = self.logger.info
        self.warning = self.logger.warning
        self.error = self.logger.error
        self.critical = self.logger.critical

        self.logger.setLevel(level)

    @contextmanager
    def scoped(self, message: str) -> Any:
        level = self._scope_depth
        self.logger.info(f"{message} (start)", ctx_level=min(level, 3))
        self._scope_depth += 1
        start = time.time()
        try:
            yield
        finally:
            self._scope_depth = max(0, self._scope_depth - 1)
            duration = time.time() - start
            self.logger.info(f"{message} (done in {duration:.2f}s, depth={level})", ctx_level=min(level, 3))


def initialize_overwatch(name: str) -> Overwatch:
    # FXCAL_LOG_LEVEL=DEBUG surfaces per-batch calibration lines
    level = logging.getLevelName(os.environ.get("FXCAL_LOG_LEVEL", "INFO").upper())
    return Overwatch(name, level if isinstance(level, int) else logging.INFO)
