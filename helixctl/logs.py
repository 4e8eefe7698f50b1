"""Logging helpers for the helixctl package."""
import logging
from typing import Optional

from helixctl.config import Config


def setup_logging(debug_mode: bool = False, level: Optional[str] = None) -> None:
    """Configure root logging for a CLI run.

    Args:
        debug_mode: Force DEBUG level and keep library loggers verbose
        level: Level name to use when not in debug mode (default: Config.LOG_LEVEL)
    """
    log_level = logging.DEBUG if debug_mode else getattr(logging, level or Config.LOG_LEVEL, logging.INFO)
    logging.basicConfig(
        level=log_level,
        format=Config.LOG_FORMAT,
        handlers=[
            logging.StreamHandler()
        ]
    )
    # Disable debug logging for noisy libraries
    if not debug_mode:
        logging.getLogger('paramiko').setLevel(logging.WARNING)
        logging.getLogger('urllib3').setLevel(logging.WARNING)


class NodeLoggerAdapter(logging.LoggerAdapter):
    """Prefix every message with the host it concerns."""

    def process(self, msg, kwargs):
        return f"[{self.extra['host']}] {msg}", kwargs


def node_logger(name: str, host: str) -> logging.LoggerAdapter:
    """Return a logger that tags messages with the given host."""
    return NodeLoggerAdapter(logging.getLogger(name), {"host": host})
