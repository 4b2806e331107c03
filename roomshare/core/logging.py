# roomshare/core/logging.py

import logging
import os
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Client libraries that log every request or frame at INFO
NOISY_LOGGERS = ("httpx", "hpack", "realtime", "websockets", "uvicorn.access")


def setup_logging() -> None:
    """Log to stdout at LOG_LEVEL (default INFO) unless a host such as uvicorn already configured handlers."""
    level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
