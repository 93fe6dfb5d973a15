"""Process-wide logging setup.

Modules log through ``logging.getLogger(__name__)``; this only installs the
root handler. Log lines carry provider, tenant and integration ids, never
credential material.
"""

import logging
import os

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def setup_logging(level: str | None = None) -> None:
    """Configure the root logger once. Later calls only adjust the level."""
    global _configured

    resolved = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    root = logging.getLogger()
    root.setLevel(resolved)

    if _configured:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)

    # httpx logs every request URL at INFO, which includes query strings
    logging.getLogger("httpx").setLevel(logging.WARNING)
    _configured = True
