from __future__ import annotations

import logging
from typing import Optional

from listing_pipeline.app.core.settings import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging once for CLI and API entry points."""
    resolved = (level or settings.log_level or "INFO").upper()
    logging.basicConfig(level=getattr(logging, resolved, logging.INFO), format=LOG_FORMAT)
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)
