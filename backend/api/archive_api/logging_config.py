from __future__ import annotations

import logging
from typing import Optional

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def setup_logging(level: Optional[str] = None, *, force: bool = False) -> None:
    """
    Configure root logging once for the API process.

    Args:
        level: Logging level name (defaults to INFO)
        force: Reconfigure even if already configured
    """
    global _configured
    if _configured and not force:
        return

    resolved = getattr(logging, (level or "INFO").upper(), logging.INFO)
    logging.basicConfig(level=resolved, format=_FORMAT, force=force)

    # sqlalchemy echoes every statement at INFO
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    _configured = True
