"""Root logger setup for reconciliation jobs."""

from __future__ import annotations

import logging
import os
from typing import Final

from .errors import ConfigurationError

LOG_FORMAT: Final[str] = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
LOG_LEVEL_ENV: Final[str] = "IDRECON_LOG_LEVEL"


def configure_logging(*, level: int | str | None = None, force: bool = False) -> None:
    """Configure the root logger before a scheduled run.

    ``level`` falls back to ``IDRECON_LOG_LEVEL`` and then to ``INFO``. Callers
    that already own logging configuration should not call this; tests pass
    ``force=True`` to replace existing handlers.
    """

    if level is None:
        level = (os.getenv(LOG_LEVEL_ENV) or "INFO").strip().upper()
    if isinstance(level, str) and level not in logging.getLevelNamesMapping():
        raise ConfigurationError(f"{LOG_LEVEL_ENV} must be a logging level name, got {level!r}")
    logging.basicConfig(level=level, format=LOG_FORMAT, force=force)
