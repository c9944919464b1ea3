"""Logging setup for timedist.

Environment variables:
- TIMEDIST_LOG_LEVEL: DEBUG|INFO|WARNING|ERROR (default INFO), applied to
  the ``timedist`` logger only
- TIMEDIST_LOG_FORMAT: format string used when no handler is configured yet
"""
from __future__ import annotations

import logging
import threading
from typing import Dict, Mapping, Optional, Union

from ..utils.env import env_str


ROOT_LOGGER = "timedist"
_DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_configured = False
_config_lock = threading.Lock()


class ContextAdapter(logging.LoggerAdapter):
    """Prefixes every message with ``[key=value ...]``."""

    def __init__(self, logger: logging.Logger, context: Mapping[str, object]) -> None:
        super().__init__(logger, dict(context))
        self._prefix = "[" + " ".join(f"{k}={v}" for k, v in context.items()) + "]"

    def process(self, msg, kwargs):  # type: ignore[override]
        return f"{self._prefix} {msg}", kwargs


def _configure_once() -> None:
    global _configured
    with _config_lock:
        if _configured:
            return
        level_name = env_str("TIMEDIST_LOG_LEVEL", "INFO").upper()
        level = logging.getLevelName(level_name)
        if not isinstance(level, int):
            level = logging.INFO
        # basicConfig is a no-op when the host application already set up logging.
        logging.basicConfig(format=env_str("TIMEDIST_LOG_FORMAT", _DEFAULT_FORMAT))
        logging.getLogger(ROOT_LOGGER).setLevel(level)
        _configured = True


def get_logger(
    name: str, context: Optional[Dict[str, object]] = None
) -> Union[logging.Logger, ContextAdapter]:
    _configure_once()
    logger = logging.getLogger(name)
    if context:
        return ContextAdapter(logger, context)
    return logger
