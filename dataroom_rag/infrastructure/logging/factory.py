"""Logger factory with lazy, one-time configuration."""

import inspect
import logging
from threading import Lock
from typing import Any, MutableMapping, Optional, Tuple, Union

from ..config.settings import get_settings
from .config import setup_logging_configuration

_logging_configured = False
_configuration_lock = Lock()


def get_logger(name: Optional[str] = None, **extra_context: Any) -> Union[logging.Logger, "LoggerAdapter"]:
    """Get a configured logger.

    Args:
        name: Logger name. If None, the calling module's name is used.
        **extra_context: Context merged into every record logged through the
            returned logger, e.g. ``component="queue"``.

    Returns:
        A logger, or a ``LoggerAdapter`` when context is given.

    Example:
        ```python
        logger = get_logger(__name__, component="worker")
        logger.info("Lock acquired", extra={"dataroom_id": "dr_1"})
        ```
    """
    _ensure_logging_configured()

    if name is None:
        name = _detect_calling_module()

    base_logger = logging.getLogger(name)

    if extra_context:
        return LoggerAdapter(base_logger, extra_context)
    return base_logger


def configure_logging() -> None:
    """Configure logging now instead of on the first ``get_logger`` call."""
    global _logging_configured

    with _configuration_lock:
        if _logging_configured:
            return
        setup_logging_configuration()
        _logging_configured = True

        settings = get_settings()
        logging.getLogger(__name__).info(
            f"Logging configured for {settings.ENVIRONMENT.value} environment",
            extra={
                "log_level": settings.LOG_LEVEL,
                "log_format": settings.LOG_FORMAT,
                "file_enabled": settings.LOG_FILE_ENABLED,
            },
        )


def _ensure_logging_configured() -> None:
    if not _logging_configured:
        configure_logging()


def _detect_calling_module() -> str:
    """Return the module name of the code that called ``get_logger``."""
    frame = inspect.currentframe()
    try:
        for _ in range(2):
            if frame is None:
                break
            frame = frame.f_back
        if frame is None:
            return "unknown"
        return str(frame.f_globals.get("__name__", "unknown"))
    finally:
        del frame


class LoggerAdapter(logging.LoggerAdapter):
    """Adapter that merges its bound context with per-call ``extra``.

    The standard adapter replaces a call's ``extra`` with its own; this one
    merges them, letting per-call values win.
    """

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        extra = kwargs.get("extra") or {}
        adapter_extra = self.extra if isinstance(self.extra, dict) else {}
        kwargs["extra"] = {**adapter_extra, **extra}
        return msg, kwargs
