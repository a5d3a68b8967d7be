import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from paperworth.domain.errors import ServiceError

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}

_configured = False


def configure_logging(level: Optional[str] = None) -> None:
    """Configure the ``paperworth`` logger namespace once per process."""
    global _configured
    if _configured:
        return

    resolved = _LEVELS.get((level or "INFO").upper().strip(), logging.INFO)
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))

    root = logging.getLogger("paperworth")
    root.setLevel(resolved)
    root.addHandler(handler)
    root.propagate = False
    _configured = True


def _format_fields(fields: dict) -> str:
    return " ".join(f"{k}={v}" for k, v in fields.items() if v is not None)


@contextmanager
def log_action(logger: logging.Logger, action: str, **fields) -> Iterator[None]:
    """
    Log start, success and failure of a controller action.

    Keyword arguments are correlation fields (user, receipt, budget, reward, ...).
    """
    context = _format_fields(fields)
    logger.info("%s started %s", action, context)
    try:
        yield
    except ServiceError as e:
        logger.warning("%s failed %s: %s", action, context, e.message)
        raise
    except Exception:
        logger.exception("%s failed %s", action, context)
        raise
    logger.info("%s succeeded %s", action, context)
