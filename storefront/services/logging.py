import json
import logging
import sys
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from ..errors import InternalError


logger = logging.getLogger(__name__)


def log_event(level: str, event: str, **fields) -> None:
    payload = {
        "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "level": level.lower(),
        "event": event,
    }
    payload.update(fields or {})
    try:
        sys.stdout.write(json.dumps(payload, ensure_ascii=False, default=str) + "\n")
    except Exception:
        # best-effort logging
        pass


@contextmanager
def persistence_guard(operation: str, **context):
    """Surface database failures as ``InternalError`` after logging them with context."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.exception("%s failed: %s", operation, context)
        log_event("error", f"{operation}.failed", error=type(exc).__name__, **context)
        raise InternalError(f"{operation} failed") from exc
