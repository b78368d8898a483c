import json
import logging
import logging.handlers
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from oss_rebuild.time_utils import now_utc

_logger = logging.getLogger("oss_rebuild")
_logger.setLevel(logging.INFO)

LOG_FILENAME = "oss_rebuild.log"


def setup_logging(root: Path) -> Path:
    """Configures a rotating JSON-lines file handler under the durable root."""
    root = Path(root)
    root.mkdir(parents=True, exist_ok=True)
    log_file = root / LOG_FILENAME

    # Rotating handler: 10MB per file, keep 5 backups
    handler = logging.handlers.RotatingFileHandler(
        log_file, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8"
    )
    handler.setFormatter(logging.Formatter("%(message)s"))

    if not any(
        isinstance(h, logging.handlers.RotatingFileHandler) and h.baseFilename == str(log_file.resolve())
        for h in _logger.handlers
    ):
        _logger.addHandler(handler)
    return log_file


_subscribers: List[Callable[[Dict[str, Any]], None]] = []


def subscribe_to_events(callback: Callable[[Dict[str, Any]], None]) -> None:
    _subscribers.append(callback)


def unsubscribe_from_events(callback: Callable[[Dict[str, Any]], None]) -> None:
    if callback in _subscribers:
        _subscribers.remove(callback)


def log_event(event: str, data: Optional[Dict[str, Any]] = None, level: int = logging.INFO, **fields: Any) -> Dict[str, Any]:
    """
    Emits one structured record on the `oss_rebuild` logger.

    Extra keyword fields are merged into `data`. Subscribers (the CLI's
    progress printer, tests) receive the same record.
    """
    payload = {**(data or {}), **fields}
    record = {
        "timestamp": now_utc().isoformat(),
        "event": str(event or "").strip(),
        "data": payload,
    }
    _logger.log(level, json.dumps(record, ensure_ascii=False, default=str))

    for subscriber in list(_subscribers):
        try:
            subscriber(record)
        except (RuntimeError, ValueError, TypeError, OSError) as exc:
            failure_record = {
                "timestamp": now_utc().isoformat(),
                "event": "logging_subscriber_failed",
                "data": {"error": str(exc)},
            }
            _logger.error(json.dumps(failure_record, ensure_ascii=False))
    return record
