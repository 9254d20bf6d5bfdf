import logging
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

from leave_management.core.config import settings

# Correlation id of the request being served, set by CorrelationIdMiddleware
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

LOG_FORMAT = "%(timestamp) %(level) %(name) %(message)"
QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "passlib")


class LeaveJsonFormatter(jsonlogger.JsonFormatter):
    """One JSON object per record, tagged with the service name and request id."""

    def __init__(self, *args, service: str = "leave-management", **kwargs):
        super().__init__(*args, **kwargs)
        self.service = service

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["service"] = self.service
        log_record["level"] = (log_record.get("level") or record.levelname).upper()
        log_record.setdefault("timestamp", datetime.now(timezone.utc).isoformat())

        request_id = request_id_var.get()
        if request_id:
            log_record["request_id"] = request_id


def setup_logging(level: Optional[str] = None) -> None:
    """
    Installs the JSON handler on the root logger. Safe to call repeatedly:
    a handler installed by an earlier call is replaced, not duplicated.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler.formatter, LeaveJsonFormatter):
            root.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(LeaveJsonFormatter(LOG_FORMAT, service=settings.app_name))
    root.addHandler(handler)
    root.setLevel((level or settings.log_level).upper())

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
