"""
Structured Logging — JSON log lines tagged with a subsystem and request context.

Every record emitted through a SubsystemLogger carries the subsystem it
came from (matcher, skills, usage...) plus the request, user and agent
ids bound for the current request, so a failed skill ranking or a
rejected chat can be traced back to the call that caused it.

Usage:
    from agenthub.agent.structured_logging import get_subsystem_logger, Subsystem

    log = get_subsystem_logger(Subsystem.MATCHER)
    log.warning("LLM match failed", data={"agent_count": 3})
"""

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from enum import Enum
from functools import partialmethod
from typing import Any, Dict, Optional

request_id_var: ContextVar[str] = ContextVar("request_id", default="")
user_id_var: ContextVar[str] = ContextVar("user_id", default="")
agent_id_var: ContextVar[str] = ContextVar("agent_id", default="")

# JSON key -> context variable
_CONTEXT_FIELDS = (
    ("request_id", request_id_var),
    ("user_id", user_id_var),
    ("agent_id", agent_id_var),
)


class Subsystem(str, Enum):
    API = "api"
    CHAT = "chat"
    MATCHER = "matcher"
    CREATOR = "creator"
    EVOLUTION = "evolution"
    SKILLS = "skills"
    LLM = "llm"
    USAGE = "usage"
    RATE = "rate"
    SEARCH = "search"
    DB = "db"
    SCHEDULER = "scheduler"


def current_context() -> Dict[str, str]:
    """The request/user/agent ids bound to the running request, if any."""
    return {key: var.get() for key, var in _CONTEXT_FIELDS if var.get()}


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def __init__(self, include_traceback: bool = False):
        super().__init__()
        self.include_traceback = include_traceback

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "subsystem": getattr(record, "subsystem", "general"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(current_context())

        data = getattr(record, "extra_data", None)
        if data:
            entry["data"] = data

        if record.exc_info and record.exc_info[0]:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {"type": exc_type.__name__, "message": str(exc_value)}
            if self.include_traceback:
                entry["exception"]["traceback"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class SubsystemLogger:
    """Thin wrapper over a stdlib logger that stamps the subsystem on each record."""

    def __init__(self, subsystem: Subsystem, logger: logging.Logger):
        self.subsystem = subsystem
        self._logger = logger

    @property
    def name(self) -> str:
        return self._logger.name

    def log(self, level: int, msg: str, data: Optional[Dict[str, Any]] = None, **kwargs) -> None:
        if not self._logger.isEnabledFor(level):
            return
        extra: Dict[str, Any] = {"subsystem": self.subsystem.value}
        if data:
            extra["extra_data"] = data
        self._logger.log(level, msg, extra=extra, **kwargs)

    debug = partialmethod(log, logging.DEBUG)
    info = partialmethod(log, logging.INFO)
    warning = partialmethod(log, logging.WARNING)
    error = partialmethod(log, logging.ERROR)


_loggers: Dict[Subsystem, SubsystemLogger] = {}


def get_subsystem_logger(subsystem: Subsystem) -> SubsystemLogger:
    """Cached logger named `agenthub.<subsystem>`."""
    if subsystem not in _loggers:
        _loggers[subsystem] = SubsystemLogger(subsystem, logging.getLogger(f"agenthub.{subsystem.value}"))
    return _loggers[subsystem]


def enable_structured_logging(level: int = logging.INFO, include_traceback: bool = False) -> None:
    """Route every `agenthub.*` logger to stdout as JSON. Safe to call twice."""
    root = logging.getLogger("agenthub")
    root.setLevel(level)
    if any(isinstance(h.formatter, StructuredFormatter) for h in root.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter(include_traceback=include_traceback))
    root.addHandler(handler)


def set_request_context(request_id: str = "", user_id: str = "", agent_id: str = "") -> None:
    """Bind ids for the current request; empty arguments leave the binding alone."""
    for value, (_, var) in zip((request_id, user_id, agent_id), _CONTEXT_FIELDS):
        if value:
            var.set(value)


def generate_request_id() -> str:
    return uuid.uuid4().hex[:12]
