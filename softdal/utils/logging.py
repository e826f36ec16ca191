"""Logging helpers shared by the access layer.

Each statement executed by a session gets a short id stored in a context
variable; :class:`StatementIdFilter` copies it onto every log record so all
lines produced while a statement runs can be correlated.
"""

import contextvars
import logging
import sys
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator

statement_id_ctx: contextvars.ContextVar[str] = contextvars.ContextVar("statement_id", default="")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(statement_id)s] %(message)s"


class StatementIdFilter(logging.Filter):
    """
    Logging filter to inject the statement_id into log records.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.statement_id = statement_id_ctx.get()
        return True


@contextmanager
def statement_context() -> Iterator[str]:
    """Make a fresh statement id current for the block, then restore the previous one."""
    sid = uuid.uuid4().hex[:12]
    token = statement_id_ctx.set(sid)
    try:
        yield sid
    finally:
        statement_id_ctx.reset(token)


def fmt_ctx(ctx: Dict[str, Any]) -> str:
    """Return a deterministic key=value string used in log messages."""
    return " ".join(f"{k}={v}" for k, v in ctx.items() if v is not None)


def configure_logging(level: int = logging.INFO) -> None:
    """Configure root logging to stdout with statement ids in every line."""
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(StatementIdFilter())
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=[handler])
