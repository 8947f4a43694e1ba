"""
LogCapture -- in-process capture of the kernel's structured log records.

Responsibility:
    Collects every record emitted under the ``job_kernel`` logger
    hierarchy as the dict StructuredFormatter would write, so callers can
    inspect the decision trail of a workflow call (which version was
    allocated, which approval moved the pointer, which write was blocked).

Architecture position:
    Kernel > Services -- read-side infrastructure.  Purely in-memory.

Usage::

    with LogCapture() as capture:
        workflow.approve(co_id, approver_id="u-17")
    capture.events("change_order_approved")
"""

import json
import logging
from typing import Any

from job_kernel.logging_config import StructuredFormatter

_LOGGER_PREFIX = "job_kernel"


class LogCapture(logging.Handler):
    """
    Logging handler that keeps structured records in memory.

    Guarantees:
        - Each record is stored as a dict with at least ``ts``, ``level``,
          ``logger`` and ``message``, plus context and ``extra`` fields.
        - ``records`` returns a copy.
    """

    def __init__(self, level: int = logging.DEBUG):
        super().__init__(level)
        self._records: list[dict] = []
        self._formatter = StructuredFormatter()
        self._previous_level: int | None = None

    def emit(self, record: logging.LogRecord) -> None:
        self._records.append(json.loads(self._formatter.format(record)))

    def install(self) -> "LogCapture":
        """Attach to the job_kernel logger hierarchy.  Returns self."""
        logger = logging.getLogger(_LOGGER_PREFIX)
        logger.addHandler(self)
        if logger.level > self.level or logger.level == logging.NOTSET:
            self._previous_level = logger.level
            logger.setLevel(self.level)
        return self

    def uninstall(self) -> None:
        logger = logging.getLogger(_LOGGER_PREFIX)
        logger.removeHandler(self)
        if self._previous_level is not None:
            logger.setLevel(self._previous_level)
            self._previous_level = None

    def __enter__(self) -> "LogCapture":
        return self.install()

    def __exit__(self, *exc: Any) -> None:
        self.uninstall()

    # Queries

    def events(self, message: str) -> list[dict]:
        """Records whose message (event name) equals ``message``."""
        return [r for r in self._records if r.get("message") == message]

    def query_by_job_id(self, job_id: str) -> list[dict]:
        return [r for r in self._records if r.get("job_id") == job_id]

    def query_by_correlation_id(self, correlation_id: str) -> list[dict]:
        return [r for r in self._records if r.get("correlation_id") == correlation_id]

    @property
    def records(self) -> list[dict]:
        return list(self._records)

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)
