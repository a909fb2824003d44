from __future__ import annotations

import logging
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class ProgressReporter(Protocol):
    def report(self, job, cursize: Optional[int] = None) -> None: ...

    def clear(self) -> None: ...


class NullProgress:
    def report(self, job, cursize: Optional[int] = None) -> None:
        return None

    def clear(self) -> None:
        return None


class LoggingProgress:
    """Writes poll ticks and download progress to the ``td_frame.progress`` logger."""

    def __init__(self, level: int = logging.INFO) -> None:
        self.level = level

    def report(self, job, cursize: Optional[int] = None) -> None:
        extra = {"job_id": job.job_id, "status": job.status.value, "result_size": job.result_size}
        if cursize is None:
            issued = job.issued_at.isoformat() if job.issued_at else "-"
            logger.log(self.level, "job %s %s (issued at %s)", job.job_id, job.status.value, issued, extra=extra)
            return
        extra["downloaded"] = cursize
        if job.result_size:
            percent = cursize * 100.0 / job.result_size
            logger.log(
                self.level,
                "job %s download: %d / %d bytes (%.2f%%)",
                job.job_id,
                cursize,
                job.result_size,
                percent,
                extra=extra,
            )
        else:
            logger.log(self.level, "job %s download: %d bytes", job.job_id, cursize, extra=extra)

    def clear(self) -> None:
        return None
