from __future__ import annotations

from typing import Optional


class TDFrameError(Exception):
    pass


class ConfigurationError(TDFrameError):
    pass


class APIError(TDFrameError):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


class JobTimeoutError(TDFrameError, TimeoutError):
    pass


class JobFailureError(TDFrameError):
    def __init__(self, job_id: str, status: str, debug_text: Optional[str] = None) -> None:
        super().__init__(f"job {job_id} {status}")
        self.job_id = job_id
        self.status = status
        self.debug_text = debug_text


class ResultIOError(TDFrameError, OSError):
    pass


class DecodeError(TDFrameError, ValueError):
    pass


class DateParseError(TDFrameError, ValueError):
    def __init__(self, column: str, detail: str) -> None:
        super().__init__(f"cannot parse column {column!r} as dates: {detail}")
        self.column = column
