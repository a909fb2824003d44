from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional


@dataclass
class JobSummary:
    job_id: str
    status: str
    result_size: Optional[int] = None
    url: Optional[str] = None


@dataclass
class FetchResult:
    columns: List[str]
    rows: List[List[Any]]
    total_rows: int
