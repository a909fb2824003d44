from __future__ import annotations

from typing import Any, Iterable, Optional, Union

import pandas as pd

from .config import ConfigLoader
from .engine import QueryEngine
from .progress import ProgressReporter
from .td.client import Connection
from .td.job import Job

_UNSET: Any = object()


def connect(apikey: Optional[str] = None, endpoint: Optional[str] = None, **kwargs: Any) -> Connection:
    if apikey is None and endpoint is None:
        app = ConfigLoader().load()["app"]
        apikey = app["apikey"]
        endpoint = app["endpoint"]
        kwargs.setdefault("timeout_s", app["fetch"]["http_timeout_s"])
    return Connection(apikey, endpoint, **kwargs)


def create_engine(
    database: str,
    type: Optional[str] = None,
    conn: Optional[Connection] = None,
    header: Union[bool, str] = _UNSET,
    show_progress: Union[bool, float] = _UNSET,
    clear_progress: bool = _UNSET,
    progress: Optional[ProgressReporter] = None,
    **params: Any,
) -> QueryEngine:
    app = ConfigLoader().load()["app"]
    defaults = app["engine"]
    params["type"] = type or defaults["type"]
    return QueryEngine(
        conn or connect(),
        database,
        params,
        header=defaults["header"] if header is _UNSET else header,
        show_progress=defaults["show_progress"] if show_progress is _UNSET else show_progress,
        clear_progress=defaults["clear_progress"] if clear_progress is _UNSET else clear_progress,
        progress=progress,
        poll_interval=defaults["poll_interval"],
        chunk_size=app["fetch"]["chunk_size"],
    )


def read_td_query(
    query: str,
    engine: QueryEngine,
    parse_dates: Optional[Iterable[str]] = None,
    distributed_join: bool = False,
    **kwargs: Any,
) -> pd.DataFrame:
    """Run ``query`` on ``engine`` and return its result set as a DataFrame.

    ``kwargs`` may carry ``result_url``, ``priority`` and ``retry_limit``
    alongside engine-specific parameters.
    """
    header = engine.create_header("read_td_query")
    if engine.type == "presto" and distributed_join:
        header += "-- set session distributed_join = true\n"
    result = engine.execute(header + query, **kwargs)
    return result.to_dataframe(parse_dates=parse_dates)


def read_td_job(job_id: str, engine: QueryEngine, parse_dates: Optional[Iterable[str]] = None) -> pd.DataFrame:
    """Wait for an already submitted job and return its result set as a DataFrame."""
    job = Job.from_id(engine.connection, job_id)
    result = engine.get_result(job, wait=True)
    return result.to_dataframe(parse_dates=parse_dates)
