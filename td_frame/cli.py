from __future__ import annotations

import json
import sys
from dataclasses import asdict
from typing import Any, Dict, Optional

import pandas as pd

from .api import connect, create_engine, read_td_job, read_td_query
from .app_model import FetchResult, JobSummary
from .config import ConfigLoader, get_history_path
from .errors import TDFrameError
from .logging_config import configure_logging
from .progress import LoggingProgress
from .td.job import Job


def _frame_to_result(df: pd.DataFrame, max_rows: Optional[int]) -> FetchResult:
    head = df if max_rows is None else df.head(max_rows)
    rows = json.loads(head.to_json(orient="values", date_format="iso"))
    return FetchResult(columns=[str(c) for c in df.columns], rows=rows, total_rows=len(df))


def _read_frame(payload: Dict[str, Any], config: Dict[str, Any]) -> pd.DataFrame:
    database = payload.get("database") or config["app"]["database"]
    if not payload.get("job_id") and not database:
        raise TDFrameError("database is required.")
    engine = create_engine(
        database,
        type=payload.get("type"),
        show_progress=payload.get("show_progress", config["app"]["engine"]["show_progress"]),
        progress=LoggingProgress(),
    )
    parse_dates = payload.get("parse_dates")
    if payload.get("job_id"):
        return read_td_job(str(payload["job_id"]), engine, parse_dates=parse_dates)
    kwargs = {key: payload[key] for key in ("result_url", "priority", "retry_limit") if key in payload}
    return read_td_query(
        payload["sql"],
        engine,
        parse_dates=parse_dates,
        distributed_join=payload.get("distributed_join", False),
        **kwargs,
    )


def handle_request(payload: Dict[str, Any]) -> Dict[str, Any]:
    config = ConfigLoader().load()
    op = payload.get("op")

    if op == "query":
        if not payload.get("sql"):
            return {"ok": False, "error": {"message": "SQL is required."}}
        try:
            df = _read_frame({k: v for k, v in payload.items() if k != "job_id"}, config)
        except TDFrameError as exc:
            return {"ok": False, "error": {"message": "Query failed.", "detail": str(exc)}}
        return {"ok": True, "result": asdict(_frame_to_result(df, payload.get("max_rows")))}

    if op == "fetch_job":
        if not payload.get("job_id"):
            return {"ok": False, "error": {"message": "job_id is required."}}
        try:
            df = _read_frame(payload, config)
        except TDFrameError as exc:
            return {"ok": False, "error": {"message": "Fetch failed.", "detail": str(exc)}}
        return {"ok": True, "result": asdict(_frame_to_result(df, payload.get("max_rows")))}

    if op == "export":
        out_path = payload.get("out_path")
        if not out_path or not (payload.get("sql") or payload.get("job_id")):
            return {"ok": False, "error": {"message": "sql or job_id, and out_path required."}}
        try:
            df = _read_frame(payload, config)
            df.to_csv(out_path, index=False)
        except (TDFrameError, OSError) as exc:
            return {"ok": False, "error": {"message": "Export failed.", "detail": str(exc)}}
        return {"ok": True, "export": {"rows": len(df), "path": out_path}}

    if op in {"job_status", "kill_job"}:
        job_id = payload.get("job_id")
        if not job_id:
            return {"ok": False, "error": {"message": "job_id is required."}}
        try:
            job = Job.from_id(connect(), str(job_id))
            if op == "kill_job":
                job.kill()
        except TDFrameError as exc:
            return {"ok": False, "error": {"message": "Job lookup failed.", "detail": str(exc)}}
        summary = JobSummary(job.job_id, job.status.value, job.result_size, job.url)
        return {"ok": True, "job": asdict(summary)}

    if op == "databases":
        df = connect().databases()
        return {"ok": True, "result": asdict(_frame_to_result(df, None))}

    if op == "tables":
        database = payload.get("database") or config["app"]["database"]
        if not database:
            return {"ok": False, "error": {"message": "database is required."}}
        df = connect().tables(database)
        return {"ok": True, "result": asdict(_frame_to_result(df, None))}

    if op == "get_effective_config":
        redacted = json.loads(json.dumps(config))
        if redacted["app"].get("apikey"):
            redacted["app"]["apikey"] = "***"
        return {
            "ok": True,
            "config": redacted,
            "paths": {
                "config": ConfigLoader().config_path,
                "history": get_history_path(),
            },
        }

    return {"ok": False, "error": {"message": f"Unknown op {op}."}}


def main() -> None:
    logging_config = ConfigLoader().load()["app"]["logging"]
    configure_logging(logging_config.get("level", "INFO"), logging_config.get("format", "text"))
    for line in sys.stdin:
        line = line.strip()
        if not line:
            continue
        try:
            payload = json.loads(line)
            response = handle_request(payload)
        except Exception as exc:
            response = {"ok": False, "error": {"message": "Unhandled error", "detail": str(exc)}}
        sys.stdout.write(json.dumps(response, ensure_ascii=False) + "\n")
        sys.stdout.flush()


if __name__ == "__main__":
    main()
