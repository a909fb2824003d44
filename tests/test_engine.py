from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs

import pytest

from conftest import FakeService, gzip_msgpack
from td_frame.api import create_engine, read_td_job, read_td_query
from td_frame.engine import QueryEngine
from td_frame.td.job import Job, JobStatus


class Recorder:
    def __init__(self):
        self.reports = []

    def report(self, job, cursize=None):
        self.reports.append((job.job_id, cursize))

    def clear(self):
        pass


def _issue_form(service):
    request = next(r for r in service.requests if r.url.path.startswith("/v3/job/issue/"))
    return request.url.path, {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


def test_create_header_variants():
    service = FakeService()
    assert QueryEngine(service.connection(), "db", header=False).create_header("x") == ""
    assert QueryEngine(service.connection(), "db", header=True).create_header("read_td_query") == "-- read_td_query\n"
    assert QueryEngine(service.connection(), "db", header="team report").create_header("x") == "-- team report\n"


def test_execute_splits_transport_params(clock):
    service = FakeService(gzip_msgpack([[1, "a"]]))
    engine = QueryEngine(service.connection(), "sample_db", params={"type": "hive", "pool_name": "etl"})
    result = engine.execute("SELECT 1", result_url="td://@/db/out", priority="high", retry_limit=3)
    path, form = _issue_form(service)
    assert path == "/v3/job/issue/hive/sample_db"
    assert form == {
        "query": "SELECT 1",
        "result": "td://@/db/out",
        "priority": "1",
        "retry_limit": "3",
        "pool_name": "etl",
    }
    assert result.job.job_id == "12345"
    assert result.job.status is JobStatus.SUCCESS
    assert result.job.issued_at.microsecond == 0
    assert result.job.issued_at.tzinfo is timezone.utc


def test_engine_params_are_not_mutated_by_execute(clock):
    service = FakeService(gzip_msgpack([]))
    engine = QueryEngine(service.connection(), "sample_db", params={"type": "presto"})
    engine.execute("SELECT 1", priority=0)
    assert engine.params == {"type": "presto"}


def test_progress_disabled_never_reports(fake_connection_factory):
    recorder = Recorder()
    engine = QueryEngine(FakeService().connection(), "db", show_progress=False, progress=recorder)
    engine.wait_callback(Job(fake_connection_factory(["running"]), "1"))
    assert recorder.reports == []


def test_progress_throttled_relative_to_issue_time(fake_connection_factory):
    recorder = Recorder()
    engine = QueryEngine(FakeService().connection(), "db", show_progress=5.0, progress=recorder)
    now = datetime.now(timezone.utc)
    fresh = Job(fake_connection_factory(["running"]), "1", issued_at=now)
    old = Job(fake_connection_factory(["running"]), "2", issued_at=now - timedelta(seconds=30))
    engine.wait_callback(fresh)
    engine.wait_callback(old, 10)
    assert recorder.reports == [("2", 10)]


def test_progress_true_reports_immediately(fake_connection_factory):
    recorder = Recorder()
    engine = QueryEngine(FakeService().connection(), "db", show_progress=True, progress=recorder)
    engine.wait_callback(Job(fake_connection_factory(["running"]), "1", issued_at=datetime.now(timezone.utc)))
    assert recorder.reports == [("1", None)]


def test_poll_ticks_reach_progress_reporter(clock):
    recorder = Recorder()
    service = FakeService(gzip_msgpack([[1, "a"]]), statuses=["running", "success"])
    engine = QueryEngine(service.connection(), "sample_db", show_progress=True, progress=recorder)
    engine.execute("SELECT 1")
    assert recorder.reports == [("12345", None), ("12345", None)]


def test_read_td_query_adds_headers(clock):
    service = FakeService(gzip_msgpack([[1, "a"], [2, "b"]]))
    engine = create_engine("sample_db", conn=service.connection(), header=True, show_progress=False)
    df = read_td_query("SELECT id, name FROM t", engine, distributed_join=True)
    _, form = _issue_form(service)
    assert form["query"] == (
        "-- read_td_query\n"
        "-- set session distributed_join = true\n"
        "SELECT id, name FROM t"
    )
    assert df["name"].tolist() == ["a", "b"]


def test_distributed_join_ignored_for_hive(clock):
    service = FakeService(gzip_msgpack([]))
    engine = create_engine("sample_db", type="hive", conn=service.connection(), header=False)
    read_td_query("SELECT 1", engine, distributed_join=True)
    path, form = _issue_form(service)
    assert path == "/v3/job/issue/hive/sample_db"
    assert form["query"] == "SELECT 1"


def test_read_td_job_waits_and_materializes(clock):
    service = FakeService(gzip_msgpack([[7, "z"]]), statuses=["running", "running", "success"])
    engine = create_engine("sample_db", conn=service.connection(), show_progress=False)
    df = read_td_job("12345", engine)
    assert df.values.tolist() == [[7, "z"]]
    assert not any(path.startswith("/v3/job/issue/") for path in service.paths())


def test_create_engine_uses_config_defaults():
    engine = create_engine("sample_db", conn=FakeService().connection())
    assert engine.type == "presto"
    assert engine.header is True
    assert engine.show_progress == 5.0
    assert engine.clear_progress is True
    assert engine.poll_interval == 2.0


def test_unknown_priority_rejected(clock):
    service = FakeService(gzip_msgpack([]))
    engine = QueryEngine(service.connection(), "sample_db")
    with pytest.raises(ValueError):
        engine.execute("SELECT 1", priority="urgent")


def test_interrupt_right_after_submission_kills_job(monkeypatch):
    service = FakeService(gzip_msgpack([]))
    engine = QueryEngine(service.connection(), "sample_db")

    def interrupt(entry):
        raise KeyboardInterrupt

    monkeypatch.setattr("td_frame.engine.append_history", interrupt)
    with pytest.raises(KeyboardInterrupt):
        engine.execute("SELECT 1")
    assert service.paths().count("/v3/job/kill/12345") == 1
    assert service.show_calls == 0
