import gzip
import json

import httpx
import msgpack
import pytest

from td_frame.td.client import Connection


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path, monkeypatch):
    monkeypatch.setattr("td_frame.config.user_config_dir", lambda name: str(tmp_path / "config"))
    monkeypatch.setattr("td_frame.config.user_state_dir", lambda name: str(tmp_path / "state"))
    monkeypatch.delenv("TD_API_KEY", raising=False)
    monkeypatch.delenv("TD_API_SERVER", raising=False)
    return tmp_path


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def monotonic(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock(monkeypatch):
    fake = FakeClock()
    monkeypatch.setattr("td_frame.td.job.time", fake)
    return fake


class FakeConnection:
    """Replays a list of show_job payloads, repeating the last one."""

    def __init__(self, statuses, **extra):
        self.statuses = list(statuses)
        self.extra = extra
        self.show_calls = 0
        self.killed = []

    def show_job(self, job_id):
        index = min(self.show_calls, len(self.statuses) - 1)
        self.show_calls += 1
        data = {"job_id": job_id, "status": self.statuses[index]}
        data.update(self.extra)
        return data

    def kill(self, job_id):
        self.killed.append(job_id)


@pytest.fixture
def fake_connection_factory():
    return FakeConnection


def gzip_msgpack(records):
    packer = msgpack.Packer()
    return gzip.compress(b"".join(packer.pack(record) for record in records))


def job_payload(status="success", schema=None, **extra):
    data = {
        "job_id": "12345",
        "status": status,
        "type": "presto",
        "database": "sample_db",
        "url": "https://console.example.com/jobs/12345",
        "result_size": 100,
        "hive_result_schema": json.dumps(schema or [["id", "bigint"], ["name", "varchar"]]),
    }
    data.update(extra)
    return data


class FakeService:
    """In-memory stand-in for the job REST API behind an httpx.MockTransport."""

    def __init__(self, result_body=b"", statuses=("success",), schema=None, debug=None, chunk_size=None):
        self.result_body = result_body
        self.statuses = list(statuses)
        self.schema = schema
        self.debug = debug
        self.chunk_size = chunk_size
        self.requests = []
        self.show_calls = 0

    def handler(self, request):
        self.requests.append(request)
        path = request.url.path
        if path.startswith("/v3/job/issue/"):
            return httpx.Response(200, json={"job_id": "12345", "database": path.rsplit("/", 1)[-1]})
        if path.startswith("/v3/job/show/"):
            index = min(self.show_calls, len(self.statuses) - 1)
            self.show_calls += 1
            extra = {"result_size": len(self.result_body)}
            if self.debug:
                extra["debug"] = self.debug
            return httpx.Response(200, json=job_payload(self.statuses[index], self.schema, **extra))
        if path.startswith("/v3/job/kill/"):
            return httpx.Response(200, json={"job_id": "12345", "former_status": "running"})
        if path.startswith("/v3/job/result/"):
            # iterator content keeps the body unread so iter_raw can stream it
            body = self.result_body
            size = self.chunk_size or max(len(body), 1)
            chunks = [body[i:i + size] for i in range(0, len(body), size)]
            return httpx.Response(200, content=iter(chunks))
        if path == "/v3/database/list":
            return httpx.Response(200, json={"databases": [{"name": "sample_db", "count": 3, "permission": "owner"}]})
        if path.startswith("/v3/table/list/"):
            return httpx.Response(200, json={"tables": []})
        return httpx.Response(404, json={"message": "not found"})

    def connection(self):
        return Connection("APIKEY", "api.example.com", transport=httpx.MockTransport(self.handler))

    def paths(self):
        return [request.url.path for request in self.requests]
