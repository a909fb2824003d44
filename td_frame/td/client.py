from __future__ import annotations

import platform
from typing import Any, Dict, Iterable, List, Optional, Union
from urllib.parse import urljoin

import httpx
import pandas as pd

from ..config import DEFAULT_ENDPOINT
from ..environ import get_default_apikey, get_default_endpoint
from ..errors import APIError, ConfigurationError
from ..version import __version__

PRIORITY_NAMES: Dict[str, int] = {
    "VERY LOW": -2,
    "LOW": -1,
    "NORMAL": 0,
    "HIGH": 1,
    "VERY HIGH": 2,
}

DATABASE_FIELDS = ["name", "count", "permission", "created_at", "updated_at"]
TABLE_FIELDS = ["name", "count", "estimated_storage_size", "last_log_timestamp", "created_at"]


def normalize_endpoint(endpoint: str) -> str:
    if "://" not in endpoint:
        endpoint = f"https://{endpoint}"
    if not endpoint.endswith("/"):
        endpoint = endpoint + "/"
    return endpoint


def normalize_priority(priority: Union[int, str, None]) -> Optional[int]:
    if priority is None:
        return None
    if isinstance(priority, int):
        return priority
    key = priority.strip().upper().replace("_", " ")
    if key.lstrip("-").isdigit():
        return int(key)
    if key not in PRIORITY_NAMES:
        raise ValueError(f"unknown priority {priority!r}")
    return PRIORITY_NAMES[key]


def default_user_agent() -> str:
    versions = [
        f"pandas/{pd.__version__}",
        f"httpx/{httpx.__version__}",
        f"python/{platform.python_version()}",
    ]
    return f"td-frame/{__version__} ({' '.join(versions)})"


def result_user_agent() -> str:
    return f"td-frame/{__version__} (Python/{platform.python_version()})"


class Connection:
    def __init__(
        self,
        apikey: Optional[str] = None,
        endpoint: Optional[str] = None,
        user_agent: Optional[str] = None,
        timeout_s: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        apikey = apikey or get_default_apikey()
        if not apikey:
            raise ConfigurationError("API key is required (pass apikey or set TD_API_KEY).")
        self.apikey = apikey
        self.endpoint = normalize_endpoint(endpoint or get_default_endpoint() or DEFAULT_ENDPOINT)
        self.user_agent = user_agent or default_user_agent()
        self.timeout_s = timeout_s
        self._client = httpx.Client(
            base_url=self.endpoint,
            headers={
                "Authorization": f"TD1 {self.apikey}",
                "User-Agent": self.user_agent,
            },
            timeout=timeout_s,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _request(self, method: str, path: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        response = self._client.request(method, path, data=data)
        if response.is_error:
            raise APIError(response.status_code, _error_message(response))
        return response.json()

    def query(
        self,
        database: str,
        query: str,
        result_url: Optional[str] = None,
        priority: Union[int, str, None] = None,
        retry_limit: Optional[int] = None,
        params: Optional[Dict[str, Any]] = None,
        type: str = "presto",
    ) -> str:
        form: Dict[str, Any] = {"query": query}
        if result_url:
            form["result"] = result_url
        priority_value = normalize_priority(priority)
        if priority_value is not None:
            form["priority"] = priority_value
        if retry_limit is not None:
            form["retry_limit"] = retry_limit
        for key, value in (params or {}).items():
            form[key] = _form_value(value)
        data = self._request("POST", f"v3/job/issue/{type}/{database}", data=form)
        return str(data["job_id"])

    def show_job(self, job_id: str) -> Dict[str, Any]:
        return self._request("GET", f"v3/job/show/{job_id}")

    def kill(self, job_id: str) -> None:
        self._request("POST", f"v3/job/kill/{job_id}")

    def databases(self) -> pd.DataFrame:
        data = self._request("GET", "v3/database/list")
        return _make_dataframe(data.get("databases") or [], DATABASE_FIELDS)

    def tables(self, database: str) -> pd.DataFrame:
        data = self._request("GET", f"v3/table/list/{database}")
        return _make_dataframe(data.get("tables") or [], TABLE_FIELDS)

    def result_url(self, job_id: str) -> str:
        return urljoin(self.endpoint, f"v3/job/result/{job_id}?format=msgpack.gz")

    def result_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"TD1 {self.apikey}",
            "Accept-Encoding": "deflate, gzip",
            "User-Agent": result_user_agent(),
        }

    def open_result(self, job_id: str) -> httpx.Response:
        request = self._client.build_request("GET", self.result_url(job_id), headers=self.result_headers())
        response = self._client.send(request, stream=True)
        if response.is_error:
            response.read()
            response.close()
            raise APIError(response.status_code, _error_message(response))
        return response


def _form_value(value: Any) -> Any:
    if isinstance(value, list) and len(value) == 1:
        return value[0]
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)
    return str(body)


def _make_dataframe(items: Iterable[Dict[str, Any]], fields: List[str]) -> pd.DataFrame:
    rows = [[item.get(field) for field in fields] for item in items]
    return pd.DataFrame(rows, columns=fields)
