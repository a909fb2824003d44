from __future__ import annotations

import copy
import json
import logging
import os
from typing import Any, Dict

import yaml
from platformdirs import user_config_dir, user_state_dir

from .environ import get_default_apikey, get_default_endpoint

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://api.treasuredata.com/"

DEFAULT_CONFIG: Dict[str, Any] = {
    "app": {
        "apikey": None,
        "endpoint": None,
        "database": None,
        "engine": {
            "type": "presto",
            "header": True,
            "show_progress": 5.0,
            "clear_progress": True,
            "poll_interval": 2.0,
        },
        "fetch": {
            "chunk_size": 16384,
            "http_timeout_s": 60.0,
        },
        "history": {
            "enabled": True,
        },
        "logging": {
            "level": "INFO",
            "format": "text",
        },
    }
}


class ConfigLoader:
    def __init__(self) -> None:
        self.config_dir = user_config_dir("td_frame")
        self.config_path = f"{self.config_dir}/config.yaml"
        self._config = None

    def load(self) -> Dict[str, Any]:
        if self._config is not None:
            return self._config
        data = copy.deepcopy(DEFAULT_CONFIG)
        try:
            with open(self.config_path, "r", encoding="utf-8") as handle:
                loaded = yaml.safe_load(handle) or {}
            if not isinstance(loaded, dict):
                raise yaml.YAMLError(f"expected a mapping, got {type(loaded).__name__}")
            data = self._merge(data, loaded)
        except FileNotFoundError:
            self._ensure_default_written(data)
        except (OSError, yaml.YAMLError) as exc:
            logger.warning("ignoring unreadable config %s: %s", self.config_path, exc)
        self._config = self._validate(data)
        return self._config

    def _ensure_default_written(self, data: Dict[str, Any]) -> None:
        try:
            os.makedirs(self.config_dir, exist_ok=True)
            with open(self.config_path, "w", encoding="utf-8") as handle:
                yaml.safe_dump(data, handle, sort_keys=False)
        except OSError as exc:
            logger.warning("could not write default config %s: %s", self.config_path, exc)

    def _merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(base.get(key), dict):
                base[key] = self._merge(base[key], value)
            else:
                base[key] = value
        return base

    def _validate(self, data: Dict[str, Any]) -> Dict[str, Any]:
        def lookup(path: str) -> Any:
            current: Any = data
            for part in path.split("."):
                current = current[part]
            return current

        def safe_int(path: str, default: int) -> int:
            try:
                current = lookup(path)
            except (KeyError, TypeError):
                return default
            if isinstance(current, int) and not isinstance(current, bool) and current > 0:
                return current
            return default

        def safe_float(path: str, default: float) -> float:
            try:
                current = lookup(path)
            except (KeyError, TypeError):
                return default
            if isinstance(current, (int, float)) and not isinstance(current, bool) and current > 0:
                return float(current)
            return default

        app = data["app"]
        engine = app["engine"]
        engine["poll_interval"] = safe_float("app.engine.poll_interval", 2.0)
        show_progress = engine.get("show_progress")
        if not isinstance(show_progress, (bool, int, float)) or (
            not isinstance(show_progress, bool) and show_progress < 0
        ):
            engine["show_progress"] = 5.0
        if not isinstance(engine.get("header"), (bool, str)):
            engine["header"] = True
        engine["clear_progress"] = bool(engine.get("clear_progress", True))
        app["fetch"]["chunk_size"] = safe_int("app.fetch.chunk_size", 16384)
        app["fetch"]["http_timeout_s"] = safe_float("app.fetch.http_timeout_s", 60.0)
        app["history"]["enabled"] = bool(app["history"].get("enabled", True))

        app["apikey"] = app.get("apikey") or get_default_apikey()
        app["endpoint"] = app.get("endpoint") or get_default_endpoint() or DEFAULT_ENDPOINT
        return data

    def as_json(self) -> str:
        return json.dumps(self.load())


def get_history_path() -> str:
    history_dir = user_state_dir("td_frame")
    return f"{history_dir}/history.jsonl"
