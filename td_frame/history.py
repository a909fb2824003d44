from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict

from .config import ConfigLoader, get_history_path

logger = logging.getLogger(__name__)


def history_enabled() -> bool:
    return ConfigLoader().load()["app"]["history"]["enabled"]


def append_history(entry: Dict[str, Any]) -> None:
    entry = dict(entry)
    entry.setdefault("ts", datetime.now(timezone.utc).isoformat())
    try:
        if not history_enabled():
            return
        path = get_history_path()
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "a", encoding="utf-8") as handle:
            handle.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")
    except OSError as exc:
        logger.warning("could not write %s history entry: %s", entry.get("status"), exc)
