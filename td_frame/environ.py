from __future__ import annotations

import os
from typing import Optional


def _get_value(key: str) -> Optional[str]:
    value = os.environ.get(key, "").strip()
    if not value:
        return None
    return value


def get_default_apikey() -> Optional[str]:
    return _get_value("TD_API_KEY")


def get_default_endpoint() -> Optional[str]:
    return _get_value("TD_API_SERVER")
