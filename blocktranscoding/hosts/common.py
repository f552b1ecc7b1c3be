from __future__ import annotations

from typing import Any, Optional


def safe_int(x: Any) -> Optional[int]:
    try:
        if x is None:
            return None
        return int(str(x))
    except (TypeError, ValueError):
        return None


def safe_str(x: Any) -> str:
    return "" if x is None else str(x)
