from __future__ import annotations

import math
from typing import Any


def ok(data: Any = None, message: str | None = None) -> dict:
    body: dict[str, Any] = {"success": True, "data": data}
    if message:
        body["message"] = message
    return body


def error(message: str) -> dict:
    return {"success": False, "error": message}


def pagination(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": math.ceil(total / limit) if limit else 0,
    }
