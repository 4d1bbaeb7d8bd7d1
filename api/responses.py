"""
Response envelope helpers.

Successful responses share one shape:

    {"success": true, "data": ..., "timestamp": "2024-01-01T00:00:00"}

Error responses are produced by `core.middleware.create_error_response`.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def success_response(
    data: Any = None, status_code: int = 200, message: Optional[str] = None
) -> JSONResponse:
    content = {
        "success": True,
        "data": jsonable_encoder(data),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if message:
        content["message"] = message
    return JSONResponse(status_code=status_code, content=content)
