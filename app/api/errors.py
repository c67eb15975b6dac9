"""
API Errors - The ``{ok: false, error: CODE}`` response shape.

Routes raise ``APIError``; the handler registered in ``app.main`` renders it.
"""

from typing import Any

from fastapi import Request, status
from fastapi.responses import JSONResponse


class APIError(Exception):
    """HTTP error with a machine-readable code and optional extra body fields."""

    def __init__(
        self,
        status_code: int,
        error: str,
        headers: dict[str, str] | None = None,
        **extra: Any,
    ) -> None:
        self.status_code = status_code
        self.error = error
        self.headers = headers
        self.extra = extra
        super().__init__(f"{status_code} {error}")

    def to_body(self) -> dict[str, Any]:
        return {"ok": False, "error": self.error, **self.extra}


def unauthorized(error: str) -> APIError:
    return APIError(
        status.HTTP_401_UNAUTHORIZED,
        error,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    """Render APIError as JSON."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_body(), headers=exc.headers)
