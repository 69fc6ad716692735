"""
Structured API errors rendered as {"error": {"message", "code", "details"?}}.
"""
from typing import Any, Optional
from fastapi import Request
from fastapi.responses import JSONResponse


class APIError(Exception):
    """Error raised by route handlers; turned into a JSON body by api_error_handler."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: Optional[Any] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details


def error_body(code: str, message: str, details: Optional[Any] = None) -> dict:
    error = {"message": message, "code": code}
    if details is not None:
        error["details"] = details
    return {"error": error}


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.code, exc.message, exc.details),
    )
