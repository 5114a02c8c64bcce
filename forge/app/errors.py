"""API error type and the handlers that render it."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class APIError(Exception):
    """An error with a stable ``{error, code, message?}`` response body.

    Args:
        status_code: HTTP status to respond with
        error: Short human-readable summary
        code: Stable machine-readable code, e.g. ``EMBED_3007``
        message: Optional detail (usually the underlying exception text)
    """

    def __init__(
        self,
        status_code: int,
        error: str,
        code: str,
        message: str | None = None,
        headers: dict[str, str] | None = None,
    ):
        super().__init__(message or error)
        self.status_code = status_code
        self.error = error
        self.code = code
        self.message = message
        self.headers = headers

    def to_dict(self) -> dict[str, str]:
        body = {"error": self.error, "code": self.code}
        if self.message:
            body["message"] = self.message
        return body


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} -> {exc.code}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers
    )


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    problems = [
        f"{'.'.join(str(part) for part in err['loc'] if part != 'body')}: {err['msg']}"
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={
            "error": "Invalid request",
            "code": "VALIDATION_ERROR",
            "message": "; ".join(problems),
        },
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
