"""Translate access errors into stable JSON responses carrying a request id."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from uuid import uuid4

from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.datastructures import MutableHeaders
from starlette.exceptions import HTTPException as StarletteHTTPException

from boardaccess.core.errors import (
    AccessError,
    AlreadyMemberError,
    DuplicatePendingInvitationError,
    EmailTakenError,
    InsufficientPermissionsError,
    InvalidOrExpiredInvitationError,
    InvalidRoleError,
    InvitationNotFoundError,
    NotFoundError,
    OwnerProtectedError,
)
from boardaccess.core.logging import get_logger

if TYPE_CHECKING:
    from fastapi import FastAPI
    from starlette.requests import Request
    from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"
UNPROCESSABLE_STATUS = 422

ACCESS_ERROR_STATUS: dict[type[AccessError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvitationNotFoundError: status.HTTP_404_NOT_FOUND,
    AlreadyMemberError: status.HTTP_409_CONFLICT,
    DuplicatePendingInvitationError: status.HTTP_409_CONFLICT,
    EmailTakenError: status.HTTP_409_CONFLICT,
    InvalidOrExpiredInvitationError: status.HTTP_410_GONE,
    OwnerProtectedError: status.HTTP_403_FORBIDDEN,
    InsufficientPermissionsError: status.HTTP_403_FORBIDDEN,
    InvalidRoleError: UNPROCESSABLE_STATUS,
}


def status_for(exc: AccessError) -> int:
    for error_type in type(exc).__mro__:
        if error_type in ACCESS_ERROR_STATUS:
            return ACCESS_ERROR_STATUS[error_type]
    return status.HTTP_400_BAD_REQUEST


class RequestIdMiddleware:
    """Assign a request id to every HTTP request and echo it back as a header."""

    def __init__(self, app: ASGIApp) -> None:
        self._app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self._app(scope, receive, send)
            return

        request_id = _incoming_request_id(scope) or uuid4().hex
        scope.setdefault("state", {})["request_id"] = request_id

        async def send_with_request_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                if REQUEST_ID_HEADER not in headers:
                    headers.append(REQUEST_ID_HEADER, request_id)
            await send(message)

        await self._app(scope, receive, send_with_request_id)


def _incoming_request_id(scope: Scope) -> str | None:
    header = REQUEST_ID_HEADER.lower().encode("latin-1")
    for key, value in scope.get("headers", []):
        if key == header:
            candidate = value.decode("latin-1").strip()
            return candidate or None
    return None


def _get_request_id(request: Request) -> str | None:
    request_id = getattr(request.state, "request_id", None)
    if isinstance(request_id, str) and request_id:
        return request_id
    return None


def _error_payload(
    *,
    detail: Any,
    request_id: str | None,
    code: str | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {"detail": detail}
    if code is not None:
        payload["code"] = code
    if request_id is not None:
        payload["request_id"] = request_id
    return payload


def _json_response(
    request: Request,
    *,
    status_code: int,
    detail: Any,
    code: str | None = None,
) -> JSONResponse:
    request_id = _get_request_id(request)
    headers = {REQUEST_ID_HEADER: request_id} if request_id else None
    return JSONResponse(
        status_code=status_code,
        content=_error_payload(detail=detail, request_id=request_id, code=code),
        headers=headers,
    )


async def _access_error_handler(request: Request, exc: Exception) -> JSONResponse:
    if not isinstance(exc, AccessError):
        return await _unhandled_exception_handler(request, exc)
    status_code = status_for(exc)
    logger.info(
        "http.access_error code=%s status=%s path=%s",
        exc.code,
        status_code,
        request.url.path,
    )
    return _json_response(request, status_code=status_code, detail=exc.message, code=exc.code)


async def _http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    if not isinstance(exc, StarletteHTTPException):
        return await _unhandled_exception_handler(request, exc)
    return _json_response(request, status_code=exc.status_code, detail=exc.detail)


async def _request_validation_handler(request: Request, exc: Exception) -> JSONResponse:
    if not isinstance(exc, RequestValidationError):
        return await _unhandled_exception_handler(request, exc)
    return _json_response(
        request,
        status_code=UNPROCESSABLE_STATUS,
        detail=jsonable_encoder(
            [{key: value for key, value in error.items() if key != "input"} for error in exc.errors()],
        ),
    )


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "http.unhandled_exception path=%s error=%s",
        request.url.path,
        exc.__class__.__name__,
        exc_info=exc,
    )
    return _json_response(
        request,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Internal Server Error",
    )


def install_error_handling(app: FastAPI) -> None:
    """Register the request id middleware and exception handlers on *app*."""
    app.add_middleware(RequestIdMiddleware)
    app.add_exception_handler(AccessError, _access_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
