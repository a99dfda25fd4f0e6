from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from auth_service.core.errors import AuthServiceError, ErrorCode
from auth_service.core.i18n import t, get_locale_from_header


def _request_locale(request: Request) -> str:
    return get_locale_from_header(request.headers.get("Accept-Language"))


def localized_error_response(
    request: Request,
    error_key: str,
    status_code: int = 400,
    error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
    error_extra: dict | None = None,
    headers: dict | None = None,
    **kwargs
) -> JSONResponse:
    """
    Create a localized error response.

    Args:
        request: FastAPI request object
        error_key: Translation key for error message
        status_code: HTTP status code
        error_code: Machine-readable error code
        error_extra: Additional fields for the error object
        headers: Extra response headers
        **kwargs: Additional format parameters

    Returns:
        JSONResponse like {"success": false, "message": ..., "error": {"code": ...}}
    """
    message = t(error_key, _request_locale(request), **kwargs)

    error = {"code": error_code.value}
    if error_extra:
        error.update(error_extra)

    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({"success": False, "message": message, "error": error}),
        headers=headers,
    )


def service_error_response(request: Request, exc: AuthServiceError) -> JSONResponse:
    """Render a domain / infrastructure error raised by the services."""
    extra = exc.extra()
    headers = None
    if "retry_after" in extra:
        headers = {"Retry-After": str(extra["retry_after"])}

    return localized_error_response(
        request,
        f"errors.{exc.message_key}",
        status_code=exc.status_code,
        error_code=exc.code,
        error_extra=extra,
        headers=headers,
    )


def localized_success_response(
    request: Request,
    success_key: str,
    data: Any = None,
    status_code: int = 200,
    **kwargs
) -> JSONResponse:
    """
    Create a localized success response.

    Args:
        request: FastAPI request object
        success_key: Translation key for success message
        data: Response payload (pydantic models are dumped without None fields)
        status_code: HTTP status code
        **kwargs: Additional format parameters

    Returns:
        JSONResponse like {"success": true, "message": ..., "data": ...}
    """
    message = t(success_key, _request_locale(request), **kwargs)

    response_data: dict[str, Any] = {"success": True, "message": message}
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json", exclude_none=True)
    if data is not None:
        response_data["data"] = data

    return JSONResponse(status_code=status_code, content=jsonable_encoder(response_data))
