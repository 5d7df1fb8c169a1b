from typing import Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .application.errors import AuthError


def create_error_response(code: str, message: str, category: Optional[str] = None) -> dict:
    """Create a standardized error response"""
    return {
        "ok": False,
        "error": {
            "code": code,
            "category": category,
            "message": message,
        },
    }


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(exc.code, exc.message, exc.category.value),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Custom exception handler for HTTPException"""
    # Convert 403 from HTTPBearer to 401 for missing authentication
    if exc.status_code == 403 and "Not authenticated" in str(exc.detail):
        return JSONResponse(
            status_code=401,
            content=create_error_response("unauthorized", "Authentication required"),
        )

    code = "unauthorized" if exc.status_code == 401 else "http_error"
    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(code, str(exc.detail)),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{field}: {first.get('msg', 'invalid value')}" if field else "Invalid request body"
    return JSONResponse(status_code=422, content=create_error_response("invalid_request", message))
