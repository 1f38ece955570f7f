import time

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse

from app.core.exceptions import AuthenticationError

logger = structlog.get_logger()

# Paths that skip authentication
PUBLIC_PATHS = {"/v1/health", "/", "/docs", "/openapi.json", "/redoc"}


class AuthMiddleware(BaseHTTPMiddleware):
    """Resolves the caller's owner identity from a Bearer identity token.

    API keys are never accepted here; they are issued by this service, not used to call it.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in PUBLIC_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        auth_header = request.headers.get("authorization", "")
        if not auth_header.startswith("Bearer "):
            error = AuthenticationError("Missing or malformed Authorization header.")
            return JSONResponse(status_code=error.status, content=error.to_dict())

        token = auth_header.removeprefix("Bearer ").strip()

        from app.services.jwt_service import JWTService

        jwt_service = JWTService()
        claims = jwt_service.decode_token(token)

        if claims is None:
            error = AuthenticationError("Invalid or expired token.")
            return JSONResponse(status_code=error.status, content=error.to_dict())

        request.state.user_id = claims["sub"]
        request.state.session_id = JWTService.session_id_from_claims(claims)
        request.state.token_expires_at = claims.get("exp")

        return await call_next(request)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request as structured JSON."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        latency_ms = round((time.perf_counter() - start) * 1000, 1)

        logger.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            latency_ms=latency_ms,
            user_id=getattr(request.state, "user_id", None),
        )

        return response
