"""Request-scoped middleware for API requests."""

from uuid import UUID, uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from utils.tenant_context import clear_tenant, set_tenant


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns a unique request ID to every request."""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class TenantContextMiddleware(BaseHTTPMiddleware):
    """Sets the acting user and organization for the request.

    The identity is read from the X-User-ID and X-Organization-ID headers,
    which the authenticating gateway in front of this service sets. Both
    must be valid UUIDs. The context is cleared after the request.

    Public paths bypass the check entirely.
    """

    USER_HEADER = "X-User-ID"
    ORGANIZATION_HEADER = "X-Organization-ID"

    PUBLIC_PATHS = [
        "/health",
        "/docs",
        "/openapi.json",
    ]

    def _is_public_path(self, path: str) -> bool:
        for public_path in self.PUBLIC_PATHS:
            if path == public_path or path.startswith(public_path):
                return True
        return False

    def _unauthenticated(self, request: Request, message: str) -> JSONResponse:
        return JSONResponse(
            status_code=401,
            content=error_response(
                ErrorCodes.NOT_AUTHENTICATED,
                message,
                getattr(request.state, "request_id", None),
            ).model_dump(mode="json"),
        )

    async def dispatch(self, request: Request, call_next):
        if self._is_public_path(request.url.path):
            return await call_next(request)

        user_header = request.headers.get(self.USER_HEADER)
        organization_header = request.headers.get(self.ORGANIZATION_HEADER)
        if not user_header or not organization_header:
            return self._unauthenticated(request, "User and organization headers are required")

        try:
            user_id = UUID(user_header)
            organization_id = UUID(organization_header)
        except ValueError:
            return self._unauthenticated(request, "User and organization IDs must be UUIDs")

        set_tenant(user_id, organization_id)
        request.state.user_id = user_id
        request.state.organization_id = organization_id

        try:
            return await call_next(request)
        finally:
            clear_tenant()
