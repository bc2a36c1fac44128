from dataclasses import dataclass

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from portal.platform.security.context import Principal


@dataclass
class RequestContext:
    request_id: str
    correlation_id: str
    principal: Principal | None = None

    @property
    def principal_id(self) -> str | None:
        return self.principal.id if self.principal is not None else None


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        correlation_id = getattr(request.state, "correlation_id", None)
        request.state.context = RequestContext(
            request_id=correlation_id or "",
            correlation_id=correlation_id or "",
        )
        response = await call_next(request)
        response.headers["x-request-id"] = request.state.context.request_id
        return response
