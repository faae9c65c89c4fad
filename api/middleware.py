"""Request-scoped middleware for API requests."""

from uuid import UUID, uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from utils.user_context import ActorContext, SYSTEM_USER_ID, actor_context


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns a unique request ID to every request."""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class ActorContextMiddleware(BaseHTTPMiddleware):
    """
    Sets the acting user for the duration of the request.

    The user ID comes from the X-User-Id header, which the upstream
    authentication gateway sets after verifying the caller. Requests without
    it act as the system user. The client IP is the first X-Forwarded-For hop
    when present.

    Must run inside RequestIDMiddleware.
    """

    USER_HEADER = "X-User-Id"

    async def dispatch(self, request: Request, call_next):
        raw_user_id = request.headers.get(self.USER_HEADER)
        if raw_user_id:
            try:
                user_id = UUID(raw_user_id)
            except ValueError:
                return JSONResponse(
                    status_code=400,
                    content=error_response(
                        ErrorCodes.INVALID_REQUEST,
                        f"Invalid {self.USER_HEADER} header",
                    ).model_dump(mode="json"),
                )
        else:
            user_id = SYSTEM_USER_ID

        actor = ActorContext(
            user_id=user_id,
            user_ip=_client_ip(request),
            request_id=getattr(request.state, "request_id", None),
        )
        request.state.user_id = user_id

        with actor_context(actor):
            return await call_next(request)


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client is not None:
        return request.client.host
    return "127.0.0.1"
