import time
import logging
import uuid
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("token_relay.request")


def _store_kind(request: Request) -> str:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    return orchestrator.store.kind if orchestrator else "not_initialized"


def _route_name(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Tags every request with an id and logs which route handled it against which token store.

    Responses carry ``X-Request-ID`` and ``X-Token-Store`` so a relay result can be
    matched to the server log line and to the store that supplied its credential.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        store = _store_kind(request)
        started = time.perf_counter()

        logger.info(f"[{request_id}] {request.method} {request.url.path} store={store}")

        try:
            response = await call_next(request)
        except Exception as e:
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.error(
                f"[{request_id}] FAILED {_route_name(request)} after {elapsed_ms:.1f}ms: {e}"
            )
            raise

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"[{request_id}] {response.status_code} {_route_name(request)} in {elapsed_ms:.1f}ms"
        )
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Token-Store"] = store
        return response
