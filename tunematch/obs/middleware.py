"""ASGI middleware for request metrics and request-scoped logging."""

from __future__ import annotations

import logging
import time
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from tunematch.obs import logging as obs_logging
from tunematch.obs import metrics
from tunematch.settings import settings

# probes and scrapes still count in metrics but only log at debug
_QUIET_PATHS = frozenset({"/health/live", "/health/ready", "/metrics"})


def _route_template(request: Request) -> str:
	route = request.scope.get("route")
	return getattr(route, "path", None) or request.url.path


class ObservabilityMiddleware(BaseHTTPMiddleware):
	def __init__(self, app, *, enabled: bool = True) -> None:
		super().__init__(app)
		self._enabled = enabled
		self._logger = obs_logging.get_logger("tunematch.http")

	async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
		if not (settings.obs_enabled and self._enabled):
			return await call_next(request)

		request_id = request.headers.get("X-Request-Id") or uuid4().hex
		request.state.request_id = request_id
		token = obs_logging.bind_context(
			request_id=request_id,
			route=request.url.path,
			user_id=request.headers.get("X-User-Id"),
		)
		started = time.perf_counter()
		status_code = 500
		try:
			response = await call_next(request)
			status_code = response.status_code
		except Exception:
			self._logger.exception("http_request_error", extra={"method": request.method})
			raise
		finally:
			elapsed = time.perf_counter() - started
			metrics.observe_request(_route_template(request), request.method, status_code, elapsed)
			level = logging.DEBUG if request.url.path in _QUIET_PATHS else logging.INFO
			self._logger.log(
				level,
				"http_request",
				extra={"status": status_code, "method": request.method, "latency_ms": round(elapsed * 1000, 3)},
			)
			obs_logging.reset_context(token)

		response.headers.setdefault("X-Request-Id", request_id)
		return response


def install(app, *, enabled: bool = True) -> None:
	app.add_middleware(ObservabilityMiddleware, enabled=enabled)
