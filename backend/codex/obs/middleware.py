"""Request instrumentation: request ids, Prometheus timings, one access log line per call."""

from __future__ import annotations

import time
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from codex.obs import logging as obs_logging
from codex.obs import metrics
from codex.settings import settings

REQUEST_ID_HEADER = "X-Request-Id"
# Probes are timed but not logged.
QUIET_PATHS = ("/health", "/metrics")


def _route_label(request: Request) -> str:
	"""Templated path once routing has run, so metrics are not labelled per item id."""
	route = request.scope.get("route")
	return getattr(route, "path", None) or "unmatched"


class ObservabilityMiddleware(BaseHTTPMiddleware):
	def __init__(self, app, *, enabled: bool = True) -> None:
		super().__init__(app)
		self._enabled = enabled
		self._logger = obs_logging.get_logger("codex.http")

	async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
		if not (self._enabled and settings.obs_enabled):
			return await call_next(request)

		request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
		request.state.request_id = request_id
		tokens = obs_logging.bind_context(
			request_id=request_id,
			route=request.url.path,
			user_id=request.headers.get("X-User-Id") if settings.is_dev() else None,
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
			metrics.observe_request(_route_label(request), request.method, status_code, elapsed)
			if not request.url.path.startswith(QUIET_PATHS):
				self._logger.info(
					"http_request",
					extra={
						"method": request.method,
						"status": status_code,
						"latency_ms": round(elapsed * 1000, 3),
					},
				)
			obs_logging.reset_context(tokens)

		response.headers.setdefault(REQUEST_ID_HEADER, request_id)
		return response


def install(app, *, enabled: bool = True) -> None:
	app.add_middleware(ObservabilityMiddleware, enabled=enabled)
