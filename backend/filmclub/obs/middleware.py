"""Request middleware: request ids, per-request log context and HTTP metrics."""

from __future__ import annotations

import time
from typing import Any, Dict
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from filmclub.obs import logging as obs_logging
from filmclub.obs import metrics
from filmclub.settings import settings

REQUEST_ID_HEADER = "X-Request-Id"

# Path parameters worth repeating on the access log line.
_LOGGED_PATH_PARAMS = ("club_id", "proposal_id", "meeting_id")


def _route_template(request: Request) -> str:
	# Routing fills scope["route"] during call_next; before that only the raw path is known.
	route = request.scope.get("route")
	return getattr(route, "path", None) or request.url.path


def _access_fields(request: Request, status_code: int, elapsed: float) -> Dict[str, Any]:
	fields: Dict[str, Any] = {
		"method": request.method,
		"status": status_code,
		"latency_ms": round(elapsed * 1000, 3),
	}
	path_params = request.scope.get("path_params") or {}
	for name in _LOGGED_PATH_PARAMS:
		if name in path_params:
			fields[name] = str(path_params[name])
	return fields


class ObservabilityMiddleware(BaseHTTPMiddleware):
	def __init__(self, app, *, enabled: bool = True) -> None:
		super().__init__(app)
		self._enabled = enabled
		self._logger = obs_logging.get_logger("filmclub.http")

	async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
		if not (self._enabled and settings.obs_enabled):
			return await call_next(request)

		request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
		request.state.request_id = request_id
		token = obs_logging.bind_context(request_id=request_id, user_id=request.headers.get("X-User-Id"))
		started = time.perf_counter()
		status_code = 500
		try:
			response = await call_next(request)
			status_code = response.status_code
		except Exception:
			self._logger.exception("http_request_error", extra={"method": request.method, "path": request.url.path})
			raise
		finally:
			elapsed = time.perf_counter() - started
			route = _route_template(request)
			metrics.observe_request(route, request.method, status_code, elapsed)
			self._logger.info("http_request", extra={"route": route, **_access_fields(request, status_code, elapsed)})
			obs_logging.reset_context(token)

		response.headers.setdefault(REQUEST_ID_HEADER, request_id)
		return response


def install(app, *, enabled: bool = True) -> None:
	app.add_middleware(ObservabilityMiddleware, enabled=enabled)
