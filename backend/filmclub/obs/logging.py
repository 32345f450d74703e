"""JSON logs with per-request context.

The middleware binds ``request_id``, ``route``, ``user_id`` and the club or
proposal in the path; every record emitted while the request runs carries
them. Proposal payloads hold free-text notes and participant lists, so they
are redacted along with credentials.
"""

from __future__ import annotations

import json
import logging
import random
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from filmclub.settings import settings

_LOGGER_NAME = "filmclub"

_CONTEXT: ContextVar[Mapping[str, str]] = ContextVar("filmclub_log_context", default={})

_REDACTED_KEYS = ("token", "secret", "authorization", "password", "payload", "body", "note")
_MAX_STRING = 256
_MAX_ITEMS = 10

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "taskName"}


def bind_context(**fields: Optional[str]) -> Token:
	"""Add fields to the log context; ``None`` values are ignored."""
	merged = dict(_CONTEXT.get())
	merged.update({key: str(value) for key, value in fields.items() if value is not None})
	return _CONTEXT.set(merged)


def reset_context(token: Token) -> None:
	_CONTEXT.reset(token)


def current_request_id() -> Optional[str]:
	return _CONTEXT.get().get("request_id")


def _clean(key: str, value: Any) -> Any:
	if any(word in key.lower() for word in _REDACTED_KEYS):
		return "[redacted]"
	if isinstance(value, str) and len(value) > _MAX_STRING:
		return value[:_MAX_STRING] + "…"
	if isinstance(value, Mapping):
		items = list(value.items())
		cleaned = {str(k): _clean(str(k), v) for k, v in items[:_MAX_ITEMS]}
		if len(items) > _MAX_ITEMS:
			cleaned["…"] = f"+{len(items) - _MAX_ITEMS} keys"
		return cleaned
	if isinstance(value, (list, tuple, set)):
		values = list(value)
		cleaned_list = [_clean(key, v) for v in values[:_MAX_ITEMS]]
		if len(values) > _MAX_ITEMS:
			cleaned_list.append("…")
		return cleaned_list
	return value


class JSONLogFormatter(logging.Formatter):
	def format(self, record: logging.LogRecord) -> str:  # noqa: A003
		entry: Dict[str, Any] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"logger": record.name,
			"msg": record.getMessage(),
			"service": settings.service_name,
			"env": settings.environment,
			"commit": settings.git_commit,
		}
		entry.update(_CONTEXT.get())
		for key, value in vars(record).items():
			if key not in _RECORD_ATTRS and key not in entry:
				entry[key] = _clean(key, value)
		if record.exc_info:
			entry["exc_info"] = self.formatException(record.exc_info)
		return json.dumps(entry, separators=(",", ":"), default=str)


class InfoSamplingFilter(logging.Filter):
	"""Drop a share of INFO records; anything louder always passes."""

	def __init__(self, rate: Optional[float] = None) -> None:
		super().__init__()
		self._rate = rate

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno != logging.INFO:
			return True
		rate = settings.obs_log_sampling_rate_info if self._rate is None else self._rate
		return rate >= 1.0 or random.random() < max(0.0, rate)


def configure_logging() -> logging.Logger:
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	handler.addFilter(InfoSamplingFilter())
	root = logging.getLogger()
	root.handlers[:] = [handler]
	root.setLevel(settings.obs_log_level)
	# The http_request record from the middleware replaces uvicorn's access line.
	logging.getLogger("uvicorn.access").disabled = True
	return logging.getLogger(_LOGGER_NAME)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(name or _LOGGER_NAME)
