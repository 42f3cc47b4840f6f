"""JSON logging with request-scoped context for the matching service."""

from __future__ import annotations

import json
import logging
import random
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from tunematch.settings import settings

_ROOT_LOGGER = "tunematch"

# request_id, route and user_id for the request currently being served
_CONTEXT: ContextVar[Mapping[str, str]] = ContextVar("tunematch_log_context", default={})

# Free-text profile answers and captions are user content; ids and scores are not.
_REDACTED_KEYS = (
	"token",
	"secret",
	"authorization",
	"password",
	"questionnaire",
	"caption",
	"memory",
	"display_name",
	"soundtrack",
)

_MAX_TEXT = 256
_MAX_ITEMS = 10

_RECORD_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {"message", "asctime"}

_NOISY_LOGGERS = ("apscheduler", "asyncio")


def bind_context(**fields: Optional[str]) -> Token:
	"""Merge non-empty ``fields`` into the log context; pass the token to ``reset_context``."""
	merged = dict(_CONTEXT.get())
	merged.update({key: value for key, value in fields.items() if value})
	return _CONTEXT.set(merged)


def reset_context(token: Token) -> None:
	_CONTEXT.reset(token)


def current_context() -> Mapping[str, str]:
	return _CONTEXT.get()


def _clip(value: Any) -> Any:
	if isinstance(value, str):
		return value if len(value) <= _MAX_TEXT else value[:_MAX_TEXT] + "…"
	if isinstance(value, Mapping):
		clipped = {str(key): _field(str(key), item) for key, item in list(value.items())[:_MAX_ITEMS]}
		if len(value) > _MAX_ITEMS:
			clipped["…"] = f"+{len(value) - _MAX_ITEMS} keys"
		return clipped
	if isinstance(value, (list, tuple, set, frozenset)):
		items = [_clip(item) for item in list(value)[:_MAX_ITEMS]]
		if len(value) > _MAX_ITEMS:
			items.append(f"+{len(value) - _MAX_ITEMS} more")
		return items
	if value is None or isinstance(value, (bool, int, float)):
		return value
	return str(value)


def _field(key: str, value: Any) -> Any:
	lowered = key.lower()
	if any(marker in lowered for marker in _REDACTED_KEYS):
		return "[redacted]"
	return _clip(value)


class JSONLogFormatter(logging.Formatter):
	"""One JSON object per line: service identity, request context, then ``extra`` fields."""

	def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (match logging api)
		payload: Dict[str, Any] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"logger": record.name,
			"msg": record.getMessage(),
			"service": settings.service_name,
			"env": settings.environment,
			"commit": settings.git_commit,
		}
		payload.update(_CONTEXT.get())
		if record.exc_info:
			payload["exc_info"] = self.formatException(record.exc_info)
		for key, value in record.__dict__.items():
			if key in _RECORD_ATTRS or key in payload:
				continue
			payload[key] = _field(key, value)
		return json.dumps(payload, separators=(",", ":"), default=str)


class InfoSamplingFilter(logging.Filter):
	"""Keep a random share of info records; everything else passes."""

	def __init__(self, rate: Optional[float] = None) -> None:
		super().__init__()
		configured = settings.obs_log_sampling_rate_info if rate is None else rate
		self._rate = max(0.0, min(1.0, configured))

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno != logging.INFO or self._rate >= 1.0:
			return True
		return random.random() < self._rate


def configure_logging() -> logging.Logger:
	root = logging.getLogger()
	root.handlers.clear()
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	handler.addFilter(InfoSamplingFilter())
	root.addHandler(handler)
	root.setLevel(settings.obs_log_level)
	for name in _NOISY_LOGGERS:
		logging.getLogger(name).setLevel(logging.WARNING)
	return logging.getLogger(_ROOT_LOGGER)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(name or _ROOT_LOGGER)
