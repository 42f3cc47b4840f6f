"""Logging and request instrumentation for the tunematch app."""

from __future__ import annotations

from fastapi import FastAPI

from tunematch.obs import logging as obs_logging
from tunematch.obs import middleware
from tunematch.settings import settings


def init(app: FastAPI) -> None:
	"""Install JSON logging and the request middleware once per app."""
	if not settings.obs_enabled or getattr(app.state, "obs_installed", False):
		return
	obs_logging.configure_logging()
	middleware.install(app)
	app.state.obs_installed = True


__all__ = ["init"]
