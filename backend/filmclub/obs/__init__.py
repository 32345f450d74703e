"""Logging, metrics and health probes for the filmclub API."""

from __future__ import annotations

from fastapi import FastAPI

from filmclub.obs import logging as obs_logging
from filmclub.obs import middleware
from filmclub.settings import settings


def init(app: FastAPI) -> None:
	"""Configure JSON logging and add the request middleware, unless OBS_ENABLED is off."""
	if not settings.obs_enabled or getattr(app.state, "obs_installed", False):
		return
	obs_logging.configure_logging()
	middleware.install(app)
	app.state.obs_installed = True


__all__ = ["init"]
