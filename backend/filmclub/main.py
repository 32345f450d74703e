"""ASGI entrypoint: ``uvicorn filmclub.main:app``."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from filmclub.api import ops
from filmclub.api import router as v1_router
from filmclub.api.errors import install_error_handlers
from filmclub.infra import postgres
from filmclub.infra.redis import close_redis
from filmclub.obs import init as obs_init
from filmclub.settings import settings

_DEV_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]


def _cors_origins() -> list[str]:
	origins = [origin for origin in settings.cors_allow_origins if origin]
	# Credentialed CORS cannot use a wildcard origin.
	if not origins or "*" in origins:
		return list(_DEV_ORIGINS) if settings.is_dev() else []
	return origins


@asynccontextmanager
async def lifespan(app: FastAPI):
	await postgres.init_pool()
	try:
		yield
	finally:
		await postgres.close_pool()
		await close_redis()


def create_app() -> FastAPI:
	application = FastAPI(title="Filmclub API", lifespan=lifespan)
	install_error_handlers(application)
	application.add_middleware(
		CORSMiddleware,
		allow_origins=_cors_origins(),
		allow_credentials=True,
		allow_methods=["*"],
		allow_headers=["*"],
	)
	obs_init(application)
	application.include_router(ops.router)
	application.include_router(v1_router)
	return application


app = create_app()
