"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from tunematch.api import discovery, matches, ops
from tunematch.api.errors import install_error_handlers
from tunematch.domain.matching import container
from tunematch.infra import postgres
from tunematch.infra.postgres_stores import ensure_schema
from tunematch.infra.redis import redis_client
from tunematch.infra.scheduler import JobScheduler
from tunematch.obs import init as obs_init
from tunematch.settings import settings

logger = logging.getLogger(__name__)


async def configure_stores() -> None:
	if settings.store_backend == "redis":
		container.configure_redis(redis_client)
	elif settings.store_backend == "postgres":
		pool = await postgres.init_pool()
		await ensure_schema(pool)
		container.configure_postgres(pool)


@asynccontextmanager
async def lifespan(app: FastAPI):
	await configure_stores()
	scheduler: JobScheduler | None = None
	if settings.expiry_schedule_enabled:
		scheduler = JobScheduler(timezone=settings.liveness_timezone)
		scheduler.schedule_daily("post-expiry", container.get_expiry_job().run, hour=settings.liveness_hour)
		scheduler.start()
	app.state.scheduler = scheduler
	logger.info(
		"tunematch started",
		extra={"backend": settings.store_backend, "commit": settings.git_commit, "expiry_scheduled": scheduler is not None},
	)
	try:
		yield
	finally:
		if scheduler is not None:
			scheduler.shutdown()
		await postgres.close_pool()


app = FastAPI(title="tunematch", lifespan=lifespan)
install_error_handlers(app)
obs_init(app)

app.include_router(discovery.router)
app.include_router(matches.router)
app.include_router(ops.router)
