"""Health check helpers for liveness and readiness probes."""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Dict, Tuple

from tunematch.infra import postgres
from tunematch.infra.redis import redis_client
from tunematch.settings import settings

LOGGER = logging.getLogger(__name__)


async def _redis_status(timeout: float) -> Dict[str, Any]:
	start = perf_counter()
	try:
		await asyncio.wait_for(redis_client.ping(), timeout=timeout)
		return {"ok": True, "latency_ms": round((perf_counter() - start) * 1000, 2)}
	except Exception as exc:  # pragma: no cover - depends on runtime
		LOGGER.warning("Redis readiness check failed", exc_info=True)
		return {"ok": False, "error": str(exc)}


async def _postgres_status(timeout: float) -> Dict[str, Any]:
	start = perf_counter()
	try:
		pool = await postgres.get_pool()
		async with pool.acquire() as conn:
			await asyncio.wait_for(conn.execute("SELECT 1"), timeout=timeout)
		return {"ok": True, "latency_ms": round((perf_counter() - start) * 1000, 2)}
	except Exception as exc:  # pragma: no cover - depends on runtime
		LOGGER.warning("Postgres readiness query failed", exc_info=True)
		return {"ok": False, "error": str(exc)}


async def liveness() -> Dict[str, Any]:
	return {"status": "ok"}


async def readiness() -> Tuple[int, Dict[str, Any]]:
	"""Check only the backend the stores are configured for."""
	timeout = settings.health_check_timeout_seconds
	checks: Dict[str, Any] = {}
	if settings.store_backend == "redis":
		checks["redis"] = await _redis_status(timeout)
	elif settings.store_backend == "postgres":
		checks["postgres"] = await _postgres_status(timeout)
	ok = all(check.get("ok") for check in checks.values())
	return (200 if ok else 503), {"status": "ok" if ok else "degraded", "backend": settings.store_backend, "checks": checks}
