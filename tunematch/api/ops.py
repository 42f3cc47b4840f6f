"""Operations endpoints: health probes, Prometheus scrape and maintenance triggers."""

from __future__ import annotations

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from tunematch.domain.matching import container
from tunematch.domain.matching.exceptions import Unavailable
from tunematch.obs import health
from tunematch.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["ops"])


def _presented_token(x_admin_token: Optional[str], authorization: Optional[str]) -> str:
	if x_admin_token:
		return x_admin_token.strip()
	if authorization and authorization.lower().startswith("bearer "):
		return authorization[7:].strip()
	return ""


async def require_admin(
	x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
	authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> None:
	expected = settings.obs_admin_token
	if not expected:
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="admin_token_not_configured")
	if not hmac.compare_digest(_presented_token(x_admin_token, authorization), expected):
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="forbidden")


async def require_metrics_access(
	x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
	authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> None:
	if not settings.obs_metrics_public:
		await require_admin(x_admin_token=x_admin_token, authorization=authorization)


@router.get("/health/live")
async def health_live() -> dict[str, str]:
	return await health.liveness()


@router.get("/health/ready")
async def health_ready() -> Response:
	status_code, payload = await health.readiness()
	return JSONResponse(content=payload, status_code=status_code)


@router.get("/metrics")
async def prometheus_metrics(_: None = Depends(require_metrics_access)) -> Response:
	return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.post("/ops/expiry")
async def trigger_expiry(_: None = Depends(require_admin)) -> dict[str, int]:
	"""Run the expired-post purge now instead of waiting for the daily schedule."""
	try:
		return await container.get_expiry_job().run()
	except Unavailable:
		raise
	except Exception as exc:
		logger.exception("manual expiry run failed")
		raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, detail="expiry_failed") from exc
