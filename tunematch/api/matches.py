"""Match listing and lifecycle endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from tunematch.domain.matching import container
from tunematch.domain.matching.schemas import MatchListResponse, MatchOut, MatchStatsResponse
from tunematch.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/matches", tags=["matches"])


@router.get("", response_model=MatchListResponse)
async def list_matches(
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> MatchListResponse:
	matches = await container.get_match_service().list_matches(auth_user.id)
	return MatchListResponse(items=[MatchOut.for_viewer(match, auth_user.id) for match in matches])


@router.get("/stats", response_model=MatchStatsResponse)
async def match_stats(
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> MatchStatsResponse:
	stats = await container.get_match_service().match_stats(auth_user.id)
	return MatchStatsResponse.from_domain(stats)


@router.post("/{match_id}/deactivate", response_model=MatchOut)
async def deactivate_match(
	match_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> MatchOut:
	match = await container.get_match_service().deactivate(match_id, auth_user.id)
	return MatchOut.for_viewer(match, auth_user.id)
