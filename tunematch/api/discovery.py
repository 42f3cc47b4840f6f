"""Discovery feed, swipe and taste-vector endpoints."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from tunematch.domain.matching import container
from tunematch.domain.matching.schemas import (
	CandidateOut,
	DiscoveryFeedResponse,
	PostingStatusResponse,
	PreferencesResponse,
	SwipeOut,
	SwipePayload,
	SwipeResponse,
	SwipeStatsResponse,
	UnswipedResponse,
)
from tunematch.infra.auth import AuthenticatedUser, get_current_user
from tunematch.settings import settings

router = APIRouter(prefix="/discovery", tags=["discovery"])


@router.get("/feed", response_model=DiscoveryFeedResponse)
async def discovery_feed(
	*,
	limit: Optional[int] = Query(default=None, ge=1, le=15),
	explain: bool = Query(default=False),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> DiscoveryFeedResponse:
	requested = limit or settings.discovery_limit
	candidates = await container.get_candidate_pool().discover(auth_user.id, limit=requested)
	return DiscoveryFeedResponse(
		items=[CandidateOut.from_domain(candidate, explain=explain) for candidate in candidates],
		exhausted=len(candidates) < requested,
	)


@router.get("/unswiped", response_model=UnswipedResponse)
async def discovery_unswiped(
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> UnswipedResponse:
	post_ids = await container.get_candidate_pool().unswiped_post_ids(auth_user.id)
	return UnswipedResponse(post_ids=post_ids)


@router.get("/today", response_model=PostingStatusResponse)
async def discovery_today(
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> PostingStatusResponse:
	posting = await container.get_candidate_pool().posting_status(auth_user.id)
	return PostingStatusResponse.from_domain(posting)


@router.post("/swipes", response_model=SwipeResponse, status_code=status.HTTP_200_OK)
async def discovery_swipe(
	payload: SwipePayload,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> SwipeResponse:
	outcome = await container.get_swipe_processor().record_swipe(
		auth_user.id,
		payload.post_id,
		payload.direction,
		post_author_id=payload.post_author_id,
	)
	return SwipeResponse.from_domain(outcome)


@router.get("/swipes", response_model=list[SwipeOut])
async def discovery_swipe_history(
	limit: int = Query(default=50, ge=1, le=200),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> list[SwipeOut]:
	swipes = await container.get_swipe_processor().swipe_history(auth_user.id, limit)
	return [SwipeOut.from_domain(swipe) for swipe in swipes]


@router.get("/swipes/stats", response_model=SwipeStatsResponse)
async def discovery_swipe_stats(
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> SwipeStatsResponse:
	stats = await container.get_swipe_processor().swipe_stats(auth_user.id)
	return SwipeStatsResponse.from_domain(stats)


@router.get("/preferences", response_model=PreferencesResponse)
async def discovery_preferences(
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> PreferencesResponse:
	preferences, updated_at = await container.get_preference_learner().get_preferences(auth_user.id)
	return PreferencesResponse.from_domain(preferences, updated_at)


@router.post("/preferences/refresh", response_model=PreferencesResponse)
async def discovery_preferences_refresh(
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> PreferencesResponse:
	learner = container.get_preference_learner()
	await learner.refresh(auth_user.id)
	preferences, updated_at = await learner.get_preferences(auth_user.id)
	return PreferencesResponse.from_domain(preferences, updated_at)
