"""Discovery pool assembly: exclusion, liveness, author lookup, ranking."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Iterable, Optional, TypeVar

from tunematch.domain.matching.clock import Clock
from tunematch.domain.matching.exceptions import Unavailable, ViewerNotFound
from tunematch.domain.matching.models import Candidate, Post, UserProfile
from tunematch.domain.matching.preferences import PreferenceLearner
from tunematch.domain.matching.repositories import ContentStore, MatchStore, ProfileStore, SwipeStore
from tunematch.domain.matching.scoring import CompatibilityScorer
from tunematch.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_CANDIDATES = 15
DEFAULT_FETCH_LIMIT = 100
DEFAULT_FETCH_TIMEOUT = 2.0
DEFAULT_LOOKUP_TIMEOUT = 2.0
DEFAULT_LOOKUP_CONCURRENCY = 16


@dataclass(slots=True)
class PostingStatus:
	"""A user's own posts inside the current liveness window."""

	user_id: str
	posts: list[Post]
	has_posted_today: bool
	time_until_reset: str


def rank(candidates: Iterable[Candidate], limit: int) -> list[Candidate]:
	"""Highest score first; ties go to the newer post, then the lower post id."""
	ordered = sorted(
		candidates,
		key=lambda candidate: (-candidate.score, -candidate.post.created_at.timestamp(), candidate.post.id),
	)
	return ordered[:limit]


class CandidatePool:
	def __init__(
		self,
		profiles: ProfileStore,
		content: ContentStore,
		swipes: SwipeStore,
		matches: MatchStore,
		learner: PreferenceLearner,
		*,
		scorer: Optional[CompatibilityScorer] = None,
		clock: Optional[Clock] = None,
		fetch_limit: int = DEFAULT_FETCH_LIMIT,
		fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
		lookup_timeout: float = DEFAULT_LOOKUP_TIMEOUT,
		lookup_concurrency: int = DEFAULT_LOOKUP_CONCURRENCY,
	) -> None:
		self._profiles = profiles
		self._content = content
		self._swipes = swipes
		self._matches = matches
		self._learner = learner
		self._scorer = scorer or CompatibilityScorer()
		self._clock = clock or Clock()
		self._fetch_limit = fetch_limit
		self._fetch_timeout = fetch_timeout
		self._lookup_timeout = lookup_timeout
		self._lookup_concurrency = max(1, lookup_concurrency)

	async def discover(self, viewer_id: str, *, limit: int = MAX_CANDIDATES) -> list[Candidate]:
		"""Up to ``limit`` (never more than 15) ranked candidates for ``viewer_id``.

		A missing viewer profile fails the request. Anything that goes wrong
		with an individual post or author only removes that post.
		"""
		started = time.perf_counter()
		limit = max(0, min(limit, MAX_CANDIDATES))
		try:
			await self._learner.refresh_best_effort(viewer_id)
			viewer = await self._load_viewer(viewer_id)
			excluded = await self._excluded_authors(viewer)
			swiped = await self._bounded(self._swipes.swiped_post_ids(viewer_id), "swipes_timeout")
			posts, complete = await self._active_posts(viewer_id)

			survivors = [post for post in posts if post.id not in swiped and post.author_id not in excluded]
			obs_metrics.inc_discovery_dropped("excluded", len(posts) - len(survivors))

			authors = await self._lookup_authors({post.author_id for post in survivors})
			scored: list[Candidate] = []
			for post in survivors:
				author = authors.get(post.author_id)
				if author is None:
					continue
				candidate = self._score(viewer, author, post)
				if candidate is not None:
					scored.append(candidate)
		except ViewerNotFound:
			obs_metrics.observe_discovery("viewer_not_found", time.perf_counter() - started, 0)
			raise
		except Unavailable:
			obs_metrics.observe_discovery("unavailable", time.perf_counter() - started, 0)
			raise

		result = rank(scored, limit)
		outcome = "ok" if complete and len(scored) == len(survivors) else "degraded"
		obs_metrics.observe_discovery(outcome, time.perf_counter() - started, len(result))
		logger.info(
			"discovery pool built",
			extra={
				"viewer_id": viewer_id,
				"fetched": len(posts),
				"eligible": len(survivors),
				"returned": len(result),
				"outcome": outcome,
			},
		)
		return result

	async def unswiped_post_ids(self, viewer_id: str) -> list[str]:
		"""Ids of active posts the viewer could still swipe, unscored, newest first."""
		viewer = await self._load_viewer(viewer_id)
		excluded = await self._excluded_authors(viewer)
		swiped = await self._bounded(self._swipes.swiped_post_ids(viewer_id), "swipes_timeout")
		posts, _ = await self._active_posts(viewer_id)
		return [post.id for post in posts if post.id not in swiped and post.author_id not in excluded]

	async def posting_status(self, user_id: str) -> PostingStatus:
		now = self._clock.now()
		posts = list(
			await self._bounded(
				self._content.active_posts_by_author(user_id, self._clock.last_boundary(now)),
				"content_timeout",
			)
		)
		latest = max((post.created_at for post in posts), default=None)
		return PostingStatus(
			user_id=user_id,
			posts=posts,
			has_posted_today=self._clock.has_posted_today(latest, now),
			time_until_reset=self._clock.time_until_reset(now),
		)

	async def _load_viewer(self, viewer_id: str) -> UserProfile:
		viewer = await self._bounded(self._profiles.get(viewer_id), "profile_timeout")
		if viewer is None:
			raise ViewerNotFound()
		return viewer

	async def _excluded_authors(self, viewer: UserProfile) -> set[str]:
		excluded = {viewer.user_id}
		excluded.update(viewer.friend_ids)
		excluded.update(viewer.matched_user_ids)
		excluded.update(await self._bounded(self._matches.active_match_ids(viewer.user_id), "matches_timeout"))
		return excluded

	async def _bounded(self, awaitable: Awaitable[T], reason: str) -> T:
		try:
			return await asyncio.wait_for(awaitable, timeout=self._fetch_timeout)
		except asyncio.TimeoutError as exc:
			logger.warning("discovery fetch timed out", extra={"reason": reason})
			raise Unavailable(reason) from exc

	async def _active_posts(self, viewer_id: str) -> tuple[list[Post], bool]:
		"""Read the live window. A storage failure or a stall mid-stream keeps what was read."""
		since = self._clock.last_boundary()
		posts: list[Post] = []

		async def _drain() -> None:
			async for post in self._content.active_posts_excluding_author(viewer_id, since, limit=self._fetch_limit):
				posts.append(post)
				if len(posts) >= self._fetch_limit:
					break

		try:
			await asyncio.wait_for(_drain(), timeout=self._fetch_timeout)
		except (asyncio.TimeoutError, Unavailable):
			logger.warning(
				"active post stream cut short; using partial results",
				extra={"viewer_id": viewer_id, "read": len(posts)},
			)
			return posts, False
		return posts, True

	async def _lookup_authors(self, author_ids: set[str]) -> dict[str, UserProfile]:
		semaphore = asyncio.Semaphore(self._lookup_concurrency)

		async def _lookup(author_id: str) -> tuple[str, Optional[UserProfile]]:
			async with semaphore:
				try:
					profile = await asyncio.wait_for(self._profiles.get(author_id), timeout=self._lookup_timeout)
				except asyncio.TimeoutError:
					obs_metrics.inc_discovery_dropped("author_timeout")
					logger.warning("author lookup timed out", extra={"author_id": author_id})
					return author_id, None
				except Unavailable:
					obs_metrics.inc_discovery_dropped("author_unavailable")
					logger.warning("author lookup unavailable", extra={"author_id": author_id})
					return author_id, None
				except Exception:
					obs_metrics.inc_discovery_dropped("author_error")
					logger.exception("author lookup failed", extra={"author_id": author_id})
					return author_id, None
			if profile is None:
				obs_metrics.inc_discovery_dropped("author_missing")
			return author_id, profile

		# cancelling the caller cancels every lookup still pending
		results = await asyncio.gather(*(_lookup(author_id) for author_id in sorted(author_ids)))
		return {author_id: profile for author_id, profile in results if profile is not None}

	def _score(self, viewer: UserProfile, author: UserProfile, post: Post) -> Optional[Candidate]:
		try:
			breakdown = self._scorer.score_breakdown(viewer, author, post)
		except Exception:
			obs_metrics.inc_discovery_dropped("score_error")
			logger.exception("scoring failed", extra={"post_id": post.id})
			return None
		return Candidate(post=post, score=breakdown.total, breakdown=breakdown)


__all__ = ["CandidatePool", "PostingStatus", "MAX_CANDIDATES", "rank"]
