"""Swipe recording and the mutual-like match protocol."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from tunematch.domain.matching.exceptions import Conflict, InvalidSwipe, NotFound, Unavailable
from tunematch.domain.matching.models import Match, Swipe, SwipeDirection
from tunematch.domain.matching.repositories import (
	ContentStore,
	MatchCreation,
	MatchNotifier,
	MatchStore,
	SwipeStore,
)
from tunematch.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50
STATS_SCAN_LIMIT = 10_000


@dataclass(slots=True)
class SwipeOutcome:
	swipe: Swipe
	match: Optional[Match] = None
	match_created: bool = False

	@property
	def match_id(self) -> Optional[str]:
		return self.match.id if self.match else None


@dataclass(slots=True)
class SwipeStats:
	total: int
	likes: int
	passes: int

	@property
	def like_ratio(self) -> float:
		if self.total == 0:
			return 0.0
		return self.likes / self.total


class SwipeProcessor:
	"""Persists swipes and turns reciprocal likes into exactly one match per pair."""

	def __init__(
		self,
		content: ContentStore,
		swipes: SwipeStore,
		matches: MatchStore,
		*,
		notifier: Optional[MatchNotifier] = None,
		now: Optional[Callable[[], datetime]] = None,
	) -> None:
		self._content = content
		self._swipes = swipes
		self._matches = matches
		self._notifier = notifier
		self._now = now or (lambda: datetime.now(timezone.utc))
		self._detached: set[asyncio.Task] = set()

	async def record_swipe(
		self,
		swiper_id: str,
		post_id: str,
		direction: SwipeDirection | str,
		*,
		post_author_id: Optional[str] = None,
	) -> SwipeOutcome:
		"""Record a swipe and, for a like, check for a reciprocal like.

		The write and the reciprocity check run to completion even when the
		caller is cancelled, since they may create a match.
		"""
		try:
			parsed = SwipeDirection.parse(direction)
		except ValueError as exc:
			raise InvalidSwipe("invalid_direction") from exc

		post = await self._content.get_post(post_id)
		if post is None:
			raise NotFound("post_not_found")
		if post_author_id is not None and post_author_id != post.author_id:
			raise InvalidSwipe("author_mismatch")
		if post.author_id == swiper_id:
			raise InvalidSwipe("self_swipe")

		swipe = Swipe(
			swiper_id=swiper_id,
			post_id=post.id,
			post_author_id=post.author_id,
			direction=parsed,
			created_at=self._now(),
		)
		task = asyncio.ensure_future(self._apply(swipe))
		try:
			return await asyncio.shield(task)
		except asyncio.CancelledError:
			self._detached.add(task)
			task.add_done_callback(self._finish_detached)
			raise

	def _finish_detached(self, task: asyncio.Task) -> None:
		self._detached.discard(task)
		if task.cancelled():
			return
		exc = task.exception()
		if exc is not None:
			logger.error("swipe write failed after the caller went away", exc_info=exc)

	async def _apply(self, swipe: Swipe) -> SwipeOutcome:
		await self._swipes.append(swipe)
		obs_metrics.inc_swipe(swipe.direction.value)
		if swipe.direction is SwipeDirection.PASS:
			return SwipeOutcome(swipe=swipe)

		own_posts = await self._content.posts_by_author(swipe.swiper_id)
		for own in own_posts:
			if await self._swipes.has_like(swipe.post_author_id, own.id):
				return await self._create_match(swipe)
		obs_metrics.inc_match("no_reciprocity")
		return SwipeOutcome(swipe=swipe)

	async def _create_match(self, swipe: Swipe) -> SwipeOutcome:
		candidate = Match.for_pair(swipe.swiper_id, swipe.post_author_id, created_at=self._now())
		try:
			creation = await self._matches.create_if_absent(candidate.id, candidate)
		except Conflict:
			# another writer holds the key; theirs is the match
			existing = await self._matches.get(candidate.id)
			if existing is None:
				raise Unavailable("match_unresolved")
			creation = MatchCreation(match=existing, created=False)

		if not creation.created:
			obs_metrics.inc_match("existing")
			return SwipeOutcome(swipe=swipe, match=creation.match, match_created=False)

		obs_metrics.inc_match("created")
		logger.info(
			"match created",
			extra={"match_id": creation.match.id, "post_id": swipe.post_id},
		)
		await self._notify(creation.match)
		return SwipeOutcome(swipe=swipe, match=creation.match, match_created=True)

	async def _notify(self, match: Match) -> None:
		if self._notifier is None:
			return
		try:
			await self._notifier.match_created(match)
		except Exception:
			logger.exception("match notification failed", extra={"match_id": match.id})

	async def swipe_history(self, user_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> list[Swipe]:
		return await self._swipes.history(user_id, max(0, limit))

	async def swipe_stats(self, user_id: str) -> SwipeStats:
		history = await self._swipes.history(user_id, STATS_SCAN_LIMIT)
		likes = sum(1 for swipe in history if swipe.direction is SwipeDirection.LIKE)
		return SwipeStats(total=len(history), likes=likes, passes=len(history) - likes)

	async def has_swiped(self, user_id: str, post_id: str) -> bool:
		return post_id in await self._swipes.swiped_post_ids(user_id)


__all__ = ["SwipeOutcome", "SwipeProcessor", "SwipeStats"]
