"""Read and lifecycle operations on persisted matches."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from tunematch.domain.matching.exceptions import Forbidden, MatchNotFound
from tunematch.domain.matching.models import Match, pair_key
from tunematch.domain.matching.repositories import MatchStore, ProfileStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class MatchStats:
	total: int
	active: int
	recent: int


class MatchService:
	def __init__(
		self,
		matches: MatchStore,
		profiles: ProfileStore,
		*,
		recent_days: int = 7,
		now: Optional[Callable[[], datetime]] = None,
	) -> None:
		self._matches = matches
		self._profiles = profiles
		self._recent_window = timedelta(days=recent_days)
		self._now = now or (lambda: datetime.now(timezone.utc))

	async def list_matches(self, user_id: str) -> list[Match]:
		"""Active matches, newest first, minus counterparts who have since become friends."""
		profile = await self._profiles.get(user_id)
		friends = profile.friend_ids if profile else frozenset()
		active = [
			match
			for match in await self._matches.list_for_user(user_id)
			if match.is_active and match.other(user_id) not in friends
		]
		active.sort(key=lambda match: match.created_at, reverse=True)
		return active

	async def are_matched(self, user_a: str, user_b: str) -> bool:
		if user_a == user_b:
			return False
		match = await self._matches.get(pair_key(user_a, user_b))
		return match is not None and match.is_active

	async def get_match(self, match_id: str) -> Match:
		match = await self._matches.get(match_id)
		if match is None:
			raise MatchNotFound()
		return match

	async def match_stats(self, user_id: str) -> MatchStats:
		matches = await self._matches.list_for_user(user_id)
		cutoff = self._now() - self._recent_window
		return MatchStats(
			total=len(matches),
			active=sum(1 for match in matches if match.is_active),
			recent=sum(1 for match in matches if match.created_at >= cutoff),
		)

	async def deactivate(self, match_id: str, actor_id: str) -> Match:
		match = await self.get_match(match_id)
		if not match.involves(actor_id):
			raise Forbidden("not_a_member")
		updated = await self._matches.deactivate(match_id)
		if updated is None:
			raise MatchNotFound()
		logger.info("match deactivated", extra={"match_id": match_id, "actor_id": actor_id})
		return updated


__all__ = ["MatchService", "MatchStats"]
