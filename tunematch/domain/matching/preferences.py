"""Learn a viewer's taste vector from the posts they liked."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Optional

from tunematch.domain.matching.exceptions import NotFound, Unavailable, ViewerNotFound
from tunematch.domain.matching.models import (
	AUDIO_FEATURE_NAMES,
	AudioFeatures,
	MusicPreferences,
	Post,
	unique_in_order,
)
from tunematch.domain.matching.repositories import ContentStore, ProfileStore, SwipeStore
from tunematch.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_SIZE = 20
DEFAULT_REFRESH_TIMEOUT = 3.0


def derive_preferences(posts: list[Post]) -> MusicPreferences:
	"""Average the audio features and union the genres and mood tags of ``posts``."""
	sums = dict.fromkeys(AUDIO_FEATURE_NAMES, 0.0)
	counted = 0
	genres: list[str] = []
	moods: list[str] = []
	for post in posts:
		genres.extend(post.song.genres)
		moods.extend(post.effective_mood_tags)
		features = post.song.audio_features
		if features is None:
			continue
		counted += 1
		for name in AUDIO_FEATURE_NAMES:
			sums[name] += getattr(features, name)
	averaged = None
	if counted:
		averaged = AudioFeatures(**{name: total / counted for name, total in sums.items()})
	return MusicPreferences(
		genres=unique_in_order(genres),
		audio_features=averaged,
		mood_tags=unique_in_order(moods),
	)


class PreferenceLearner:
	"""Refreshes stored taste vectors. Failures never reach discovery callers."""

	def __init__(
		self,
		profiles: ProfileStore,
		content: ContentStore,
		swipes: SwipeStore,
		*,
		history_size: int = DEFAULT_HISTORY_SIZE,
		refresh_timeout: float = DEFAULT_REFRESH_TIMEOUT,
		now: Optional[Callable[[], datetime]] = None,
	) -> None:
		self._profiles = profiles
		self._content = content
		self._swipes = swipes
		self._history_size = history_size
		self._refresh_timeout = refresh_timeout
		self._now = now or (lambda: datetime.now(timezone.utc))

	async def refresh(self, user_id: str) -> Optional[MusicPreferences]:
		"""Recompute and store the vector. Returns None when there is nothing to learn from."""
		liked_ids = await self._swipes.liked_post_ids_for(user_id, self._history_size)
		if not liked_ids:
			obs_metrics.inc_preference_refresh("noop")
			return None

		posts: list[Post] = []
		for post_id in liked_ids:
			post = await self._content.get_post(post_id)
			if post is not None:
				posts.append(post)
		if not posts:
			obs_metrics.inc_preference_refresh("noop")
			return None

		learned = derive_preferences(posts)
		profile = await self._profiles.get(user_id)
		if profile is None:
			raise ViewerNotFound()
		await self._profiles.save(
			replace(profile, preferences=learned, preferences_updated_at=self._now())
		)
		obs_metrics.inc_preference_refresh("updated")
		return learned

	async def refresh_best_effort(self, user_id: str) -> Optional[MusicPreferences]:
		try:
			return await asyncio.wait_for(self.refresh(user_id), timeout=self._refresh_timeout)
		except asyncio.TimeoutError:
			obs_metrics.inc_preference_refresh("timeout")
			logger.warning("preference refresh timed out", extra={"user_id": user_id})
		except (Unavailable, NotFound) as exc:
			obs_metrics.inc_preference_refresh("failed")
			logger.warning("preference refresh skipped: %s", exc.reason, extra={"user_id": user_id})
		except Exception:
			obs_metrics.inc_preference_refresh("failed")
			logger.exception("preference refresh failed", extra={"user_id": user_id})
		return None

	async def get_preferences(self, user_id: str) -> tuple[Optional[MusicPreferences], Optional[datetime]]:
		profile = await self._profiles.get(user_id)
		if profile is None:
			raise ViewerNotFound()
		return profile.preferences, profile.preferences_updated_at


__all__ = ["PreferenceLearner", "derive_preferences"]
