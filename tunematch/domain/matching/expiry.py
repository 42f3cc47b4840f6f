"""Daily purge of posts whose liveness window has closed."""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Dict, Optional

from tunematch.domain.matching.clock import Clock
from tunematch.domain.matching.repositories import ContentStore, SwipeStore
from tunematch.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 500


class ExpiryJob:
	"""Removes posts from previous windows along with the swipes on them. Matches stay."""

	def __init__(
		self,
		content: ContentStore,
		swipes: SwipeStore,
		*,
		clock: Optional[Clock] = None,
		batch_size: int = DEFAULT_BATCH_SIZE,
	) -> None:
		self._content = content
		self._swipes = swipes
		self._clock = clock or Clock()
		self._batch_size = max(1, batch_size)

	async def run(self, now: Optional[datetime] = None) -> Dict[str, int]:
		started = time.perf_counter()
		try:
			counts = await self._purge(self._clock.last_boundary(now))
		except Exception:
			obs_metrics.record_job_run("post_expiry", result="error")
			raise
		obs_metrics.record_job_run("post_expiry", result="ok", duration_seconds=time.perf_counter() - started)
		return counts

	async def _purge(self, boundary: datetime) -> Dict[str, int]:
		counts: Dict[str, int] = {"posts": 0, "swipes": 0}
		while True:
			post_ids = list(await self._content.expired_post_ids(boundary, limit=self._batch_size))
			if not post_ids:
				break
			deleted = await self._content.delete_posts(post_ids)
			counts["posts"] += deleted
			counts["swipes"] += await self._swipes.delete_for_posts(post_ids)
			if deleted == 0 or len(post_ids) < self._batch_size:
				break
		obs_metrics.inc_expired_posts(counts["posts"])
		logger.info(
			"expired posts purged",
			extra={"boundary": boundary.isoformat(), "posts": counts["posts"], "swipes": counts["swipes"]},
		)
		return counts


__all__ = ["ExpiryJob"]
