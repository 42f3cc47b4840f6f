"""Redis-backed implementations of the matching store contracts.

Layout (all keys share the ``tm:`` prefix):

- ``profile:{user}``            profile document (JSON)
- ``post:{id}``                 post document (JSON)
- ``posts:by_time``             zset post id -> created_at epoch
- ``posts:author:{user}``       zset post id -> created_at epoch
- ``swipe:{user}``              hash post id -> swipe document
- ``swipes:time:{user}``        zset post id -> swipe epoch
- ``likes:{user}``              zset post id -> like epoch
- ``swipers:{post}``            set of users who swiped the post
- ``match:{pair key}``          match document (JSON)
- ``matches:user:{user}``       set of pair keys
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, AsyncIterator, Optional, Sequence

from redis.exceptions import RedisError, WatchError

from tunematch.domain.matching.exceptions import Conflict, Unavailable
from tunematch.domain.matching.models import Match, Post, Swipe, SwipeDirection, UserProfile
from tunematch.domain.matching.repositories import (
	ContentStore,
	MatchCreation,
	MatchNotifier,
	MatchStore,
	ProfileStore,
	SwipeStore,
)

PREFIX = "tm:"
_PAGE_SIZE = 50
_WATCH_RETRIES = 5


def _key(*parts: str) -> str:
	return PREFIX + ":".join(parts)


def _dump(record: dict[str, Any]) -> str:
	return json.dumps(record, separators=(",", ":"))


def _load(raw: Optional[str]) -> Optional[dict[str, Any]]:
	if not raw:
		return None
	try:
		value = json.loads(raw)
	except ValueError:
		return None
	return value if isinstance(value, dict) else None


class RedisProfileStore(ProfileStore):
	def __init__(self, redis) -> None:
		self._redis = redis

	async def get(self, user_id: str) -> UserProfile | None:
		try:
			raw = await self._redis.get(_key("profile", user_id))
		except RedisError as exc:
			raise Unavailable("redis_unavailable") from exc
		record = _load(raw)
		return UserProfile.from_record(record) if record else None

	async def save(self, profile: UserProfile) -> None:
		try:
			await self._redis.set(_key("profile", profile.user_id), _dump(profile.to_record()))
		except RedisError as exc:
			raise Unavailable("redis_unavailable") from exc


class RedisContentStore(ContentStore):
	def __init__(self, redis) -> None:
		self._redis = redis

	async def add(self, post: Post) -> None:
		score = post.created_at.timestamp()
		try:
			async with self._redis.pipeline(transaction=True) as pipe:
				pipe.set(_key("post", post.id), _dump(post.to_record()))
				pipe.zadd(_key("posts", "by_time"), {post.id: score})
				pipe.zadd(_key("posts", "author", post.author_id), {post.id: score})
				await pipe.execute()
		except RedisError as exc:
			raise Unavailable("redis_unavailable") from exc

	async def _load_posts(self, post_ids: Sequence[str]) -> list[Post]:
		if not post_ids:
			return []
		raws = await self._redis.mget([_key("post", post_id) for post_id in post_ids])
		posts: list[Post] = []
		for raw in raws:
			record = _load(raw)
			if record is None:
				continue
			try:
				posts.append(Post.from_record(record))
			except (KeyError, ValueError):
				continue
		return posts

	async def active_posts_excluding_author(
		self,
		author_id: str,
		since: datetime,
		*,
		limit: int,
	) -> AsyncIterator[Post]:
		emitted = 0
		offset = 0
		floor = f"({since.timestamp()}"
		while emitted < limit:
			try:
				post_ids = await self._redis.zrevrangebyscore(
					_key("posts", "by_time"), "+inf", floor, start=offset, num=_PAGE_SIZE
				)
				if not post_ids:
					return
				posts = await self._load_posts(post_ids)
			except RedisError as exc:
				raise Unavailable("redis_unavailable") from exc
			offset += len(post_ids)
			for post in posts:
				if post.author_id == author_id or post.created_at <= since:
					continue
				yield post
				emitted += 1
				if emitted >= limit:
					return
			if len(post_ids) < _PAGE_SIZE:
				return

	async def active_posts_by_author(self, author_id: str, since: datetime) -> Sequence[Post]:
		try:
			post_ids = await self._redis.zrevrangebyscore(
				_key("posts", "author", author_id), "+inf", f"({since.timestamp()}"
			)
			return await self._load_posts(post_ids)
		except RedisError as exc:
			raise Unavailable("redis_unavailable") from exc

	async def posts_by_author(self, author_id: str) -> Sequence[Post]:
		try:
			post_ids = await self._redis.zrevrange(_key("posts", "author", author_id), 0, -1)
			return await self._load_posts(post_ids)
		except RedisError as exc:
			raise Unavailable("redis_unavailable") from exc

	async def get_post(self, post_id: str) -> Post | None:
		try:
			posts = await self._load_posts([post_id])
		except RedisError as exc:
			raise Unavailable("redis_unavailable") from exc
		return posts[0] if posts else None

	async def expired_post_ids(self, before: datetime, *, limit: int) -> Sequence[str]:
		try:
			return list(
				await self._redis.zrangebyscore(
					_key("posts", "by_time"), "-inf", before.timestamp(), start=0, num=limit
				)
			)
		except RedisError as exc:
			raise Unavailable("redis_unavailable") from exc

	async def delete_posts(self, post_ids: Sequence[str]) -> int:
		if not post_ids:
			return 0
		try:
			posts = await self._load_posts(post_ids)
			async with self._redis.pipeline(transaction=True) as pipe:
				for post in posts:
					pipe.zrem(_key("posts", "author", post.author_id), post.id)
				pipe.zrem(_key("posts", "by_time"), *post_ids)
				pipe.delete(*[_key("post", post_id) for post_id in post_ids])
				results = await pipe.execute()
		except RedisError as exc:
			raise Unavailable("redis_unavailable") from exc
		return int(results[-1] or 0)


class RedisSwipeStore(SwipeStore):
	def __init__(self, redis) -> None:
		self._redis = redis

	async def append(self, swipe: Swipe) -> None:
		user = swipe.swiper_id
		try:
			existing = _load(await self._redis.hget(_key("swipe", user), swipe.post_id))
			if existing is not None and SwipeDirection.parse(existing["direction"]) is swipe.direction:
				return
			score = swipe.created_at.timestamp()
			async with self._redis.pipeline(transaction=True) as pipe:
				pipe.hset(_key("swipe", user), swipe.post_id, _dump(swipe.to_record()))
				pipe.zadd(_key("swipes", "time", user), {swipe.post_id: score})
				if swipe.direction is SwipeDirection.LIKE:
					pipe.zadd(_key("likes", user), {swipe.post_id: score})
				else:
					pipe.zrem(_key("likes", user), swipe.post_id)
				pipe.sadd(_key("swipers", swipe.post_id), user)
				await pipe.execute()
		except RedisError as exc:
			raise Unavailable("redis_unavailable") from exc

	async def has_like(self, user_id: str, post_id: str) -> bool:
		try:
			return await self._redis.zscore(_key("likes", user_id), post_id) is not None
		except RedisError as exc:
			raise Unavailable("redis_unavailable") from exc

	async def liked_post_ids_for(self, user_id: str, limit: int) -> list[str]:
		if limit <= 0:
			return []
		try:
			return list(await self._redis.zrevrange(_key("likes", user_id), 0, limit - 1))
		except RedisError as exc:
			raise Unavailable("redis_unavailable") from exc

	async def swiped_post_ids(self, user_id: str) -> set[str]:
		try:
			return set(await self._redis.hkeys(_key("swipe", user_id)))
		except RedisError as exc:
			raise Unavailable("redis_unavailable") from exc

	async def history(self, user_id: str, limit: int) -> list[Swipe]:
		if limit <= 0:
			return []
		try:
			post_ids = await self._redis.zrevrange(_key("swipes", "time", user_id), 0, limit - 1)
			if not post_ids:
				return []
			raws = await self._redis.hmget(_key("swipe", user_id), post_ids)
		except RedisError as exc:
			raise Unavailable("redis_unavailable") from exc
		swipes: list[Swipe] = []
		for raw in raws:
			record = _load(raw)
			if record is not None:
				swipes.append(Swipe.from_record(record))
		return swipes

	async def delete_for_posts(self, post_ids: Sequence[str]) -> int:
		removed = 0
		try:
			for post_id in post_ids:
				swipers = await self._redis.smembers(_key("swipers", post_id))
				if not swipers:
					continue
				async with self._redis.pipeline(transaction=True) as pipe:
					for user in swipers:
						pipe.hdel(_key("swipe", user), post_id)
						pipe.zrem(_key("swipes", "time", user), post_id)
						pipe.zrem(_key("likes", user), post_id)
					pipe.delete(_key("swipers", post_id))
					results = await pipe.execute()
				removed += sum(int(value or 0) for value in results[0:-1:3])
		except RedisError as exc:
			raise Unavailable("redis_unavailable") from exc
		return removed


class RedisMatchStore(MatchStore):
	"""Pair-keyed match documents written under WATCH so concurrent creators converge."""

	def __init__(self, redis) -> None:
		self._redis = redis

	async def create_if_absent(self, key: str, match: Match) -> MatchCreation:
		doc_key = _key("match", key)
		try:
			for _ in range(_WATCH_RETRIES):
				try:
					async with self._redis.pipeline(transaction=True) as pipe:
						await pipe.watch(doc_key)
						existing = _load(await pipe.get(doc_key))
						if existing is not None:
							current = Match.from_record(existing)
							if current.is_active:
								await pipe.unwatch()
								return MatchCreation(match=current, created=False)
						pipe.multi()
						pipe.set(doc_key, _dump(match.to_record()))
						for user_id in match.user_ids:
							pipe.sadd(_key("matches", "user", user_id), key)
						await pipe.execute()
						return MatchCreation(match=match, created=True)
				except WatchError:
					continue
		except RedisError as exc:
			raise Unavailable("redis_unavailable") from exc
		raise Conflict("match_contended")

	async def get(self, key: str) -> Match | None:
		try:
			record = _load(await self._redis.get(_key("match", key)))
		except RedisError as exc:
			raise Unavailable("redis_unavailable") from exc
		return Match.from_record(record) if record else None

	async def list_for_user(self, user_id: str) -> list[Match]:
		try:
			keys = sorted(await self._redis.smembers(_key("matches", "user", user_id)))
			if not keys:
				return []
			raws = await self._redis.mget([_key("match", key) for key in keys])
		except RedisError as exc:
			raise Unavailable("redis_unavailable") from exc
		return [Match.from_record(record) for record in map(_load, raws) if record]

	async def active_match_ids(self, user_id: str) -> set[str]:
		return {match.other(user_id) for match in await self.list_for_user(user_id) if match.is_active}

	async def deactivate(self, key: str) -> Match | None:
		doc_key = _key("match", key)
		try:
			for _ in range(_WATCH_RETRIES):
				try:
					async with self._redis.pipeline(transaction=True) as pipe:
						await pipe.watch(doc_key)
						existing = _load(await pipe.get(doc_key))
						if existing is None:
							await pipe.unwatch()
							return None
						existing["is_active"] = False
						pipe.multi()
						pipe.set(doc_key, _dump(existing))
						await pipe.execute()
						return Match.from_record(existing)
				except WatchError:
					continue
		except RedisError as exc:
			raise Unavailable("redis_unavailable") from exc
		raise Conflict("match_contended")


class RedisMatchNotifier(MatchNotifier):
	"""Publishes match events on a pub/sub channel for the delivery service."""

	CHANNEL = "tm:events:match"

	def __init__(self, redis) -> None:
		self._redis = redis

	async def match_created(self, match: Match) -> None:
		try:
			await self._redis.publish(self.CHANNEL, _dump({"type": "match.created", **match.to_record()}))
		except RedisError as exc:
			raise Unavailable("redis_unavailable") from exc


__all__ = [
	"RedisContentStore",
	"RedisMatchNotifier",
	"RedisMatchStore",
	"RedisProfileStore",
	"RedisSwipeStore",
]
