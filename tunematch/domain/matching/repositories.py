"""Storage contracts and in-memory implementations for the matching engine."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import AsyncIterator, Iterable, MutableMapping, Protocol, Sequence

from tunematch.domain.matching.models import Match, Post, Swipe, SwipeDirection, UserProfile


@dataclass(frozen=True, slots=True)
class MatchCreation:
    """Outcome of a create-if-absent write keyed by the pair key."""

    match: Match
    created: bool


class ProfileStore(Protocol):
    """Profile persistence."""

    async def get(self, user_id: str) -> UserProfile | None:
        """Return the profile or None when the user is unknown."""

    async def save(self, profile: UserProfile) -> None:
        """Overwrite the stored profile document."""


class ContentStore(Protocol):
    """Post persistence."""

    def active_posts_excluding_author(
        self,
        author_id: str,
        since: datetime,
        *,
        limit: int,
    ) -> AsyncIterator[Post]:
        """Stream posts created strictly after ``since`` by anyone but ``author_id``, newest first."""

    async def active_posts_by_author(self, author_id: str, since: datetime) -> Sequence[Post]:
        """Posts by one author created strictly after ``since``, newest first."""

    async def posts_by_author(self, author_id: str) -> Sequence[Post]:
        """Every stored post by one author."""

    async def get_post(self, post_id: str) -> Post | None:
        """Fetch a single post."""

    async def expired_post_ids(self, before: datetime, *, limit: int) -> Sequence[str]:
        """Ids of posts created at or before ``before``."""

    async def delete_posts(self, post_ids: Sequence[str]) -> int:
        """Delete posts and return how many were removed."""


class SwipeStore(Protocol):
    """Swipe persistence. One swipe per (swiper, post); a repeat upserts."""

    async def append(self, swipe: Swipe) -> None:
        """Record a swipe. Same direction as the stored one is a no-op."""

    async def has_like(self, user_id: str, post_id: str) -> bool:
        """Whether ``user_id`` has a recorded like on ``post_id``."""

    async def liked_post_ids_for(self, user_id: str, limit: int) -> list[str]:
        """Most recently liked post ids, newest first."""

    async def swiped_post_ids(self, user_id: str) -> set[str]:
        """Every post id the user has swiped in either direction."""

    async def history(self, user_id: str, limit: int) -> list[Swipe]:
        """The user's swipes, newest first."""

    async def delete_for_posts(self, post_ids: Sequence[str]) -> int:
        """Drop swipes referencing the given posts; returns the count removed."""


class MatchStore(Protocol):
    """Match persistence keyed by the deterministic pair key."""

    async def create_if_absent(self, key: str, match: Match) -> MatchCreation:
        """Insert ``match`` unless an active match already holds ``key``."""

    async def get(self, key: str) -> Match | None:
        """Fetch a match by pair key."""

    async def active_match_ids(self, user_id: str) -> set[str]:
        """Counterpart ids of the user's active matches."""

    async def list_for_user(self, user_id: str) -> list[Match]:
        """Every match involving the user, active or not."""

    async def deactivate(self, key: str) -> Match | None:
        """Mark a match inactive; returns the updated match or None when unknown."""


class MatchNotifier(Protocol):
    """Outbound hook for the "match!" event. Delivery lives outside this service."""

    async def match_created(self, match: Match) -> None:
        """Called once per newly created match."""


@dataclass
class InMemoryProfileStore(ProfileStore):
    """Dictionary-backed profiles for tests and local development."""

    profiles: MutableMapping[str, UserProfile] = field(default_factory=dict)

    async def get(self, user_id: str) -> UserProfile | None:
        return self.profiles.get(user_id)

    async def save(self, profile: UserProfile) -> None:
        self.profiles[profile.user_id] = profile


@dataclass
class InMemoryContentStore(ContentStore):
    posts: MutableMapping[str, Post] = field(default_factory=dict)

    def add(self, *posts: Post) -> None:
        for post in posts:
            self.posts[post.id] = post

    def _newest_first(self, posts: Iterable[Post]) -> list[Post]:
        return sorted(posts, key=lambda post: (post.created_at, post.id), reverse=True)

    async def active_posts_excluding_author(
        self,
        author_id: str,
        since: datetime,
        *,
        limit: int,
    ) -> AsyncIterator[Post]:
        selected = self._newest_first(
            post for post in self.posts.values() if post.author_id != author_id and post.created_at > since
        )
        for post in selected[:limit]:
            yield post

    async def active_posts_by_author(self, author_id: str, since: datetime) -> Sequence[Post]:
        return self._newest_first(
            post for post in self.posts.values() if post.author_id == author_id and post.created_at > since
        )

    async def posts_by_author(self, author_id: str) -> Sequence[Post]:
        return self._newest_first(post for post in self.posts.values() if post.author_id == author_id)

    async def get_post(self, post_id: str) -> Post | None:
        return self.posts.get(post_id)

    async def expired_post_ids(self, before: datetime, *, limit: int) -> Sequence[str]:
        expired = sorted(
            (post for post in self.posts.values() if post.created_at <= before),
            key=lambda post: (post.created_at, post.id),
        )
        return [post.id for post in expired[:limit]]

    async def delete_posts(self, post_ids: Sequence[str]) -> int:
        removed = 0
        for post_id in post_ids:
            if self.posts.pop(post_id, None) is not None:
                removed += 1
        return removed


@dataclass
class InMemorySwipeStore(SwipeStore):
    swipes: MutableMapping[tuple[str, str], Swipe] = field(default_factory=dict)

    async def append(self, swipe: Swipe) -> None:
        key = (swipe.swiper_id, swipe.post_id)
        existing = self.swipes.get(key)
        if existing is not None and existing.direction is swipe.direction:
            return
        self.swipes[key] = swipe

    async def has_like(self, user_id: str, post_id: str) -> bool:
        swipe = self.swipes.get((user_id, post_id))
        return swipe is not None and swipe.direction is SwipeDirection.LIKE

    async def liked_post_ids_for(self, user_id: str, limit: int) -> list[str]:
        liked = [swipe for swipe in await self.history(user_id, len(self.swipes)) if swipe.direction is SwipeDirection.LIKE]
        return [swipe.post_id for swipe in liked[:limit]]

    async def swiped_post_ids(self, user_id: str) -> set[str]:
        return {post_id for swiper_id, post_id in self.swipes if swiper_id == user_id}

    async def history(self, user_id: str, limit: int) -> list[Swipe]:
        mine = [swipe for swipe in self.swipes.values() if swipe.swiper_id == user_id]
        mine.sort(key=lambda swipe: swipe.created_at, reverse=True)
        return mine[:limit]

    async def delete_for_posts(self, post_ids: Sequence[str]) -> int:
        doomed = set(post_ids)
        keys = [key for key in self.swipes if key[1] in doomed]
        for key in keys:
            del self.swipes[key]
        return len(keys)


@dataclass
class InMemoryMatchStore(MatchStore):
    matches: MutableMapping[str, Match] = field(default_factory=dict)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    async def create_if_absent(self, key: str, match: Match) -> MatchCreation:
        async with self._lock:
            existing = self.matches.get(key)
            if existing is not None and existing.is_active:
                return MatchCreation(match=existing, created=False)
            self.matches[key] = match
            return MatchCreation(match=match, created=True)

    async def get(self, key: str) -> Match | None:
        return self.matches.get(key)

    async def active_match_ids(self, user_id: str) -> set[str]:
        return {match.other(user_id) for match in self.matches.values() if match.is_active and match.involves(user_id)}

    async def list_for_user(self, user_id: str) -> list[Match]:
        return [match for match in self.matches.values() if match.involves(user_id)]

    async def deactivate(self, key: str) -> Match | None:
        async with self._lock:
            existing = self.matches.get(key)
            if existing is None:
                return None
            updated = replace(existing, is_active=False)
            self.matches[key] = updated
            return updated


@dataclass
class RecordingNotifier(MatchNotifier):
    """Collects match events; used when no outbound channel is configured."""

    events: list[Match] = field(default_factory=list)

    async def match_created(self, match: Match) -> None:
        self.events.append(match)
