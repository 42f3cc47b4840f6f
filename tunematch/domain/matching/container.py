"""Service container shared by the matching routers and jobs."""

from __future__ import annotations

from typing import Optional

import asyncpg
from redis.asyncio import Redis

from tunematch.domain.matching.candidates import CandidatePool
from tunematch.domain.matching.clock import Clock
from tunematch.domain.matching.expiry import ExpiryJob
from tunematch.domain.matching.matches import MatchService
from tunematch.domain.matching.preferences import PreferenceLearner
from tunematch.domain.matching.repositories import (
    ContentStore,
    InMemoryContentStore,
    InMemoryMatchStore,
    InMemoryProfileStore,
    InMemorySwipeStore,
    MatchNotifier,
    MatchStore,
    ProfileStore,
    SwipeStore,
)
from tunematch.domain.matching.scoring import CompatibilityScorer
from tunematch.domain.matching.swipes import SwipeProcessor
from tunematch.infra.postgres_stores import (
    PostgresContentStore,
    PostgresMatchStore,
    PostgresProfileStore,
    PostgresSwipeStore,
)
from tunematch.infra.redis import RedisProxy
from tunematch.infra.redis_stores import (
    RedisContentStore,
    RedisMatchNotifier,
    RedisMatchStore,
    RedisProfileStore,
    RedisSwipeStore,
)
from tunematch.settings import settings

_profiles: ProfileStore = InMemoryProfileStore()
_content: ContentStore = InMemoryContentStore()
_swipes: SwipeStore = InMemorySwipeStore()
_matches: MatchStore = InMemoryMatchStore()
_notifier: Optional[MatchNotifier] = None
_clock: Clock = Clock.from_settings(settings)
_scorer = CompatibilityScorer()
_learner: PreferenceLearner
_candidate_pool: CandidatePool
_swipe_processor: SwipeProcessor
_match_service: MatchService
_expiry_job: ExpiryJob


def _build_services() -> None:
    global _learner, _candidate_pool, _swipe_processor, _match_service, _expiry_job
    _learner = PreferenceLearner(
        _profiles,
        _content,
        _swipes,
        history_size=settings.preference_history_size,
        refresh_timeout=settings.preference_refresh_timeout_seconds,
        now=_clock.now,
    )
    _candidate_pool = CandidatePool(
        _profiles,
        _content,
        _swipes,
        _matches,
        _learner,
        scorer=_scorer,
        clock=_clock,
        fetch_limit=settings.discovery_fetch_limit,
        fetch_timeout=settings.discovery_fetch_timeout_seconds,
        lookup_timeout=settings.profile_lookup_timeout_seconds,
        lookup_concurrency=settings.profile_lookup_concurrency,
    )
    _swipe_processor = SwipeProcessor(_content, _swipes, _matches, notifier=_notifier, now=_clock.now)
    _match_service = MatchService(_matches, _profiles, recent_days=settings.match_recent_days, now=_clock.now)
    _expiry_job = ExpiryJob(_content, _swipes, clock=_clock, batch_size=settings.expiry_batch_size)


def configure(
    *,
    profiles: Optional[ProfileStore] = None,
    content: Optional[ContentStore] = None,
    swipes: Optional[SwipeStore] = None,
    matches: Optional[MatchStore] = None,
    notifier: Optional[MatchNotifier] = None,
    clock: Optional[Clock] = None,
    scorer: Optional[CompatibilityScorer] = None,
) -> None:
    global _profiles, _content, _swipes, _matches, _notifier, _clock, _scorer
    if profiles is not None:
        _profiles = profiles
    if content is not None:
        _content = content
    if swipes is not None:
        _swipes = swipes
    if matches is not None:
        _matches = matches
    if notifier is not None:
        _notifier = notifier
    if clock is not None:
        _clock = clock
    if scorer is not None:
        _scorer = scorer
    _build_services()


def configure_in_memory(*, clock: Optional[Clock] = None) -> None:
    """Fresh, empty in-memory stores. Used by tests and local development."""
    global _notifier
    _notifier = None
    configure(
        profiles=InMemoryProfileStore(),
        content=InMemoryContentStore(),
        swipes=InMemorySwipeStore(),
        matches=InMemoryMatchStore(),
        clock=clock or Clock.from_settings(settings),
    )


def configure_redis(redis_conn: Redis | RedisProxy) -> None:
    proxy = redis_conn if isinstance(redis_conn, RedisProxy) else RedisProxy(redis_conn)
    configure(
        profiles=RedisProfileStore(proxy),
        content=RedisContentStore(proxy),
        swipes=RedisSwipeStore(proxy),
        matches=RedisMatchStore(proxy),
        notifier=RedisMatchNotifier(proxy),
    )


def configure_postgres(pool: asyncpg.Pool, redis_conn: Redis | RedisProxy | None = None) -> None:
    global _notifier
    _notifier = None
    notifier = None
    if redis_conn is not None:
        proxy = redis_conn if isinstance(redis_conn, RedisProxy) else RedisProxy(redis_conn)
        notifier = RedisMatchNotifier(proxy)
    configure(
        profiles=PostgresProfileStore(pool),
        content=PostgresContentStore(pool),
        swipes=PostgresSwipeStore(pool),
        matches=PostgresMatchStore(pool),
        notifier=notifier,
    )


def get_profile_store() -> ProfileStore:
    return _profiles


def get_content_store() -> ContentStore:
    return _content


def get_swipe_store() -> SwipeStore:
    return _swipes


def get_match_store() -> MatchStore:
    return _matches


def get_clock() -> Clock:
    return _clock


def get_preference_learner() -> PreferenceLearner:
    return _learner


def get_candidate_pool() -> CandidatePool:
    return _candidate_pool


def get_swipe_processor() -> SwipeProcessor:
    return _swipe_processor


def get_match_service() -> MatchService:
    return _match_service


def get_expiry_job() -> ExpiryJob:
    return _expiry_job


_build_services()
