from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient

from tunematch.domain.matching import container
from tunematch.domain.matching.clock import Clock
from tunematch.domain.matching.models import (
	AudioFeatures,
	EngagementHistory,
	MusicPreferences,
	Post,
	Questionnaire,
	Song,
	UserProfile,
)
from tunematch.domain.matching.repositories import (
	InMemoryContentStore,
	InMemoryMatchStore,
	InMemoryProfileStore,
	InMemorySwipeStore,
	RecordingNotifier,
)
from tunematch.main import app
from tunematch.settings import settings

# 11:00 in Los Angeles (PDT); the current window opened at 16:00 UTC
NOW = datetime(2024, 6, 12, 18, 0, tzinfo=timezone.utc)
WINDOW_START = datetime(2024, 6, 12, 16, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from tunematch.infra.redis import redis_client, set_redis_client
	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def force_test_settings():
	original_env = settings.environment
	original_backend = settings.store_backend
	settings.environment = "test"
	settings.store_backend = "memory"
	try:
		yield
	finally:
		settings.environment = original_env
		settings.store_backend = original_backend


@pytest.fixture
def clock() -> Clock:
	return Clock("America/Los_Angeles", 9, now=lambda: NOW)


@pytest.fixture
def stores(clock):
	namespace = SimpleNamespace(
		profiles=InMemoryProfileStore(),
		content=InMemoryContentStore(),
		swipes=InMemorySwipeStore(),
		matches=InMemoryMatchStore(),
		notifier=RecordingNotifier(),
	)
	container.configure(
		profiles=namespace.profiles,
		content=namespace.content,
		swipes=namespace.swipes,
		matches=namespace.matches,
		notifier=namespace.notifier,
		clock=clock,
	)
	try:
		yield namespace
	finally:
		container.configure_in_memory()


@pytest.fixture
def make_profile():
	def _make(
		user_id: str,
		*,
		friends=(),
		matched=(),
		questionnaire: Questionnaire | None = None,
		preferences: MusicPreferences | None = None,
		engagement: EngagementHistory | None = None,
	) -> UserProfile:
		return UserProfile(
			user_id=user_id,
			display_name=user_id.title(),
			questionnaire=questionnaire or Questionnaire(),
			preferences=preferences,
			engagement=engagement or EngagementHistory(),
			friend_ids=frozenset(friends),
			matched_user_ids=frozenset(matched),
		)

	return _make


@pytest.fixture
def make_post():
	def _make(
		post_id: str,
		author_id: str,
		*,
		minutes_ago: float = 10,
		audio: AudioFeatures | None = None,
		mood: str = "chill",
		mood_tags=(),
		genres=(),
	) -> Post:
		return Post(
			id=post_id,
			author_id=author_id,
			song=Song(title=f"Song {post_id}", artist="Artist", audio_features=audio, genres=tuple(genres)),
			mood=mood,
			mood_tags=tuple(mood_tags),
			created_at=NOW - timedelta(minutes=minutes_ago),
		)

	return _make


@pytest_asyncio.fixture
async def api_client(stores):
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
