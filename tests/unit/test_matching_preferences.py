import asyncio
from datetime import timedelta

import pytest

from tunematch.domain.matching.exceptions import Unavailable, ViewerNotFound
from tunematch.domain.matching.models import AudioFeatures, Swipe, SwipeDirection
from tunematch.domain.matching.preferences import PreferenceLearner
from tunematch.domain.matching.repositories import InMemoryProfileStore, InMemorySwipeStore


class CountingProfileStore(InMemoryProfileStore):
	def __init__(self) -> None:
		super().__init__()
		self.saves = 0

	async def save(self, profile) -> None:
		self.saves += 1
		await super().save(profile)


class BrokenSwipeStore(InMemorySwipeStore):
	async def liked_post_ids_for(self, user_id, limit):
		raise Unavailable("redis_unavailable")


class SlowSwipeStore(InMemorySwipeStore):
	async def liked_post_ids_for(self, user_id, limit):
		await asyncio.sleep(1)
		return []


def _like(stores, clock, user_id, post, *, minutes_ago=0):
	return stores.swipes.append(
		Swipe(
			swiper_id=user_id,
			post_id=post.id,
			post_author_id=post.author_id,
			direction=SwipeDirection.LIKE,
			created_at=clock.now() - timedelta(minutes=minutes_ago),
		)
	)


def _learner(stores, clock, **kwargs):
	return PreferenceLearner(stores.profiles, stores.content, stores.swipes, now=clock.now, **kwargs)


@pytest.mark.asyncio
async def test_refresh_without_likes_is_a_noop(stores, clock, make_profile):
	profiles = CountingProfileStore()
	await profiles.save(make_profile("viewer"))
	profiles.saves = 0
	learner = PreferenceLearner(profiles, stores.content, stores.swipes, now=clock.now)

	assert await learner.refresh("viewer") is None
	assert profiles.saves == 0
	assert (await profiles.get("viewer")).preferences is None


@pytest.mark.asyncio
async def test_refresh_averages_features_and_unions_tags(stores, clock, make_profile, make_post):
	await stores.profiles.save(make_profile("viewer"))
	first = make_post(
		"p1", "a1",
		audio=AudioFeatures(valence=0.2, energy=0.4, danceability=0.6, acousticness=0.8, tempo=100.0),
		mood="chill", genres=("indie",),
	)
	second = make_post(
		"p2", "a2",
		audio=AudioFeatures(valence=0.4, energy=0.6, danceability=0.8, acousticness=0.0, tempo=140.0),
		mood="happy", genres=("pop", "indie"),
	)
	no_audio = make_post("p3", "a3", mood="sad", mood_tags=("sad", "rainy"), genres=("folk",))
	stores.content.add(first, second, no_audio)
	await _like(stores, clock, "viewer", first, minutes_ago=3)
	await _like(stores, clock, "viewer", second, minutes_ago=2)
	await _like(stores, clock, "viewer", no_audio, minutes_ago=1)
	# liked post that has since been deleted
	await stores.swipes.append(
		Swipe("viewer", "gone", "a4", SwipeDirection.LIKE, clock.now())
	)

	learned = await _learner(stores, clock).refresh("viewer")

	assert learned is not None
	assert learned.audio_features.valence == pytest.approx(0.3)
	assert learned.audio_features.acousticness == pytest.approx(0.4)
	assert learned.audio_features.tempo == pytest.approx(120.0)
	assert learned.genres == ("folk", "pop", "indie")
	assert learned.mood_tags == ("sad", "rainy", "happy", "chill")
	stored = await stores.profiles.get("viewer")
	assert stored.preferences == learned
	assert stored.preferences_updated_at == clock.now()


@pytest.mark.asyncio
async def test_refresh_only_reads_most_recent_likes(stores, clock, make_profile, make_post):
	await stores.profiles.save(make_profile("viewer"))
	old = make_post("old", "a1", mood="sad")
	new = make_post("new", "a2", mood="happy")
	stores.content.add(old, new)
	await _like(stores, clock, "viewer", old, minutes_ago=30)
	await _like(stores, clock, "viewer", new, minutes_ago=1)

	learned = await _learner(stores, clock, history_size=1).refresh("viewer")

	assert learned.mood_tags == ("happy",)


@pytest.mark.asyncio
async def test_refresh_for_unknown_viewer_raises(stores, clock, make_post):
	post = make_post("p1", "a1")
	stores.content.add(post)
	await _like(stores, clock, "ghost", post)

	with pytest.raises(ViewerNotFound):
		await _learner(stores, clock).refresh("ghost")


@pytest.mark.asyncio
async def test_best_effort_swallows_storage_failures(stores, clock, make_profile):
	await stores.profiles.save(make_profile("viewer"))
	learner = PreferenceLearner(stores.profiles, stores.content, BrokenSwipeStore(), now=clock.now)

	assert await learner.refresh_best_effort("viewer") is None


@pytest.mark.asyncio
async def test_best_effort_gives_up_after_timeout(stores, clock, make_profile):
	await stores.profiles.save(make_profile("viewer"))
	learner = PreferenceLearner(
		stores.profiles, stores.content, SlowSwipeStore(), refresh_timeout=0.01, now=clock.now
	)

	assert await learner.refresh_best_effort("viewer") is None


@pytest.mark.asyncio
async def test_best_effort_swallows_missing_viewer(stores, clock, make_post):
	post = make_post("p1", "a1")
	stores.content.add(post)
	await _like(stores, clock, "ghost", post)

	assert await _learner(stores, clock).refresh_best_effort("ghost") is None


@pytest.mark.asyncio
async def test_get_preferences(stores, clock, make_profile):
	learner = _learner(stores, clock)
	with pytest.raises(ViewerNotFound):
		await learner.get_preferences("nobody")

	await stores.profiles.save(make_profile("viewer"))
	assert await learner.get_preferences("viewer") == (None, None)
