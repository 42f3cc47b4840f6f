import asyncio
import logging

import pytest

from tunematch.domain.matching.exceptions import Conflict, InvalidSwipe, NotFound, Unavailable
from tunematch.domain.matching.models import Match, SwipeDirection, pair_key
from tunematch.domain.matching.repositories import (
	InMemoryMatchStore,
	InMemorySwipeStore,
	RecordingNotifier,
)
from tunematch.domain.matching.swipes import SwipeProcessor


def _processor(stores, clock, *, swipes=None, matches=None, notifier=None):
	return SwipeProcessor(
		stores.content,
		swipes or stores.swipes,
		matches or stores.matches,
		notifier=notifier if notifier is not None else stores.notifier,
		now=clock.now,
	)


@pytest.fixture
def two_posters(stores, make_post):
	stores.content.add(make_post("post-a", "alice"), make_post("post-b", "bob"))
	return stores


@pytest.mark.asyncio
async def test_self_swipe_is_rejected(two_posters, clock):
	with pytest.raises(InvalidSwipe) as exc:
		await _processor(two_posters, clock).record_swipe("alice", "post-a", "like")
	assert exc.value.reason == "self_swipe"


@pytest.mark.asyncio
async def test_unknown_post_and_bad_input_are_rejected(two_posters, clock):
	processor = _processor(two_posters, clock)
	with pytest.raises(NotFound):
		await processor.record_swipe("alice", "missing", "like")
	with pytest.raises(InvalidSwipe):
		await processor.record_swipe("alice", "post-b", "superlike")
	with pytest.raises(InvalidSwipe) as exc:
		await processor.record_swipe("alice", "post-b", "like", post_author_id="carol")
	assert exc.value.reason == "author_mismatch"


@pytest.mark.asyncio
async def test_pass_never_creates_a_match(two_posters, clock):
	processor = _processor(two_posters, clock)
	await processor.record_swipe("bob", "post-a", "like")

	outcome = await processor.record_swipe("alice", "post-b", "pass")

	assert outcome.match is None
	assert outcome.swipe.direction is SwipeDirection.PASS
	assert two_posters.matches.matches == {}


@pytest.mark.asyncio
async def test_like_without_own_posts_cannot_match(two_posters, clock):
	outcome = await _processor(two_posters, clock).record_swipe("carol", "post-a", "right")

	assert outcome.swipe.direction is SwipeDirection.LIKE
	assert outcome.match_id is None


@pytest.mark.asyncio
async def test_reciprocal_like_creates_one_match(two_posters, clock):
	processor = _processor(two_posters, clock)

	first = await processor.record_swipe("alice", "post-b", "like")
	second = await processor.record_swipe("bob", "post-a", "like")
	again = await processor.record_swipe("bob", "post-a", "like")

	assert first.match is None
	assert second.match_created is True
	assert second.match_id == pair_key("alice", "bob")
	assert again.match_created is False
	assert again.match_id == second.match_id
	assert len(two_posters.matches.matches) == 1
	assert [event.id for event in two_posters.notifier.events] == [second.match_id]


@pytest.mark.asyncio
async def test_repeated_swipe_is_idempotent(two_posters, clock):
	processor = _processor(two_posters, clock)
	await processor.record_swipe("alice", "post-b", "like")
	await processor.record_swipe("alice", "post-b", "like")

	history = await processor.swipe_history("alice")
	assert len(history) == 1

	await processor.record_swipe("alice", "post-b", "pass")
	history = await processor.swipe_history("alice")
	assert [swipe.direction for swipe in history] == [SwipeDirection.PASS]
	assert await two_posters.swipes.has_like("alice", "post-b") is False


class InterleavingSwipeStore(InMemorySwipeStore):
	"""Yields to the loop on every read so concurrent swipes interleave."""

	async def has_like(self, user_id, post_id):
		await asyncio.sleep(0)
		return await super().has_like(user_id, post_id)

	async def append(self, swipe):
		await asyncio.sleep(0)
		await super().append(swipe)


@pytest.mark.asyncio
async def test_concurrent_mutual_likes_converge_to_one_match(two_posters, clock):
	swipes = InterleavingSwipeStore()
	processor = _processor(two_posters, clock, swipes=swipes)

	outcomes = await asyncio.gather(
		processor.record_swipe("alice", "post-b", "like"),
		processor.record_swipe("bob", "post-a", "like"),
	)

	assert all(outcome.match_id == pair_key("alice", "bob") for outcome in outcomes)
	assert sum(outcome.match_created for outcome in outcomes) == 1
	assert len(two_posters.matches.matches) == 1
	assert len(two_posters.notifier.events) == 1


class ConflictingMatchStore(InMemoryMatchStore):
	async def create_if_absent(self, key, match):
		raise Conflict("match_contended")


@pytest.mark.asyncio
async def test_conflict_on_create_reads_the_winning_match(two_posters, clock):
	matches = ConflictingMatchStore()
	existing = Match.for_pair("alice", "bob", created_at=clock.now())
	matches.matches[existing.id] = existing
	processor = _processor(two_posters, clock, matches=matches)
	await processor.record_swipe("alice", "post-b", "like")

	outcome = await processor.record_swipe("bob", "post-a", "like")

	assert outcome.match == existing
	assert outcome.match_created is False


class FailingNotifier(RecordingNotifier):
	async def match_created(self, match):
		raise RuntimeError("push service down")


@pytest.mark.asyncio
async def test_notifier_failure_does_not_fail_the_swipe(two_posters, clock):
	processor = _processor(two_posters, clock, notifier=FailingNotifier())
	await processor.record_swipe("alice", "post-b", "like")

	outcome = await processor.record_swipe("bob", "post-a", "like")

	assert outcome.match_created is True


class SlowSwipeStore(InMemorySwipeStore):
	async def append(self, swipe):
		await asyncio.sleep(0.05)
		await super().append(swipe)


@pytest.mark.asyncio
async def test_cancelled_caller_does_not_abort_the_write(two_posters, clock):
	swipes = SlowSwipeStore()
	processor = _processor(two_posters, clock, swipes=swipes)

	task = asyncio.create_task(processor.record_swipe("alice", "post-b", "like"))
	await asyncio.sleep(0.01)
	task.cancel()
	with pytest.raises(asyncio.CancelledError):
		await task
	await asyncio.sleep(0.1)

	assert await swipes.has_like("alice", "post-b") is True


class BrokenSlowSwipeStore(InMemorySwipeStore):
	async def append(self, swipe):
		await asyncio.sleep(0.05)
		raise Unavailable("redis_unavailable")


@pytest.mark.asyncio
async def test_write_failure_after_cancel_is_logged(two_posters, clock, caplog):
	processor = _processor(two_posters, clock, swipes=BrokenSlowSwipeStore())

	with caplog.at_level(logging.ERROR, logger="tunematch.domain.matching.swipes"):
		task = asyncio.create_task(processor.record_swipe("alice", "post-b", "like"))
		await asyncio.sleep(0.01)
		task.cancel()
		with pytest.raises(asyncio.CancelledError):
			await task
		await asyncio.sleep(0.1)

	failures = [record for record in caplog.records if record.getMessage() == "swipe write failed after the caller went away"]
	assert len(failures) == 1
	assert isinstance(failures[0].exc_info[1], Unavailable)
	assert processor._detached == set()


@pytest.mark.asyncio
async def test_deactivated_match_can_be_revived(two_posters, clock):
	processor = _processor(two_posters, clock)
	await processor.record_swipe("alice", "post-b", "like")
	created = await processor.record_swipe("bob", "post-a", "like")
	await two_posters.matches.deactivate(created.match_id)

	revived = await processor.record_swipe("bob", "post-a", "like")

	assert revived.match_created is True
	assert revived.match.is_active is True
	assert len(two_posters.matches.matches) == 1


@pytest.mark.asyncio
async def test_history_stats_and_has_swiped(stores, clock, make_post):
	stores.content.add(make_post("p1", "a1"), make_post("p2", "a2"), make_post("p3", "a3"))
	processor = _processor(stores, clock)
	for post_id, direction in (("p1", "like"), ("p2", "pass"), ("p3", "like")):
		await processor.record_swipe("viewer", post_id, direction)

	stats = await processor.swipe_stats("viewer")
	assert (stats.total, stats.likes, stats.passes) == (3, 2, 1)
	assert stats.like_ratio == pytest.approx(2 / 3)
	assert await processor.has_swiped("viewer", "p2") is True
	assert await processor.has_swiped("viewer", "p9") is False
	assert len(await processor.swipe_history("viewer", limit=2)) == 2

	empty = await processor.swipe_stats("nobody")
	assert empty.like_ratio == 0.0
