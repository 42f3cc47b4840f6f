from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from tunematch.domain.matching.clock import (
	Clock,
	format_duration,
	is_active,
	last_boundary,
	next_boundary,
)

LA = ZoneInfo("America/Los_Angeles")
UTC = timezone.utc


def test_last_boundary_same_day_after_reset_in_summer():
	now = datetime(2024, 6, 12, 18, 0, tzinfo=UTC)
	assert last_boundary(now, tz=LA) == datetime(2024, 6, 12, 16, 0, tzinfo=UTC)


def test_last_boundary_before_reset_uses_previous_day():
	now = datetime(2024, 6, 12, 15, 59, tzinfo=UTC)
	assert last_boundary(now, tz=LA) == datetime(2024, 6, 11, 16, 0, tzinfo=UTC)


def test_last_boundary_in_winter_follows_standard_time():
	now = datetime(2024, 1, 15, 20, 0, tzinfo=UTC)
	assert last_boundary(now, tz=LA) == datetime(2024, 1, 15, 17, 0, tzinfo=UTC)


def test_boundary_instant_itself_opens_the_new_window():
	anchor = datetime(2024, 6, 12, 16, 0, tzinfo=UTC)
	assert last_boundary(anchor, tz=LA) == anchor


def test_activity_is_strictly_after_the_boundary():
	anchor = datetime(2024, 6, 12, 16, 0, tzinfo=UTC)
	now = datetime(2024, 6, 12, 20, 0, tzinfo=UTC)
	one_us = timedelta(microseconds=1)
	assert is_active(anchor + one_us, now, tz=LA)
	assert not is_active(anchor, now, tz=LA)
	assert not is_active(anchor - one_us, now, tz=LA)


def test_next_boundary_across_spring_forward_is_23_hours_later():
	now = datetime(2024, 3, 9, 20, 0, tzinfo=UTC)
	previous = last_boundary(now, tz=LA)
	upcoming = next_boundary(now, tz=LA)
	assert previous == datetime(2024, 3, 9, 17, 0, tzinfo=UTC)
	assert upcoming == datetime(2024, 3, 10, 16, 0, tzinfo=UTC)
	assert upcoming - previous == timedelta(hours=23)


def test_next_boundary_across_fall_back_is_25_hours_later():
	now = datetime(2024, 11, 2, 20, 0, tzinfo=UTC)
	upcoming = next_boundary(now, tz=LA)
	assert upcoming == datetime(2024, 11, 3, 17, 0, tzinfo=UTC)
	assert upcoming - last_boundary(now, tz=LA) == timedelta(hours=25)


def test_boundaries_are_monotonic_and_bracket_now():
	start = datetime(2024, 3, 8, 0, 0, tzinfo=UTC)
	previous = None
	for step in range(0, 24 * 10 * 4):
		now = start + timedelta(minutes=15 * step)
		low = last_boundary(now, tz=LA)
		high = next_boundary(now, tz=LA)
		assert low <= now < high
		if previous is not None:
			assert low >= previous
		previous = low


def test_naive_datetimes_are_treated_as_utc():
	naive = datetime(2024, 6, 12, 18, 0)
	assert last_boundary(naive, tz=LA) == datetime(2024, 6, 12, 16, 0, tzinfo=UTC)


def test_custom_zone_and_hour():
	clock = Clock("Europe/London", 6, now=lambda: datetime(2024, 6, 12, 4, 30, tzinfo=UTC))
	# 06:00 BST is 05:00 UTC, not reached yet
	assert clock.last_boundary() == datetime(2024, 6, 11, 5, 0, tzinfo=UTC)


@pytest.mark.parametrize(
	"delta,expected",
	[
		(timedelta(hours=3, minutes=12, seconds=40), "3h 12m"),
		(timedelta(minutes=12), "12m"),
		(timedelta(seconds=-5), "0m"),
	],
)
def test_format_duration(delta, expected):
	assert format_duration(delta) == expected


def test_clock_reset_helpers(clock):
	assert clock.time_until_reset() == "22h 0m"
	assert clock.has_posted_today(None) is False
	assert clock.has_posted_today(datetime(2024, 6, 12, 16, 30, tzinfo=UTC)) is True
	assert clock.has_posted_today(datetime(2024, 6, 12, 15, 30, tzinfo=UTC)) is False
