"""Daily liveness window for posts.

A post is discoverable from the moment it is created until the next daily
reset. The reset is a fixed local wall-clock hour in a named timezone
(09:00 America/Los_Angeles by default), so the window follows DST rather
than a fixed UTC offset.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "America/Los_Angeles"
DEFAULT_RESET_HOUR = 9


def _utc(value: datetime) -> datetime:
	if value.tzinfo is None:
		return value.replace(tzinfo=timezone.utc)
	return value.astimezone(timezone.utc)


def _anchor(day: date, tz: ZoneInfo, hour: int) -> datetime:
	return datetime.combine(day, time(hour), tzinfo=tz).astimezone(timezone.utc)


def last_boundary(now: datetime, *, tz: ZoneInfo, hour: int = DEFAULT_RESET_HOUR) -> datetime:
	"""Today's reset instant if ``now`` is at or past it, else yesterday's (UTC)."""
	now_utc = _utc(now)
	local_day = now_utc.astimezone(tz).date()
	anchor = _anchor(local_day, tz, hour)
	if now_utc < anchor:
		anchor = _anchor(local_day - timedelta(days=1), tz, hour)
	return anchor


def next_boundary(now: datetime, *, tz: ZoneInfo, hour: int = DEFAULT_RESET_HOUR) -> datetime:
	"""The reset instant following ``last_boundary(now)`` (UTC)."""
	previous = last_boundary(now, tz=tz, hour=hour)
	local_day = previous.astimezone(tz).date()
	return _anchor(local_day + timedelta(days=1), tz, hour)


def is_active(created_at: datetime, now: datetime, *, tz: ZoneInfo, hour: int = DEFAULT_RESET_HOUR) -> bool:
	return _utc(created_at) > last_boundary(now, tz=tz, hour=hour)


def format_duration(delta: timedelta) -> str:
	total_minutes = max(0, int(delta.total_seconds() // 60))
	hours, minutes = divmod(total_minutes, 60)
	if hours > 0:
		return f"{hours}h {minutes}m"
	return f"{minutes}m"


class Clock:
	"""Liveness boundary calculator bound to a zone, a reset hour and a time source."""

	def __init__(
		self,
		tz_name: str = DEFAULT_TIMEZONE,
		hour: int = DEFAULT_RESET_HOUR,
		*,
		now: Optional[Callable[[], datetime]] = None,
	) -> None:
		self.tz = ZoneInfo(tz_name)
		self.hour = hour
		self._now = now or (lambda: datetime.now(timezone.utc))

	@classmethod
	def from_settings(cls, settings) -> "Clock":
		return cls(settings.liveness_timezone, settings.liveness_hour)

	def now(self) -> datetime:
		return _utc(self._now())

	def last_boundary(self, now: Optional[datetime] = None) -> datetime:
		return last_boundary(now or self.now(), tz=self.tz, hour=self.hour)

	def next_boundary(self, now: Optional[datetime] = None) -> datetime:
		return next_boundary(now or self.now(), tz=self.tz, hour=self.hour)

	def is_active(self, created_at: datetime, now: Optional[datetime] = None) -> bool:
		return is_active(created_at, now or self.now(), tz=self.tz, hour=self.hour)

	def has_posted_today(self, last_post_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
		"""Whether a user's latest post falls inside the current window."""
		if last_post_at is None:
			return False
		return self.is_active(last_post_at, now)

	def time_until_reset(self, now: Optional[datetime] = None) -> str:
		current = now or self.now()
		return format_duration(self.next_boundary(current) - _utc(current))
