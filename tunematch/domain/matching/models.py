"""Domain models for posts, profiles, swipes and matches."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

AUDIO_FEATURE_NAMES = ("valence", "energy", "danceability", "acousticness", "tempo")


class SwipeDirection(str, Enum):
	"""Direction of a swipe on a post."""

	LIKE = "like"
	PASS = "pass"

	@classmethod
	def parse(cls, value: "SwipeDirection | str") -> "SwipeDirection":
		if isinstance(value, SwipeDirection):
			return value
		text = str(value).strip().lower()
		# older clients sent right/left
		if text == "right":
			return cls.LIKE
		if text == "left":
			return cls.PASS
		return cls(text)


def _as_utc(value: Any) -> Optional[datetime]:
	if value is None:
		return None
	if isinstance(value, str):
		value = datetime.fromisoformat(value)
	if not isinstance(value, datetime):
		return None
	if value.tzinfo is None:
		return value.replace(tzinfo=timezone.utc)
	return value.astimezone(timezone.utc)


def _str_tuple(values: Any) -> tuple[str, ...]:
	if not values or isinstance(values, (str, bytes)):
		return ()
	return tuple(str(item) for item in values if item is not None and str(item).strip())


def _clean_text(value: Any) -> Optional[str]:
	if value is None:
		return None
	text = str(value).strip()
	return text or None


@dataclass(frozen=True, slots=True)
class AudioFeatures:
	"""Mood/energy descriptor of a song. Tempo is BPM, the rest are 0..1."""

	valence: float
	energy: float
	danceability: float
	acousticness: float
	tempo: float

	@classmethod
	def from_record(cls, record: Optional[Mapping[str, Any]]) -> Optional["AudioFeatures"]:
		"""Parse a stored feature vector; anything incomplete counts as absent."""
		if not record or not isinstance(record, Mapping):
			return None
		values: dict[str, float] = {}
		for name in AUDIO_FEATURE_NAMES:
			raw = record.get(name)
			if raw is None or isinstance(raw, bool):
				return None
			try:
				number = float(raw)
			except (TypeError, ValueError):
				return None
			if not math.isfinite(number):
				return None
			values[name] = number
		return cls(**values)

	def to_record(self) -> dict[str, float]:
		return {name: getattr(self, name) for name in AUDIO_FEATURE_NAMES}


@dataclass(frozen=True, slots=True)
class MusicPreferences:
	"""Learned taste vector derived from liked posts."""

	genres: tuple[str, ...] = ()
	audio_features: Optional[AudioFeatures] = None
	mood_tags: tuple[str, ...] = ()

	@classmethod
	def from_record(cls, record: Optional[Mapping[str, Any]]) -> Optional["MusicPreferences"]:
		if not record or not isinstance(record, Mapping):
			return None
		return cls(
			genres=_str_tuple(record.get("genres")),
			audio_features=AudioFeatures.from_record(record.get("audio_features") or record.get("audioFeatures")),
			mood_tags=_str_tuple(record.get("mood_tags") or record.get("moodTags")),
		)

	def to_record(self) -> dict[str, Any]:
		return {
			"genres": list(self.genres),
			"audio_features": self.audio_features.to_record() if self.audio_features else None,
			"mood_tags": list(self.mood_tags),
		}


@dataclass(frozen=True, slots=True)
class Questionnaire:
	"""Five short onboarding answers describing taste in words."""

	weekend_soundtrack: Optional[str] = None
	mood_genre: Optional[str] = None
	discovery_frequency: Optional[str] = None
	favorite_song_memory: Optional[str] = None
	preferred_mood_tag: Optional[str] = None

	@classmethod
	def from_record(cls, record: Optional[Mapping[str, Any]]) -> "Questionnaire":
		if not record or not isinstance(record, Mapping):
			return cls()
		return cls(
			weekend_soundtrack=_clean_text(record.get("weekend_soundtrack") or record.get("weekendSoundtrack")),
			mood_genre=_clean_text(record.get("mood_genre") or record.get("moodGenre")),
			discovery_frequency=_clean_text(record.get("discovery_frequency") or record.get("discoveryFrequency")),
			favorite_song_memory=_clean_text(record.get("favorite_song_memory") or record.get("favoriteSongMemory")),
			preferred_mood_tag=_clean_text(record.get("preferred_mood_tag") or record.get("preferredMoodTag")),
		)

	def to_record(self) -> dict[str, Optional[str]]:
		return {
			"weekend_soundtrack": self.weekend_soundtrack,
			"mood_genre": self.mood_genre,
			"discovery_frequency": self.discovery_frequency,
			"favorite_song_memory": self.favorite_song_memory,
			"preferred_mood_tag": self.preferred_mood_tag,
		}


@dataclass(frozen=True, slots=True)
class EngagementHistory:
	"""Historical engagement signals used by the affinity bonus."""

	liked_post_ids: tuple[str, ...] = ()
	matched_user_ids: tuple[str, ...] = ()
	posted_moods: tuple[str, ...] = ()

	@classmethod
	def from_record(cls, record: Optional[Mapping[str, Any]]) -> "EngagementHistory":
		if not record or not isinstance(record, Mapping):
			return cls()
		return cls(
			liked_post_ids=_str_tuple(record.get("liked_post_ids") or record.get("likedPosts")),
			matched_user_ids=_str_tuple(record.get("matched_user_ids") or record.get("matchedUsers")),
			posted_moods=_str_tuple(record.get("posted_moods") or record.get("postedMoods")),
		)

	def to_record(self) -> dict[str, list[str]]:
		return {
			"liked_post_ids": list(self.liked_post_ids),
			"matched_user_ids": list(self.matched_user_ids),
			"posted_moods": list(self.posted_moods),
		}


@dataclass(frozen=True, slots=True)
class UserProfile:
	"""Matching-relevant view of a user."""

	user_id: str
	display_name: str = ""
	questionnaire: Questionnaire = field(default_factory=Questionnaire)
	preferences: Optional[MusicPreferences] = None
	preferences_updated_at: Optional[datetime] = None
	engagement: EngagementHistory = field(default_factory=EngagementHistory)
	friend_ids: frozenset[str] = frozenset()
	matched_user_ids: frozenset[str] = frozenset()

	@classmethod
	def from_record(cls, record: Mapping[str, Any]) -> "UserProfile":
		return cls(
			user_id=str(record.get("user_id") or record.get("uid") or record["id"]),
			display_name=str(record.get("display_name") or record.get("displayName") or ""),
			questionnaire=Questionnaire.from_record(record.get("questionnaire")),
			preferences=MusicPreferences.from_record(record.get("preferences") or record.get("musicPreferences")),
			preferences_updated_at=_as_utc(record.get("preferences_updated_at")),
			engagement=EngagementHistory.from_record(record.get("engagement") or record.get("engagementHistory")),
			friend_ids=frozenset(_str_tuple(record.get("friend_ids") or record.get("friends"))),
			matched_user_ids=frozenset(_str_tuple(record.get("matched_user_ids"))),
		)

	def to_record(self) -> dict[str, Any]:
		return {
			"user_id": self.user_id,
			"display_name": self.display_name,
			"questionnaire": self.questionnaire.to_record(),
			"preferences": self.preferences.to_record() if self.preferences else None,
			"preferences_updated_at": self.preferences_updated_at.isoformat() if self.preferences_updated_at else None,
			"engagement": self.engagement.to_record(),
			"friend_ids": sorted(self.friend_ids),
			"matched_user_ids": sorted(self.matched_user_ids),
		}


@dataclass(frozen=True, slots=True)
class Song:
	title: str
	artist: str
	cover_art_url: str = ""
	audio_features: Optional[AudioFeatures] = None
	genres: tuple[str, ...] = ()
	preview_url: Optional[str] = None
	album: Optional[str] = None
	spotify_id: Optional[str] = None

	@classmethod
	def from_record(cls, record: Optional[Mapping[str, Any]]) -> "Song":
		record = record or {}
		return cls(
			title=str(record.get("title") or ""),
			artist=str(record.get("artist") or ""),
			cover_art_url=str(record.get("cover_art_url") or record.get("coverArtUrl") or ""),
			audio_features=AudioFeatures.from_record(record.get("audio_features") or record.get("audioFeatures")),
			genres=_str_tuple(record.get("genres")),
			preview_url=_clean_text(record.get("preview_url") or record.get("previewUrl")),
			album=_clean_text(record.get("album")),
			spotify_id=_clean_text(record.get("spotify_id") or record.get("spotifyId")),
		)

	def to_record(self) -> dict[str, Any]:
		return {
			"title": self.title,
			"artist": self.artist,
			"cover_art_url": self.cover_art_url,
			"audio_features": self.audio_features.to_record() if self.audio_features else None,
			"genres": list(self.genres),
			"preview_url": self.preview_url,
			"album": self.album,
			"spotify_id": self.spotify_id,
		}


@dataclass(frozen=True, slots=True)
class Post:
	"""A song-of-the-day post. Immutable apart from counters owned elsewhere."""

	id: str
	author_id: str
	song: Song
	mood: str
	created_at: datetime
	mood_tags: tuple[str, ...] = ()
	caption: str = ""
	likes: int = 0
	comments: int = 0

	@classmethod
	def from_record(cls, record: Mapping[str, Any]) -> "Post":
		created_at = _as_utc(record.get("created_at") or record.get("createdAt"))
		if created_at is None:
			raise ValueError("post record without created_at")
		return cls(
			id=str(record["id"]),
			author_id=str(record.get("author_id") or record["userId"]),
			song=Song.from_record(record.get("song")),
			mood=str(record.get("mood") or ""),
			created_at=created_at,
			mood_tags=_str_tuple(record.get("mood_tags") or record.get("moodTags")),
			caption=str(record.get("caption") or ""),
			likes=int(record.get("likes") or 0),
			comments=int(record.get("comments") or 0),
		)

	def to_record(self) -> dict[str, Any]:
		return {
			"id": self.id,
			"author_id": self.author_id,
			"song": self.song.to_record(),
			"mood": self.mood,
			"created_at": self.created_at.isoformat(),
			"mood_tags": list(self.mood_tags),
			"caption": self.caption,
			"likes": self.likes,
			"comments": self.comments,
		}

	@property
	def effective_mood_tags(self) -> tuple[str, ...]:
		"""Mood tags, falling back to the single mood label."""
		if self.mood_tags:
			return self.mood_tags
		return (self.mood,) if self.mood else ()


@dataclass(frozen=True, slots=True)
class Swipe:
	"""Append-only record of one user's reaction to one post."""

	swiper_id: str
	post_id: str
	post_author_id: str
	direction: SwipeDirection
	created_at: datetime

	@classmethod
	def from_record(cls, record: Mapping[str, Any]) -> "Swipe":
		return cls(
			swiper_id=str(record["swiper_id"]),
			post_id=str(record["post_id"]),
			post_author_id=str(record["post_author_id"]),
			direction=SwipeDirection.parse(record["direction"]),
			created_at=_as_utc(record.get("created_at")) or datetime.now(timezone.utc),
		)

	def to_record(self) -> dict[str, Any]:
		return {
			"swiper_id": self.swiper_id,
			"post_id": self.post_id,
			"post_author_id": self.post_author_id,
			"direction": self.direction.value,
			"created_at": self.created_at.isoformat(),
		}


def pair_key(user_a: str, user_b: str) -> str:
	"""Deterministic identifier for the unordered pair {user_a, user_b}.

	Ids are sorted and length-prefixed, so no two distinct pairs share a key
	whatever characters the ids contain.
	"""
	a, b = str(user_a), str(user_b)
	if a == b:
		raise ValueError("a pair needs two distinct users")
	low, high = sorted((a, b))
	return f"{len(low)}:{low}:{high}"


@dataclass(frozen=True, slots=True)
class Match:
	"""Persistent mutual match between two users."""

	id: str
	user_ids: tuple[str, str]
	created_at: datetime
	is_active: bool = True

	@classmethod
	def for_pair(cls, user_a: str, user_b: str, *, created_at: Optional[datetime] = None) -> "Match":
		low, high = sorted((str(user_a), str(user_b)))
		return cls(
			id=pair_key(low, high),
			user_ids=(low, high),
			created_at=created_at or datetime.now(timezone.utc),
		)

	@classmethod
	def from_record(cls, record: Mapping[str, Any]) -> "Match":
		users = [str(uid) for uid in record["user_ids"]]
		low, high = sorted(users)
		return cls(
			id=str(record.get("id") or pair_key(low, high)),
			user_ids=(low, high),
			created_at=_as_utc(record.get("created_at")) or datetime.now(timezone.utc),
			# legacy documents lack the flag and count as active
			is_active=record.get("is_active") is not False,
		)

	def to_record(self) -> dict[str, Any]:
		return {
			"id": self.id,
			"user_ids": list(self.user_ids),
			"created_at": self.created_at.isoformat(),
			"is_active": self.is_active,
		}

	def other(self, user_id: str) -> str:
		low, high = self.user_ids
		if user_id == low:
			return high
		if user_id == high:
			return low
		raise ValueError(f"{user_id} is not part of match {self.id}")

	def involves(self, user_id: str) -> bool:
		return user_id in self.user_ids


@dataclass(frozen=True, slots=True)
class ScoreBreakdown:
	"""Per-signal view of one compatibility score. None means no signal."""

	questionnaire: Optional[float]
	audio: float
	mood: float
	engagement: Optional[float]
	total: float


@dataclass(frozen=True, slots=True)
class Candidate:
	"""A scored post for one discovery response. Never persisted."""

	post: Post
	score: float
	breakdown: Optional[ScoreBreakdown] = None


def unique_in_order(values: Iterable[str]) -> tuple[str, ...]:
	return tuple(dict.fromkeys(values))
