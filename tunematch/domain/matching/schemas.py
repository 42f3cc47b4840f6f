"""Schemas for discovery, swipes and matches."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from tunematch.domain.matching.candidates import PostingStatus
from tunematch.domain.matching.matches import MatchStats
from tunematch.domain.matching.models import (
	AudioFeatures,
	Candidate,
	Match,
	MusicPreferences,
	Post,
	ScoreBreakdown,
	Swipe,
	SwipeDirection,
)
from tunematch.domain.matching.swipes import SwipeOutcome, SwipeStats


class AudioFeaturesOut(BaseModel):
	valence: float
	energy: float
	danceability: float
	acousticness: float
	tempo: float

	@classmethod
	def from_domain(cls, features: Optional[AudioFeatures]) -> Optional["AudioFeaturesOut"]:
		if features is None:
			return None
		return cls(**features.to_record())


class SongOut(BaseModel):
	title: str
	artist: str
	cover_art_url: str = ""
	preview_url: Optional[str] = None
	album: Optional[str] = None
	genres: list[str] = Field(default_factory=list)
	audio_features: Optional[AudioFeaturesOut] = None


class PostOut(BaseModel):
	id: str
	author_id: str
	song: SongOut
	mood: str
	mood_tags: list[str] = Field(default_factory=list)
	caption: str = ""
	likes: int = 0
	comments: int = 0
	created_at: datetime

	@classmethod
	def from_domain(cls, post: Post) -> "PostOut":
		song = post.song
		return cls(
			id=post.id,
			author_id=post.author_id,
			song=SongOut(
				title=song.title,
				artist=song.artist,
				cover_art_url=song.cover_art_url,
				preview_url=song.preview_url,
				album=song.album,
				genres=list(song.genres),
				audio_features=AudioFeaturesOut.from_domain(song.audio_features),
			),
			mood=post.mood,
			mood_tags=list(post.mood_tags),
			caption=post.caption,
			likes=post.likes,
			comments=post.comments,
			created_at=post.created_at,
		)


class ScoreBreakdownOut(BaseModel):
	questionnaire: Optional[float] = None
	audio: float
	mood: float
	engagement: Optional[float] = None

	@classmethod
	def from_domain(cls, breakdown: ScoreBreakdown) -> "ScoreBreakdownOut":
		return cls(
			questionnaire=breakdown.questionnaire,
			audio=breakdown.audio,
			mood=breakdown.mood,
			engagement=breakdown.engagement,
		)


class CandidateOut(BaseModel):
	post: PostOut
	score: float = Field(ge=0.0, le=1.0)
	breakdown: Optional[ScoreBreakdownOut] = None

	@classmethod
	def from_domain(cls, candidate: Candidate, *, explain: bool = False) -> "CandidateOut":
		breakdown = None
		if explain and candidate.breakdown is not None:
			breakdown = ScoreBreakdownOut.from_domain(candidate.breakdown)
		return cls(post=PostOut.from_domain(candidate.post), score=candidate.score, breakdown=breakdown)


class DiscoveryFeedResponse(BaseModel):
	items: list[CandidateOut] = Field(default_factory=list)
	exhausted: bool = False


class UnswipedResponse(BaseModel):
	post_ids: list[str] = Field(default_factory=list)


class PostingStatusResponse(BaseModel):
	post_ids: list[str] = Field(default_factory=list)
	has_posted_today: bool
	time_until_reset: str

	@classmethod
	def from_domain(cls, status: PostingStatus) -> "PostingStatusResponse":
		return cls(
			post_ids=[post.id for post in status.posts],
			has_posted_today=status.has_posted_today,
			time_until_reset=status.time_until_reset,
		)


class SwipePayload(BaseModel):
	post_id: str = Field(min_length=1)
	post_author_id: Optional[str] = None
	direction: Literal["like", "pass", "right", "left"]

	@field_validator("direction", mode="before")
	@classmethod
	def _lower(cls, value):
		return value.strip().lower() if isinstance(value, str) else value


class SwipeResponse(BaseModel):
	post_id: str
	direction: SwipeDirection
	match_id: Optional[str] = None
	match_created: bool = False

	@classmethod
	def from_domain(cls, outcome: SwipeOutcome) -> "SwipeResponse":
		return cls(
			post_id=outcome.swipe.post_id,
			direction=outcome.swipe.direction,
			match_id=outcome.match_id,
			match_created=outcome.match_created,
		)


class SwipeOut(BaseModel):
	post_id: str
	post_author_id: str
	direction: SwipeDirection
	created_at: datetime

	@classmethod
	def from_domain(cls, swipe: Swipe) -> "SwipeOut":
		return cls(
			post_id=swipe.post_id,
			post_author_id=swipe.post_author_id,
			direction=swipe.direction,
			created_at=swipe.created_at,
		)


class SwipeStatsResponse(BaseModel):
	total: int
	likes: int
	passes: int
	like_ratio: float

	@classmethod
	def from_domain(cls, stats: SwipeStats) -> "SwipeStatsResponse":
		return cls(total=stats.total, likes=stats.likes, passes=stats.passes, like_ratio=stats.like_ratio)


class PreferencesResponse(BaseModel):
	genres: list[str] = Field(default_factory=list)
	mood_tags: list[str] = Field(default_factory=list)
	audio_features: Optional[AudioFeaturesOut] = None
	updated_at: Optional[datetime] = None

	@classmethod
	def from_domain(
		cls,
		preferences: Optional[MusicPreferences],
		updated_at: Optional[datetime],
	) -> "PreferencesResponse":
		if preferences is None:
			return cls(updated_at=updated_at)
		return cls(
			genres=list(preferences.genres),
			mood_tags=list(preferences.mood_tags),
			audio_features=AudioFeaturesOut.from_domain(preferences.audio_features),
			updated_at=updated_at,
		)


class MatchOut(BaseModel):
	id: str
	user_id: str
	created_at: datetime
	is_active: bool

	@classmethod
	def for_viewer(cls, match: Match, viewer_id: str) -> "MatchOut":
		return cls(id=match.id, user_id=match.other(viewer_id), created_at=match.created_at, is_active=match.is_active)


class MatchListResponse(BaseModel):
	items: list[MatchOut] = Field(default_factory=list)


class MatchStatsResponse(BaseModel):
	total: int
	active: int
	recent: int

	@classmethod
	def from_domain(cls, stats: MatchStats) -> "MatchStatsResponse":
		return cls(total=stats.total, active=stats.active, recent=stats.recent)
