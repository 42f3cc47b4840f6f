"""Compatibility scoring between a viewer and a candidate post."""

from __future__ import annotations

import math
from typing import Iterable, Optional, Sequence

from tunematch.domain.matching.models import (
	AudioFeatures,
	Post,
	Questionnaire,
	ScoreBreakdown,
	UserProfile,
)

NEUTRAL_SCORE = 0.5

QUESTIONNAIRE_WEIGHT = 0.4
AUDIO_WEIGHT = 0.3
MOOD_WEIGHT = 0.2
ENGAGEMENT_WEIGHT = 0.1

# out of 100
QUESTION_WEIGHTS = {
	"weekend_soundtrack": 25,
	"mood_genre": 25,
	"discovery_frequency": 20,
	"preferred_mood_tag": 20,
	"favorite_song_memory": 10,
}

AUDIO_FEATURE_WEIGHTS = {
	"valence": 0.25,
	"energy": 0.25,
	"danceability": 0.20,
	"acousticness": 0.15,
	"tempo": 0.15,
}

SHARED_MATCH_BONUS = 0.1
POSTED_MOOD_BONUS = 0.2


def clamp(value: float, minimum: float = 0.0, maximum: float = 1.0) -> float:
	if not math.isfinite(value):
		return minimum
	return max(minimum, min(maximum, value))


def _tokens(text: str) -> set[str]:
	return {token for token in text.lower().split() if len(token) > 2}


def text_similarity(first: Optional[str], second: Optional[str]) -> float:
	"""Jaccard similarity of the word sets of two strings."""
	left = _tokens(first or "")
	right = _tokens(second or "")
	union = left | right
	if not union:
		return 0.0
	return len(left & right) / len(union)


def _same(first: str, second: str) -> bool:
	return first.strip().lower() == second.strip().lower()


def _question_similarity(field_name: str, mine: str, theirs: str) -> float:
	if field_name == "discovery_frequency":
		return 1.0 if _same(mine, theirs) else 0.5
	if field_name in ("mood_genre", "preferred_mood_tag"):
		return 1.0 if _same(mine, theirs) else text_similarity(mine, theirs)
	return text_similarity(mine, theirs)


def questionnaire_similarity(viewer: Questionnaire, author: Questionnaire) -> Optional[float]:
	"""Weighted answer similarity over the questions both users answered.

	Returns None when no question was answered on both sides.
	"""
	total = 0.0
	weight_sum = 0
	for field_name, weight in QUESTION_WEIGHTS.items():
		mine = getattr(viewer, field_name)
		theirs = getattr(author, field_name)
		if not mine or not theirs:
			continue
		total += weight * _question_similarity(field_name, mine, theirs)
		weight_sum += weight
	if weight_sum == 0:
		return None
	return total / weight_sum


def _tempo_similarity(first: float, second: float) -> float:
	peak = max(first, second)
	if peak <= 0:
		return 1.0 if first == second else 0.0
	return max(0.0, 1.0 - abs(first - second) / peak)


def audio_compatibility(learned: Optional[AudioFeatures], song: Optional[AudioFeatures]) -> float:
	if learned is None or song is None:
		return NEUTRAL_SCORE
	score = 0.0
	for name, weight in AUDIO_FEATURE_WEIGHTS.items():
		mine = getattr(learned, name)
		theirs = getattr(song, name)
		if name == "tempo":
			score += weight * _tempo_similarity(mine, theirs)
		else:
			score += weight * clamp(1.0 - abs(mine - theirs))
	return clamp(score)


def _lowered(values: Iterable[str]) -> set[str]:
	return {value.strip().lower() for value in values if value and value.strip()}


def mood_overlap(learned_tags: Sequence[str], post_tags: Sequence[str]) -> float:
	mine = _lowered(learned_tags)
	theirs = _lowered(post_tags)
	if not mine or not theirs:
		return NEUTRAL_SCORE
	return len(mine & theirs) / max(len(mine), len(theirs))


def engagement_affinity(viewer: UserProfile, author: UserProfile) -> Optional[float]:
	"""Bonus for shared match history and similar posting moods.

	None when neither term has data on both sides.
	"""
	viewer_matches = set(viewer.engagement.matched_user_ids)
	author_matches = set(author.engagement.matched_user_ids)
	viewer_moods = viewer.engagement.posted_moods
	author_moods = author.engagement.posted_moods
	has_matches = bool(viewer_matches and author_matches)
	has_moods = bool(viewer_moods and author_moods)
	if not has_matches and not has_moods:
		return None
	bonus = 0.0
	if has_matches:
		bonus += SHARED_MATCH_BONUS * len(viewer_matches & author_matches)
	if has_moods:
		bonus += POSTED_MOOD_BONUS * text_similarity(" ".join(viewer_moods), " ".join(author_moods))
	return min(1.0, bonus)


class CompatibilityScorer:
	"""Pure, deterministic scorer. Missing signals degrade, never raise."""

	def score_breakdown(self, viewer: UserProfile, author: UserProfile, post: Post) -> ScoreBreakdown:
		learned = viewer.preferences
		questionnaire = questionnaire_similarity(viewer.questionnaire, author.questionnaire)
		audio = audio_compatibility(learned.audio_features if learned else None, post.song.audio_features)
		mood = mood_overlap(learned.mood_tags if learned else (), post.effective_mood_tags)
		engagement = engagement_affinity(viewer, author)

		parts = [(AUDIO_WEIGHT, audio), (MOOD_WEIGHT, mood)]
		if questionnaire is not None:
			parts.append((QUESTIONNAIRE_WEIGHT, questionnaire))
		if engagement is not None:
			parts.append((ENGAGEMENT_WEIGHT, engagement))
		weight_sum = sum(weight for weight, _ in parts)
		total = sum(weight * value for weight, value in parts) / weight_sum
		return ScoreBreakdown(
			questionnaire=questionnaire,
			audio=audio,
			mood=mood,
			engagement=engagement,
			total=clamp(total),
		)

	def score(self, viewer: UserProfile, author: UserProfile, post: Post) -> float:
		return self.score_breakdown(viewer, author, post).total


__all__ = [
	"CompatibilityScorer",
	"audio_compatibility",
	"engagement_affinity",
	"mood_overlap",
	"questionnaire_similarity",
	"text_similarity",
]
