import random
from datetime import datetime, timezone

import pytest

from tunematch.domain.matching.models import (
	AudioFeatures,
	EngagementHistory,
	MusicPreferences,
	Post,
	Questionnaire,
	Song,
	UserProfile,
)
from tunematch.domain.matching.scoring import (
	CompatibilityScorer,
	audio_compatibility,
	engagement_affinity,
	mood_overlap,
	questionnaire_similarity,
	text_similarity,
)

CREATED = datetime(2024, 6, 12, 17, 0, tzinfo=timezone.utc)
FLAT = AudioFeatures(valence=0.5, energy=0.5, danceability=0.5, acousticness=0.5, tempo=120.0)


def _post(audio=None, mood="chill", mood_tags=()):
	return Post(
		id="p1",
		author_id="author",
		song=Song(title="t", artist="a", audio_features=audio),
		mood=mood,
		mood_tags=tuple(mood_tags),
		created_at=CREATED,
	)


def test_text_similarity_uses_long_lowercase_tokens():
	assert text_similarity("Late night drives", "night DRIVES alone") == pytest.approx(0.5)
	assert text_similarity("at the", "at the") == pytest.approx(1.0)
	assert text_similarity("at", "to") == 0.0
	assert text_similarity("", None) == 0.0


def test_questionnaire_omits_unanswered_questions():
	viewer = Questionnaire(mood_genre="Indie", discovery_frequency="daily")
	author = Questionnaire(mood_genre="indie ", weekend_soundtrack="road trip songs")
	# only mood_genre is answered on both sides
	assert questionnaire_similarity(viewer, author) == pytest.approx(1.0)


def test_questionnaire_discovery_cadence_is_half_credit_on_mismatch():
	viewer = Questionnaire(discovery_frequency="daily")
	author = Questionnaire(discovery_frequency="weekly")
	assert questionnaire_similarity(viewer, author) == pytest.approx(0.5)


def test_questionnaire_weights_are_normalised():
	viewer = Questionnaire(mood_genre="jazz", discovery_frequency="daily")
	author = Questionnaire(mood_genre="jazz", discovery_frequency="weekly")
	# (25 * 1 + 20 * 0.5) / 45
	assert questionnaire_similarity(viewer, author) == pytest.approx(35 / 45)


def test_questionnaire_without_common_answers_is_absent():
	assert questionnaire_similarity(Questionnaire(), Questionnaire(mood_genre="rock")) is None


def test_audio_compatibility_weights_each_feature():
	learned = AudioFeatures(valence=0.0, energy=0.5, danceability=0.5, acousticness=0.5, tempo=100.0)
	song = AudioFeatures(valence=1.0, energy=0.5, danceability=0.5, acousticness=0.5, tempo=200.0)
	assert audio_compatibility(learned, song) == pytest.approx(0.25 + 0.20 + 0.15 + 0.15 * 0.5)


def test_audio_compatibility_zero_tempo_on_both_sides_matches():
	learned = AudioFeatures(valence=0.5, energy=0.5, danceability=0.5, acousticness=0.5, tempo=0.0)
	assert audio_compatibility(learned, learned) == pytest.approx(1.0)


def test_audio_compatibility_is_neutral_without_vectors():
	assert audio_compatibility(None, FLAT) == 0.5
	assert audio_compatibility(FLAT, None) == 0.5


def test_mood_overlap_is_case_insensitive_and_neutral_when_empty():
	assert mood_overlap(["Chill", "happy"], ["chill"]) == pytest.approx(0.5)
	assert mood_overlap(["chill"], ["CHILL"]) == pytest.approx(1.0)
	assert mood_overlap([], ["chill"]) == 0.5
	assert mood_overlap(["chill"], []) == 0.5


def test_engagement_affinity_is_capped():
	shared = tuple(f"u{i}" for i in range(15))
	viewer = UserProfile(user_id="v", engagement=EngagementHistory(matched_user_ids=shared))
	author = UserProfile(user_id="a", engagement=EngagementHistory(matched_user_ids=shared))
	assert engagement_affinity(viewer, author) == 1.0


def test_engagement_affinity_absent_without_history():
	viewer = UserProfile(user_id="v", engagement=EngagementHistory(matched_user_ids=("x",)))
	author = UserProfile(user_id="a")
	assert engagement_affinity(viewer, author) is None


def test_score_is_neutral_when_nothing_is_known():
	scorer = CompatibilityScorer()
	breakdown = scorer.score_breakdown(UserProfile(user_id="v"), UserProfile(user_id="a"), _post(mood=""))
	assert breakdown.questionnaire is None
	assert breakdown.engagement is None
	assert breakdown.total == pytest.approx(0.5)


def test_matching_audio_and_mood_score_highly_without_questionnaire():
	viewer = UserProfile(
		user_id="v",
		preferences=MusicPreferences(audio_features=FLAT, mood_tags=("chill",)),
	)
	score = CompatibilityScorer().score(viewer, UserProfile(user_id="a"), _post(audio=FLAT, mood="chill"))
	assert score >= 0.9


def test_all_signals_use_the_fixed_weights():
	viewer = UserProfile(
		user_id="v",
		questionnaire=Questionnaire(mood_genre="Indie"),
		preferences=MusicPreferences(audio_features=FLAT, mood_tags=("chill", "happy")),
		engagement=EngagementHistory(matched_user_ids=("m1", "m2", "m3")),
	)
	author = UserProfile(
		user_id="a",
		questionnaire=Questionnaire(mood_genre="indie"),
		engagement=EngagementHistory(matched_user_ids=("m1", "m2")),
	)
	breakdown = CompatibilityScorer().score_breakdown(viewer, author, _post(audio=FLAT, mood="chill"))
	assert breakdown.questionnaire == pytest.approx(1.0)
	assert breakdown.audio == pytest.approx(1.0)
	assert breakdown.mood == pytest.approx(0.5)
	assert breakdown.engagement == pytest.approx(0.2)
	assert breakdown.total == pytest.approx(0.4 + 0.3 + 0.2 * 0.5 + 0.1 * 0.2)


def _random_features(rng: random.Random):
	if rng.random() < 0.2:
		return None
	return AudioFeatures(
		valence=rng.choice([0.0, 1.0, rng.random()]),
		energy=rng.random(),
		danceability=rng.random(),
		acousticness=rng.choice([0.0, 1.0, rng.random()]),
		tempo=rng.choice([0.0, rng.uniform(40, 220)]),
	)


def _random_text(rng: random.Random, words):
	if rng.random() < 0.3:
		return None
	return " ".join(rng.sample(words, rng.randint(1, 4)))


def test_score_is_bounded_and_deterministic_over_random_profiles():
	rng = random.Random(20240612)
	words = ["chill", "indie", "late", "night", "drives", "sunny", "jazz", "rock", "daily", "weekly"]
	moods = ["chill", "happy", "sad", "hype", "Focus"]
	users = [f"u{i}" for i in range(8)]
	scorer = CompatibilityScorer()
	for _ in range(300):
		def profile(user_id):
			return UserProfile(
				user_id=user_id,
				questionnaire=Questionnaire(
					weekend_soundtrack=_random_text(rng, words),
					mood_genre=_random_text(rng, words),
					discovery_frequency=rng.choice([None, "daily", "weekly"]),
					favorite_song_memory=_random_text(rng, words),
					preferred_mood_tag=rng.choice([None, *moods]),
				),
				preferences=MusicPreferences(
					audio_features=_random_features(rng),
					mood_tags=tuple(rng.sample(moods, rng.randint(0, 3))),
				),
				engagement=EngagementHistory(
					matched_user_ids=tuple(rng.sample(users, rng.randint(0, 8))),
					posted_moods=tuple(rng.sample(moods, rng.randint(0, 3))),
				),
			)

		viewer = profile("viewer")
		author = profile("author")
		post = _post(
			audio=_random_features(rng),
			mood=rng.choice(["", *moods]),
			mood_tags=rng.sample(moods, rng.randint(0, 2)),
		)
		first = scorer.score(viewer, author, post)
		assert 0.0 <= first <= 1.0
		assert scorer.score(viewer, author, post) == first
